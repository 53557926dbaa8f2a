"""
YAML prompt template loader.

A template is a YAML document describing one prompt:

    description: Summarize a blog post
    system: You are a concise technical editor.
    model:
      model: llama3.1:8b
      context:
        trim_args: [post]
    options:
      - name: post
        type: file
        required: true
    template: |
      Summarize this post:
      {post}

Templates are looked up by name in the configured search directories,
then in the bundled prompts/ directory. Parsed documents are cached in
memory by path to avoid repeated disk I/O.

Rendering uses Python str.format_map. Literal braces are written {{ }}.
"""

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .schema_validator import TEMPLATE_SCHEMA, DocumentError, parse_and_validate

logger = logging.getLogger(__name__)

# Bundled templates relative to project root
_PROMPTS_DIR = Path(__file__).parent.parent / "prompts"
_TEMPLATE_SUFFIX = ".yaml"
_cache: dict[Path, "PromptTemplate"] = {}


class TemplateError(Exception):
    """Raised when a template cannot be found, loaded or given its arguments."""


class RenderError(TemplateError):
    """Raised when a template fails to render with the given arguments."""


@dataclass
class PromptOption:
    name: str
    description: str = ""
    # string | number | integer | bool | file
    type: str = "string"
    array: bool = False
    required: bool = False
    default: Any = None


@dataclass
class PromptTemplate:
    name: str
    path: Path
    template: str
    description: str = ""
    system: str | None = None
    # Raw model options; merged with config defaults before use
    model: dict[str, Any] = field(default_factory=dict)
    options: list[PromptOption] = field(default_factory=list)


def load_template(path: Path) -> PromptTemplate:
    """Load, validate and cache the template file at `path`."""
    path = Path(path).resolve()
    if path in _cache:
        return _cache[path]

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"Could not read template {path}: {exc}") from exc

    try:
        data = parse_and_validate(raw_text, TEMPLATE_SCHEMA, source=str(path))
    except DocumentError as exc:
        raise TemplateError(str(exc)) from exc

    text = data.get("template")
    if text is None:
        template_path = path.parent / data["template_path"]
        try:
            text = template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(
                f"{path}: could not read template_path {template_path}: {exc}"
            ) from exc

    template = PromptTemplate(
        name=path.stem,
        path=path,
        template=text,
        description=data.get("description", ""),
        system=data.get("system"),
        model=data.get("model", {}),
        options=[PromptOption(**option) for option in data.get("options", [])],
    )
    _cache[path] = template
    return template


def _candidate_dirs(search_dirs: Iterable[Path]) -> list[Path]:
    dirs = [Path(d) for d in search_dirs]
    if _PROMPTS_DIR not in dirs:
        dirs.append(_PROMPTS_DIR)
    return dirs


def find_template(name: str, search_dirs: Iterable[Path] = ()) -> PromptTemplate:
    """
    Resolve a template by name or path.

    An existing file path is loaded directly. Otherwise the first
    <dir>/<name>.yaml across `search_dirs` and the bundled prompts wins.
    """
    direct = Path(name)
    if direct.is_file():
        return load_template(direct)

    dirs = _candidate_dirs(search_dirs)
    for directory in dirs:
        candidate = directory / f"{name}{_TEMPLATE_SUFFIX}"
        if candidate.is_file():
            logger.debug("Resolved template %s to %s", name, candidate)
            return load_template(candidate)

    raise TemplateError(
        f"Template '{name}' not found. "
        f"Available templates: {list_available_templates(dirs)}"
    )


def list_available_templates(search_dirs: Iterable[Path] = ()) -> list[str]:
    """Return the names of all templates reachable from the search dirs."""
    names: list[str] = []
    for directory in _candidate_dirs(search_dirs):
        for path in sorted(directory.glob(f"*{_TEMPLATE_SUFFIX}")):
            if path.stem not in names:
                names.append(path.stem)
    return names


def invalidate_cache(path: Path | None = None) -> None:
    """Clear cached templates. Used in tests to reload modified YAML."""
    if path is None:
        _cache.clear()
    else:
        _cache.pop(Path(path).resolve(), None)


def compose_template(text: str, pre: str | None = None, post: str | None = None) -> str:
    """Surround the template body with extra text, separated by blank lines."""
    parts = [part for part in (pre, text, post) if part is not None]
    return "\n\n".join(parts)


def _format_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return "\n".join(str(_format_value(item)) for item in value)
    return value


class _RenderContext(dict):
    def __missing__(self, key: str) -> str:
        raise RenderError(f"Template references undefined argument '{key}'")


def render_template(text: str, arguments: dict[str, Any]) -> str:
    """
    Render template text with the given arguments.

    Lists render one element per line and None renders as an empty string.
    Undefined references and malformed placeholders raise RenderError.
    """
    context = _RenderContext({k: _format_value(v) for k, v in arguments.items()})
    try:
        return text.format_map(context)
    except RenderError:
        raise
    except (ValueError, IndexError, KeyError, AttributeError, TypeError) as exc:
        raise RenderError(f"Malformed template: {exc}") from exc


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting the process."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise TemplateError(f"{self.prog}: {message}")


def _non_empty_string(value: str) -> str:
    if not value:
        raise argparse.ArgumentTypeError("value must not be empty")
    return value


_ARG_TYPES = {
    "string": _non_empty_string,
    "file": _non_empty_string,
    "number": float,
    "integer": int,
}


def build_argument_parser(template: PromptTemplate) -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=template.name,
        description=template.description or None,
        add_help=False,
    )
    for option in template.options:
        flags = [f"--{option.name}"]
        dashed = f"--{option.name.replace('_', '-')}"
        if dashed not in flags:
            flags.append(dashed)

        if option.type == "bool":
            parser.add_argument(
                *flags,
                dest=option.name,
                action="store_true",
                default=bool(option.default),
                help=option.description,
            )
            continue

        parser.add_argument(
            *flags,
            dest=option.name,
            type=_ARG_TYPES[option.type],
            action="append" if option.array else "store",
            required=option.required and option.default is None,
            default=None,
            help=option.description,
        )
    return parser


def _read_file_argument(option: PromptOption, value: str) -> str:
    try:
        return Path(value).read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"--{option.name}: could not read {value}: {exc}") from exc


def parse_template_args(template: PromptTemplate, argv: list[str]) -> dict[str, Any]:
    """
    Parse command-line style template arguments into a render context.

    Array options collect repeated flags into a list (empty when absent).
    File options are replaced by the contents of the named file.
    """
    parsed = vars(build_argument_parser(template).parse_args(argv))

    arguments: dict[str, Any] = {}
    for option in template.options:
        value = parsed.get(option.name)
        if value is None:
            value = option.default
        if option.array and value is None:
            value = []
        if option.array and not isinstance(value, list):
            value = [value]

        if option.type == "file" and value is not None:
            if option.array:
                value = [_read_file_argument(option, v) for v in value]
            else:
                value = _read_file_argument(option, value)

        arguments[option.name] = value

    return arguments
