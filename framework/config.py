"""
Hierarchical configuration discovery.

Config layers are promptbox.yaml files. Discovery walks from the working
directory up to the filesystem root, then adds the global config directory
($XDG_CONFIG_HOME/promptbox, or ~/.config/promptbox). A layer that sets
`top_level: true` stops the upward walk; the global layer is still read.

Layers are ordered nearest first. When merging, the nearest layer that sets
a value wins, field by field, including fields nested under model.context.

Each layer contributes template search directories: the `promptbox/` folder
next to the file (or the global directory itself) plus any `templates:`
paths, resolved relative to the layer file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from llm.schema_validator import CONFIG_SCHEMA, DocumentError, parse_and_validate

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "promptbox.yaml"
TEMPLATE_DIRNAME = "promptbox"


class ConfigError(Exception):
    """Raised when a config file is unreadable or invalid."""


@dataclass
class ConfigLayer:
    path: Path
    data: dict[str, Any]
    template_dirs: list[Path] = field(default_factory=list)


@dataclass
class Config:
    layers: list[ConfigLayer] = field(default_factory=list)
    # Merged model options, nearest layer first
    model: dict[str, Any] = field(default_factory=dict)
    tokenizer: str | None = None
    template_dirs: list[Path] = field(default_factory=list)


def global_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "promptbox"


def merge_options(primary: dict[str, Any], fallback: dict[str, Any]) -> dict[str, Any]:
    """
    Fill the keys `primary` leaves unset from `fallback`.

    None and empty lists count as unset. Nested mappings merge recursively.
    """
    merged = dict(fallback)
    for key, value in primary.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_options(value, merged[key])
        elif value is None or value == []:
            merged.setdefault(key, value)
        else:
            merged[key] = value
    return merged


def _load_layer(path: Path, default_template_dir: Path) -> ConfigLayer:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config {path}: {exc}") from exc

    try:
        data = parse_and_validate(raw_text, CONFIG_SCHEMA, source=str(path))
    except DocumentError as exc:
        raise ConfigError(str(exc)) from exc

    template_dirs = []
    if default_template_dir.is_dir():
        template_dirs.append(default_template_dir)
    for entry in data.get("templates", []):
        directory = (path.parent / entry).resolve()
        if directory.is_dir():
            template_dirs.append(directory)
        else:
            logger.warning("%s: template directory %s does not exist", path, directory)

    return ConfigLayer(path=path, data=data, template_dirs=template_dirs)


def discover_layers(start_dir: Path | None = None) -> list[ConfigLayer]:
    """Return config layers nearest first, ending with the global layer."""
    start_dir = Path(start_dir or Path.cwd()).resolve()
    layers: list[ConfigLayer] = []

    for directory in [start_dir, *start_dir.parents]:
        candidate = directory / CONFIG_FILENAME
        if not candidate.is_file():
            continue
        layer = _load_layer(candidate, directory / TEMPLATE_DIRNAME)
        layers.append(layer)
        if layer.data.get("top_level"):
            break

    global_dir = global_config_dir()
    global_file = global_dir / CONFIG_FILENAME
    if global_file.is_file() and all(layer.path != global_file for layer in layers):
        layers.append(_load_layer(global_file, global_dir))
    elif global_dir.is_dir() and not global_file.is_file():
        # Templates may live in the global dir without a config file
        layers.append(ConfigLayer(path=global_file, data={}, template_dirs=[global_dir]))

    return layers


def load_config(start_dir: Path | None = None) -> Config:
    """Discover and merge every config layer visible from `start_dir`."""
    layers = discover_layers(start_dir)

    model: dict[str, Any] = {}
    tokenizer = None
    template_dirs: list[Path] = []
    for layer in layers:
        model = merge_options(model, layer.data.get("model", {}))
        tokenizer = tokenizer or layer.data.get("tokenizer")
        template_dirs.extend(d for d in layer.template_dirs if d not in template_dirs)

    # Environment wins over every file
    tokenizer = os.environ.get("PROMPTBOX_TOKENIZER") or tokenizer
    if os.environ.get("LLM_PROVIDER"):
        model["provider"] = os.environ["LLM_PROVIDER"].lower()

    logger.debug(
        "Loaded %d config layers: %s", len(layers), [str(layer.path) for layer in layers]
    )
    return Config(
        layers=layers,
        model=model,
        tokenizer=tokenizer,
        template_dirs=template_dirs,
    )
