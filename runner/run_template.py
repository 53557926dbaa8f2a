"""
Command-line runner: renders a prompt template and sends it to a model.

Usage:
    python -m runner.run_template summarize --article notes.md
    python -m runner.run_template summarize --dry-run --context-limit 512 -- --article notes.md
    python -m runner.run_template ./my_prompt.yaml --model gpt-4o --trim-arg article
    python -m runner.run_template ./describe.yaml --model llava --image photo.png --format json

Arguments before `--` that the runner does not recognise are passed to the
template, as is everything after `--`. Use `--` when a template option
shares a name with a runner flag.

Set LOG=DEBUG to see token counts and trimming decisions.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Any

from framework.config import ConfigError, load_config, merge_options
from llm.base import ModelError, ModelOptions
from llm.context import ArrayPriority, ContextLimitError, OverflowKeep
from llm.image import ImageError, load_image
from llm.prompt_loader import (
    TemplateError,
    compose_template,
    find_template,
    parse_template_args,
)
from llm.router import LLMRouter
from llm.tokenizer import TokenizerError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptbox",
        description="Render a prompt template and submit it to a language model.",
        allow_abbrev=False,
    )
    parser.add_argument("template", help="Template name or path to a template file")
    parser.add_argument("--model", "-m", default=None, help="Override the model")
    parser.add_argument(
        "--temperature", "-t", type=float, default=None, help="Override the temperature"
    )
    parser.add_argument(
        "--provider",
        choices=["ollama", "openai", "together", "mock"],
        default=None,
        help="Model host (default: inferred from the model name)",
    )
    parser.add_argument("--top-k", type=int, default=None, help="Override top_k sampling")
    parser.add_argument(
        "--format",
        choices=["json"],
        default=None,
        help="Ask the model for a JSON object instead of free text",
    )
    parser.add_argument(
        "--image",
        action="append",
        dest="images",
        default=[],
        help="Attach an image file; repeat for several images",
    )
    parser.add_argument("--pre", default=None, help="Prepend this text to the template")
    parser.add_argument("--post", default=None, help="Append this text to the template")
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for the whole response instead of printing it as it arrives",
    )
    parser.add_argument("--print-prompt", action="store_true", help="Print the prompt")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the prompt and exit without submitting it to the model",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Print the prompt and log progress"
    )

    context = parser.add_argument_group("context window")
    context.add_argument(
        "--context-limit", type=int, default=None, help="Lower the model's context size"
    )
    context.add_argument(
        "--reserve-output",
        type=int,
        default=None,
        help="Tokens reserved for the model's output (default: 256)",
    )
    context.add_argument(
        "--keep",
        choices=[k.value for k in OverflowKeep],
        default=None,
        help="Which side of the content to keep when trimming (default: start)",
    )
    context.add_argument(
        "--trim-arg",
        action="append",
        dest="trim_args",
        default=None,
        help="Template argument to trim when over budget; repeat in priority order",
    )
    context.add_argument(
        "--array-priority",
        choices=[p.value for p in ArrayPriority],
        default=None,
        help="How list arguments are trimmed (default: first)",
    )
    return parser


def split_argv(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split at the first `--`: runner flags before, template flags after."""
    if "--" in argv:
        index = argv.index("--")
        return argv[:index], argv[index + 1:]
    return argv, []


def cli_model_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "model": args.model,
        "temperature": args.temperature,
        "top_k": args.top_k,
        "format": args.format,
        "provider": args.provider,
        "context": {
            "limit": args.context_limit,
            "reserve_output": args.reserve_output,
            "keep": args.keep,
            "trim_args": args.trim_args,
            "array_priority": args.array_priority,
        },
    }


def configure_logging(verbose: bool) -> None:
    level = os.environ.get("LOG", "INFO" if verbose else "WARNING").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


async def run(args: argparse.Namespace, template_argv: list[str]) -> int:
    config = load_config()
    template = find_template(args.template, config.template_dirs)
    arguments = parse_template_args(template, template_argv)

    merged = merge_options(
        cli_model_overrides(args), merge_options(template.model, config.model)
    )
    options = ModelOptions.from_dict(merged)
    text = compose_template(template.template, pre=args.pre, post=args.post)

    images = [load_image(path) for path in args.images]

    router = LLMRouter(tokenizer_name=config.tokenizer)
    result = await router.prepare(text, arguments, options)

    if args.dry_run:
        print(result.prompt)
        return 0

    if args.print_prompt or args.verbose:
        print(result.prompt)
        print()
    if result.trimmed:
        logger.info("Prompt was trimmed to fit the context window")

    if args.no_stream:
        result = await router.complete(result, options, template.system, images)
        print(result.response.text)
        return 0

    await router.complete(
        result,
        options,
        template.system,
        images,
        on_chunk=lambda chunk: print(chunk, end="", flush=True),
    )
    print()
    return 0


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    runner_argv, template_argv = split_argv(argv)

    parser = build_parser()
    args, unknown = parser.parse_known_args(runner_argv)
    configure_logging(args.verbose)

    try:
        return asyncio.run(run(args, unknown + template_argv))
    except (
        TemplateError,
        ConfigError,
        ContextLimitError,
        TokenizerError,
        ModelError,
        ImageError,
        ValueError,
    ) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
