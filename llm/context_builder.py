"""
Token-aware context builder.

Fits an already-rendered prompt into the model's context window.
The prompt is measured with the real tokenizer; when it is over budget,
content is removed either from the rendered text itself or from the
template arguments named in ContextOptions.trim_args, after which the
template is rendered again with the shortened arguments.

The second render is not measured again. Trimming arguments is best
effort: if the configured arguments cannot absorb the whole excess, the
shortened prompt is still returned and a warning is logged.
"""

import logging
from typing import Any, Callable

from .context import ContextLimitError, ContextOptions, truncate_at
from .tokenizer import TokenizerAdapter
from .trimmer import distribute

logger = logging.getLogger(__name__)


def allowed_prompt_tokens(context_size: int, options: ContextOptions) -> int:
    """Tokens available to the prompt once output space is reserved."""
    limit = context_size
    if options.limit is not None:
        limit = min(limit, options.limit)

    allowed = limit - options.reserve_output
    if allowed <= 0:
        raise ContextLimitError(limit, options.reserve_output)
    return allowed


def enforce_context_limit(
    rendered: str,
    args: dict[str, Any],
    options: ContextOptions,
    context_size: int,
    tokenizer: TokenizerAdapter,
    rerender: Callable[[dict[str, Any]], str],
) -> str:
    """
    Return `rendered`, shortened if needed to fit `context_size`.

    Args:
        rendered: Prompt text produced from `args`
        args: The arguments `rendered` was produced from; not mutated
        options: Trimming policy
        context_size: Total context tokens the model accepts
        tokenizer: Used to measure the prompt and argument values
        rerender: Renders the template again from trimmed arguments

    Raises:
        ContextLimitError: reserve_output leaves no room for any prompt
        TokenizerError: the tokenizer rejected the prompt or an argument
        RenderError: the second render failed
    """
    allowed = allowed_prompt_tokens(context_size, options)

    encoding = tokenizer.encode(rendered)
    prompt_tokens = len(encoding)
    if prompt_tokens <= allowed:
        return rendered

    logger.info(
        "Prompt is %d tokens, over the %d token budget", prompt_tokens, allowed
    )

    if not options.trim_args:
        return truncate_at(allowed, options.keep, rendered, encoding)

    trimmed_args, _ = distribute(prompt_tokens - allowed, options, tokenizer, args)
    return rerender(trimmed_args)
