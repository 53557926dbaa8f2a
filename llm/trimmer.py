"""
Token trimming for template argument values.

Argument values form a closed union:
  - str  : a scalar; trimmed by slicing on token boundaries
  - list : an array of argument values; trimmed element by element
  - other: numbers, booleans, None, mappings; never trimmed

Every function here is pure: it returns the new value together with the
number of tokens it removed and leaves the caller's value untouched.
Emptied scalars inside an array are dropped from it, which is how a whole
element gets removed.
"""

import logging
from typing import Any

from .context import ArrayPriority, ContextOptions, truncate_at
from .tokenizer import Encoding, TokenizerAdapter

logger = logging.getLogger(__name__)


def trim_value(
    to_trim: int,
    options: ContextOptions,
    tokenizer: TokenizerAdapter,
    value: Any,
    encoding: Encoding | None = None,
) -> tuple[Any, int]:
    """
    Remove up to `to_trim` tokens from `value`.

    Returns (new_value, tokens_removed). A scalar too short to be partially
    trimmed is replaced by "" and reports its full token cost, so the
    result can exceed `to_trim` only by whole elements.
    """
    if to_trim <= 0:
        return value, 0

    if isinstance(value, str):
        return _trim_scalar(to_trim, options, tokenizer, value, encoding)

    if isinstance(value, list):
        if options.array_priority == ArrayPriority.EQUAL:
            trimmed, removed = _trim_array_equal(to_trim, options, tokenizer, value)
        else:
            trimmed, removed = _trim_array_sequential(to_trim, options, tokenizer, value)
        return [item for item in trimmed if item != ""], removed

    return value, 0


def _trim_scalar(
    to_trim: int,
    options: ContextOptions,
    tokenizer: TokenizerAdapter,
    value: str,
    encoding: Encoding | None,
) -> tuple[str, int]:
    if encoding is None:
        encoding = tokenizer.encode(value)

    if len(encoding) > to_trim:
        keep_tokens = len(encoding) - to_trim
        return truncate_at(keep_tokens, options.keep, value, encoding), to_trim

    return "", len(encoding)


def _trim_array_sequential(
    to_trim: int,
    options: ContextOptions,
    tokenizer: TokenizerAdapter,
    values: list[Any],
) -> tuple[list[Any], int]:
    """FIRST walks from the back, LAST walks from the front."""
    result = list(values)
    indexes = range(len(result))
    if options.array_priority == ArrayPriority.FIRST:
        indexes = reversed(indexes)

    remaining = to_trim
    for index in indexes:
        if remaining <= 0:
            break
        result[index], removed = trim_value(remaining, options, tokenizer, result[index])
        remaining -= removed

    return result, to_trim - remaining


def _trim_array_equal(
    to_trim: int,
    options: ContextOptions,
    tokenizer: TokenizerAdapter,
    values: list[Any],
) -> tuple[list[Any], int]:
    """
    Spread the cut over all scalar elements in proportion to their size.

    Single pass: each element's share is rounded on its own and the shares
    are not reconciled, so the total removed can land slightly above or
    below `to_trim`.
    """
    encodings = [
        tokenizer.encode(item) if isinstance(item, str) else None
        for item in values
    ]
    total_tokens = sum(len(enc) for enc in encodings if enc is not None)
    if total_tokens == 0:
        return list(values), 0

    percent = to_trim / total_tokens
    result = []
    removed_total = 0
    for item, enc in zip(values, encodings):
        if enc is None:
            result.append(item)
            continue

        # round half up
        this_to_trim = int(len(enc) * percent + 0.5)
        if this_to_trim > 0:
            item, removed = trim_value(this_to_trim, options, tokenizer, item, encoding=enc)
            removed_total += removed
        result.append(item)

    logger.debug(
        "Equal array trim: requested=%d removed=%d across %d elements",
        to_trim,
        removed_total,
        len(values),
    )
    return result, removed_total


def distribute(
    to_trim: int,
    options: ContextOptions,
    tokenizer: TokenizerAdapter,
    args: dict[str, Any],
) -> tuple[dict[str, Any], int]:
    """
    Trim the arguments named in `options.trim_args`, in order, until
    `to_trim` tokens are gone.

    Names missing from `args` are skipped. Returns a new argument dict and
    the number of tokens still over budget (0 or less when satisfied).
    """
    trimmed = dict(args)
    remaining = to_trim

    for name in options.trim_args:
        if remaining <= 0:
            break
        if name not in trimmed:
            continue

        trimmed[name], removed = trim_value(remaining, options, tokenizer, trimmed[name])
        logger.debug("Trimmed %d tokens from argument '%s'", removed, name)
        remaining -= removed

    if remaining > 0:
        logger.warning(
            "Trimming %s left the prompt %d tokens over budget; re-rendering anyway",
            ", ".join(options.trim_args),
            remaining,
        )

    return trimmed, remaining
