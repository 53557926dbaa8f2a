"""
Context window options and whole-text truncation.

ContextOptions describes how a prompt is fitted into a model's context
window: an optional hard limit, the tokens reserved for the model's output,
which side of the content survives, and which template arguments may be
trimmed instead of the whole rendered text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .tokenizer import Encoding

DEFAULT_RESERVE_OUTPUT = 256


class OverflowKeep(str, Enum):
    """Which side of the content to keep when trimming."""
    START = "start"
    END = "end"


class ArrayPriority(str, Enum):
    """Which elements of a list argument are trimmed first."""
    # Preserve leading elements, trim from the back
    FIRST = "first"
    # Preserve trailing elements, trim from the front
    LAST = "last"
    # Trim every element proportionally to its size
    EQUAL = "equal"


class ContextLimitError(Exception):
    """Raised when no room is left for the prompt after reserving output tokens."""

    def __init__(self, context_size: int, reserve_output: int) -> None:
        super().__init__(
            f"Context size {context_size} leaves no room for the prompt after "
            f"reserving {reserve_output} tokens for output. "
            "Lower reserve_output or raise the context limit."
        )
        self.context_size = context_size
        self.reserve_output = reserve_output


def _parse_enum(enum_type: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValueError(
            f"Invalid {enum_type.__name__} '{value}'. Expected one of: {allowed}"
        ) from None


@dataclass
class ContextOptions:
    # Lower context size than the model reports; the smaller of the two wins
    limit: int | None = None
    reserve_output: int = DEFAULT_RESERVE_OUTPUT
    keep: OverflowKeep = OverflowKeep.START
    # Empty means trim the whole rendered text instead of arguments
    trim_args: list[str] = field(default_factory=list)
    array_priority: ArrayPriority = ArrayPriority.FIRST

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ContextOptions":
        """Build options from a config mapping; missing keys keep their defaults."""
        data = data or {}
        options = cls()

        if data.get("limit") is not None:
            options.limit = int(data["limit"])
            if options.limit < 1:
                raise ValueError(f"Context limit must be positive, got {options.limit}")
        if data.get("reserve_output") is not None:
            options.reserve_output = int(data["reserve_output"])
            if options.reserve_output < 0:
                raise ValueError(
                    f"reserve_output must not be negative, got {options.reserve_output}"
                )
        if data.get("keep") is not None:
            options.keep = _parse_enum(OverflowKeep, data["keep"])
        if data.get("trim_args"):
            options.trim_args = [str(name) for name in data["trim_args"]]
        if data.get("array_priority") is not None:
            options.array_priority = _parse_enum(ArrayPriority, data["array_priority"])

        return options

    def to_dict(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "reserve_output": self.reserve_output,
            "keep": self.keep.value,
            "trim_args": list(self.trim_args),
            "array_priority": self.array_priority.value,
        }


def truncate_at(limit: int, keep: OverflowKeep, text: str, encoding: Encoding) -> str:
    """
    Slice `text` down to `limit` tokens using the token spans in `encoding`.

    `encoding` must come from encoding exactly this `text`; nothing is
    re-tokenized here. Text shorter than `limit` tokens is returned as-is.
    """
    if len(encoding) < limit:
        return text

    if limit <= 0:
        return ""

    if keep == OverflowKeep.START:
        end = encoding.offsets[limit - 1][1]
        return text[:end].rstrip()

    start = encoding.offsets[len(encoding) - limit][0]
    return text[start:].lstrip()
