"""
Tests for ContextOptions and whole-text truncation.
"""

import pytest

from llm.context import (
    ArrayPriority,
    ContextLimitError,
    ContextOptions,
    OverflowKeep,
    truncate_at,
)

_TEXT = "one two three four five six"


@pytest.mark.parametrize("keep", [OverflowKeep.START, OverflowKeep.END])
def test_shorter_text_is_unchanged(tokenizer, keep):
    text = "  one two three  "
    assert truncate_at(4, keep, text, tokenizer.encode(text)) == text


def test_keep_start_returns_prefix(tokenizer):
    result = truncate_at(3, OverflowKeep.START, _TEXT, tokenizer.encode(_TEXT))
    assert result == "one two three"
    assert _TEXT.startswith(result)
    assert tokenizer.count(result) == 3


def test_keep_end_returns_suffix(tokenizer):
    result = truncate_at(3, OverflowKeep.END, _TEXT, tokenizer.encode(_TEXT))
    assert result == "four five six"
    assert _TEXT.endswith(result)
    assert tokenizer.count(result) == 3


def test_keep_start_strips_trailing_whitespace(tokenizer):
    text = "first line\n\nsecond line"
    assert truncate_at(2, OverflowKeep.START, text, tokenizer.encode(text)) == "first line"


def test_keep_end_strips_leading_whitespace(tokenizer):
    text = "first line\n\n  second line"
    assert truncate_at(2, OverflowKeep.END, text, tokenizer.encode(text)) == "second line"


def test_exact_length_still_goes_through_slicing(tokenizer):
    # len == limit is not "shorter", so surrounding whitespace is stripped
    text = "one two three   "
    assert truncate_at(3, OverflowKeep.START, text, tokenizer.encode(text)) == "one two three"


@pytest.mark.parametrize("keep", [OverflowKeep.START, OverflowKeep.END])
def test_truncation_is_idempotent(tokenizer, keep):
    once = truncate_at(4, keep, _TEXT, tokenizer.encode(_TEXT))
    twice = truncate_at(4, keep, once, tokenizer.encode(once))
    assert twice == once


def test_punctuation_counts_as_tokens(tokenizer):
    text = "Hello, world. Goodbye!"
    assert truncate_at(3, OverflowKeep.START, text, tokenizer.encode(text)) == "Hello, world"


def test_context_options_defaults():
    options = ContextOptions()
    assert options.limit is None
    assert options.reserve_output == 256
    assert options.keep == OverflowKeep.START
    assert options.trim_args == []
    assert options.array_priority == ArrayPriority.FIRST


def test_context_options_from_dict():
    options = ContextOptions.from_dict(
        {
            "limit": 1000,
            "reserve_output": 0,
            "keep": "END",
            "trim_args": ["a", "b"],
            "array_priority": "equal",
        }
    )
    assert options.limit == 1000
    assert options.reserve_output == 0
    assert options.keep == OverflowKeep.END
    assert options.trim_args == ["a", "b"]
    assert options.array_priority == ArrayPriority.EQUAL


def test_context_options_from_dict_ignores_none():
    options = ContextOptions.from_dict({"limit": None, "keep": None, "trim_args": None})
    assert options == ContextOptions()


def test_context_options_rejects_unknown_policy():
    with pytest.raises(ValueError, match="first, last, equal"):
        ContextOptions.from_dict({"array_priority": "middle"})


def test_context_options_round_trip_dict():
    options = ContextOptions(limit=10, keep=OverflowKeep.END, trim_args=["x"])
    assert ContextOptions.from_dict(options.to_dict()) == options


def test_context_limit_error_message():
    error = ContextLimitError(200, 256)
    assert "200" in str(error)
    assert "256" in str(error)
    assert error.reserve_output == 256


@pytest.mark.parametrize(
    "data,match",
    [
        ({"reserve_output": -100}, "reserve_output must not be negative"),
        ({"limit": 0}, "must be positive"),
        ({"limit": -5}, "must be positive"),
    ],
)
def test_context_options_rejects_out_of_range_values(data, match):
    with pytest.raises(ValueError, match=match):
        ContextOptions.from_dict(data)


def test_context_options_accepts_zero_reserve():
    assert ContextOptions.from_dict({"reserve_output": 0}).reserve_output == 0
