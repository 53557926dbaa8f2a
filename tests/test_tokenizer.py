"""
Tests for the tokenizer adapter.
"""

import pytest

from llm.tokenizer import (
    Encoding,
    TokenizerAdapter,
    TokenizerError,
    _normalize_offsets,
    load_tokenizer,
)


def test_empty_text_has_no_tokens(tokenizer):
    assert len(tokenizer.encode("")) == 0


def test_offsets_slice_back_to_tokens(tokenizer):
    text = "Hello, world."
    encoding = tokenizer.encode(text)
    assert len(encoding) == 4
    assert [text[start:end] for start, end in encoding.offsets] == [
        "Hello",
        ",",
        "world",
        ".",
    ]


def test_offsets_never_overlap_or_regress(tokenizer):
    text = "  Leading space, trailing words\n\nand a second paragraph!  "
    encoding = tokenizer.encode(text)
    previous_end = 0
    for start, end in encoding.offsets:
        assert start >= previous_end
        assert end >= start
        previous_end = end


def test_offsets_are_code_points_for_non_ascii(tokenizer):
    text = "café über naïve"
    encoding = tokenizer.encode(text)
    assert [text[start:end] for start, end in encoding.offsets] == [
        "café",
        "über",
        "naïve",
    ]


def test_count_matches_encoding(tokenizer):
    assert tokenizer.count("one two three") == 3


def test_underlying_failure_is_raised_as_tokenizer_error():
    class _Broken:
        def encode(self, text, add_special_tokens=False):
            raise RuntimeError("boom")

    adapter = TokenizerAdapter(_Broken(), name="broken")
    with pytest.raises(TokenizerError) as exc_info:
        adapter.encode("some text")
    assert "broken" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_normalize_offsets_clamps_repeated_spans():
    # Byte-level tokenizers repeat a span for every byte of one character
    assert _normalize_offsets([(0, 3), (0, 3), (3, 5)]) == [(0, 3), (3, 3), (3, 5)]


def test_encoding_len():
    assert len(Encoding(offsets=[(0, 1), (2, 3)])) == 2


def test_load_tokenizer_from_file(tokenizer_file):
    adapter = load_tokenizer(str(tokenizer_file))
    assert adapter.name == str(tokenizer_file)
    assert adapter.count("load me from disk") == 4


def test_load_tokenizer_is_cached(tokenizer_file):
    assert load_tokenizer(str(tokenizer_file)) is load_tokenizer(str(tokenizer_file))


def test_load_tokenizer_uses_env_var(tokenizer_file, monkeypatch):
    monkeypatch.setenv("PROMPTBOX_TOKENIZER", str(tokenizer_file))
    assert load_tokenizer().name == str(tokenizer_file)


def test_load_tokenizer_bad_file_raises(tmp_path):
    path = tmp_path / "tokenizer.json"
    path.write_text("not a tokenizer", encoding="utf-8")
    with pytest.raises(TokenizerError):
        load_tokenizer(str(path))
