"""
Shared fixtures.

Token counts in these tests come from an offline word-level tokenizer:
every run of word characters and every run of punctuation is one token.
"Hello, world." is four tokens: Hello / , / world / .
"""

import pytest
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace

from llm.tokenizer import TokenizerAdapter


def build_word_tokenizer() -> Tokenizer:
    tokenizer = Tokenizer(WordLevel({"[UNK]": 0}, unk_token="[UNK]"))
    tokenizer.pre_tokenizer = Whitespace()
    return tokenizer


@pytest.fixture
def tokenizer() -> TokenizerAdapter:
    return TokenizerAdapter(build_word_tokenizer(), name="words")


@pytest.fixture
def tokenizer_file(tmp_path):
    """The word tokenizer saved as tokenizer.json, for loading by path."""
    path = tmp_path / "tokenizer.json"
    build_word_tokenizer().save(str(path))
    return path


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Run from an empty directory with no global config or env overrides."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in ("LLM_PROVIDER", "PROMPTBOX_TOKENIZER", "LOG"):
        monkeypatch.delenv(var, raising=False)
    return workdir
