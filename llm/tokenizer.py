"""
Tokenizer adapter.

Wraps a Hugging Face `tokenizers.Tokenizer` so the rest of the code only
sees an Encoding: the token count plus each token's span in the source text.

Spans are code-point offsets into the Python str that was encoded, so
slicing the str with them yields exactly the token's text.

Loading a tokenizer by name may download tokenizer.json from the Hub the
first time. load_tokenizer() caches instances per process; build one per
worker, never one per request.
"""

import functools
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from tokenizers import Tokenizer

logger = logging.getLogger(__name__)

DEFAULT_TOKENIZER = "gpt2"


class TokenizerError(Exception):
    """Raised when the underlying tokenizer fails on its input."""


@dataclass(frozen=True)
class Encoding:
    """Token spans for a single piece of text."""
    # Half-open [start, end) spans, non-decreasing and non-overlapping
    offsets: list[tuple[int, int]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.offsets)


class TokenizerAdapter:
    """Read-only wrapper, safe to share between threads."""

    def __init__(self, tokenizer: Tokenizer, name: str = "") -> None:
        self._tokenizer = tokenizer
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def encode(self, text: str) -> Encoding:
        if not text:
            return Encoding()

        try:
            encoded = self._tokenizer.encode(text, add_special_tokens=False)
        except Exception as exc:
            raise TokenizerError(
                f"Tokenizer '{self._name}' failed on {len(text)} chars of input: {exc}"
            ) from exc

        return Encoding(offsets=_normalize_offsets(encoded.offsets))

    def count(self, text: str) -> int:
        return len(self.encode(text))


def _normalize_offsets(offsets: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """
    Clamp spans so they never regress or overlap.

    Byte-level BPE tokenizers can emit several tokens for a single
    multi-byte character, all carrying the same span.
    """
    result = []
    last_end = 0
    for start, end in offsets:
        start = max(start, last_end)
        end = max(end, start)
        result.append((start, end))
        last_end = end
    return result


def load_tokenizer(name: str | None = None) -> TokenizerAdapter:
    """
    Load a tokenizer by Hub name or tokenizer.json path, once per process.

    Resolution: explicit name → PROMPTBOX_TOKENIZER env var → gpt2.
    """
    return _load_cached(name or os.environ.get("PROMPTBOX_TOKENIZER", DEFAULT_TOKENIZER))


@functools.lru_cache(maxsize=8)
def _load_cached(name: str) -> TokenizerAdapter:
    try:
        if Path(name).is_file():
            tokenizer = Tokenizer.from_file(name)
        else:
            tokenizer = Tokenizer.from_pretrained(name)
    except Exception as exc:
        raise TokenizerError(f"Could not load tokenizer '{name}': {exc}") from exc

    logger.info("Loaded tokenizer %s", name)
    return TokenizerAdapter(tokenizer, name=name)
