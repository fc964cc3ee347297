"""Token counting used to keep chunks within model limits."""

from __future__ import annotations

import re
from functools import cached_property
from typing import Protocol

import tiktoken

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


class TokenCounter(Protocol):
    def count(self, text: str) -> int:
        """Return the number of tokens in `text`."""


class TiktokenCounter:
    """Counts tokens with the same BPE encoding the OpenAI models use.

    The encoding is loaded on first use; tiktoken may download it then.
    """

    def __init__(self, encoding_name: str = "o200k_base") -> None:
        self.encoding_name = encoding_name

    @cached_property
    def _encoding(self) -> tiktoken.Encoding:
        return tiktoken.get_encoding(self.encoding_name)

    def count(self, text: str) -> int:
        return len(self._encoding.encode(text, disallowed_special=()))


class RegexTokenCounter:
    """Word/punctuation token counter with no model files to download."""

    def count(self, text: str) -> int:
        return len(_TOKEN_PATTERN.findall(text))
