"""Token-aware semantic chunking that keeps code blocks intact."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from rag_router.errors import EmptyInputError, ValidationError
from rag_router.ingest.tokens import TiktokenCounter, TokenCounter

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_PLACEHOLDER = re.compile(r"\x00CODEBLOCK(\d+)\x00")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?]) ")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")

ChunkStrategy = Literal["sentence", "paragraph"]

_SEPARATORS: dict[str, str] = {"sentence": " ", "paragraph": "\n\n"}


@dataclass(slots=True)
class _Masked:
    text: str
    code_blocks: list[str] = field(default_factory=list)

    def restore(self, text: str) -> str:
        return _PLACEHOLDER.sub(lambda m: self.code_blocks[int(m.group(1))], text)


class SemanticChunker:
    """Splits text into ordered chunks bounded by a token budget.

    Design notes:
    1. Code blocks first.
       Fenced blocks (```...```) are swapped for opaque placeholders before any
       splitting so sentence or paragraph heuristics never cut through code.
       The placeholders are put back in every emitted chunk. NUL characters
       are dropped from the input since they delimit the placeholders.

    2. Minimal units second.
       `sentence` strategy collapses all whitespace (newlines included) to single
       spaces and splits after `.`, `!` or `?`. `paragraph` strategy keeps line
       breaks and splits on blank lines. Use `paragraph` when line breaks carry
       structure (scraped articles), `sentence` for continuous prose.

    3. Greedy packing.
       Units are appended to a running buffer while `buffer + separator + unit`
       stays within `max_tokens` (counted on the restored text, code included).
       When the next unit would overflow a non-empty buffer, the buffer is
       flushed as a chunk and the unit starts a new one.

    A single unit that alone exceeds `max_tokens` becomes its own oversized
    chunk. No sub-sentence splitting is attempted; this is an accepted
    limitation.

    Chunking is a pure function of `(text, max_tokens)`; chunk ids downstream
    are derived from ordinal position and rely on that.
    """

    def __init__(
        self,
        token_counter: TokenCounter | None = None,
        *,
        strategy: ChunkStrategy = "sentence",
    ) -> None:
        if strategy not in _SEPARATORS:
            raise ValueError(f"Unknown chunking strategy: {strategy}")
        self.token_counter = token_counter or TiktokenCounter()
        self.strategy = strategy
        self.separator = _SEPARATORS[strategy]

    def chunk(self, text: str, max_tokens: int) -> list[str]:
        """Chunk `text` into segments of at most `max_tokens` tokens.

        Raises:
            EmptyInputError: `text` is empty or whitespace only.
            ValidationError: `max_tokens` is not positive.
        """

        if max_tokens < 1:
            raise ValidationError(f"max_tokens must be positive, got {max_tokens}")
        if not text or not text.strip():
            raise EmptyInputError("Cannot chunk empty text")

        masked = self._mask_code_blocks(text)
        units = self._split_units(self._normalize_masked(masked.text))
        if not units:
            raise EmptyInputError("Text is empty after normalization")

        chunks: list[str] = []
        buffer = ""
        for unit in units:
            candidate = f"{buffer}{self.separator}{unit}" if buffer else unit
            over_budget = self.token_counter.count(masked.restore(candidate)) > max_tokens
            if over_budget and buffer:
                chunks.append(masked.restore(buffer))
                buffer = unit
            else:
                buffer = candidate

        if buffer:
            chunks.append(masked.restore(buffer))
        return chunks

    def normalize(self, text: str) -> str:
        """Return `text` as the chunker sees it, code blocks left untouched.

        Joining the chunks of a code-free input with `self.separator`
        reproduces this string exactly.
        """

        masked = self._mask_code_blocks(text)
        return masked.restore(self._normalize_masked(masked.text))

    def _normalize_masked(self, text: str) -> str:
        if self.strategy == "sentence":
            return _WHITESPACE.sub(" ", text).strip()
        paragraphs = (part.strip() for part in _PARAGRAPH_SPLIT.split(text))
        return "\n\n".join(part for part in paragraphs if part)

    def _split_units(self, normalized: str) -> list[str]:
        if not normalized:
            return []
        if self.strategy == "sentence":
            return [unit for unit in _SENTENCE_SPLIT.split(normalized) if unit]
        return normalized.split("\n\n")

    @staticmethod
    def _mask_code_blocks(text: str) -> _Masked:
        masked = _Masked(text="")

        def _replace(match: re.Match[str]) -> str:
            masked.code_blocks.append(match.group(0))
            return f"\x00CODEBLOCK{len(masked.code_blocks) - 1}\x00"

        # NUL delimits placeholders, so it cannot appear in the input.
        masked.text = _CODE_BLOCK.sub(_replace, text.replace("\x00", ""))
        return masked
