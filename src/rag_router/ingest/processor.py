"""Turns raw source text into `Chunk` entities with metadata."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from rag_router.config import ChunkingConfig
from rag_router.errors import ContentTooShortError, EmptyInputError, ProcessingError
from rag_router.ingest.chunker import SemanticChunker
from rag_router.types import Chunk, validate_metadata

logger = logging.getLogger(__name__)


class ContentProcessor:
    """Segments raw content and builds chunk ids and metadata.

    Ids are `"{source}-chunk-{index}"`, stable across runs because chunking
    is deterministic, so re-ingesting a source overwrites its vectors.
    A trailing segment shorter than `min_content_chars` is appended to the
    one before it, so a short closing sentence never rejects a source that
    passed the length check. Persistence is the caller's job.
    """

    def __init__(
        self,
        chunker: SemanticChunker | None = None,
        config: ChunkingConfig | None = None,
    ) -> None:
        self.config = config or ChunkingConfig()
        self.chunker = chunker or SemanticChunker(strategy=self.config.strategy)

    def process(
        self,
        raw_content: str,
        source_identity: str,
        extra_metadata: Mapping[str, Any] | None = None,
        *,
        atomic: bool = False,
    ) -> list[Chunk]:
        """Chunk one source document.

        Args:
            raw_content: Source text.
            source_identity: Stable identifier of the source (URL, `text:<title>`, post URN).
            extra_metadata: Title, url, tags and so on, copied onto every chunk.
            atomic: When the source yields exactly one chunk, use the bare
                `source_identity` as its id. Meant for sources known to be a
                single unit, such as one social post.

        Raises:
            ContentTooShortError: Content is shorter than `min_content_chars`.
            ProcessingError: Segmentation produced no chunks.
        """

        if not source_identity:
            raise ProcessingError("source_identity must not be empty")

        stripped = (raw_content or "").strip()
        if len(stripped) < self.config.min_content_chars:
            raise ContentTooShortError(
                f"Content from {source_identity} is too short "
                f"({len(stripped)} < {self.config.min_content_chars} characters)"
            )

        try:
            segments = self.chunker.chunk(stripped, self.config.max_tokens)
        except EmptyInputError as exc:
            raise ProcessingError(f"No chunks produced for {source_identity}") from exc
        if not segments:
            raise ProcessingError(f"No chunks produced for {source_identity}")
        if len(segments) > 1 and len(segments[-1].strip()) < self.config.min_content_chars:
            # May push the last chunk slightly over max_tokens.
            tail = segments.pop()
            segments[-1] = f"{segments[-1]}{self.chunker.separator}{tail}"

        base_metadata = validate_metadata(extra_metadata or {})
        total = len(segments)
        chunks: list[Chunk] = []
        for index, segment in enumerate(segments):
            chunk_id = (
                source_identity
                if atomic and total == 1
                else f"{source_identity}-chunk-{index}"
            )
            chunks.append(
                Chunk(
                    id=chunk_id,
                    content=segment,
                    metadata={
                        **base_metadata,
                        "source": str(base_metadata.get("source", source_identity)),
                        "chunkIndex": index,
                        "totalChunks": total,
                    },
                )
            )

        logger.debug(f"Processed {source_identity}: {total} chunks")
        return chunks
