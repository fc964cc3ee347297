"""End-to-end ingest pipeline: fetch -> chunk -> embed -> upsert."""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from rag_router.config import IngestConfig
from rag_router.errors import ConfigurationError, RagRouterError, ValidationError
from rag_router.ingest.embedder import Embedder
from rag_router.ingest.processor import ContentProcessor
from rag_router.ingest.scraper import WebScraper
from rag_router.retrieval.vector_store import VectorStore
from rag_router.types import BatchReport, Chunk, EmbeddingRecord, SourceRecord

logger = logging.getLogger(__name__)


class TextMetadata(BaseModel):
    """Caller-supplied metadata for free-text ingestion."""

    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1)
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    source_type: str | None = None



class ArticleMetadata(BaseModel):
    """Metadata for an uploaded news article."""

    model_config = ConfigDict(extra="allow")

    topic: str = Field(min_length=1)
    bias: str = Field(min_length=1)
    title: str | None = None
    url: str | None = None


@dataclass(slots=True)
class UrlIngestResult:
    chunks: list[Chunk] = field(default_factory=list)
    report: BatchReport = field(default_factory=BatchReport)


class IngestPipeline:
    """Coordinates processor/embedder/vector store stages.

    Batch entry points treat every source independently: a failing URL or
    record is logged and counted in the `BatchReport`, and the batch goes on.
    Configuration errors (including dimension mismatches) abort the batch.
    """

    def __init__(
        self,
        processor: ContentProcessor,
        embedder: Embedder,
        vector_store: VectorStore,
        scraper: WebScraper | None = None,
        config: IngestConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._processor = processor
        self._embedder = embedder
        self._vector_store = vector_store
        self._scraper = scraper
        self.config = config or IngestConfig()
        self._sleep = sleep

    def ingest_text(self, content: str, metadata: dict[str, Any] | TextMetadata) -> list[Chunk]:
        """Ingest one free-text document; its source is `text:<title>`."""

        try:
            meta = (
                metadata
                if isinstance(metadata, TextMetadata)
                else TextMetadata.model_validate(metadata)
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid text metadata: {exc}") from exc

        source = f"text:{meta.title}"
        chunks = self._processor.process(
            content,
            source,
            {**meta.model_dump(exclude_none=True), "source": source},
        )
        self._store(chunks)
        logger.info(f"Ingested text '{meta.title}' as {len(chunks)} chunks")
        return chunks

    def ingest_article(
        self, content: str, metadata: dict[str, Any] | ArticleMetadata
    ) -> list[Chunk]:
        """Ingest one news article tagged with its topic and bias.

        The source is `article:<bias>:<digest>`, the digest taken from the
        content, so uploading the same article twice overwrites it.
        """

        try:
            meta = (
                metadata
                if isinstance(metadata, ArticleMetadata)
                else ArticleMetadata.model_validate(metadata)
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid article metadata: {exc}") from exc

        digest = hashlib.sha256((content or "").strip().encode("utf-8")).hexdigest()[:16]
        source = f"article:{meta.bias}:{digest}"
        chunks = self._processor.process(
            content,
            source,
            {
                **meta.model_dump(exclude_none=True),
                "title": meta.title or f"{meta.topic} ({meta.bias})",
                "source": source,
            },
        )
        self._store(chunks)
        logger.info(f"Ingested {meta.bias} article on {meta.topic} as {len(chunks)} chunks")
        return chunks

    def ingest_urls(self, urls: Iterable[str]) -> UrlIngestResult:
        """Scrape, chunk and index each URL, collecting per-URL failures."""

        if self._scraper is None:
            raise ConfigurationError("No scraper configured for URL ingestion")

        result = UrlIngestResult()
        url_list = list(urls)
        for position, url in enumerate(url_list):
            if position and self.config.request_delay_seconds:
                self._sleep(self.config.request_delay_seconds)
            try:
                page = self._scraper.scrape(url)
                chunks = self._processor.process(
                    page.content,
                    url,
                    {**page.metadata, "title": page.title, "url": url, "source": url},
                )
                self._store(chunks)
            except ConfigurationError:
                raise
            except RagRouterError as exc:
                logger.error(f"Failed to ingest {url}: {type(exc).__name__}: {exc}")
                result.report.record_failure(url, exc)
                continue
            result.chunks.extend(chunks)
            result.report.record_success()
            logger.info(f"Ingested {url}: {len(chunks)} chunks")

        self._log_summary("URL ingestion", result.report)
        return result

    def ingest_records(
        self,
        records: Iterable[SourceRecord],
        *,
        atomic: bool = True,
    ) -> UrlIngestResult:
        """Vectorize pre-split records such as individual posts."""

        result = UrlIngestResult()
        for record in records:
            try:
                chunks = self._processor.process(
                    record.content, record.id, record.metadata, atomic=atomic
                )
                self._store(chunks)
            except ConfigurationError:
                raise
            except RagRouterError as exc:
                logger.error(f"Failed to ingest record {record.id}: {type(exc).__name__}: {exc}")
                result.report.record_failure(record.id, exc)
                continue
            result.chunks.extend(chunks)
            result.report.record_success()

        self._log_summary("Record ingestion", result.report)
        return result

    def _store(self, chunks: list[Chunk]) -> None:
        vectors = self._embedder.embed_documents([chunk.content for chunk in chunks])
        self._vector_store.upsert(
            [
                EmbeddingRecord(
                    id=chunk.id,
                    vector=vector,
                    metadata={**chunk.metadata, "content": chunk.content},
                )
                for chunk, vector in zip(chunks, vectors, strict=True)
            ]
        )

    @staticmethod
    def _log_summary(label: str, report: BatchReport) -> None:
        summary = report.summary()
        logger.info(
            f"{label} complete: {summary['successful']}/{summary['total']} succeeded, "
            f"{summary['failed']} failed ({summary['successRate']})"
        )
