"""Shared domain models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from rag_router.errors import (
    ContentTooShortError,
    MetadataError,
    PartialBatchFailure,
    ValidationError,
)

MIN_CONTENT_CHARS = 20

MetadataValue = Union[str, int, float, bool, list[str]]
Metadata = Mapping[str, MetadataValue]


def validate_metadata(metadata: Mapping[str, Any]) -> dict[str, MetadataValue]:
    """Coerce a metadata bag into values the vector index accepts.

    Nested mappings are flattened into dotted keys (``engagement.views``),
    ``None`` values are dropped, tuples of strings become lists. Anything
    else raises `MetadataError`.
    """

    flat: dict[str, MetadataValue] = {}
    _flatten_into(flat, "", metadata)
    return flat


def _flatten_into(target: dict[str, MetadataValue], prefix: str, values: Mapping[str, Any]) -> None:
    for raw_key, value in values.items():
        key = f"{prefix}{raw_key}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            _flatten_into(target, f"{key}.", value)
        elif isinstance(value, (str, bool, int, float)):
            target[key] = value
        elif isinstance(value, (list, tuple)):
            if not all(isinstance(item, str) for item in value):
                raise MetadataError(f"Metadata list '{key}' must contain only strings")
            target[key] = list(value)
        else:
            raise MetadataError(
                f"Unsupported metadata type for '{key}': {type(value).__name__}"
            )


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded segment of source text, the unit of embedding and retrieval."""

    id: str
    content: str
    metadata: Metadata = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Chunk id must not be empty")
        if len(self.content.strip()) < MIN_CONTENT_CHARS:
            raise ContentTooShortError(
                f"Chunk {self.id} has {len(self.content.strip())} characters; "
                f"minimum is {MIN_CONTENT_CHARS}"
            )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


@dataclass(frozen=True, slots=True)
class SourceRecord:
    """A pre-split source item for bulk vectorization (one post, one row)."""

    id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class EmbeddingRecord:
    """The unit stored in the vector index."""

    id: str
    vector: list[float]
    metadata: dict[str, MetadataValue]


@dataclass(slots=True)
class ScoredRecord:
    """A similarity search match."""

    id: str
    score: float
    metadata: dict[str, MetadataValue]

    @property
    def content(self) -> str:
        return str(self.metadata.get("content", ""))

    @property
    def title(self) -> str | None:
        title = self.metadata.get("title")
        return str(title) if title else None

    @property
    def source(self) -> str:
        return str(self.metadata.get("source") or self.metadata.get("url") or self.id)


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    """Which agent handles a query, with what refined query and model."""

    selected_agent: str
    agent_query: str
    model: str

    def __post_init__(self) -> None:
        if not self.agent_query.strip():
            raise ValidationError("agent_query must not be empty")


@dataclass(frozen=True, slots=True)
class ItemFailure:
    """One failed item of a batch, with enough context to retry by hand."""

    source: str
    error_type: str
    message: str


@dataclass(slots=True)
class BatchReport:
    """Success/failure counts of a batch ingestion run."""

    total: int = 0
    succeeded: int = 0
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def success_rate(self) -> str:
        if self.total == 0:
            return "0.0%"
        return f"{self.succeeded / self.total * 100:.1f}%"

    def record_success(self) -> None:
        self.total += 1
        self.succeeded += 1

    def record_failure(self, source: str, error: BaseException) -> None:
        self.total += 1
        self.failures.append(
            ItemFailure(source=source, error_type=type(error).__name__, message=str(error))
        )

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialBatchFailure(self)

    def summary(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.succeeded,
            "failed": self.failed,
            "successRate": self.success_rate,
        }
