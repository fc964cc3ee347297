"""Vector index providers and the batching, retrying `VectorStore` wrapper."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from math import sqrt
from typing import Any, Protocol

import chromadb
import httpx
from chromadb.errors import ChromaError

from rag_router.config import VectorStoreConfig
from rag_router.errors import (
    ConfigurationError,
    DimensionMismatchError,
    TransientProviderError,
)
from rag_router.retry import call_with_retry
from rag_router.types import EmbeddingRecord, MetadataValue, ScoredRecord, validate_metadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexDescription:
    name: str
    dimension: int
    metric: str


class IndexClient(Protocol):
    """Operations offered by the vector database service."""

    def list_indexes(self) -> list[str]:
        """Names of existing indexes."""

    def create_index(self, name: str, dimension: int, metric: str) -> None:
        """Create an empty index."""

    def describe_index(self, name: str) -> IndexDescription:
        """Dimension and metric of an existing index."""

    def upsert(self, name: str, records: list[EmbeddingRecord]) -> None:
        """Insert or overwrite records by id. All-or-nothing per call."""

    def query(
        self,
        name: str,
        vector: list[float],
        top_k: int,
        *,
        include_metadata: bool = True,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredRecord]:
        """Top-k records by descending similarity."""


@dataclass(slots=True)
class _MemoryIndex:
    description: IndexDescription
    records: dict[str, EmbeddingRecord] = field(default_factory=dict)


class InMemoryIndexClient:
    """Deterministic index provider used for tests and local prototyping."""

    def __init__(self) -> None:
        self._indexes: dict[str, _MemoryIndex] = {}

    def list_indexes(self) -> list[str]:
        return list(self._indexes)

    def create_index(self, name: str, dimension: int, metric: str) -> None:
        if name in self._indexes:
            raise ConfigurationError(f"Index already exists: {name}")
        self._indexes[name] = _MemoryIndex(IndexDescription(name, dimension, metric))

    def describe_index(self, name: str) -> IndexDescription:
        return self._get(name).description

    def upsert(self, name: str, records: list[EmbeddingRecord]) -> None:
        index = self._get(name)
        for record in records:
            index.records[record.id] = EmbeddingRecord(
                id=record.id, vector=list(record.vector), metadata=dict(record.metadata)
            )

    def query(
        self,
        name: str,
        vector: list[float],
        top_k: int,
        *,
        include_metadata: bool = True,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredRecord]:
        index = self._get(name)
        candidates = [
            record
            for record in index.records.values()
            if _metadata_match(record.metadata, metadata_filter)
        ]
        ranked = sorted(
            (
                ScoredRecord(
                    id=record.id,
                    score=_similarity(index.description.metric, vector, record.vector),
                    metadata=dict(record.metadata) if include_metadata else {},
                )
                for record in candidates
            ),
            key=lambda item: item.score,
            reverse=True,
        )
        return ranked[:top_k]

    def count(self, name: str) -> int:
        return len(self._get(name).records)

    def ids(self, name: str) -> list[str]:
        return list(self._get(name).records)

    def _get(self, name: str) -> _MemoryIndex:
        index = self._indexes.get(name)
        if index is None:
            raise ConfigurationError(f"Index not found: {name}")
        return index


_CHROMA_SPACES = {"cosine": "cosine", "dotproduct": "ip", "euclidean": "l2"}
_LIST_KEYS = "__list_keys"
_MEMBER_PREFIX = "__has:"


class ChromaIndexClient:
    """Chroma-backed provider; one collection per index.

    The index dimension and metric are kept in collection metadata since
    Chroma only fixes the dimension on first insert. String-list metadata
    values are stored JSON-encoded and decoded on read. Each list item also
    gets a boolean `__has:<key>:<item>` flag so a scalar filter on a list
    field matches by membership, as it does in `InMemoryIndexClient`.
    """

    def __init__(self, path: str = ".chroma", *, client: Any | None = None) -> None:
        self._client = client or chromadb.PersistentClient(path=path)

    def list_indexes(self) -> list[str]:
        with _translate_chroma_errors("list_indexes"):
            collections = self._client.list_collections()
        return [getattr(collection, "name", collection) for collection in collections]

    def create_index(self, name: str, dimension: int, metric: str) -> None:
        space = _CHROMA_SPACES.get(metric)
        if space is None:
            raise ConfigurationError(f"Unsupported metric for Chroma: {metric}")
        with _translate_chroma_errors("create_index"):
            self._client.create_collection(
                name=name,
                metadata={"hnsw:space": space, "dimension": dimension, "metric": metric},
            )

    def describe_index(self, name: str) -> IndexDescription:
        with _translate_chroma_errors("describe_index"):
            collection = self._client.get_collection(name=name)
        metadata = collection.metadata or {}
        if "dimension" not in metadata:
            raise ConfigurationError(f"Collection {name} has no recorded dimension")
        return IndexDescription(
            name=name,
            dimension=int(metadata["dimension"]),
            metric=str(metadata.get("metric", "cosine")),
        )

    def upsert(self, name: str, records: list[EmbeddingRecord]) -> None:
        if not records:
            return
        with _translate_chroma_errors("upsert"):
            collection = self._client.get_collection(name=name)
            collection.upsert(
                ids=[record.id for record in records],
                embeddings=[record.vector for record in records],
                metadatas=[_encode_metadata(record.metadata) for record in records],
            )

    def query(
        self,
        name: str,
        vector: list[float],
        top_k: int,
        *,
        include_metadata: bool = True,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredRecord]:
        with _translate_chroma_errors("query"):
            collection = self._client.get_collection(name=name)
            result = collection.query(
                query_embeddings=[vector],
                n_results=top_k,
                where=_chroma_where(metadata_filter),
                include=["metadatas", "distances"],
            )

        metric = str((collection.metadata or {}).get("metric", "cosine"))
        ids = result["ids"][0] if result["ids"] else []
        distances = result["distances"][0] if result.get("distances") else []
        metadatas = result["metadatas"][0] if result.get("metadatas") else []

        matches: list[ScoredRecord] = []
        for record_id, distance, metadata in zip(ids, distances, metadatas, strict=True):
            matches.append(
                ScoredRecord(
                    id=record_id,
                    score=_distance_to_score(metric, float(distance)),
                    metadata=_decode_metadata(metadata or {}) if include_metadata else {},
                )
            )
        return sorted(matches, key=lambda item: item.score, reverse=True)


class VectorStore:
    """Wraps one named index with batching, retry and dimension checks.

    Upserts are last-write-wins keyed by record id. Chunk ids are stable, so
    re-ingesting a source overwrites its earlier vectors instead of
    duplicating them. A failure mid-run leaves earlier batches in place; the
    error propagates so the caller can report the partial ingestion.
    """

    def __init__(self, client: IndexClient, config: VectorStoreConfig | None = None) -> None:
        self.client = client
        self.config = config or VectorStoreConfig()
        self._ready = False

    @property
    def index_name(self) -> str:
        return self.config.index_name

    @property
    def dimension(self) -> int:
        return self.config.dimension

    def ensure_index(self) -> IndexDescription:
        """Create the index if missing and verify its dimension.

        Raises:
            DimensionMismatchError: The existing index has another dimension.
        """

        name = self.config.index_name
        existing = call_with_retry(self.config.retry, "list_indexes", self.client.list_indexes)
        if name not in existing:
            logger.info(
                f"Creating index {name} (dimension={self.config.dimension}, "
                f"metric={self.config.metric})"
            )
            call_with_retry(
                self.config.retry,
                "create_index",
                lambda: self.client.create_index(name, self.config.dimension, self.config.metric),
            )

        description = call_with_retry(
            self.config.retry, "describe_index", lambda: self.client.describe_index(name)
        )
        if description.dimension != self.config.dimension:
            raise DimensionMismatchError(
                f"Index {name} has dimension {description.dimension}, "
                f"configured embedding dimension is {self.config.dimension}"
            )
        self._ready = True
        return description

    def upsert(self, records: list[EmbeddingRecord]) -> None:
        """Upsert records in order, `batch_size` at a time, each batch retried."""

        if not records:
            return
        if not self._ready:
            self.ensure_index()

        prepared = [self._prepare(record) for record in records]
        batch_size = self.config.batch_size
        total_batches = (len(prepared) + batch_size - 1) // batch_size
        for batch_number, start in enumerate(range(0, len(prepared), batch_size), start=1):
            batch = prepared[start : start + batch_size]
            logger.debug(
                f"Upserting batch {batch_number}/{total_batches} "
                f"({len(batch)} records) into {self.index_name}"
            )
            call_with_retry(
                self.config.retry,
                "upsert",
                lambda batch=batch: self.client.upsert(self.index_name, batch),
            )

    def query(
        self,
        vector: list[float],
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[ScoredRecord]:
        """Up to `top_k` records ordered by descending similarity."""

        if not self._ready:
            self.ensure_index()
        self._check_dimension(len(vector), "query vector")
        matches = call_with_retry(
            self.config.retry,
            "query",
            lambda: self.client.query(
                self.index_name,
                vector,
                top_k,
                include_metadata=True,
                metadata_filter=metadata_filter,
            ),
        )
        return sorted(matches, key=lambda item: item.score, reverse=True)[:top_k]

    def _prepare(self, record: EmbeddingRecord) -> EmbeddingRecord:
        self._check_dimension(len(record.vector), f"record {record.id}")
        return EmbeddingRecord(
            id=record.id,
            vector=list(record.vector),
            metadata=validate_metadata(record.metadata),
        )

    def _check_dimension(self, size: int, what: str) -> None:
        if size != self.config.dimension:
            raise DimensionMismatchError(
                f"{what} has dimension {size}, index {self.index_name} "
                f"expects {self.config.dimension}"
            )


@contextmanager
def _translate_chroma_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (httpx.TimeoutException, httpx.TransportError) as exc:
        raise TransientProviderError(f"chroma {operation}: {exc}") from exc
    # Missing collections surface as NotFoundError or, on older releases, ValueError.
    except (ChromaError, ValueError) as exc:
        raise ConfigurationError(f"chroma {operation}: {type(exc).__name__}: {exc}") from exc


def _encode_metadata(metadata: dict[str, MetadataValue]) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    list_keys: list[str] = []
    for key, value in metadata.items():
        if isinstance(value, list):
            encoded[key] = json.dumps(value)
            list_keys.append(key)
            for item in value:
                encoded[_member_key(key, item)] = True
        else:
            encoded[key] = value
    if list_keys:
        encoded[_LIST_KEYS] = ",".join(list_keys)
    return encoded


def _decode_metadata(metadata: dict[str, Any]) -> dict[str, MetadataValue]:
    decoded = {
        key: value for key, value in metadata.items() if not key.startswith(_MEMBER_PREFIX)
    }
    list_keys = decoded.pop(_LIST_KEYS, "")
    for key in filter(None, str(list_keys).split(",")):
        if key in decoded:
            decoded[key] = json.loads(decoded[key])
    return decoded


def _chroma_where(metadata_filter: dict[str, Any] | None) -> dict[str, Any] | None:
    if not metadata_filter:
        return None
    clauses = [_chroma_clause(key, value) for key, value in metadata_filter.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _chroma_clause(key: str, value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        return {"$or": [{key: value}, {_member_key(key, value): True}]}
    return {key: value}


def _member_key(key: str, item: str) -> str:
    return f"{_MEMBER_PREFIX}{key}:{item}"


def _distance_to_score(metric: str, distance: float) -> float:
    if metric == "euclidean":
        return 1.0 / (1.0 + distance)
    return 1.0 - distance


def _metadata_match(
    metadata: dict[str, MetadataValue], metadata_filter: dict[str, Any] | None
) -> bool:
    if not metadata_filter:
        return True
    for key, value in metadata_filter.items():
        stored = metadata.get(key)
        if isinstance(stored, list) and not isinstance(value, list):
            if value not in stored:
                return False
        elif stored != value:
            return False
    return True


def _similarity(metric: str, a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    if metric == "euclidean":
        distance = sqrt(sum((x - y) ** 2 for x, y in zip(a, b, strict=True)))
        return 1.0 / (1.0 + distance)
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    if metric == "dotproduct":
        return dot
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
