import pytest

from rag_router.config import RetryConfig, VectorStoreConfig
from rag_router.errors import (
    DimensionMismatchError,
    EmbeddingError,
    MetadataError,
    TransientProviderError,
)
from rag_router.retrieval.vector_store import InMemoryIndexClient, VectorStore
from rag_router.types import EmbeddingRecord

NO_WAIT = RetryConfig(max_retries=5, base_delay_seconds=0.0, max_delay_seconds=0.0)


class _FlakyIndexClient(InMemoryIndexClient):
    """Fails the first `failures` upsert calls with `error`."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        super().__init__()
        self.failures = failures
        self.error = error or TransientProviderError("rate limited")
        self.upsert_attempts = 0
        self.batch_sizes: list[int] = []

    def upsert(self, name: str, records: list[EmbeddingRecord]) -> None:
        self.upsert_attempts += 1
        if self.failures:
            self.failures -= 1
            raise self.error
        self.batch_sizes.append(len(records))
        super().upsert(name, records)


def _config(**overrides: object) -> VectorStoreConfig:
    values: dict[str, object] = {
        "index_name": "kb",
        "dimension": 3,
        "batch_size": 2,
        "retry": NO_WAIT,
    }
    values.update(overrides)
    return VectorStoreConfig(**values)


def _records(count: int, content: str = "text") -> list[EmbeddingRecord]:
    return [
        EmbeddingRecord(
            id=f"doc-chunk-{idx}",
            vector=[1.0, float(idx), 0.0],
            metadata={"content": f"{content} {idx}", "source": "doc"},
        )
        for idx in range(count)
    ]


def test_ensure_index_creates_missing_index() -> None:
    client = InMemoryIndexClient()
    store = VectorStore(client, _config())

    description = store.ensure_index()

    assert client.list_indexes() == ["kb"]
    assert description.dimension == 3


def test_ensure_index_rejects_dimension_mismatch() -> None:
    client = InMemoryIndexClient()
    client.create_index("kb", 4, "cosine")

    with pytest.raises(DimensionMismatchError):
        VectorStore(client, _config()).ensure_index()


def test_upsert_sends_batches_in_order() -> None:
    client = _FlakyIndexClient()
    store = VectorStore(client, _config())

    store.upsert(_records(5))

    assert client.batch_sizes == [2, 2, 1]
    assert client.ids("kb") == [f"doc-chunk-{idx}" for idx in range(5)]


def test_upsert_retries_transient_failures() -> None:
    client = _FlakyIndexClient(failures=2)
    store = VectorStore(client, _config())

    store.upsert(_records(1))

    assert client.upsert_attempts == 3
    assert client.count("kb") == 1


def test_upsert_gives_up_after_max_retries() -> None:
    client = _FlakyIndexClient(failures=100)
    store = VectorStore(client, _config())

    with pytest.raises(TransientProviderError):
        store.upsert(_records(1))

    assert client.upsert_attempts == 6
    assert client.count("kb") == 0


def test_permanent_failures_are_not_retried() -> None:
    client = _FlakyIndexClient(failures=100, error=EmbeddingError("bad request"))
    store = VectorStore(client, _config())

    with pytest.raises(EmbeddingError):
        store.upsert(_records(1))

    assert client.upsert_attempts == 1


def test_upsert_is_idempotent_by_id() -> None:
    client = InMemoryIndexClient()
    store = VectorStore(client, _config())

    store.upsert(_records(3, content="first"))
    store.upsert(_records(3, content="second"))

    assert client.count("kb") == 3
    matches = store.query([1.0, 0.0, 0.0], top_k=3)
    assert all(match.content.startswith("second") for match in matches)


def test_upsert_rejects_wrong_vector_dimension() -> None:
    client = _FlakyIndexClient()
    store = VectorStore(client, _config())
    bad = EmbeddingRecord(id="bad", vector=[1.0, 2.0], metadata={})

    with pytest.raises(DimensionMismatchError):
        store.upsert(_records(1) + [bad])

    assert client.upsert_attempts == 0


def test_upsert_validates_metadata() -> None:
    store = VectorStore(InMemoryIndexClient(), _config())
    record = EmbeddingRecord(id="x", vector=[1.0, 0.0, 0.0], metadata={"bad": [1, 2]})  # type: ignore[list-item]

    with pytest.raises(MetadataError):
        store.upsert([record])


def test_upsert_flattens_nested_metadata() -> None:
    client = InMemoryIndexClient()
    store = VectorStore(client, _config())
    record = EmbeddingRecord(
        id="x",
        vector=[1.0, 0.0, 0.0],
        metadata={"engagement": {"views": 10}},  # type: ignore[dict-item]
    )

    store.upsert([record])

    assert store.query([1.0, 0.0, 0.0], top_k=1)[0].metadata == {"engagement.views": 10}


def test_query_orders_by_score_and_respects_top_k() -> None:
    store = VectorStore(InMemoryIndexClient(), _config())
    store.upsert(
        [
            EmbeddingRecord(id="far", vector=[0.0, 1.0, 0.0], metadata={"source": "a"}),
            EmbeddingRecord(id="near", vector=[1.0, 0.1, 0.0], metadata={"source": "b"}),
            EmbeddingRecord(id="exact", vector=[1.0, 0.0, 0.0], metadata={"source": "a"}),
        ]
    )

    matches = store.query([1.0, 0.0, 0.0], top_k=2)

    assert [match.id for match in matches] == ["exact", "near"]
    assert matches[0].score >= matches[1].score


def test_query_applies_metadata_filter() -> None:
    store = VectorStore(InMemoryIndexClient(), _config())
    store.upsert(
        [
            EmbeddingRecord(id="a", vector=[1.0, 0.0, 0.0], metadata={"tags": ["python"]}),
            EmbeddingRecord(id="b", vector=[1.0, 0.0, 0.0], metadata={"tags": ["rust"]}),
        ]
    )

    matches = store.query([1.0, 0.0, 0.0], top_k=5, metadata_filter={"tags": "python"})

    assert [match.id for match in matches] == ["a"]


def test_query_rejects_wrong_dimension() -> None:
    store = VectorStore(InMemoryIndexClient(), _config())

    with pytest.raises(DimensionMismatchError):
        store.query([1.0, 0.0], top_k=1)
