import httpx
import pytest

from rag_router.config import RetryConfig
from rag_router.errors import DimensionMismatchError, TransientProviderError, ValidationError
from rag_router.ingest.embedder import HashingEmbedder, OpenAIEmbedder

NO_WAIT = RetryConfig(max_retries=5, base_delay_seconds=0.0, max_delay_seconds=0.0)


class _FakeEmbeddings:
    def __init__(self, dimension: int, timeouts: int = 0) -> None:
        self.dimension = dimension
        self.timeouts = timeouts
        self.calls = 0

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self.timeouts:
            self.timeouts -= 1
            raise httpx.ConnectTimeout("connect timed out")
        return [[0.1] * self.dimension for _ in texts]

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]


def test_openai_embedder_retries_timeouts() -> None:
    fake = _FakeEmbeddings(dimension=4, timeouts=2)
    embedder = OpenAIEmbedder(dimension=4, retry=NO_WAIT, client=fake)

    vectors = embedder.embed_documents(["first text", "second text"])

    assert fake.calls == 3
    assert [len(vector) for vector in vectors] == [4, 4]


def test_openai_embedder_exhausts_retries() -> None:
    fake = _FakeEmbeddings(dimension=4, timeouts=100)
    embedder = OpenAIEmbedder(dimension=4, retry=NO_WAIT, client=fake)

    with pytest.raises(TransientProviderError):
        embedder.embed_query("hello")

    assert fake.calls == 6


def test_openai_embedder_rejects_wrong_dimension() -> None:
    embedder = OpenAIEmbedder(dimension=512, retry=NO_WAIT, client=_FakeEmbeddings(dimension=1536))

    with pytest.raises(DimensionMismatchError):
        embedder.embed_query("hello")


def test_openai_embedder_rejects_empty_text() -> None:
    embedder = OpenAIEmbedder(dimension=4, retry=NO_WAIT, client=_FakeEmbeddings(dimension=4))

    with pytest.raises(ValidationError):
        embedder.embed_documents(["fine", "   "])


def test_hashing_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashingEmbedder(dimension=32)

    first = embedder.embed_query("vector search with chroma")
    second = embedder.embed_query("vector search with chroma")

    assert first == second
    assert len(first) == 32
    assert sum(value * value for value in first) == pytest.approx(1.0)
