import uuid

import chromadb
import pytest

from rag_router.errors import ConfigurationError
from rag_router.retrieval.vector_store import ChromaIndexClient
from rag_router.types import EmbeddingRecord


@pytest.fixture()
def chroma() -> ChromaIndexClient:
    return ChromaIndexClient(client=chromadb.EphemeralClient())


def test_chroma_index_round_trips_metadata(chroma: ChromaIndexClient) -> None:
    name = f"kb-{uuid.uuid4().hex[:8]}"
    chroma.create_index(name, 3, "cosine")
    chroma.upsert(
        name,
        [
            EmbeddingRecord(
                id="a",
                vector=[1.0, 0.0, 0.0],
                metadata={"content": "alpha", "source": "docs", "tags": ["x", "y"]},
            ),
            EmbeddingRecord(
                id="b",
                vector=[0.0, 1.0, 0.0],
                metadata={"content": "beta", "source": "blog"},
            ),
        ],
    )

    description = chroma.describe_index(name)
    matches = chroma.query(name, [1.0, 0.0, 0.0], 2)
    filtered = chroma.query(name, [1.0, 0.0, 0.0], 1, metadata_filter={"source": "blog"})

    assert name in chroma.list_indexes()
    assert (description.dimension, description.metric) == (3, "cosine")
    assert [match.id for match in matches] == ["a", "b"]
    assert matches[0].score == pytest.approx(1.0, abs=1e-4)
    assert matches[0].metadata["tags"] == ["x", "y"]
    assert [match.id for match in filtered] == ["b"]


def test_chroma_scalar_filter_matches_list_membership(chroma: ChromaIndexClient) -> None:
    name = f"kb-{uuid.uuid4().hex[:8]}"
    chroma.create_index(name, 2, "cosine")
    chroma.upsert(
        name,
        [
            EmbeddingRecord(
                id="py", vector=[1.0, 0.0], metadata={"content": "py", "tags": ["python", "rag"]}
            ),
            EmbeddingRecord(
                id="js", vector=[1.0, 0.1], metadata={"content": "js", "tags": ["javascript"]}
            ),
        ],
    )

    matches = chroma.query(name, [1.0, 0.0], 2, metadata_filter={"tags": "python"})

    assert [match.id for match in matches] == ["py"]
    assert matches[0].metadata == {"content": "py", "tags": ["python", "rag"]}


def test_chroma_missing_collection_is_a_configuration_error(chroma: ChromaIndexClient) -> None:
    with pytest.raises(ConfigurationError):
        chroma.query(f"missing-{uuid.uuid4().hex[:8]}", [1.0, 0.0], 1)
