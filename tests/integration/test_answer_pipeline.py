import uuid
from collections.abc import Iterator
from typing import Any

import chromadb
import pytest

from rag_router.agent.streaming import TokenStream
from rag_router.config import Settings
from rag_router.errors import DimensionMismatchError
from rag_router.ingest.tokens import RegexTokenCounter
from rag_router.retrieval.vector_store import ChromaIndexClient, InMemoryIndexClient
from rag_router.service import GENERIC_FAILURE_MESSAGE, AnswerFailed, Answered, RagService

DECORATORS = (
    "Python decorators wrap a function to extend its behaviour. "
    "A decorator takes a function and returns a new function."
)


def _offline_service(index_client: InMemoryIndexClient | None = None) -> RagService:
    settings = Settings(openai_api_key=None, embedding_dimension=64, knowledge_index="kb")
    return RagService.from_settings(
        settings,
        index_client=index_client or InMemoryIndexClient(),
        token_counter=RegexTokenCounter(),
    )


def test_offline_service_routes_retrieves_and_answers() -> None:
    service = _offline_service()
    service.ingest_text(DECORATORS, {"title": "Python decorators"})

    result = service.answer("How do I write Python code with decorators?")

    assert service.offline
    assert isinstance(result, Answered)
    assert result.agent == "knowledgeBase"
    assert result.answer == "1. See Python decorators."
    trace = service.trace_store.get(result.trace_id)
    assert trace.status == "answered"
    assert trace.agent == "knowledgeBase"


def test_streamed_answer_matches_complete_answer() -> None:
    service = _offline_service()
    service.ingest_text(DECORATORS, {"title": "Python decorators"})

    complete = service.answer("Explain Python decorators")
    streamed = service.answer("Explain Python decorators", stream=True)

    assert isinstance(complete, Answered)
    assert isinstance(streamed, Answered)
    assert isinstance(streamed.answer, TokenStream)
    assert streamed.answer.read_all() == complete.answer


def test_general_query_without_sources_still_answers() -> None:
    result = _offline_service().answer("Plan a weekend trip")

    assert isinstance(result, Answered)
    assert result.agent == "general"
    assert "No verifiable evidence" in str(result.answer)


def test_failures_become_generic_answer_failures() -> None:
    service = _offline_service()

    empty = service.answer("   ")
    audio = service.answer(b"\x00\x01", audio_format="webm")

    assert isinstance(empty, AnswerFailed)
    assert empty.message == GENERIC_FAILURE_MESSAGE
    assert empty.error_type == "ClassificationError"
    assert isinstance(audio, AnswerFailed)
    assert audio.error_type == "ConfigurationError"
    assert service.trace_store.summary()["failed_requests"] == 2


def test_startup_rejects_index_with_other_dimension() -> None:
    client = InMemoryIndexClient()
    client.create_index("kb", 1536, "cosine")

    with pytest.raises(DimensionMismatchError):
        _offline_service(client)


class _BrokenChatClient:
    def complete(self, model: str, messages: Any, response_schema: Any = None) -> Any:
        raise RuntimeError("provider exploded")

    def stream_complete(self, model: str, messages: Any) -> Iterator[str]:
        raise RuntimeError("provider exploded")


def test_unexpected_errors_become_answer_failures() -> None:
    service = _offline_service()
    service.dispatcher.chat_client = _BrokenChatClient()

    result = service.answer("Plan a weekend trip")

    assert isinstance(result, AnswerFailed)
    assert result.message == GENERIC_FAILURE_MESSAGE
    assert result.error_type == "RuntimeError"
    assert service.trace_store.get(result.trace_id).status == "failed"


def test_missing_chroma_collection_becomes_answer_failure() -> None:
    chroma = chromadb.EphemeralClient()
    index = f"kb-{uuid.uuid4().hex[:8]}"
    settings = Settings(
        openai_api_key=None,
        embedding_dimension=64,
        knowledge_index=index,
        articles_index=f"articles-{index}",
    )
    service = RagService.from_settings(
        settings,
        index_client=ChromaIndexClient(client=chroma),
        token_counter=RegexTokenCounter(),
    )
    service.ingest_text(DECORATORS, {"title": "Python decorators"})
    chroma.delete_collection(index)

    result = service.answer("How do I write Python code?")

    assert isinstance(result, AnswerFailed)
    assert result.error_type == "ConfigurationError"
    assert result.message == GENERIC_FAILURE_MESSAGE


def test_news_query_is_answered_from_articles_index() -> None:
    service = _offline_service()
    service.ingest_text(DECORATORS, {"title": "Python decorators"})
    service.ingest_article(
        "Lawmakers debated new election rules for mail-in ballots this week.",
        {"topic": "Election rules", "bias": "conservative"},
    )

    result = service.answer("Any news on the election rules?")

    assert isinstance(result, Answered)
    assert result.agent == "articles"
    assert result.answer == "1. See Election rules (conservative)."
