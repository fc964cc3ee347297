from collections.abc import Iterator, Sequence
from typing import Any

import pytest
from pydantic import BaseModel

from rag_router.agent.llm import ChatMessage
from rag_router.agent.registry import AgentRegistry, default_agent_registry
from rag_router.agent.router import AgentRouter, RouterState, build_selection_schema
from rag_router.config import AgentConfig, Settings
from rag_router.errors import ClassificationError, ConfigurationError, GenerationError


class _ScriptedChatClient:
    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.calls: list[tuple[str, list[ChatMessage], type[BaseModel] | None]] = []

    def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        response_schema: type[BaseModel] | None = None,
    ) -> Any:
        self.calls.append((model, list(messages), response_schema))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply

    def stream_complete(self, model: str, messages: Sequence[ChatMessage]) -> Iterator[str]:
        raise AssertionError("router never streams")


class _FakeTranscriber:
    def __init__(self, transcript: str) -> None:
        self.transcript = transcript
        self.received: list[tuple[bytes, str]] = []

    def transcribe(self, audio: bytes, audio_format: str = "webm") -> str:
        self.received.append((audio, audio_format))
        return self.transcript


def _registry() -> AgentRegistry:
    return AgentRegistry(
        [
            AgentConfig(name="linkedin", model="ft:linkedin", description="LinkedIn posts"),
            AgentConfig(
                name="knowledgeBase",
                model="gpt-kb",
                description="Coding knowledge",
                strategy="retrieval",
                index_name="kb",
            ),
            AgentConfig(name="general", model="gpt-general", description="Anything else"),
        ]
    )


def _router(reply: Any, transcriber: _FakeTranscriber | None = None) -> AgentRouter:
    return AgentRouter(
        registry=_registry(),
        chat_client=_ScriptedChatClient(reply),
        model="router-model",
        transcriber=transcriber,
    )


def test_route_uses_registry_model_for_selected_agent() -> None:
    router = _router({"selectedAgent": "knowledgeBase", "agentQuery": "python decorators"})

    decision = router.route("How do decorators work in Python?")

    assert decision.selected_agent == "knowledgeBase"
    assert decision.agent_query == "python decorators"
    assert decision.model == "gpt-kb"
    assert router.last_state is RouterState.ROUTED


def test_route_ignores_model_named_by_classifier() -> None:
    router = _router({"selectedAgent": "linkedin", "agentQuery": "q", "model": "gpt-evil"})

    decision = router.route("Write a LinkedIn post")

    assert decision.model == "ft:linkedin"


def test_route_sends_catalogue_and_schema_to_classifier() -> None:
    router = _router({"selectedAgent": "general", "agentQuery": "hi"})

    router.route("hello there")

    client = router.chat_client
    assert isinstance(client, _ScriptedChatClient)
    model, messages, schema = client.calls[0]
    assert model == "router-model"
    assert "- linkedin: LinkedIn posts" in messages[0].content
    assert messages[1].content == "hello there"
    assert schema is router.selection_schema


def test_route_accepts_schema_instances_and_json() -> None:
    schema = build_selection_schema(_registry())
    instance = schema.model_validate({"selectedAgent": "linkedin", "agentQuery": "write a post"})

    assert _router(instance).route("post idea").selected_agent == "linkedin"
    assert (
        _router('{"selectedAgent": "general", "agentQuery": "x"}').route("x").selected_agent
        == "general"
    )


def test_empty_refined_query_falls_back_to_user_query() -> None:
    router = _router({"selectedAgent": "general", "agentQuery": "  "})

    assert router.route("What time is it?").agent_query == "What time is it?"


@pytest.mark.parametrize("query", [None, "", "   "])
def test_empty_query_fails_classification(query: str | None) -> None:
    router = _router({"selectedAgent": "general", "agentQuery": "x"})

    with pytest.raises(ClassificationError):
        router.route(query)

    assert router.last_state is RouterState.CLASSIFICATION_FAILED


@pytest.mark.parametrize(
    "reply",
    [
        {"selectedAgent": "unknownAgent", "agentQuery": "x"},
        {"agentQuery": "x"},
        "not json at all",
        None,
        GenerationError("schema mismatch"),
    ],
)
def test_unusable_classifier_output_fails_classification(reply: Any) -> None:
    router = _router(reply)

    with pytest.raises(ClassificationError):
        router.route("Tell me something")

    assert router.last_state is RouterState.CLASSIFICATION_FAILED


def test_route_audio_transcribes_then_routes() -> None:
    transcriber = _FakeTranscriber("How do I grow on LinkedIn?")
    router = _router({"selectedAgent": "linkedin", "agentQuery": "grow on linkedin"}, transcriber)

    decision = router.route_audio(b"\x00\x01", "mp3")

    assert transcriber.received == [(b"\x00\x01", "mp3")]
    assert decision.selected_agent == "linkedin"


def test_route_audio_with_empty_transcript_fails() -> None:
    router = _router({"selectedAgent": "general", "agentQuery": "x"}, _FakeTranscriber("  "))

    with pytest.raises(ClassificationError):
        router.route_audio(b"\x00")


def test_route_audio_requires_transcriber() -> None:
    with pytest.raises(ConfigurationError):
        _router({"selectedAgent": "general", "agentQuery": "x"}).route_audio(b"\x00")


def test_default_registry_routes_news_to_articles_agent() -> None:
    registry = default_agent_registry(Settings(articles_model="gpt-news"))
    router = AgentRouter(
        registry=registry,
        chat_client=_ScriptedChatClient(
            {"selectedAgent": "articles", "agentQuery": "election coverage"}
        ),
        model="router-model",
    )

    decision = router.route("What is the latest election news?")

    assert decision.selected_agent == "articles"
    assert decision.agent_query == "election coverage"
    assert decision.model == "gpt-news"
    assert "- articles: " in router.system_prompt
