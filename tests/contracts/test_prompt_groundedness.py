from rag_router.agent.prompts import (
    KNOWLEDGE_BASE_PROMPT,
    LINKEDIN_PROMPT,
    NO_CONTEXT_NOTICE,
    build_grounded_user_message,
    build_router_prompt,
    format_sources,
)
from rag_router.agent.registry import default_agent_registry
from rag_router.config import Settings
from rag_router.types import ScoredRecord


def _match(record_id: str, content: str, **metadata: str) -> ScoredRecord:
    return ScoredRecord(id=record_id, score=0.5, metadata={"content": content, **metadata})


def test_knowledge_prompt_requires_grounding_and_citations() -> None:
    assert "Use the provided content" in KNOWLEDGE_BASE_PROMPT
    assert "Cite your sources" in KNOWLEDGE_BASE_PROMPT
    assert "doesn't contain relevant information" in KNOWLEDGE_BASE_PROMPT


def test_linkedin_prompt_forbids_emojis() -> None:
    assert "never use emojis" in LINKEDIN_PROMPT


def test_router_prompt_lists_every_registered_agent() -> None:
    registry = default_agent_registry(Settings())

    prompt = build_router_prompt(registry)

    for agent in registry:
        assert f"- {agent.name}: {agent.description}" in prompt


def test_sources_are_labelled_and_separated() -> None:
    formatted = format_sources(
        [
            _match("a", "First body.", title="Guide"),
            _match("b", "Second body.", url="https://example.com/b"),
        ]
    )

    assert formatted == (
        "SOURCE: Guide\n\nFirst body.\n\n---\n\nSOURCE: https://example.com/b\n\nSecond body."
    )


def test_grounded_message_without_matches_carries_notice() -> None:
    message = build_grounded_user_message("What is RAG?", [])

    assert message.startswith("Query: What is RAG?")
    assert NO_CONTEXT_NOTICE in message
