"""Offline chat client used when no OpenAI credentials are configured."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, get_args

from pydantic import BaseModel

from rag_router.agent.llm import ChatMessage
from rag_router.agent.prompts import NO_CONTEXT_NOTICE
from rag_router.errors import GenerationError

_SOURCE_PATTERN = re.compile(r"^SOURCE:\s*(?P<label>.+)$", flags=re.MULTILINE)
_WORD_PATTERN = re.compile(r"\S+\s*")

DEFAULT_KEYWORD_ROUTES: dict[str, tuple[str, ...]] = {
    "linkedin": ("linkedin",),
    "knowledgeBase": (
        "code",
        "coding",
        "python",
        "javascript",
        "typescript",
        "software",
        "programming",
        "api",
        "database",
        "technology",
    ),
    "articles": ("news", "headline", "headlines", "election", "politics", "current events"),
}


class DeterministicChatClient:
    """`ChatClient` that answers without an LLM.

    Keeps the same contract as `LangChainChatClient` so the router and the
    dispatcher run unchanged in local/offline environments:

    - Structured calls are classified by keyword, falling back to `general`
      (or the last allowed agent when `general` is not registered).
    - Plain calls list the `SOURCE:` labels found in the prompt, or report
      that no evidence was available.
    """

    def __init__(self, keyword_routes: Mapping[str, Sequence[str]] | None = None) -> None:
        self.keyword_routes = dict(keyword_routes or DEFAULT_KEYWORD_ROUTES)

    def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        response_schema: type[BaseModel] | None = None,
    ) -> str | BaseModel | dict[str, Any]:
        del model  # one behaviour for every model id.
        query = _last_user_content(messages)
        if response_schema is None:
            return _build_answer(query)
        return response_schema.model_validate(
            {"selectedAgent": self._select(query, response_schema), "agentQuery": query}
        )

    def stream_complete(self, model: str, messages: Sequence[ChatMessage]) -> Iterator[str]:
        answer = self.complete(model, messages)
        yield from _WORD_PATTERN.findall(str(answer))

    def _select(self, query: str, schema: type[BaseModel]) -> str:
        field = schema.model_fields.get("selectedAgent")
        allowed = get_args(field.annotation) if field is not None else ()
        if not allowed:
            raise GenerationError(f"Schema {schema.__name__} has no selectable agents")

        lowered = query.lower()
        for agent, keywords in self.keyword_routes.items():
            if agent in allowed and any(
                re.search(rf"\b{re.escape(word)}\b", lowered) for word in keywords
            ):
                return agent
        return "general" if "general" in allowed else str(allowed[-1])


def _last_user_content(messages: Sequence[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def _build_answer(prompt: str) -> str:
    labels = [match.group("label").strip() for match in _SOURCE_PATTERN.finditer(prompt)]
    if NO_CONTEXT_NOTICE in prompt or not labels:
        return "No verifiable evidence was found in the indexed documents."

    lines = [f"{idx}. See {label}." for idx, label in enumerate(labels[:3], start=1)]
    return "\n".join(lines)
