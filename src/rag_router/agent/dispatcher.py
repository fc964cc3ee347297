"""Runs the retrieval and generation strategy of the routed agent."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from rag_router.agent.llm import ChatClient, ChatMessage
from rag_router.agent.prompts import (
    GENERAL_PROMPT,
    KNOWLEDGE_BASE_PROMPT,
    LINKEDIN_PROMPT,
    build_grounded_user_message,
)
from rag_router.agent.registry import AgentRegistry
from rag_router.agent.streaming import CancellationToken, TokenStream
from rag_router.config import AgentConfig
from rag_router.errors import ConfigurationError, GenerationError, InvalidAgentError
from rag_router.retrieval.retriever import KnowledgeRetriever
from rag_router.types import RoutingDecision, ScoredRecord

logger = logging.getLogger(__name__)

Response = str | TokenStream

_DEFAULT_PROMPTS = {
    "retrieval": KNOWLEDGE_BASE_PROMPT,
    "fine_tuned": LINKEDIN_PROMPT,
    "general": GENERAL_PROMPT,
}


@dataclass(slots=True)
class PreparedRequest:
    """Messages for one generation call plus the matches that grounded them."""

    agent: AgentConfig
    messages: list[ChatMessage]
    matches: list[ScoredRecord] = field(default_factory=list)


class AgentDispatcher:
    """Executes a `RoutingDecision`.

    - `retrieval` agents: embed the query, search the agent's index, rerank,
      and ground the prompt in the retrieved documents. With no matches the
      model is told explicitly that no context was found.
    - `fine_tuned` agents: no retrieval, fixed style prompt.
    - `general` agents: no retrieval, minimal prompt.

    Agents missing from the registry raise `InvalidAgentError`; there is no
    fallback to `general`.
    """

    def __init__(
        self,
        *,
        registry: AgentRegistry,
        chat_client: ChatClient,
        retrievers: Mapping[str, KnowledgeRetriever] | None = None,
    ) -> None:
        self.registry = registry
        self.chat_client = chat_client
        self.retrievers = dict(retrievers or {})

    def dispatch(
        self,
        decision: RoutingDecision,
        *,
        stream: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> Response:
        """Generate the answer for `decision`.

        Returns a complete string, or a `TokenStream` when `stream` is true.
        """

        prepared = self.prepare(decision)
        model = prepared.agent.model
        logger.info(
            f"Dispatching to {prepared.agent.name} ({prepared.agent.strategy}) "
            f"with {len(prepared.matches)} grounding documents"
        )
        if stream:
            return TokenStream(
                self.chat_client.stream_complete(model, prepared.messages),
                cancel_token=cancel_token,
            )

        result = self.chat_client.complete(model, prepared.messages)
        if not isinstance(result, str):
            raise GenerationError(f"Expected text completion, got {type(result).__name__}")
        return result

    def prepare(self, decision: RoutingDecision) -> PreparedRequest:
        if decision.selected_agent not in self.registry:
            raise InvalidAgentError(f"Unknown agent: {decision.selected_agent}")
        agent = self.registry.get(decision.selected_agent)
        system_prompt = agent.system_prompt or _DEFAULT_PROMPTS[agent.strategy]

        if agent.strategy == "retrieval":
            matches = self._retriever_for(agent).retrieve(decision.agent_query)
            if not matches:
                logger.warning(
                    f"No grounding context found in {agent.index_name} for agent {agent.name}"
                )
            user_content = build_grounded_user_message(decision.agent_query, matches)
            return PreparedRequest(
                agent=agent,
                messages=[
                    ChatMessage(role="system", content=system_prompt),
                    ChatMessage(role="user", content=user_content),
                ],
                matches=matches,
            )

        return PreparedRequest(
            agent=agent,
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=decision.agent_query),
            ],
        )

    def _retriever_for(self, agent: AgentConfig) -> KnowledgeRetriever:
        retriever = self.retrievers.get(agent.index_name or "")
        if retriever is None:
            raise ConfigurationError(
                f"No retriever configured for index {agent.index_name} (agent {agent.name})"
            )
        return retriever
