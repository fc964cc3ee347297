"""Agent registry: the closed set of agents the router may select."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from rag_router.agent.prompts import NEWS_PROMPT
from rag_router.config import AgentConfig, Settings
from rag_router.errors import ConfigurationError, InvalidAgentError


class AgentRegistry:
    """Read-only catalogue of `AgentConfig` entries keyed by name.

    Built once at startup and passed to the router and the dispatcher.
    Adding an agent only takes a new entry here: the classification prompt
    and schema are both derived from the registry.
    """

    def __init__(self, agents: Iterable[AgentConfig]) -> None:
        self._agents: dict[str, AgentConfig] = {}
        for agent in agents:
            if agent.name in self._agents:
                raise ConfigurationError(f"Agent already registered: {agent.name}")
            self._agents[agent.name] = agent
        if not self._agents:
            raise ConfigurationError("Agent registry must contain at least one agent")

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[AgentConfig]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def get(self, name: str) -> AgentConfig:
        agent = self._agents.get(name)
        if agent is None:
            raise InvalidAgentError(f"Unknown agent: {name}")
        return agent

    def names(self) -> tuple[str, ...]:
        return tuple(self._agents)

    def model_for(self, name: str) -> str:
        return self.get(name).model

    def index_names(self) -> set[str]:
        return {
            agent.index_name
            for agent in self._agents.values()
            if agent.strategy == "retrieval" and agent.index_name
        }

    def describe(self) -> str:
        """One `- name: description` line per agent, for prompts."""
        return "\n".join(f"- {agent.name}: {agent.description}" for agent in self._agents.values())


def default_agent_registry(settings: Settings | None = None) -> AgentRegistry:
    settings = settings or Settings()
    return AgentRegistry(
        [
            AgentConfig(
                name="linkedin",
                model=settings.linkedin_model,
                description="Specialized in LinkedIn-related posts about tech using a fine-tuned model",
                strategy="fine_tuned",
            ),
            AgentConfig(
                name="knowledgeBase",
                model=settings.knowledge_model,
                description=(
                    "Queries the knowledge base for information about coding, "
                    "software development, and technology."
                ),
                strategy="retrieval",
                index_name=settings.knowledge_index,
            ),
            AgentConfig(
                name="articles",
                model=settings.articles_model,
                description=(
                    "Answers questions about news and current events from uploaded "
                    "articles, comparing perspectives by political bias."
                ),
                strategy="retrieval",
                index_name=settings.articles_index,
                system_prompt=NEWS_PROMPT,
            ),
            AgentConfig(
                name="general",
                model=settings.general_model,
                description="Handles general queries using the base model",
                strategy="general",
            ),
        ]
    )
