"""Classifies a user request into one registered agent."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, create_model
from pydantic import ValidationError as PydanticValidationError

from rag_router.agent.llm import ChatClient, ChatMessage
from rag_router.agent.prompts import build_router_prompt
from rag_router.agent.registry import AgentRegistry
from rag_router.agent.transcribe import Transcriber
from rag_router.config import DEFAULT_BASE_MODEL
from rag_router.errors import ClassificationError, ConfigurationError, GenerationError
from rag_router.types import RoutingDecision

logger = logging.getLogger(__name__)


class RouterState(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    ROUTED = "routed"
    CLASSIFICATION_FAILED = "classification_failed"


def build_selection_schema(registry: AgentRegistry) -> type[BaseModel]:
    """Structured-output schema whose `selectedAgent` enum is the registry."""

    agent_name = Literal[registry.names()]  # type: ignore[valid-type]
    return create_model(
        "AgentSelection",
        selectedAgent=(agent_name, Field(description="The agent best suited to the query")),
        agentQuery=(str, Field(description="The refined query for the selected agent")),
    )


class AgentRouter:
    """Selects an agent and a refined query with a structured classification call.

    The model that will answer is looked up in the registry from the selected
    agent name. Whatever else the classifier returns is ignored, so the
    classification output can never pick an arbitrary model.

    `last_state` reflects the most recent call and is meant for diagnostics
    in single-threaded use.
    """

    def __init__(
        self,
        *,
        registry: AgentRegistry,
        chat_client: ChatClient,
        model: str = DEFAULT_BASE_MODEL,
        transcriber: Transcriber | None = None,
    ) -> None:
        self.registry = registry
        self.chat_client = chat_client
        self.model = model
        self.transcriber = transcriber
        self.system_prompt = build_router_prompt(registry)
        self.selection_schema = build_selection_schema(registry)
        self.last_state = RouterState.IDLE

    def route(self, query: str | None) -> RoutingDecision:
        """Classify a text query.

        Raises:
            ClassificationError: Empty query, unparsable classifier output, or
                an agent name missing from the registry.
        """

        self.last_state = RouterState.CLASSIFYING
        try:
            decision = self._classify(query)
        except ClassificationError as exc:
            self.last_state = RouterState.CLASSIFICATION_FAILED
            logger.warning(f"Classification failed: {exc}")
            raise
        except Exception:
            self.last_state = RouterState.CLASSIFICATION_FAILED
            raise

        self.last_state = RouterState.ROUTED
        logger.info(f"Routed query to {decision.selected_agent} ({decision.model})")
        return decision

    def route_audio(self, audio: bytes, audio_format: str = "webm") -> RoutingDecision:
        """Transcribe `audio` and route on the transcript."""

        if self.transcriber is None:
            raise ConfigurationError("No transcriber configured for audio input")
        self.last_state = RouterState.CLASSIFYING
        transcript = self.transcriber.transcribe(audio, audio_format)
        if not transcript.strip():
            self.last_state = RouterState.CLASSIFICATION_FAILED
            raise ClassificationError("Audio transcription was empty")
        return self.route(transcript)

    def _classify(self, query: str | None) -> RoutingDecision:
        if query is None or not query.strip():
            raise ClassificationError("No user query provided")

        messages = [
            ChatMessage(role="system", content=self.system_prompt),
            ChatMessage(role="user", content=query),
        ]
        try:
            raw = self.chat_client.complete(
                self.model, messages, response_schema=self.selection_schema
            )
        except GenerationError as exc:
            raise ClassificationError(f"Classification call failed: {exc}") from exc

        payload = _as_payload(raw)
        selected = payload.get("selectedAgent")
        if selected not in self.registry:
            raise ClassificationError(f"Classifier selected unregistered agent: {selected!r}")
        try:
            selection = self.selection_schema.model_validate(payload)
        except PydanticValidationError as exc:
            raise ClassificationError(f"Failed to parse classifier response: {exc}") from exc

        agent_query = str(getattr(selection, "agentQuery", "")).strip() or query.strip()
        agent_name = str(getattr(selection, "selectedAgent"))
        return RoutingDecision(
            selected_agent=agent_name,
            agent_query=agent_query,
            model=self.registry.model_for(agent_name),
        )


def _as_payload(raw: Any) -> dict[str, Any]:
    if raw is None:
        raise ClassificationError("Failed to parse response: classifier returned nothing")
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ClassificationError(f"Failed to parse response: {exc}") from exc
        if isinstance(parsed, dict):
            return parsed
    raise ClassificationError(f"Failed to parse response of type {type(raw).__name__}")
