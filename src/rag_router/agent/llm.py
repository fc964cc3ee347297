"""Chat completion clients used for classification and generation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from rag_router.config import RetryConfig, Settings
from rag_router.errors import GenerationError
from rag_router.providers import translate_openai_errors
from rag_router.retry import call_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Literal["system", "user", "assistant"]
    content: str


class ChatClient(Protocol):
    """Text completion service, plain, structured or streamed."""

    def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        response_schema: type[BaseModel] | None = None,
    ) -> str | BaseModel | dict[str, Any]:
        """Return the full completion, parsed against `response_schema` when given."""

    def stream_complete(self, model: str, messages: Sequence[ChatMessage]) -> Iterator[str]:
        """Yield completion text fragments as they arrive."""


class LangChainChatClient:
    """`ChatClient` backed by LangChain chat models, one instance per model id.

    Non-streaming calls go through the shared retry policy. Streaming calls
    are not retried once started, since fragments already handed to the
    caller cannot be taken back.
    """

    def __init__(
        self,
        *,
        model_factory: Callable[[str], BaseChatModel] | None = None,
        retry: RetryConfig | None = None,
        **model_kwargs: Any,
    ) -> None:
        self.retry = retry or RetryConfig()
        self._model_kwargs = model_kwargs
        self._factory = model_factory or self._create_openai_model
        self._models: dict[str, BaseChatModel] = {}

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "LangChainChatClient":
        return cls(**settings.openai_client_kwargs(), **kwargs)

    def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        response_schema: type[BaseModel] | None = None,
    ) -> str | BaseModel | dict[str, Any]:
        llm = self._model(model)
        runnable: Any = llm.with_structured_output(response_schema) if response_schema else llm
        lc_messages = _to_langchain(messages)

        def _call() -> Any:
            with translate_openai_errors(f"complete[{model}]", GenerationError):
                try:
                    return runnable.invoke(lc_messages)
                except (OutputParserException, PydanticValidationError) as exc:
                    raise GenerationError(f"Structured output did not match schema: {exc}") from exc

        result = call_with_retry(self.retry, f"complete[{model}]", _call)
        if response_schema is not None:
            return result
        return _message_text(result)

    def stream_complete(self, model: str, messages: Sequence[ChatMessage]) -> Iterator[str]:
        llm = self._model(model)
        lc_messages = _to_langchain(messages)
        with translate_openai_errors(f"stream_complete[{model}]", GenerationError):
            upstream = llm.stream(lc_messages)
            try:
                for chunk in upstream:
                    text = _message_text(chunk)
                    if text:
                        yield text
            finally:
                close = getattr(upstream, "close", None)
                if callable(close):
                    close()

    def _model(self, model: str) -> BaseChatModel:
        if model not in self._models:
            self._models[model] = self._factory(model)
        return self._models[model]

    def _create_openai_model(self, model: str) -> BaseChatModel:
        logger.debug(f"Creating chat model client for {model}")
        return ChatOpenAI(model=model, max_retries=0, **self._model_kwargs)


def _to_langchain(messages: Sequence[ChatMessage]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return str(content)
