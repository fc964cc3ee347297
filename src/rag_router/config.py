"""Configuration models for the RAG router."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AgentStrategy = Literal["retrieval", "fine_tuned", "general"]

DEFAULT_BASE_MODEL = "gpt-4o-mini"
DEFAULT_LINKEDIN_MODEL = "ft:gpt-4o-mini-2024-07-18:personal::BMIy4PLt"


class ChunkingConfig(BaseModel):
    """Configures token-aware semantic chunking."""

    max_tokens: int = Field(default=512, ge=16)
    strategy: Literal["sentence", "paragraph"] = "sentence"
    min_content_chars: int = Field(default=20, ge=1)


class RetryConfig(BaseModel):
    """Exponential backoff for transient provider failures.

    The first attempt is followed by up to `max_retries` retries, waiting
    `base_delay_seconds`, then double that, and so on, capped at
    `max_delay_seconds`.
    """

    max_retries: int = Field(default=5, ge=0)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    max_delay_seconds: float = Field(default=30.0, ge=0.0)


class VectorStoreConfig(BaseModel):
    """Configures the vector index wrapper."""

    index_name: str = Field(default="knowledge-base", min_length=1)
    dimension: int = Field(default=512, ge=1)
    metric: Literal["cosine", "dotproduct", "euclidean"] = "cosine"
    batch_size: int = Field(default=100, ge=1, le=1000)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class RetrievalConfig(BaseModel):
    """Configures knowledge-base retrieval and optional reranking."""

    top_k: int = Field(default=5, ge=1, le=20)
    rerank: bool = True
    rerank_top_n: int | None = Field(default=None, ge=1)


class IngestConfig(BaseModel):
    """Configures batch ingestion behavior."""

    request_delay_seconds: float = Field(default=1.0, ge=0.0)


class AgentConfig(BaseModel):
    """Static registry entry describing one agent."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    model: str = Field(min_length=1)
    description: str = Field(min_length=1)
    strategy: AgentStrategy = "general"
    index_name: str | None = None
    system_prompt: str | None = None

    @model_validator(mode="after")
    def _retrieval_needs_index(self) -> "AgentConfig":
        if self.strategy == "retrieval" and not self.index_name:
            raise ValueError(f"Retrieval agent '{self.name}' requires index_name")
        return self


class Settings(BaseSettings):
    """Process settings read from the environment and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = Field(
        default=None,
        description="Optional proxy base URL, e.g. https://oai.helicone.ai/v1",
    )
    helicone_api_key: SecretStr | None = None

    router_model: str = DEFAULT_BASE_MODEL
    general_model: str = DEFAULT_BASE_MODEL
    knowledge_model: str = DEFAULT_BASE_MODEL
    articles_model: str = DEFAULT_BASE_MODEL
    linkedin_model: str = DEFAULT_LINKEDIN_MODEL
    transcription_model: str = "whisper-1"

    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=512, ge=1)

    chroma_path: str = ".chroma"
    knowledge_index: str = "knowledge-base"
    articles_index: str = "articles"

    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    def default_headers(self) -> dict[str, str] | None:
        if self.helicone_api_key is None:
            return None
        return {"Helicone-Auth": f"Bearer {self.helicone_api_key.get_secret_value()}"}

    def openai_client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments shared by every OpenAI-backed client."""
        kwargs: dict[str, Any] = {"timeout": self.request_timeout_seconds}
        if self.openai_api_key is not None:
            kwargs["api_key"] = self.openai_api_key.get_secret_value()
        if self.openai_base_url:
            kwargs["base_url"] = self.openai_base_url
        headers = self.default_headers()
        if headers:
            kwargs["default_headers"] = headers
        return kwargs
