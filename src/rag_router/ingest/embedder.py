"""Embedding abstractions, OpenAI adapter and deterministic baseline."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from langchain_openai import OpenAIEmbeddings

from rag_router.config import RetryConfig
from rag_router.errors import DimensionMismatchError, EmbeddingError, ValidationError
from rag_router.providers import translate_openai_errors
from rag_router.retry import call_with_retry

_WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)


class Embedder(ABC):
    """Embedder interface used by ingest and retrieval components."""

    dimension: int

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""

    def _check_dimension(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(
                f"Embedding model returned {len(vector)} dimensions, "
                f"expected {self.dimension}"
            )
        return vector


class OpenAIEmbedder(Embedder):
    """OpenAI embeddings through LangChain, truncated to `dimension`.

    `text-embedding-3-*` models accept a `dimensions` argument; the default
    512 matches the knowledge-base index.
    """

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        dimension: int = 512,
        retry: RetryConfig | None = None,
        client: Any | None = None,
        **client_kwargs: Any,
    ) -> None:
        self.model = model
        self.dimension = dimension
        self.retry = retry or RetryConfig()
        # Retries are handled by the shared policy, not the SDK.
        self._client = client or OpenAIEmbeddings(
            model=model,
            dimensions=dimension,
            max_retries=0,
            **client_kwargs,
        )

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        if any(not text.strip() for text in texts):
            raise ValidationError("Cannot embed empty text")

        def _call() -> list[list[float]]:
            with translate_openai_errors("embed_documents", EmbeddingError):
                return self._client.embed_documents(texts)

        vectors = call_with_retry(self.retry, "embed_documents", _call)
        return [self._check_dimension(vector) for vector in vectors]

    def embed_query(self, text: str) -> list[float]:
        if not text.strip():
            raise ValidationError("Cannot embed empty text")

        def _call() -> list[float]:
            with translate_openai_errors("embed_query", EmbeddingError):
                return self._client.embed_query(text)

        return self._check_dimension(call_with_retry(self.retry, "embed_query", _call))


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    This class is primarily used for local tests and offline runs. In
    production, use `OpenAIEmbedder`.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = _WORD_PATTERN.findall(text.lower())
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]
