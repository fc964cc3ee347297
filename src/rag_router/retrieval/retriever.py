"""Knowledge-base retrieval: embed, search, optionally rerank."""

from __future__ import annotations

import logging
from typing import Any

from rag_router.config import RetrievalConfig
from rag_router.ingest.embedder import Embedder
from rag_router.retrieval.rerank import Reranker
from rag_router.retrieval.vector_store import VectorStore
from rag_router.types import ScoredRecord

logger = logging.getLogger(__name__)


class KnowledgeRetriever:
    """Finds the chunks that ground an answer.

    Without a reranker, or with `config.rerank` off, results keep raw vector
    similarity order.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        reranker: Reranker | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.vector_store = vector_store
        self.embedder = embedder
        self.reranker = reranker
        self.config = config or RetrievalConfig()

    def retrieve(
        self,
        query: str,
        *,
        metadata_filter: dict[str, Any] | None = None,
        top_k: int | None = None,
    ) -> list[ScoredRecord]:
        limit = top_k or self.config.top_k
        query_embedding = self.embedder.embed_query(query)
        matches = self.vector_store.query(
            query_embedding, limit, metadata_filter=metadata_filter
        )
        # Matches without stored text cannot ground a prompt.
        matches = [match for match in matches if match.content]

        if matches and self.reranker is not None and self.config.rerank:
            matches = self.reranker.rerank(query, matches)
            if self.config.rerank_top_n is not None:
                matches = matches[: self.config.rerank_top_n]

        logger.info(
            f"Retrieved {len(matches)} matches from {self.vector_store.index_name}"
        )
        return matches
