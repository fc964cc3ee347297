"""Rerankers applied after vector similarity search."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from rag_router.types import ScoredRecord

_WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)


class Reranker(ABC):
    """Reorders candidate matches by relevance to the query."""

    @abstractmethod
    def rerank(self, query: str, candidates: list[ScoredRecord]) -> list[ScoredRecord]:
        """Return candidates in the final ranking order."""


class KeywordOverlapReranker(Reranker):
    """Lightweight reranker blending similarity with query-term overlap."""

    def __init__(self, similarity_weight: float = 0.8) -> None:
        if not 0.0 <= similarity_weight <= 1.0:
            raise ValueError("similarity_weight must be within [0, 1]")
        self.similarity_weight = similarity_weight

    def rerank(self, query: str, candidates: list[ScoredRecord]) -> list[ScoredRecord]:
        query_terms = set(_WORD_PATTERN.findall(query.lower()))
        rescored: list[ScoredRecord] = []
        for item in candidates:
            content_terms = set(_WORD_PATTERN.findall(item.content.lower()))
            overlap = len(query_terms & content_terms) / max(1, len(query_terms))
            rescored.append(
                ScoredRecord(
                    id=item.id,
                    score=(item.score * self.similarity_weight)
                    + (overlap * (1.0 - self.similarity_weight)),
                    metadata=item.metadata,
                )
            )
        return sorted(rescored, key=lambda x: x.score, reverse=True)
