"""RAG router package."""

from .config import AgentConfig, ChunkingConfig, RetrievalConfig, Settings, VectorStoreConfig
from .service import AnswerFailed, Answered, RagService

__all__ = [
    "AgentConfig",
    "AnswerFailed",
    "Answered",
    "ChunkingConfig",
    "RagService",
    "RetrievalConfig",
    "Settings",
    "VectorStoreConfig",
]
