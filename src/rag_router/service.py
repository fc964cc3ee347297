"""Application service: ingestion entry points and the answer flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from rag_router.agent.dispatcher import AgentDispatcher
from rag_router.agent.fallback import DeterministicChatClient
from rag_router.agent.llm import ChatClient, LangChainChatClient
from rag_router.agent.registry import AgentRegistry, default_agent_registry
from rag_router.agent.router import AgentRouter
from rag_router.agent.streaming import CancellationToken, TokenStream
from rag_router.agent.transcribe import OpenAITranscriber, Transcriber
from rag_router.config import (
    ChunkingConfig,
    IngestConfig,
    RetrievalConfig,
    Settings,
    VectorStoreConfig,
)
from rag_router.errors import ConfigurationError, DimensionMismatchError, RagRouterError
from rag_router.ingest.chunker import SemanticChunker
from rag_router.ingest.embedder import Embedder, HashingEmbedder, OpenAIEmbedder
from rag_router.ingest.pipeline import (
    ArticleMetadata,
    IngestPipeline,
    TextMetadata,
    UrlIngestResult,
)
from rag_router.ingest.processor import ContentProcessor
from rag_router.ingest.scraper import WebScraper
from rag_router.ingest.tokens import TokenCounter
from rag_router.obs.tracing import Timer, TraceStore
from rag_router.retrieval.rerank import KeywordOverlapReranker
from rag_router.retrieval.retriever import KnowledgeRetriever
from rag_router.retrieval.vector_store import ChromaIndexClient, IndexClient, VectorStore
from rag_router.types import Chunk, RoutingDecision, SourceRecord

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Sorry, I couldn't process your request. Please try again."


@dataclass(slots=True)
class Answered:
    answer: str | TokenStream
    agent: str
    model: str
    trace_id: str

    @property
    def streamed(self) -> bool:
        return isinstance(self.answer, TokenStream)


@dataclass(slots=True)
class AnswerFailed:
    """User-facing failure; details are in the logs and the trace."""

    message: str
    error_type: str
    trace_id: str


AnswerResult = Answered | AnswerFailed


class RagService:
    """Wires routing, dispatch, ingestion and tracing behind two entry points.

    `answer()` never raises: a `RagRouterError` is logged with its details,
    any other exception with its traceback, and both become an
    `AnswerFailed` carrying a generic message.
    """

    def __init__(
        self,
        *,
        router: AgentRouter,
        dispatcher: AgentDispatcher,
        pipeline: IngestPipeline,
        article_pipeline: IngestPipeline | None = None,
        trace_store: TraceStore | None = None,
        offline: bool = False,
    ) -> None:
        self.router = router
        self.dispatcher = dispatcher
        self.pipeline = pipeline
        self.article_pipeline = article_pipeline
        self.trace_store = trace_store or TraceStore()
        self.offline = offline

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        index_client: IndexClient | None = None,
        registry: AgentRegistry | None = None,
        token_counter: TokenCounter | None = None,
    ) -> "RagService":
        """Build the production stack.

        Without `OPENAI_API_KEY` the deterministic chat client and the hashing
        embedder are used instead, so the service still runs offline.

        Raises:
            DimensionMismatchError: An index exists with a dimension other
                than the embedder's.
        """

        settings = settings or Settings()
        registry = registry or default_agent_registry(settings)
        offline = settings.openai_api_key is None

        chat_client: ChatClient
        embedder: Embedder
        transcriber: Transcriber | None
        if offline:
            logger.warning("OPENAI_API_KEY not set; using deterministic chat and hashing embeddings")
            chat_client = DeterministicChatClient()
            embedder = HashingEmbedder(dimension=settings.embedding_dimension)
            transcriber = None
        else:
            chat_client = LangChainChatClient.from_settings(settings)
            embedder = OpenAIEmbedder(
                model=settings.embedding_model,
                dimension=settings.embedding_dimension,
                **settings.openai_client_kwargs(),
            )
            transcriber = OpenAITranscriber.from_settings(settings)

        index_client = index_client or ChromaIndexClient(settings.chroma_path)
        index_names = registry.index_names() | {settings.knowledge_index, settings.articles_index}
        stores = {name: _open_store(index_client, name, embedder) for name in index_names}
        reranker = KeywordOverlapReranker()
        retrievers = {
            name: KnowledgeRetriever(store, embedder, reranker, RetrievalConfig())
            for name, store in stores.items()
        }

        processor = ContentProcessor(SemanticChunker(token_counter), ChunkingConfig())
        pipeline = IngestPipeline(
            processor,
            embedder,
            stores[settings.knowledge_index],
            WebScraper(timeout=settings.request_timeout_seconds),
            IngestConfig(),
        )
        article_pipeline = IngestPipeline(processor, embedder, stores[settings.articles_index])
        return cls(
            router=AgentRouter(
                registry=registry,
                chat_client=chat_client,
                model=settings.router_model,
                transcriber=transcriber,
            ),
            dispatcher=AgentDispatcher(
                registry=registry,
                chat_client=chat_client,
                retrievers=retrievers,
            ),
            pipeline=pipeline,
            article_pipeline=article_pipeline,
            offline=offline,
        )

    def ingest_text(self, content: str, metadata: dict[str, Any] | TextMetadata) -> list[Chunk]:
        return self.pipeline.ingest_text(content, metadata)

    def ingest_article(
        self, content: str, metadata: dict[str, Any] | ArticleMetadata
    ) -> list[Chunk]:
        """Index a news article in the articles index."""
        if self.article_pipeline is None:
            raise ConfigurationError("No article pipeline configured")
        return self.article_pipeline.ingest_article(content, metadata)

    def ingest_urls(self, urls: list[str]) -> UrlIngestResult:
        return self.pipeline.ingest_urls(urls)

    def ingest_records(self, records: list[SourceRecord], *, atomic: bool = True) -> UrlIngestResult:
        return self.pipeline.ingest_records(records, atomic=atomic)

    def answer(
        self,
        user_input: str | bytes,
        *,
        audio_format: str = "webm",
        stream: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> AnswerResult:
        """Route `user_input` (text, or audio bytes) and generate the answer."""

        query = user_input if isinstance(user_input, str) else f"<audio:{audio_format}>"
        decision: RoutingDecision | None = None
        timer = Timer()
        try:
            with timer:
                if isinstance(user_input, bytes):
                    decision = self.router.route_audio(user_input, audio_format)
                else:
                    decision = self.router.route(user_input)
                response = self.dispatcher.dispatch(
                    decision, stream=stream, cancel_token=cancel_token
                )
        except RagRouterError as exc:
            logger.error(f"Answer failed: {type(exc).__name__}: {exc}")
            return self._failed(exc, query, decision, timer, stream)
        except Exception as exc:
            logger.exception(f"Unexpected error while answering: {type(exc).__name__}")
            return self._failed(exc, query, decision, timer, stream)

        record = self.trace_store.create_record(
            query=decision.agent_query,
            agent=decision.selected_agent,
            model=decision.model,
            status="answered",
            latency_ms=timer.elapsed_ms,
            streamed=stream,
        )
        return Answered(
            answer=response,
            agent=decision.selected_agent,
            model=decision.model,
            trace_id=record.trace_id,
        )

    def _failed(
        self,
        exc: Exception,
        query: str,
        decision: RoutingDecision | None,
        timer: Timer,
        stream: bool,
    ) -> AnswerFailed:
        record = self.trace_store.create_record(
            query=decision.agent_query if decision else query,
            agent=decision.selected_agent if decision else None,
            model=decision.model if decision else None,
            status="failed",
            error_type=type(exc).__name__,
            latency_ms=timer.elapsed_ms,
            streamed=stream,
        )
        return AnswerFailed(
            message=GENERIC_FAILURE_MESSAGE,
            error_type=type(exc).__name__,
            trace_id=record.trace_id,
        )


def _open_store(index_client: IndexClient, name: str, embedder: Embedder) -> VectorStore:
    store = VectorStore(
        index_client,
        VectorStoreConfig(index_name=name, dimension=embedder.dimension),
    )
    description = store.ensure_index()
    if description.dimension != embedder.dimension:
        raise DimensionMismatchError(
            f"Embedder dimension {embedder.dimension} does not match index {name} "
            f"dimension {description.dimension}"
        )
    return store

