"""Exception taxonomy shared by ingestion, retrieval and routing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rag_router.types import BatchReport


class RagRouterError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(RagRouterError):
    """Malformed or missing required input. Never retried."""


class EmptyInputError(ValidationError):
    """Raised when text to chunk is empty after normalization."""


class MetadataError(ValidationError):
    """Metadata holds a value the vector index cannot store."""


class ProcessingError(RagRouterError):
    """Content could not be turned into chunks."""


class ContentTooShortError(ProcessingError):
    """Content is below the minimum length threshold."""


class TransientProviderError(RagRouterError):
    """Timeout, rate limit or connection failure from an external service."""


class EmbeddingError(RagRouterError):
    """Non-transient failure returned by the embedding provider."""


class GenerationError(RagRouterError):
    """Non-transient failure of a completion call, or unparsable structured output."""


class TranscriptionError(RagRouterError):
    """Non-transient failure returned by the transcription provider."""


class ScrapeError(RagRouterError):
    """A URL could not be fetched or yielded too little content."""


class ClassificationError(RagRouterError):
    """The router could not produce a usable routing decision."""


class InvalidAgentError(RagRouterError):
    """Dispatch was asked for an agent missing from the registry."""


class ConfigurationError(RagRouterError):
    """Fatal configuration problem; must abort startup or the current run."""


class DimensionMismatchError(ConfigurationError):
    """Embedding dimension disagrees with the vector index dimension."""


class PartialBatchFailure(RagRouterError):
    """Some items of a batch ingestion failed."""

    def __init__(self, report: "BatchReport") -> None:
        super().__init__(
            f"{report.failed}/{report.total} items failed "
            f"(success rate {report.success_rate})"
        )
        self.report = report
