"""Maps provider SDK exceptions onto the package error taxonomy."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import httpx
import openai

from rag_router.errors import RagRouterError, TransientProviderError

_TRANSIENT_OPENAI_ERRORS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


@contextmanager
def translate_openai_errors(
    operation: str,
    permanent: type[RagRouterError],
) -> Iterator[None]:
    """Re-raise OpenAI/httpx failures as transient or `permanent` errors.

    Timeouts, connection errors, rate limits and 5xx responses become
    `TransientProviderError` so the retry policy picks them up. Any other
    API error becomes `permanent`.
    """

    try:
        yield
    except RagRouterError:
        raise
    except _TRANSIENT_OPENAI_ERRORS as exc:
        raise TransientProviderError(f"{operation}: {exc}") from exc
    except (httpx.TimeoutException, httpx.TransportError) as exc:
        raise TransientProviderError(f"{operation}: {exc}") from exc
    except openai.OpenAIError as exc:
        raise permanent(f"{operation}: {exc}") from exc
