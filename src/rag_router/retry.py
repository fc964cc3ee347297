"""Shared retry policy for calls to external providers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rag_router.config import RetryConfig
from rag_router.errors import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_retrying(config: RetryConfig, operation: str) -> Retrying:
    """Exponential backoff on `TransientProviderError` only.

    Waits `base_delay * 2 ** (attempt - 1)` seconds between attempts and
    re-raises the last error once `max_retries` retries are used up.
    """

    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{operation} - retry {retry_state.attempt_number}/{config.max_retries} "
            f"after transient error: {exc}"
        )

    return Retrying(
        retry=retry_if_exception_type(TransientProviderError),
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(
            multiplier=config.base_delay_seconds,
            min=config.base_delay_seconds,
            max=config.max_delay_seconds,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )


def call_with_retry(config: RetryConfig, operation: str, fn: Callable[[], T]) -> T:
    return build_retrying(config, operation)(fn)
