"""Cancellable token streams returned by streamed generation."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from types import TracebackType


class CancellationToken:
    """Thread-safe flag passed down the call chain to stop a stream."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class TokenStream:
    """Lazy, finite, single-use sequence of text fragments.

    Fragments are forwarded as the provider produces them; nothing is
    buffered. Once exhausted, closed or cancelled the stream stays empty.
    Fragments already delivered are not retracted.

    `cancel()` may be called from any thread: the stream stops before the
    next fragment and closes the provider iterator on the consuming thread.
    `close()` must be called from the consuming thread.
    """

    def __init__(
        self,
        fragments: Iterator[str],
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._source = iter(fragments)
        self.cancel_token = cancel_token or CancellationToken()
        self._closed = False
        self.fragments_delivered = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> "TokenStream":
        return self

    def __next__(self) -> str:
        if self._closed:
            raise StopIteration
        if self.cancel_token.cancelled:
            self.close()
            raise StopIteration
        try:
            fragment = next(self._source)
        except BaseException:
            # Exhaustion and provider errors both end the stream.
            self.close()
            raise
        self.fragments_delivered += 1
        return fragment

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._source, "close", None)
        if callable(close):
            close()

    def read_all(self) -> str:
        """Consume the rest of the stream into one string."""
        return "".join(self)

    def __enter__(self) -> "TokenStream":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
