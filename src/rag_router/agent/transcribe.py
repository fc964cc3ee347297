"""Speech-to-text for audio queries."""

from __future__ import annotations

from typing import Any, Protocol

import openai

from rag_router.config import RetryConfig, Settings
from rag_router.errors import TranscriptionError
from rag_router.providers import translate_openai_errors
from rag_router.retry import call_with_retry


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, audio_format: str = "webm") -> str:
        """Return the transcript. An empty string means nothing was said."""


class OpenAITranscriber:
    """Whisper transcription through the OpenAI SDK."""

    def __init__(
        self,
        *,
        model: str = "whisper-1",
        client: Any | None = None,
        retry: RetryConfig | None = None,
        **client_kwargs: Any,
    ) -> None:
        self.model = model
        self.retry = retry or RetryConfig()
        self._client = client or openai.OpenAI(max_retries=0, **client_kwargs)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAITranscriber":
        return cls(model=settings.transcription_model, **settings.openai_client_kwargs())

    def transcribe(self, audio: bytes, audio_format: str = "webm") -> str:
        if not audio:
            return ""

        def _call() -> str:
            with translate_openai_errors("transcribe", TranscriptionError):
                result = self._client.audio.transcriptions.create(
                    model=self.model,
                    file=(f"audio.{audio_format}", audio, f"audio/{audio_format}"),
                )
            return (getattr(result, "text", "") or "").strip()

        return call_with_retry(self.retry, "transcribe", _call)
