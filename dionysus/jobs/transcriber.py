"""
Speech-to-text for meeting recordings.
"""

import asyncio
import logging
from pathlib import PurePosixPath
from typing import Optional, Protocol
from urllib.parse import unquote, urlparse

import httpx

from ..common.errors import TranscriptionError
from .storage import ObjectStorage

logger = logging.getLogger("dionysus.jobs.transcriber")


class Transcriber(Protocol):
    async def transcribe(self, audio_url: str) -> str:
        ...


class OpenAITranscriber:
    """Transcribes audio with the OpenAI audio API (whisper)."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "whisper-1",
        storage: Optional[ObjectStorage] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: OpenAI API key; without one every transcription fails
            model: Transcription model name
            storage: Used to read file:// URLs written by LocalObjectStorage
            timeout: Download and API timeout in seconds
            transport: Custom httpx transport for downloads
        """
        self._model = model
        self._storage = storage
        self._timeout = timeout
        self._transport = transport
        self._client = None

        if not api_key:
            logger.info("openai API key not provided, transcription unavailable")
            return
        try:
            from openai import OpenAI

            self._client = OpenAI(api_key=api_key)
        except ImportError:
            logger.warning("openai package not installed")
        except Exception as e:
            logger.warning("Failed to initialize OpenAI client: %s", e)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def transcribe(self, audio_url: str) -> str:
        """
        Raises:
            TranscriptionError: download or transcription failed
        """
        if not self.is_available:
            raise TranscriptionError("Transcription is not configured")

        audio = await self._download(audio_url)
        file_name = PurePosixPath(unquote(urlparse(audio_url).path)).name or "audio"
        try:
            response = await asyncio.to_thread(
                self._client.audio.transcriptions.create,
                file=(file_name, audio),
                model=self._model,
                timeout=self._timeout,
            )
        except Exception as e:
            raise TranscriptionError(f"Transcription failed for {file_name}: {e}") from e

        text = (getattr(response, "text", "") or "").strip()
        logger.info("Transcribed %s (%d chars)", file_name, len(text))
        return text

    async def _download(self, audio_url: str) -> bytes:
        scheme = urlparse(audio_url).scheme
        try:
            if scheme == "file":
                if self._storage is None:
                    raise TranscriptionError(f"No storage configured to read {audio_url}")
                return await self._storage.read(audio_url)
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(audio_url, follow_redirects=True)
                response.raise_for_status()
                return response.content
        except TranscriptionError:
            raise
        except (httpx.HTTPError, OSError, ValueError) as e:
            raise TranscriptionError(f"Could not download audio {audio_url}: {e}") from e
