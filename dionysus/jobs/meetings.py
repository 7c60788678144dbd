"""
Meeting Processor

Upload -> PROCESSING -> transcribe -> summarize -> COMPLETED | FAILED

Uploads return as soon as the meeting row exists; transcription runs as a
background task and callers poll the meeting's status.
"""

import asyncio
import logging
from pathlib import PurePath
from typing import Awaitable, Callable, List, Optional, Set
from urllib.parse import urlparse

from ..common.errors import InvalidInputError, NotFoundError
from ..common.result import Result
from ..common.retry import RetryExecutor
from ..common.schemas.models import Meeting
from ..common.store import Store
from ..sync.summarizer import Summarizer
from .poller import JobPoller
from .state_machine import JobStateMachine
from .storage import ObjectStorage, ProgressCallback
from .transcriber import Transcriber

logger = logging.getLogger("dionysus.jobs.meetings")

AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"}


def validate_audio(file_name: str, content_type: Optional[str]) -> None:
    """
    Raises:
        InvalidInputError: if the upload is not an audio file
    """
    if content_type:
        if not content_type.lower().startswith("audio/"):
            raise InvalidInputError(f"Only audio files are accepted, got {content_type}")
        return
    if PurePath(file_name or "").suffix.lower() not in AUDIO_EXTENSIONS:
        raise InvalidInputError(
            "Only audio files are accepted (" + ", ".join(sorted(AUDIO_EXTENSIONS)) + ")"
        )


class MeetingProcessor:
    def __init__(
        self,
        store: Store,
        storage: ObjectStorage,
        transcriber: Transcriber,
        summarizer: Summarizer,
        state_machine: JobStateMachine,
        poller: Optional[JobPoller] = None,
        executor: Optional[RetryExecutor] = None,
    ):
        self._store = store
        self._storage = storage
        self._transcriber = transcriber
        self._summarizer = summarizer
        self._state_machine = state_machine
        self._poller = poller or JobPoller()
        self._executor = executor or RetryExecutor()
        self._tasks: Set[asyncio.Task] = set()

    async def upload(
        self,
        project_id: str,
        name: str,
        file_name: str,
        data: bytes,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Meeting:
        """
        Store a recording, create its meeting and start processing.

        Raises:
            InvalidInputError: missing name, empty file or non-audio upload
            NotFoundError: unknown project
        """
        if not name or not name.strip():
            raise InvalidInputError("Meeting name is required")
        if not data:
            raise InvalidInputError("Audio file is empty")
        validate_audio(file_name, content_type)
        await self._store.require_project(project_id)

        audio_url = await self._storage.upload(
            file_name,
            data,
            content_type or "application/octet-stream",
            on_progress=on_progress,
        )
        return await self.create_meeting(project_id, name, audio_url)

    async def create_meeting(self, project_id: str, name: str, audio_url: str) -> Meeting:
        """Record an already-uploaded recording and start processing it."""
        if not name or not name.strip():
            raise InvalidInputError("Meeting name is required")
        self._check_audio_url(audio_url)
        await self._store.require_project(project_id)

        meeting = await self._store.create_meeting(project_id, name.strip(), audio_url)
        logger.info("Created meeting %s for project %s", meeting.id, project_id)
        self.submit(meeting.id)
        return meeting

    def submit(self, meeting_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(meeting_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def process(self, meeting_id: str) -> Meeting:
        """Transcribe and summarize one PROCESSING meeting."""
        meeting = await self.get_meeting(meeting_id)
        if meeting.status.is_terminal:
            logger.info("Meeting %s already %s, skipping", meeting_id, meeting.status.value)
            return meeting

        try:
            transcription = await self._transcriber.transcribe(meeting.audio_url)
            summary = await self._summarizer.summarize_transcript(transcription)
        except Exception as e:
            logger.error("Processing meeting %s failed: %s", meeting_id, e)
            error = str(e) or type(e).__name__
            return await self._finish(
                lambda: self._state_machine.fail_meeting(meeting_id, error),
                f"fail meeting {meeting_id}",
            )

        return await self._finish(
            lambda: self._state_machine.complete_meeting(meeting_id, transcription, summary),
            f"complete meeting {meeting_id}",
        )

    async def get_meeting(self, meeting_id: str) -> Meeting:
        meeting = await self._store.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting not found: {meeting_id}")
        return meeting

    async def list_meetings(self, project_id: str) -> Result[List[Meeting]]:
        """Ok([]) means no meetings; Err means they could not be loaded."""
        return await self._poller.read(
            lambda: self._store.list_meetings(project_id),
            description=f"list meetings for {project_id}",
        )

    async def wait(self, meeting_id: str, max_polls: Optional[int] = None) -> Result[Meeting]:
        return await self._poller.wait_until_terminal(
            lambda: self.get_meeting(meeting_id),
            max_polls=max_polls,
            description=f"poll meeting {meeting_id}",
        )

    async def drain(self) -> None:
        """Wait for all in-flight processing tasks."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, meeting_id: str) -> None:
        try:
            await self.process(meeting_id)
        except Exception as e:
            logger.exception("Background processing of meeting %s crashed", meeting_id)
            error = str(e) or type(e).__name__
            try:
                await self._finish(
                    lambda: self._state_machine.fail_meeting(meeting_id, error),
                    f"fail meeting {meeting_id}",
                )
            except Exception as inner:
                logger.error("Could not mark meeting %s failed: %s", meeting_id, inner)

    async def _finish(self, transition: Callable[[], Awaitable[Meeting]], description: str) -> Meeting:
        result = await self._executor.execute(transition, description=description)
        return result.unwrap()

    def _check_audio_url(self, audio_url: str) -> None:
        """
        Raises:
            InvalidInputError: not an http(s) URL and not an object in our storage
        """
        if not audio_url:
            raise InvalidInputError("audio_url is required")
        if urlparse(audio_url).scheme.lower() in ("http", "https"):
            return
        if not self._storage.owns(audio_url):
            raise InvalidInputError("audio_url must be an http(s) URL or an uploaded recording")
