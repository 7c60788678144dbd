"""
Jobs - Long-Running Work Behind a Pollable Status

Key Components:
- JobStateMachine: PROCESSING -> COMPLETED | FAILED, exactly once
- MeetingProcessor: Upload, transcribe and summarize meeting recordings
- RepositorySyncRunner: Commit sync as a background job
- JobPoller: Status reads with exponential backoff on failure
"""

from .meetings import MeetingProcessor
from .poller import JobPoller
from .repository_sync import RepositorySyncRunner
from .state_machine import JobStateMachine, check_transition, status_label
from .storage import LocalObjectStorage, ObjectStorage
from .transcriber import OpenAITranscriber, Transcriber

__all__ = [
    "MeetingProcessor",
    "JobPoller",
    "RepositorySyncRunner",
    "JobStateMachine",
    "check_transition",
    "status_label",
    "LocalObjectStorage",
    "ObjectStorage",
    "OpenAITranscriber",
    "Transcriber",
]
