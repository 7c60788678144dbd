"""
Job State Machine

PENDING -> PROCESSING -> {COMPLETED, FAILED}

Only PROCESSING may move to a terminal state, and it does so through one
conditional UPDATE on the current status, so of two racing writers exactly
one wins. The loser gets InvalidTransitionError and the stored job is left
as the winner wrote it.
"""

import logging
from typing import Dict, FrozenSet, Optional

from ..common.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from ..common.schemas.models import JobStatus, Meeting, SyncJob
from ..common.store import Store

logger = logging.getLogger("dionysus.jobs.state_machine")


ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

STATUS_LABELS: Dict[JobStatus, str] = {
    JobStatus.PENDING: "Pending",
    JobStatus.PROCESSING: "Processing",
    JobStatus.COMPLETED: "Completed",
    JobStatus.FAILED: "Failed",
}


def _lookup(mapping: dict, status: JobStatus):
    try:
        return mapping[JobStatus(status)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown job status: {status!r}") from None


def allowed_targets(status: JobStatus) -> FrozenSet[JobStatus]:
    return _lookup(ALLOWED_TRANSITIONS, status)


def status_label(status: JobStatus) -> str:
    return _lookup(STATUS_LABELS, status)


def check_transition(current: JobStatus, target: JobStatus) -> None:
    """
    Raises:
        InvalidTransitionError: if ``current`` may not move to ``target``
    """
    if JobStatus(target) not in allowed_targets(current):
        raise InvalidTransitionError(
            f"Cannot transition from {JobStatus(current).value} to {JobStatus(target).value}",
            current=JobStatus(current).value,
            target=JobStatus(target).value,
        )


class JobStateMachine:
    """Terminal transitions for meetings and sync jobs."""

    def __init__(self, store: Store):
        self._store = store

    async def complete_meeting(self, meeting_id: str, transcription: str, summary: str) -> Meeting:
        if summary is None or not summary.strip():
            raise InvalidInputError("A completed meeting needs a summary")
        return await self._transition_meeting(
            meeting_id,
            JobStatus.COMPLETED,
            transcription=transcription,
            summary=summary,
        )

    async def fail_meeting(self, meeting_id: str, error: str) -> Meeting:
        return await self._transition_meeting(meeting_id, JobStatus.FAILED, error=error)

    async def complete_sync_job(self, job_id: str, commit_count: int) -> SyncJob:
        return await self._transition_sync_job(job_id, JobStatus.COMPLETED, commit_count=commit_count)

    async def fail_sync_job(self, job_id: str, error: str) -> SyncJob:
        return await self._transition_sync_job(job_id, JobStatus.FAILED, error=error)

    async def _transition_meeting(self, meeting_id: str, target: JobStatus, **values) -> Meeting:
        check_transition(JobStatus.PROCESSING, target)
        updated = await self._store.transition_meeting(meeting_id, target, **values)
        if updated is None:
            current = await self._store.get_meeting(meeting_id)
            raise self._rejected("Meeting", meeting_id, current.status if current else None, target)
        logger.info("Meeting %s -> %s", meeting_id, target.value)
        return updated

    async def _transition_sync_job(self, job_id: str, target: JobStatus, **values) -> SyncJob:
        check_transition(JobStatus.PROCESSING, target)
        updated = await self._store.transition_sync_job(job_id, target, **values)
        if updated is None:
            current = await self._store.get_sync_job(job_id)
            raise self._rejected("Sync job", job_id, current.status if current else None, target)
        logger.info("Sync job %s -> %s", job_id, target.value)
        return updated

    @staticmethod
    def _rejected(
        kind: str,
        job_id: str,
        current: Optional[JobStatus],
        target: JobStatus,
    ) -> Exception:
        if current is None:
            return NotFoundError(f"{kind} not found: {job_id}")
        logger.warning("%s %s is %s, rejecting move to %s", kind, job_id, current.value, target.value)
        return InvalidTransitionError(
            f"{kind} {job_id} is already {current.value}",
            current=current.value,
            target=target.value,
        )
