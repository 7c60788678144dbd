"""
Repository sync as a pollable job.
"""

import asyncio
import logging
from typing import Set

from ..common.errors import InvalidInputError, NotFoundError, SyncError
from ..common.schemas.models import Project, SyncJob
from ..common.store import Store
from ..sync.commit_sync import CommitSyncEngine
from .state_machine import JobStateMachine

logger = logging.getLogger("dionysus.jobs.repository_sync")


class RepositorySyncRunner:
    """Runs CommitSyncEngine in the background behind a SyncJob."""

    def __init__(self, store: Store, engine: CommitSyncEngine, state_machine: JobStateMachine):
        self._store = store
        self._engine = engine
        self._state_machine = state_machine
        self._tasks: Set[asyncio.Task] = set()

    async def start(self, project_id: str) -> SyncJob:
        """
        Create a PROCESSING sync job and run it in the background.

        Raises:
            NotFoundError: unknown project
            InvalidInputError: project has no repository URL
        """
        project = await self._store.require_project(project_id)
        if not project.repo_url:
            raise InvalidInputError(f"Project {project_id} has no repository URL")

        job = await self._store.create_sync_job(project_id)
        task = asyncio.create_task(self._run_safely(job.id, project))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def run(self, job_id: str, project: Project) -> SyncJob:
        try:
            commits = await self._engine.sync_commits(project.id, project.repo_url, project.credential)
        except SyncError as e:
            logger.error("Sync job %s failed: %s", job_id, e)
            return await self._state_machine.fail_sync_job(job_id, f"{SyncError.user_message} ({e})")
        return await self._state_machine.complete_sync_job(job_id, len(commits))

    async def get_job(self, job_id: str) -> SyncJob:
        job = await self._store.get_sync_job(job_id)
        if job is None:
            raise NotFoundError(f"Sync job not found: {job_id}")
        return job

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_safely(self, job_id: str, project: Project) -> None:
        try:
            await self.run(job_id, project)
        except Exception as e:
            logger.exception("Sync job %s crashed", job_id)
            try:
                await self._state_machine.fail_sync_job(job_id, str(e) or type(e).__name__)
            except Exception as inner:
                logger.error("Could not mark sync job %s failed: %s", job_id, inner)
