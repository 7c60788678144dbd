"""
Commit Sync Engine

Pulls recent history from the remote provider and upserts it.

Pipeline:
1. Fetch the N most recent commits (read-only, retried on transient errors)
2. Upsert each commit by (project_id, hash), sequentially, through the retry executor
3. Summarize commits that have no summary yet and store the summaries

Any upsert failure aborts the batch with SyncError; nothing partial is returned.
"""

import logging
from typing import List, Optional

from ..common.errors import SyncError
from ..common.retry import RetryExecutor
from ..common.schemas.models import Commit, CommitRecord
from ..common.store import Store
from .history_provider import HistoryProvider
from .summarizer import Summarizer

logger = logging.getLogger("dionysus.sync.commit_sync")

DEFAULT_COMMITS_LIMIT = 15


def commit_summary_input(record: Commit) -> str:
    """Commit data handed to the summarizer."""
    return (
        f"Commit: {record.commit_hash}\n"
        f"Author: {record.author_name}\n"
        f"Date: {record.committed_at.isoformat()}\n"
        f"Message:\n{record.message}"
    )


class CommitSyncEngine:
    """Idempotent commit ingestion for one project at a time."""

    def __init__(
        self,
        store: Store,
        provider: HistoryProvider,
        executor: RetryExecutor,
        summarizer: Optional[Summarizer] = None,
        commit_limit: int = DEFAULT_COMMITS_LIMIT,
    ):
        self._store = store
        self._provider = provider
        self._executor = executor
        self._summarizer = summarizer
        self._commit_limit = commit_limit

    async def sync_commits(
        self,
        project_id: str,
        remote_url: str,
        credential: Optional[str] = None,
    ) -> List[Commit]:
        """
        Sync the most recent commits of ``remote_url`` into ``project_id``.

        Returns:
            The persisted commits, in the order the provider returned them

        Raises:
            SyncError: if the fetch or any upsert fails after retries
        """
        fetched = await self._executor.execute(
            lambda: self._provider.fetch_commits(remote_url, credential, self._commit_limit),
            description=f"fetch commits for {project_id}",
        )
        if not fetched.is_ok:
            raise SyncError(f"Could not fetch commits: {fetched.error}") from fetched.error

        persisted: List[Commit] = []
        for record in fetched.value:
            upserted = await self._executor.execute(
                lambda record=record: self._upsert(project_id, record),
                description=f"upsert commit {record.hash[:7]}",
            )
            if not upserted.is_ok:
                logger.error(
                    "Sync of project %s aborted at commit %s after %d upserts",
                    project_id,
                    record.hash,
                    len(persisted),
                )
                raise SyncError(f"Could not save commit {record.hash}: {upserted.error}") from upserted.error
            persisted.append(upserted.value)

        logger.info("Synced %d commits for project %s", len(persisted), project_id)

        if self._summarizer is not None:
            persisted = await self._summarize_missing(project_id, persisted)
        return persisted

    async def list_commits(self, project_id: str, limit: int = DEFAULT_COMMITS_LIMIT) -> List[Commit]:
        result = await self._executor.execute(
            lambda: self._store.list_commits(project_id, limit=limit),
            description=f"list commits for {project_id}",
        )
        return result.unwrap()

    async def _upsert(self, project_id: str, record: CommitRecord) -> Commit:
        return await self._store.upsert_commit(project_id, record)

    async def _summarize_missing(self, project_id: str, commits: List[Commit]) -> List[Commit]:
        summarized: List[Commit] = []
        for commit in commits:
            if commit.summary:
                summarized.append(commit)
                continue
            summary = await self._summarizer.summarize(commit_summary_input(commit))
            saved = await self._executor.execute(
                lambda commit=commit, summary=summary: self._store.set_commit_summary(
                    project_id, commit.commit_hash, summary
                ),
                description=f"store summary for {commit.commit_hash[:7]}",
            )
            if not saved.is_ok:
                raise SyncError(
                    f"Could not save summary for commit {commit.commit_hash}: {saved.error}"
                ) from saved.error
            summarized.append(commit.model_copy(update={"summary": summary}))
        return summarized
