"""
Persistent store (SQLAlchemy async).

The store is an explicit handle: construct it, ``await store.open()`` at
process start, ``await store.close()`` on shutdown, and pass it to the
components that need it.

Writes that must be idempotent (commits, users, indexed files) are native
upserts on the natural key. Job terminal transitions are a single
conditional UPDATE guarded on ``status = 'PROCESSING'``.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional, Sequence

from sqlalchemy import case, delete, func, null, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .errors import NotFoundError
from .schemas.models import (
    Commit,
    CommitRecord,
    FileReference,
    Identity,
    JobStatus,
    Meeting,
    Project,
    Question,
    SourceFile,
    SyncJob,
    User,
)
from .schemas.tables import (
    Base,
    CommitRow,
    MeetingRow,
    ProjectRow,
    QuestionRow,
    SourceFileRow,
    SyncJobRow,
    UserRow,
    utcnow,
)

logger = logging.getLogger("dionysus.common.store")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Store:
    """Async handle over the relational store."""

    def __init__(self, database_url: str, echo: bool = False):
        self._url = database_url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def dialect(self) -> str:
        if self._engine is None:
            raise RuntimeError("Store is not open")
        return self._engine.dialect.name

    async def open(self) -> None:
        """Create the engine and make sure all tables exist."""
        if self._engine is not None:
            return

        url = make_url(self._url)
        kwargs = {"echo": self._echo}
        if url.get_backend_name() == "sqlite":
            if url.database and url.database != ":memory:":
                from pathlib import Path

                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        else:
            kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True, pool_recycle=3600)

        self._engine = create_async_engine(self._url, **kwargs)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Store opened (%s)", url.get_backend_name())

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Store closed")

    async def __aenter__(self) -> "Store":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional session: commits on success, rolls back on error."""
        if self._sessionmaker is None:
            raise RuntimeError("Store is not open")
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def _insert(self, table):
        if self.dialect == "postgresql":
            return pg_insert(table)
        if self.dialect == "sqlite":
            return sqlite_insert(table)
        raise RuntimeError(f"Upsert not supported for dialect {self.dialect}")

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        name: str,
        repo_url: Optional[str] = None,
        credential: Optional[str] = None,
    ) -> Project:
        row = ProjectRow(
            id=_new_id(),
            name=name,
            repo_url=repo_url,
            credential=credential,
            created_at=utcnow(),
        )
        async with self.session() as session:
            session.add(row)
        return _project(row)

    async def get_project(self, project_id: str) -> Optional[Project]:
        async with self.session() as session:
            row = await session.get(ProjectRow, project_id)
            return _project(row) if row else None

    async def require_project(self, project_id: str) -> Project:
        project = await self.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    async def list_projects(self) -> List[Project]:
        async with self.session() as session:
            result = await session.execute(select(ProjectRow).order_by(ProjectRow.created_at.desc()))
            return [_project(row) for row in result.scalars()]

    async def delete_project(self, project_id: str) -> None:
        """Delete a project and everything it owns."""
        async with self.session() as session:
            row = await session.get(ProjectRow, project_id)
            if row is None:
                raise NotFoundError(f"Project not found: {project_id}")
            for table in (CommitRow, QuestionRow, MeetingRow, SourceFileRow, SyncJobRow):
                await session.execute(delete(table).where(table.project_id == project_id))
            await session.delete(row)
        logger.info("Deleted project %s", project_id)

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    async def upsert_commit(self, project_id: str, record: CommitRecord) -> Commit:
        """
        Insert or update one commit keyed on (project_id, hash).

        A changed message clears the stored summary; an unchanged one keeps it.
        """
        now = utcnow()
        stmt = self._insert(CommitRow).values(
            project_id=project_id,
            commit_hash=record.hash,
            message=record.message,
            author_name=record.author_name,
            author_avatar_url=record.author_avatar_url,
            committed_at=_as_utc(record.date),
            summary=None,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CommitRow.project_id, CommitRow.commit_hash],
            set_={
                "message": stmt.excluded.message,
                "author_name": stmt.excluded.author_name,
                "author_avatar_url": stmt.excluded.author_avatar_url,
                "committed_at": stmt.excluded.committed_at,
                "summary": case(
                    (CommitRow.message == stmt.excluded.message, CommitRow.summary),
                    else_=null(),
                ),
                "updated_at": now,
            },
        )
        async with self.session() as session:
            await session.execute(stmt)
            result = await session.execute(
                select(CommitRow).where(
                    CommitRow.project_id == project_id,
                    CommitRow.commit_hash == record.hash,
                )
            )
            return _commit(result.scalar_one())

    async def set_commit_summary(self, project_id: str, commit_hash: str, summary: str) -> None:
        async with self.session() as session:
            result = await session.execute(
                update(CommitRow)
                .where(CommitRow.project_id == project_id, CommitRow.commit_hash == commit_hash)
                .values(summary=summary, updated_at=utcnow())
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Commit not found: {commit_hash}")

    async def list_commits(self, project_id: str, limit: int = 15) -> List[Commit]:
        """Commits newest first."""
        async with self.session() as session:
            result = await session.execute(
                select(CommitRow)
                .where(CommitRow.project_id == project_id)
                .order_by(CommitRow.committed_at.desc(), CommitRow.commit_hash)
                .limit(limit)
            )
            return [_commit(row) for row in result.scalars()]

    async def count_commits(self, project_id: str) -> int:
        async with self.session() as session:
            result = await session.execute(
                select(func.count()).select_from(CommitRow).where(CommitRow.project_id == project_id)
            )
            return int(result.scalar_one())

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def save_question(
        self,
        project_id: str,
        text: str,
        answer: str,
        file_references: Sequence[FileReference],
        user_id: str,
    ) -> Question:
        row = QuestionRow(
            id=_new_id(),
            project_id=project_id,
            text=text,
            answer=answer,
            file_references=[ref.model_dump() for ref in file_references],
            user_id=user_id,
            created_at=utcnow(),
        )
        async with self.session() as session:
            session.add(row)
        return _question(row)

    async def list_questions(self, project_id: str) -> List[Question]:
        """Questions newest first."""
        async with self.session() as session:
            result = await session.execute(
                select(QuestionRow)
                .where(QuestionRow.project_id == project_id)
                .order_by(QuestionRow.created_at.desc())
            )
            return [_question(row) for row in result.scalars()]

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    async def create_meeting(self, project_id: str, name: str, audio_url: str) -> Meeting:
        """Meetings are created directly in PROCESSING."""
        now = utcnow()
        row = MeetingRow(
            id=_new_id(),
            project_id=project_id,
            name=name,
            audio_url=audio_url,
            status=JobStatus.PROCESSING.value,
            created_at=now,
            updated_at=now,
        )
        async with self.session() as session:
            session.add(row)
        return _meeting(row)

    async def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        async with self.session() as session:
            row = await session.get(MeetingRow, meeting_id)
            return _meeting(row) if row else None

    async def list_meetings(self, project_id: str) -> List[Meeting]:
        """Meetings newest first."""
        async with self.session() as session:
            result = await session.execute(
                select(MeetingRow)
                .where(MeetingRow.project_id == project_id)
                .order_by(MeetingRow.created_at.desc())
            )
            return [_meeting(row) for row in result.scalars()]

    async def transition_meeting(
        self,
        meeting_id: str,
        target: JobStatus,
        transcription: Optional[str] = None,
        summary: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[Meeting]:
        """
        Move a PROCESSING meeting to ``target`` in one conditional UPDATE.

        Returns the updated meeting, or None when the meeting was no longer
        PROCESSING (another writer got there first).

        Raises:
            NotFoundError: if the meeting does not exist
        """
        values = {
            "status": target.value,
            "transcription": transcription,
            "summary": summary,
            "error": error,
            "updated_at": utcnow(),
        }
        async with self.session() as session:
            result = await session.execute(
                update(MeetingRow)
                .where(
                    MeetingRow.id == meeting_id,
                    MeetingRow.status == JobStatus.PROCESSING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount == 1
            row = await session.get(MeetingRow, meeting_id, populate_existing=True)
            if row is None:
                raise NotFoundError(f"Meeting not found: {meeting_id}")
            return _meeting(row) if updated else None

    # ------------------------------------------------------------------
    # Sync jobs
    # ------------------------------------------------------------------

    async def create_sync_job(self, project_id: str) -> SyncJob:
        now = utcnow()
        row = SyncJobRow(
            id=_new_id(),
            project_id=project_id,
            status=JobStatus.PROCESSING.value,
            commit_count=0,
            created_at=now,
            updated_at=now,
        )
        async with self.session() as session:
            session.add(row)
        return _sync_job(row)

    async def get_sync_job(self, job_id: str) -> Optional[SyncJob]:
        async with self.session() as session:
            row = await session.get(SyncJobRow, job_id)
            return _sync_job(row) if row else None

    async def transition_sync_job(
        self,
        job_id: str,
        target: JobStatus,
        commit_count: int = 0,
        error: Optional[str] = None,
    ) -> Optional[SyncJob]:
        """Conditional PROCESSING -> target update; see transition_meeting."""
        async with self.session() as session:
            result = await session.execute(
                update(SyncJobRow)
                .where(
                    SyncJobRow.id == job_id,
                    SyncJobRow.status == JobStatus.PROCESSING.value,
                )
                .values(
                    status=target.value,
                    commit_count=commit_count,
                    error=error,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount == 1
            row = await session.get(SyncJobRow, job_id, populate_existing=True)
            if row is None:
                raise NotFoundError(f"Sync job not found: {job_id}")
            return _sync_job(row) if updated else None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def upsert_user(self, identity: Identity) -> User:
        """Mirror an identity-provider user, keyed on email."""
        now = utcnow()
        stmt = self._insert(UserRow).values(
            id=identity.external_user_id,
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            avatar_url=identity.avatar_url,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserRow.email],
            set_={
                "first_name": stmt.excluded.first_name,
                "last_name": stmt.excluded.last_name,
                "avatar_url": stmt.excluded.avatar_url,
                "updated_at": now,
            },
        )
        async with self.session() as session:
            await session.execute(stmt)
            result = await session.execute(select(UserRow).where(UserRow.email == identity.email))
            return _user(result.scalar_one())

    # ------------------------------------------------------------------
    # Retrieval index
    # ------------------------------------------------------------------

    async def replace_file_embedding(
        self,
        project_id: str,
        file_name: str,
        summary: str,
        source_code: str,
        embedding: Sequence[float],
    ) -> SourceFile:
        now = utcnow()
        vector = [float(x) for x in embedding]
        stmt = self._insert(SourceFileRow).values(
            project_id=project_id,
            file_name=file_name,
            summary=summary,
            source_code=source_code,
            embedding=vector,
            indexed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SourceFileRow.project_id, SourceFileRow.file_name],
            set_={
                "summary": stmt.excluded.summary,
                "source_code": stmt.excluded.source_code,
                "embedding": stmt.excluded.embedding,
                "indexed_at": now,
            },
        )
        async with self.session() as session:
            await session.execute(stmt)
        return SourceFile(
            project_id=project_id,
            file_name=file_name,
            summary=summary,
            source_code=source_code,
            embedding=vector,
            indexed_at=now,
        )

    async def list_file_embeddings(self, project_id: str) -> List[SourceFile]:
        async with self.session() as session:
            result = await session.execute(
                select(SourceFileRow)
                .where(SourceFileRow.project_id == project_id)
                .order_by(SourceFileRow.file_name)
            )
            return [_source_file(row) for row in result.scalars()]

    async def remove_file(self, project_id: str, file_name: str) -> bool:
        async with self.session() as session:
            result = await session.execute(
                delete(SourceFileRow).where(
                    SourceFileRow.project_id == project_id,
                    SourceFileRow.file_name == file_name,
                )
            )
            return result.rowcount > 0


# ----------------------------------------------------------------------
# Row -> model conversion
# ----------------------------------------------------------------------

def _project(row: ProjectRow) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        repo_url=row.repo_url,
        credential=row.credential,
        created_at=_as_utc(row.created_at),
    )


def _commit(row: CommitRow) -> Commit:
    return Commit(
        project_id=row.project_id,
        commit_hash=row.commit_hash,
        message=row.message,
        author_name=row.author_name,
        author_avatar_url=row.author_avatar_url,
        committed_at=_as_utc(row.committed_at),
        summary=row.summary,
    )


def _question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        project_id=row.project_id,
        text=row.text,
        answer=row.answer,
        file_references=[FileReference(**ref) for ref in (row.file_references or [])],
        user_id=row.user_id,
        created_at=_as_utc(row.created_at),
    )


def _meeting(row: MeetingRow) -> Meeting:
    status = JobStatus(row.status)
    return Meeting(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        audio_url=row.audio_url,
        transcription=row.transcription,
        summary=None if status == JobStatus.FAILED else row.summary,
        status=status,
        error=row.error,
        created_at=_as_utc(row.created_at),
    )


def _sync_job(row: SyncJobRow) -> SyncJob:
    return SyncJob(
        id=row.id,
        project_id=row.project_id,
        status=JobStatus(row.status),
        commit_count=row.commit_count or 0,
        error=row.error,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        avatar_url=row.avatar_url,
    )


def _source_file(row: SourceFileRow) -> SourceFile:
    return SourceFile(
        project_id=row.project_id,
        file_name=row.file_name,
        summary=row.summary,
        source_code=row.source_code,
        embedding=list(row.embedding or []),
        indexed_at=_as_utc(row.indexed_at),
    )
