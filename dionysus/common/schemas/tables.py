"""
Database tables (SQLAlchemy).
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectRow(Base):
    """Root aggregate: a repository under analysis."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    repo_url = Column(Text, nullable=True)
    credential = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<ProjectRow(id='{self.id}', name='{self.name}')>"


class UserRow(Base):
    """Mirror of identity-provider users, joined on email."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    avatar_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserRow(id='{self.id}', email='{self.email}')>"


class CommitRow(Base):
    """Synced commit history; unique per (project_id, commit_hash)."""

    __tablename__ = "commits"
    __table_args__ = (
        UniqueConstraint("project_id", "commit_hash", name="uq_commits_project_hash"),
        Index("ix_commits_project_date", "project_id", "committed_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    commit_hash = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    author_name = Column(String(255), nullable=False)
    author_avatar_url = Column(Text, nullable=True)
    committed_at = Column(DateTime(timezone=True), nullable=False)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<CommitRow(project_id='{self.project_id}', commit_hash='{self.commit_hash}')>"


class QuestionRow(Base):
    """Append-only Q&A log with the cited files frozen at answer time."""

    __tablename__ = "questions"
    __table_args__ = (
        Index("ix_questions_project_created", "project_id", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    file_references = Column(JSON, nullable=False, default=list)
    user_id = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class MeetingRow(Base):
    """Uploaded meeting recording and its processing state."""

    __tablename__ = "meetings"
    __table_args__ = (
        Index("ix_meetings_project_created", "project_id", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    audio_url = Column(Text, nullable=False)
    transcription = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="PROCESSING")  # PROCESSING, COMPLETED, FAILED
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MeetingRow(id='{self.id}', status='{self.status}')>"


class SourceFileRow(Base):
    """Embedded source file; replaced wholesale on re-index."""

    __tablename__ = "source_files"
    __table_args__ = (
        UniqueConstraint("project_id", "file_name", name="uq_source_files_project_file"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(1024), nullable=False)
    summary = Column(Text, nullable=False)
    source_code = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)
    indexed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SyncJobRow(Base):
    """Repository sync run."""

    __tablename__ = "sync_jobs"

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="PROCESSING")
    commit_count = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
