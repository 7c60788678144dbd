"""
Domain models

Project is the root aggregate: commits, questions, meetings, indexed files and
sync jobs belong to exactly one project and are deleted with it.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Enums
# ============================================================================

class JobStatus(str, Enum):
    """Lifecycle of long-running work (meetings, repository sync)"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class MatchStrength(str, Enum):
    """Display band for a similarity score"""
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


STRONG_MATCH_THRESHOLD = 0.8
MODERATE_MATCH_THRESHOLD = 0.6


# ============================================================================
# Projects & users
# ============================================================================

class Project(BaseModel):
    """A repository the team asks questions about"""
    id: str
    name: str
    repo_url: Optional[str] = None
    credential: Optional[str] = Field(default=None, repr=False)
    created_at: datetime


class Identity(BaseModel):
    """User identity as handed over by the identity provider"""
    external_user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None


class User(BaseModel):
    """Local, read-mostly mirror of an identity-provider user"""
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None


# ============================================================================
# Commits
# ============================================================================

class CommitRecord(BaseModel):
    """A commit as normalized from the remote history provider"""
    hash: str
    message: str
    author_name: str
    author_avatar_url: Optional[str] = None
    date: datetime


class Commit(BaseModel):
    """A persisted commit; (project_id, commit_hash) is the natural key"""
    project_id: str
    commit_hash: str
    message: str
    author_name: str
    author_avatar_url: Optional[str] = None
    committed_at: datetime
    summary: Optional[str] = None


# ============================================================================
# Questions
# ============================================================================

class FileReference(BaseModel):
    """A retrieved source file cited by an answer"""
    file_name: str
    summary: str
    source_code: str
    similarity: float = Field(ge=0.0, le=1.0)

    @property
    def strength(self) -> MatchStrength:
        if self.similarity >= STRONG_MATCH_THRESHOLD:
            return MatchStrength.STRONG
        if self.similarity >= MODERATE_MATCH_THRESHOLD:
            return MatchStrength.MODERATE
        return MatchStrength.WEAK


class Question(BaseModel):
    """An asked question with its grounded answer (append-only)"""
    id: str
    project_id: str
    text: str
    answer: str
    file_references: List[FileReference] = Field(default_factory=list)
    user_id: str
    created_at: datetime


# ============================================================================
# Retrieval index
# ============================================================================

class SourceFile(BaseModel):
    """An indexed source file with its embedding"""
    project_id: str
    file_name: str
    summary: str
    source_code: str
    embedding: List[float]
    indexed_at: datetime


# ============================================================================
# Jobs
# ============================================================================

class Meeting(BaseModel):
    """
    An uploaded meeting recording.

    Status and content never disagree: a COMPLETED meeting always carries a
    summary, and a FAILED meeting never exposes one.
    """
    id: str
    project_id: str
    name: str
    audio_url: str
    transcription: Optional[str] = None
    summary: Optional[str] = None
    status: JobStatus = JobStatus.PROCESSING
    error: Optional[str] = None
    created_at: datetime

    @model_validator(mode="after")
    def _check_status_content(self) -> "Meeting":
        if self.status == JobStatus.COMPLETED and self.summary is None:
            raise ValueError("COMPLETED meeting must have a summary")
        if self.status == JobStatus.FAILED and self.summary is not None:
            raise ValueError("FAILED meeting must not expose a summary")
        return self


class SyncJob(BaseModel):
    """A repository sync run"""
    id: str
    project_id: str
    status: JobStatus = JobStatus.PROCESSING
    commit_count: int = 0
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
