"""
Dionysus Schemas

Domain models (pydantic) and their persistence tables (SQLAlchemy).
"""

from .models import (
    Commit,
    CommitRecord,
    FileReference,
    Identity,
    JobStatus,
    MatchStrength,
    Meeting,
    Project,
    Question,
    SourceFile,
    SyncJob,
    User,
)

__all__ = [
    "Commit",
    "CommitRecord",
    "FileReference",
    "Identity",
    "JobStatus",
    "MatchStrength",
    "Meeting",
    "Project",
    "Question",
    "SourceFile",
    "SyncJob",
    "User",
]
