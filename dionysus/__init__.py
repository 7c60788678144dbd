"""
Dionysus

Retrieval-augmented code intelligence for a team's repositories.

Pieces:
- Commit sync: pulls recent history from the remote, upserts it idempotently
  and keeps a short AI summary next to every commit
- Retrieval: embeds source files and answers questions with cited files
- Jobs: meeting transcription and repository sync run as pollable jobs

Usage:
    from dionysus.common import load_config, Store
    from dionysus.sync import CommitSyncEngine, Summarizer
    from dionysus.retriever import RetrievalIndex, QuestionAnswerer
    from dionysus.jobs import MeetingProcessor, RepositorySyncRunner
"""

__version__ = "0.1.0"
