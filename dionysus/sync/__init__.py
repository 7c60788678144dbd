"""
Commit Sync - Recent History With Summaries

Key Components:
- GitHubHistoryProvider: Fetches recent commits from the remote
- CommitSyncEngine: Idempotent upsert of fetched commits
- Summarizer: Bounded AI summaries with deterministic fallback
"""

from .commit_sync import CommitSyncEngine
from .history_provider import GitHubHistoryProvider, HistoryProvider, parse_github_url
from .summarizer import ChangeCategory, Summarizer, classify_change, fallback_summary

__all__ = [
    "CommitSyncEngine",
    "GitHubHistoryProvider",
    "HistoryProvider",
    "parse_github_url",
    "ChangeCategory",
    "Summarizer",
    "classify_change",
    "fallback_summary",
]
