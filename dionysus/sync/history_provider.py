"""
Remote history providers.

A provider is read-only: it returns the most recent commits of a repository
normalized to CommitRecord, newest first.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

import httpx

from ..common.errors import HistoryProviderError, InvalidInputError, TransientError
from ..common.schemas.models import CommitRecord

logger = logging.getLogger("dionysus.sync.history_provider")

_GITHUB_URL_RE = re.compile(
    r"^(?:https?://|git@)?(?:www\.)?github\.com[/:](?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
)


class HistoryProvider(Protocol):
    async def fetch_commits(
        self,
        remote_url: str,
        credential: Optional[str] = None,
        limit: int = 15,
    ) -> List[CommitRecord]:
        ...


def parse_github_url(remote_url: str) -> Tuple[str, str]:
    """
    Split a GitHub repository URL into (owner, repo).

    Raises:
        InvalidInputError: if the URL is not a GitHub repository URL
    """
    match = _GITHUB_URL_RE.match((remote_url or "").strip())
    if not match:
        raise InvalidInputError(f"Not a GitHub repository URL: {remote_url!r}")
    return match.group("owner"), match.group("repo")


# Commits without any date sort last and keep a stable timestamp across syncs
UNKNOWN_DATE = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return UNKNOWN_DATE
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_record(item: dict) -> CommitRecord:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    committer = commit.get("committer") or {}
    account = item.get("author") or {}
    return CommitRecord(
        hash=item["sha"],
        message=commit.get("message") or "",
        author_name=author.get("name") or account.get("login") or "unknown",
        author_avatar_url=account.get("avatar_url"),
        date=_parse_timestamp(author.get("date") or committer.get("date")),
    )


class GitHubHistoryProvider:
    """Fetches commits from the GitHub REST API."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        default_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_url: GitHub API base URL
            default_token: Used when a project has no credential of its own
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self._api_url = api_url.rstrip("/")
        self._default_token = default_token or None
        self._timeout = timeout
        self._transport = transport

    async def fetch_commits(
        self,
        remote_url: str,
        credential: Optional[str] = None,
        limit: int = 15,
    ) -> List[CommitRecord]:
        """
        Fetch up to ``limit`` most recent commits.

        Raises:
            InvalidInputError: malformed repository URL
            TransientError: network failure, timeout, 5xx or rate limiting
            HistoryProviderError: any other non-success response
        """
        owner, repo = parse_github_url(remote_url)
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        token = credential or self._default_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self._api_url}/repos/{owner}/{repo}/commits"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, params={"per_page": limit}, headers=headers)
            except httpx.TransportError as e:
                raise TransientError(f"GitHub unreachable: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientError(f"GitHub returned {response.status_code} for {owner}/{repo}")
        if response.status_code != 200:
            raise HistoryProviderError(
                f"GitHub returned {response.status_code} for {owner}/{repo}",
                status_code=response.status_code,
            )

        payload = response.json()
        if not isinstance(payload, list):
            raise HistoryProviderError(f"Unexpected GitHub payload for {owner}/{repo}")

        records = [_to_record(item) for item in payload[:limit]]
        logger.info("Fetched %d commits from %s/%s", len(records), owner, repo)
        return records
