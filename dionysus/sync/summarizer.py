"""
Summarizer

Short AI summaries for commits, meeting transcripts and source files.

Key principle: summarization never fails its caller.
Any model error (quota, network, empty or malformed response, no client)
degrades to a deterministic keyword-based summary.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Tuple

from ..common.llm_client import LLMClient

logger = logging.getLogger("dionysus.sync.summarizer")

MAX_SUMMARY_CHARS = 500
FALLBACK_PREFIX = "Code changes detected. "
FALLBACK_MARKER = " (Fallback: AI unavailable)"


class ChangeCategory(str, Enum):
    BUG_FIX = "bug fix"
    FEATURE = "feature"
    UPDATE = "update"
    REMOVAL = "removal"
    REFACTOR = "refactor"
    DOCS = "docs"
    TESTS = "tests"
    MERGE = "merge"
    GENERIC = "generic"


# Checked in order; the first category with a matching substring wins
CATEGORY_KEYWORDS: Tuple[Tuple[ChangeCategory, Tuple[str, ...]], ...] = (
    (ChangeCategory.BUG_FIX, ("fix", "bug", "error")),
    (ChangeCategory.FEATURE, ("feat", "add", "new")),
    (ChangeCategory.UPDATE, ("update", "modify", "change")),
    (ChangeCategory.REMOVAL, ("remove", "delete")),
    (ChangeCategory.REFACTOR, ("refactor",)),
    (ChangeCategory.DOCS, ("doc", "readme")),
    (ChangeCategory.TESTS, ("test",)),
    (ChangeCategory.MERGE, ("merge",)),
)

CATEGORY_SENTENCES = {
    ChangeCategory.BUG_FIX: "Bug fix or error correction.",
    ChangeCategory.FEATURE: "New feature or functionality added.",
    ChangeCategory.UPDATE: "Existing code updated or modified.",
    ChangeCategory.REMOVAL: "Code or features removed.",
    ChangeCategory.REFACTOR: "Code refactored for better structure.",
    ChangeCategory.DOCS: "Documentation updated.",
    ChangeCategory.TESTS: "Tests added or updated.",
    ChangeCategory.MERGE: "Branch merge with multiple changes.",
    ChangeCategory.GENERIC: "General improvements and updates.",
}


COMMIT_SUMMARY_PROMPT = """Analyze this Git commit and provide a concise, helpful summary. Focus on:
1. What type of change this is (feature, bugfix, refactor, etc.)
2. The main purpose and impact of the changes
3. Any important technical details

Keep the summary under 150 words and use a professional, informative tone.

Commit data:
{text}"""

TRANSCRIPT_SUMMARY_PROMPT = """Summarize this meeting transcript for a software team. Focus on:
1. Decisions that were made
2. Action items and who owns them
3. Open questions or risks that were raised

Keep the summary under 150 words and use a professional, informative tone.

Transcript:
{text}"""

FILE_DESCRIPTION_PROMPT = """Describe what this source file does for a developer who is new to the codebase.
Mention its main responsibilities and the most important functions or classes.
Keep the description under 100 words.

File: {file_name}

{text}"""


def classify_change(text: str) -> ChangeCategory:
    """Case-insensitive, first-match-wins keyword classification."""
    lowered = (text or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return ChangeCategory.GENERIC


def fallback_summary(text: str) -> str:
    """Deterministic summary used when the model is unavailable."""
    sentence = CATEGORY_SENTENCES[classify_change(text)]
    return FALLBACK_PREFIX + sentence + FALLBACK_MARKER


def bound_summary(summary: str, limit: int = MAX_SUMMARY_CHARS) -> str:
    summary = summary.strip()
    if len(summary) > limit:
        return summary[: limit - 3] + "..."
    return summary


class Summarizer:
    """
    Produces bounded summaries with a model, falling back deterministically.

    The LLM client is synchronous; calls are moved off the event loop.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        max_tokens: int = 400,
        timeout: float = 30.0,
    ):
        self._llm = llm_client
        self._max_tokens = max_tokens
        self._timeout = timeout

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def summarize(self, text: str) -> str:
        """Summarize commit data. Never raises."""
        if not text or not text.strip():
            return fallback_summary(text or "")
        generated = await self._generate(COMMIT_SUMMARY_PROMPT.format(text=text))
        if generated is None:
            return fallback_summary(text)
        return bound_summary(generated)

    async def summarize_transcript(self, transcript: str) -> str:
        """Summarize a meeting transcript. Never raises."""
        if not transcript or not transcript.strip():
            return "No speech was detected in this recording."
        generated = await self._generate(TRANSCRIPT_SUMMARY_PROMPT.format(text=transcript))
        if generated is None:
            head = bound_summary(_first_sentences(transcript), MAX_SUMMARY_CHARS - len(FALLBACK_MARKER))
            return head + FALLBACK_MARKER
        return bound_summary(generated)

    async def describe_file(self, file_name: str, content: str) -> str:
        """One-paragraph description of a source file. Never raises."""
        if content and content.strip():
            generated = await self._generate(
                FILE_DESCRIPTION_PROMPT.format(file_name=file_name, text=content[:8000])
            )
            if generated is not None:
                return bound_summary(generated)

        first_line = _first_meaningful_line(content or "")
        description = f"Source file {file_name}."
        if first_line:
            description += f" Starts with: {first_line}"
        return bound_summary(description)

    async def _generate(self, prompt: str) -> Optional[str]:
        """Model output, or None when the model cannot be used."""
        if not self.has_llm:
            logger.info("LLM unavailable, using fallback summary")
            return None
        try:
            result = await asyncio.to_thread(
                self._llm.generate,
                prompt,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("Summary generation failed, using fallback: %s", e)
            return None
        if not isinstance(result, str) or not result.strip():
            logger.warning("Summary generation returned empty output, using fallback")
            return None
        return result


def _first_meaningful_line(content: str) -> str:
    for line in content.splitlines():
        stripped = line.strip()
        if stripped and stripped not in ("{", "}", "(", ")", '"""', "'''"):
            return stripped[:200]
    return ""


def _first_sentences(text: str, count: int = 3) -> str:
    sentences = [s.strip() for s in text.replace("\n", " ").split(".") if s.strip()]
    return ". ".join(sentences[:count]) + "."
