"""Tests for Summarizer and the fallback classifier."""

import pytest
from unittest.mock import Mock

from dionysus.sync.summarizer import (
    FALLBACK_MARKER,
    MAX_SUMMARY_CHARS,
    ChangeCategory,
    Summarizer,
    classify_change,
    fallback_summary,
)


class TestClassifyChange:
    @pytest.mark.parametrize("text,expected", [
        ("fix login redirect", ChangeCategory.BUG_FIX),
        ("feat: add dark mode toggle", ChangeCategory.FEATURE),
        ("Update dependencies", ChangeCategory.UPDATE),
        ("remove unused helpers", ChangeCategory.REMOVAL),
        ("refactor parser module", ChangeCategory.REFACTOR),
        ("docs: improve readme", ChangeCategory.DOCS),
        ("test: cover parser", ChangeCategory.TESTS),
        ("Merge branch 'main'", ChangeCategory.MERGE),
        ("Bump version", ChangeCategory.GENERIC),
    ])
    def test_categories(self, text, expected):
        assert classify_change(text) == expected

    def test_first_match_wins(self):
        # mentions both "fix" and "test"; bug fix is checked first
        assert classify_change("fix test flakiness") == ChangeCategory.BUG_FIX

    def test_case_insensitive(self):
        assert classify_change("FIX CRASH") == ChangeCategory.BUG_FIX


class TestFallbackSummary:
    def test_feature_text(self):
        summary = fallback_summary("feat: add dark mode toggle")
        assert summary == (
            "Code changes detected. New feature or functionality added. (Fallback: AI unavailable)"
        )

    def test_deterministic(self):
        assert fallback_summary("fix test flakiness") == fallback_summary("fix test flakiness")


class TestSummarizer:
    async def test_uses_model_output(self, llm):
        llm.generate.return_value = "  Adds a dark mode toggle to settings.  "
        summarizer = Summarizer(llm)

        summary = await summarizer.summarize("feat: add dark mode toggle")

        assert summary == "Adds a dark mode toggle to settings."
        prompt = llm.generate.call_args.args[0]
        assert "Analyze this Git commit" in prompt
        assert "feat: add dark mode toggle" in prompt

    async def test_long_output_truncated(self, llm):
        llm.generate.return_value = "x" * 800
        summary = await Summarizer(llm).summarize("feat: big change")

        assert len(summary) == MAX_SUMMARY_CHARS
        assert summary.endswith("...")

    async def test_model_error_falls_back(self, llm):
        llm.generate.side_effect = RuntimeError("quota exceeded")
        summary = await Summarizer(llm).summarize("feat: add dark mode toggle")

        assert "feature" in summary.lower()
        assert summary.endswith(FALLBACK_MARKER)

    async def test_empty_output_falls_back(self, llm):
        llm.generate.return_value = "   "
        summary = await Summarizer(llm).summarize("remove legacy API")

        assert summary == fallback_summary("remove legacy API")

    async def test_unavailable_client_skips_model(self):
        client = Mock()
        client.is_available = False
        summary = await Summarizer(client).summarize("fix crash")

        client.generate.assert_not_called()
        assert summary == fallback_summary("fix crash")

    async def test_no_client(self):
        summary = await Summarizer(None).summarize("docs: readme")
        assert summary == "Code changes detected. Documentation updated. (Fallback: AI unavailable)"

    async def test_transcript_fallback_is_bounded(self):
        transcript = "We agreed to ship on Friday. " * 50
        summary = await Summarizer(None).summarize_transcript(transcript)

        assert summary
        assert len(summary) <= MAX_SUMMARY_CHARS

    async def test_long_transcript_fallback_keeps_marker(self):
        transcript = "we walked through the rollout plan " * 60
        summary = await Summarizer(None).summarize_transcript(transcript)

        assert len(summary) <= MAX_SUMMARY_CHARS
        assert summary.endswith("... (Fallback: AI unavailable)")

    async def test_describe_file_fallback_names_file(self):
        content = "\n\nexport function login(user) {\n  return token;\n}\n"
        description = await Summarizer(None).describe_file("src/auth.ts", content)

        assert "src/auth.ts" in description
        assert "export function login(user) {" in description

    async def test_describe_file_model_error(self, llm):
        llm.generate.side_effect = TimeoutError("timed out")
        description = await Summarizer(llm).describe_file("a.py", "import os\n")

        assert description.startswith("Source file a.py.")
