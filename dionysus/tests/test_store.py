"""Tests for the SQLAlchemy store."""

import pytest

from dionysus.common.errors import NotFoundError
from dionysus.common.schemas.models import FileReference, Identity, JobStatus


class TestProjects:
    async def test_create_and_get(self, store):
        created = await store.create_project("Demo", repo_url="https://github.com/acme/demo", credential="ghp_x")
        fetched = await store.get_project(created.id)

        assert fetched.name == "Demo"
        assert fetched.credential == "ghp_x"
        assert fetched.created_at.tzinfo is not None

    async def test_require_missing_project(self, store):
        with pytest.raises(NotFoundError):
            await store.require_project("missing")

    async def test_delete_cascades(self, store, project, make_record):
        await store.upsert_commit(project.id, make_record("a1", "init"))
        await store.create_meeting(project.id, "Standup", "file:///tmp/a.mp3")
        await store.save_question(project.id, "Q?", "A.", [], "user-1")
        await store.replace_file_embedding(project.id, "a.py", "s", "code", [1.0, 0.0])
        await store.create_sync_job(project.id)

        await store.delete_project(project.id)

        assert await store.get_project(project.id) is None
        assert await store.list_commits(project.id) == []
        assert await store.list_meetings(project.id) == []
        assert await store.list_questions(project.id) == []
        assert await store.list_file_embeddings(project.id) == []

    async def test_delete_missing_project(self, store):
        with pytest.raises(NotFoundError):
            await store.delete_project("missing")


class TestCommits:
    async def test_upsert_is_idempotent(self, store, project, make_record):
        record = make_record("a1", "init")
        await store.upsert_commit(project.id, record)
        await store.upsert_commit(project.id, record)

        assert await store.count_commits(project.id) == 1

    async def test_changed_message_clears_summary(self, store, project, make_record):
        await store.upsert_commit(project.id, make_record("a1", "init"))
        await store.set_commit_summary(project.id, "a1", "Initial import.")

        same = await store.upsert_commit(project.id, make_record("a1", "init"))
        assert same.summary == "Initial import."

        changed = await store.upsert_commit(project.id, make_record("a1", "initial commit"))
        assert changed.message == "initial commit"
        assert changed.summary is None

    async def test_list_newest_first_with_limit(self, store, project, make_record):
        for i in range(5):
            await store.upsert_commit(project.id, make_record(f"c{i}", f"change {i}", minutes=i))

        commits = await store.list_commits(project.id, limit=3)

        assert [c.commit_hash for c in commits] == ["c4", "c3", "c2"]

    async def test_summary_for_missing_commit(self, store, project):
        with pytest.raises(NotFoundError):
            await store.set_commit_summary(project.id, "nope", "summary")


class TestQuestions:
    async def test_file_references_round_trip_in_order(self, store, project):
        refs = [
            FileReference(file_name="auth.ts", summary="Auth", source_code="login()", similarity=0.91),
            FileReference(file_name="billing.ts", summary="Billing", source_code="charge()", similarity=0.42),
        ]
        await store.save_question(project.id, "How does login work?", "Via auth.ts", refs, "user-1")

        [question] = await store.list_questions(project.id)
        assert [r.file_name for r in question.file_references] == ["auth.ts", "billing.ts"]
        assert question.file_references[0].similarity == pytest.approx(0.91)


class TestMeetings:
    async def test_created_processing(self, store, project):
        meeting = await store.create_meeting(project.id, "Standup", "file:///tmp/a.mp3")
        assert meeting.status == JobStatus.PROCESSING
        assert meeting.summary is None

    async def test_conditional_transition_applies_once(self, store, project):
        meeting = await store.create_meeting(project.id, "Standup", "file:///tmp/a.mp3")

        first = await store.transition_meeting(meeting.id, JobStatus.COMPLETED, transcription="t", summary="s")
        second = await store.transition_meeting(meeting.id, JobStatus.FAILED, error="late")

        assert first.status == JobStatus.COMPLETED
        assert second is None
        stored = await store.get_meeting(meeting.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.summary == "s"
        assert stored.error is None

    async def test_failed_meeting_hides_summary(self, store, project):
        meeting = await store.create_meeting(project.id, "Standup", "file:///tmp/a.mp3")
        failed = await store.transition_meeting(meeting.id, JobStatus.FAILED, summary="partial", error="boom")

        assert failed.status == JobStatus.FAILED
        assert failed.summary is None
        assert failed.error == "boom"

    async def test_transition_missing_meeting(self, store):
        with pytest.raises(NotFoundError):
            await store.transition_meeting("missing", JobStatus.FAILED, error="x")


class TestUsers:
    async def test_upsert_keyed_on_email(self, store):
        first = await store.upsert_user(Identity(external_user_id="u1", email="ada@example.com", first_name="Ada"))
        second = await store.upsert_user(Identity(
            external_user_id="u1",
            email="ada@example.com",
            first_name="Ada",
            last_name="Lovelace",
            avatar_url="https://img.example.com/ada.png",
        ))

        assert first.id == second.id == "u1"
        assert second.last_name == "Lovelace"
        assert second.avatar_url == "https://img.example.com/ada.png"


class TestFileEmbeddings:
    async def test_replace_wholesale(self, store, project):
        await store.replace_file_embedding(project.id, "a.py", "old", "old code", [1.0, 0.0])
        await store.replace_file_embedding(project.id, "a.py", "new", "new code", [0.0, 1.0])

        [entry] = await store.list_file_embeddings(project.id)
        assert entry.summary == "new"
        assert entry.source_code == "new code"
        assert entry.embedding == [0.0, 1.0]

    async def test_remove(self, store, project):
        await store.replace_file_embedding(project.id, "a.py", "s", "c", [1.0])

        assert await store.remove_file(project.id, "a.py") is True
        assert await store.remove_file(project.id, "a.py") is False
