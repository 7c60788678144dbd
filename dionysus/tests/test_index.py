"""Tests for RetrievalIndex."""

import math

import pytest

from dionysus.common.embedding_service import EmbeddingService
from dionysus.common.errors import InvalidInputError
from dionysus.common.schemas.models import MatchStrength
from dionysus.retriever.index import RetrievalIndex
from dionysus.sync.summarizer import Summarizer


def at_similarity(value):
    """2-d unit vector whose cosine with [1, 0] is ``value``."""
    return [value, math.sqrt(1 - value ** 2)]


@pytest.fixture
def index(store, unit_embedding):
    return RetrievalIndex(store, unit_embedding, Summarizer(None), excerpt_chars=40, topk=5)


class TestQuery:
    async def test_ranked_by_similarity(self, store, project, index):
        await store.replace_file_embedding(project.id, "billing.ts", "Billing", "charge()", at_similarity(0.42))
        await store.replace_file_embedding(project.id, "auth.ts", "Auth", "login()", at_similarity(0.91))

        refs = await index.query(project.id, "How does login work?")

        assert [r.file_name for r in refs] == ["auth.ts", "billing.ts"]
        assert refs[0].similarity == pytest.approx(0.91)
        assert refs[1].similarity == pytest.approx(0.42)
        assert refs[0].strength == MatchStrength.STRONG
        assert refs[1].strength == MatchStrength.WEAK

    async def test_ties_broken_by_file_name(self, store, project, index):
        for name in ["zeta.py", "alpha.py", "mid.py"]:
            await store.replace_file_embedding(project.id, name, name, "x", at_similarity(0.7))

        refs = await index.query(project.id, "anything")

        assert [r.file_name for r in refs] == ["alpha.py", "mid.py", "zeta.py"]
        assert all(r.strength == MatchStrength.MODERATE for r in refs)

    async def test_top_k(self, store, project, index):
        for i in range(8):
            await store.replace_file_embedding(project.id, f"f{i}.py", "s", "x", at_similarity(0.1 * (i + 1)))

        refs = await index.query(project.id, "q", k=3)

        assert [r.file_name for r in refs] == ["f7.py", "f6.py", "f5.py"]
        assert len(await index.query(project.id, "q")) == 5

    async def test_empty_index(self, project, store):
        calls = []
        embedding = EmbeddingService(embedder=lambda texts: calls.append(texts) or [[1.0, 0.0]])
        index = RetrievalIndex(store, embedding, Summarizer(None))

        assert await index.query(project.id, "anything") == []
        assert calls == []

    async def test_opposite_vector_scores_zero(self, store, project, index):
        await store.replace_file_embedding(project.id, "a.py", "s", "x", [-1.0, 0.0])

        [ref] = await index.query(project.id, "q")

        assert ref.similarity == 0.0

    async def test_dimension_mismatch(self, store, project, index):
        await store.replace_file_embedding(project.id, "a.py", "s", "x", [1.0, 0.0, 0.0])

        with pytest.raises(InvalidInputError):
            await index.query(project.id, "q")

    async def test_empty_question(self, project, index):
        with pytest.raises(InvalidInputError):
            await index.query(project.id, "  ")


class TestIndexing:
    async def test_index_replaces_wholesale(self, store, project, index):
        await index.index(project.id, "src/app.py", "print('v1')\n")
        await index.index(project.id, "src/app.py", "print('v2')\n")

        [entry] = await store.list_file_embeddings(project.id)
        assert entry.source_code == "print('v2')\n"
        assert "src/app.py" in entry.summary

    async def test_excerpt_truncated(self, store, project, index):
        await index.index(project.id, "big.py", "x = 1\n" * 100)

        [entry] = await store.list_file_embeddings(project.id)
        assert len(entry.source_code) == 40

    async def test_empty_content_rejected(self, project, index):
        with pytest.raises(InvalidInputError):
            await index.index(project.id, "empty.py", "   ")

    async def test_index_directory_skips_noise(self, store, project, tmp_path):
        repo = tmp_path / "repo"
        (repo / "src").mkdir(parents=True)
        (repo / "node_modules" / "lib").mkdir(parents=True)
        (repo / ".git").mkdir()
        (repo / "src" / "auth.ts").write_text("export function login() {}\n")
        (repo / "README.md").write_text("# Demo\n")
        (repo / "node_modules" / "lib" / "index.js").write_text("module.exports = {}\n")
        (repo / ".git" / "config").write_text("[core]\n")
        (repo / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")
        (repo / "data.bin.txt").write_bytes(b"abc\x00def")
        (repo / "package-lock.json").write_text("{}")
        (repo / "huge.txt").write_text("a" * 2000)

        embedding = EmbeddingService(embedder=lambda texts: [[1.0, 0.0] for _ in texts])
        index = RetrievalIndex(store, embedding, Summarizer(None), max_file_bytes=1000)

        indexed = await index.index_directory(project.id, str(repo))

        assert indexed == ["README.md", "src/auth.ts"]
        stored = [e.file_name for e in await store.list_file_embeddings(project.id)]
        assert stored == ["README.md", "src/auth.ts"]

    async def test_index_directory_requires_directory(self, project, index, tmp_path):
        with pytest.raises(InvalidInputError):
            await index.index_directory(project.id, str(tmp_path / "missing"))

    async def test_index_directory_confined_to_repos_dir(self, store, project, unit_embedding, tmp_path):
        repos = tmp_path / "repos"
        (repos / "demo").mkdir(parents=True)
        (repos / "demo" / "app.py").write_text("print('hi')\n")
        (tmp_path / "secrets").mkdir()
        (tmp_path / "secrets" / "token.txt").write_text("ghp_secret\n")
        index = RetrievalIndex(store, unit_embedding, Summarizer(None), repos_dir=str(repos))

        assert await index.index_directory(project.id, "demo") == ["app.py"]
        assert await index.index_directory(project.id, str(repos / "demo")) == ["app.py"]
        for root in [str(tmp_path / "secrets"), "../secrets", "demo/../../secrets"]:
            with pytest.raises(InvalidInputError, match="outside"):
                await index.index_directory(project.id, root)

    async def test_index_directory_skips_symlinks(self, store, project, unit_embedding, tmp_path):
        repo = tmp_path / "repo"
        repo.mkdir()
        (repo / "main.py").write_text("x = 1\n")
        (tmp_path / "outside.txt").write_text("private\n")
        (repo / "link.txt").symlink_to(tmp_path / "outside.txt")
        index = RetrievalIndex(store, unit_embedding, Summarizer(None))

        assert await index.index_directory(project.id, str(repo)) == ["main.py"]

    async def test_remove(self, store, project, index):
        await index.index(project.id, "a.py", "a = 1\n")

        assert await index.remove(project.id, "a.py") is True
        assert await store.list_file_embeddings(project.id) == []
