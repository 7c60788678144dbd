"""
Retrieval Index

Embeds source files and ranks them against a question by cosine similarity.

Ranking rules:
- Similarity is the raw cosine value, clamped to [0, 1], never rescaled
- Results are ordered by descending similarity, ties by file name
- An empty index yields an empty result, not an error
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

from ..common.embedding_service import EmbeddingService
from ..common.errors import InvalidInputError
from ..common.schemas.models import FileReference, SourceFile
from ..common.store import Store
from ..sync.summarizer import Summarizer

logger = logging.getLogger("dionysus.retriever.index")

DEFAULT_TOPK = 5

SKIP_DIRS = {
    ".git", ".hg", ".svn", ".idea", ".vscode", ".next", ".venv", "venv",
    "node_modules", "vendor", "third_party", "dist", "build", "target",
    "__pycache__", ".pytest_cache", ".mypy_cache", "coverage",
}

SKIP_FILES = {
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock",
    "Cargo.lock", "go.sum", "composer.lock", ".DS_Store",
}

BINARY_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svg",
    ".pdf", ".zip", ".gz", ".tar", ".tgz", ".7z", ".rar", ".jar",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".mp3", ".mp4", ".wav", ".mov", ".avi",
    ".exe", ".dll", ".so", ".dylib", ".o", ".a", ".class", ".pyc",
    ".sqlite", ".sqlite3", ".db", ".bin", ".lock",
}


def _read_text(path: Path, max_bytes: int) -> Optional[str]:
    """File contents as text, or None for binary, oversized or unreadable files."""
    try:
        if path.stat().st_size > max_bytes:
            return None
        raw = path.read_bytes()
    except OSError as e:
        logger.warning("Skipping unreadable file %s: %s", path, e)
        return None
    if b"\x00" in raw[:8000]:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


class RetrievalIndex:
    """
    Per-project vector index over source files.

    Vectors live in the store next to the file's description and excerpt,
    keyed by (project_id, file_name).
    """

    def __init__(
        self,
        store: Store,
        embedding_service: EmbeddingService,
        summarizer: Summarizer,
        excerpt_chars: int = 1500,
        topk: int = DEFAULT_TOPK,
        max_file_bytes: int = 200_000,
        repos_dir: Optional[str] = None,
    ):
        """
        Args:
            repos_dir: When set, index_directory only accepts roots under it
        """
        self._store = store
        self._embedding = embedding_service
        self._summarizer = summarizer
        self._excerpt_chars = excerpt_chars
        self._topk = topk
        self._max_file_bytes = max_file_bytes
        self._repos_dir = Path(repos_dir).expanduser().resolve() if repos_dir else None

    async def index(self, project_id: str, file_name: str, content: str) -> SourceFile:
        """Embed one file and replace any previous entry for it."""
        if not file_name:
            raise InvalidInputError("file_name is required")
        if content is None or not content.strip():
            raise InvalidInputError(f"Cannot index empty file: {file_name}")

        summary = await self._summarizer.describe_file(file_name, content)
        excerpt = content[: self._excerpt_chars]
        embedding = await asyncio.to_thread(
            self._embedding.embed_single,
            f"{file_name}\n{summary}\n{excerpt}",
        )
        entry = await self._store.replace_file_embedding(
            project_id,
            file_name,
            summary=summary,
            source_code=excerpt,
            embedding=embedding,
        )
        logger.debug("Indexed %s for project %s", file_name, project_id)
        return entry

    async def index_directory(self, project_id: str, root: str) -> List[str]:
        """
        Index every source file under ``root``.

        Skips version-control and vendored directories, lock files, binaries
        and files larger than the configured limit.

        Returns:
            Indexed file names, relative to root, using forward slashes

        Raises:
            InvalidInputError: root is not a directory, or lies outside repos_dir
        """
        root_path = self.resolve_root(root)
        if not root_path.is_dir():
            raise InvalidInputError(f"Not a directory: {root}")

        indexed = []
        for dirpath, dirnames, filenames in os.walk(root_path):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if path.is_symlink():
                    continue
                if name in SKIP_FILES or path.suffix.lower() in BINARY_EXTENSIONS:
                    continue
                content = _read_text(path, self._max_file_bytes)
                if content is None or not content.strip():
                    continue
                file_name = path.relative_to(root_path).as_posix()
                await self.index(project_id, file_name, content)
                indexed.append(file_name)

        logger.info("Indexed %d files under %s for project %s", len(indexed), root, project_id)
        return indexed

    def resolve_root(self, root: str) -> Path:
        """Absolute checkout path; relative roots are taken from repos_dir."""
        if not root or not root.strip():
            raise InvalidInputError("root is required")
        if self._repos_dir is None:
            return Path(root).expanduser()
        resolved = (self._repos_dir / root).resolve()
        if not resolved.is_relative_to(self._repos_dir):
            raise InvalidInputError(f"{root} is outside the checkout directory")
        return resolved

    async def remove(self, project_id: str, file_name: str) -> bool:
        return await self._store.remove_file(project_id, file_name)

    async def query(
        self,
        project_id: str,
        question_text: str,
        k: Optional[int] = None,
    ) -> List[FileReference]:
        """
        Top-k files most similar to the question.

        Raises:
            InvalidInputError: empty question, or stored vectors whose
                dimension differs from the query vector
        """
        if not question_text or not question_text.strip():
            raise InvalidInputError("Question text is required")
        k = self._topk if k is None else k
        if k <= 0:
            return []

        entries = await self._store.list_file_embeddings(project_id)
        if not entries:
            return []

        query_vec = await asyncio.to_thread(self._embedding.embed_single, question_text)
        try:
            scores = self._embedding.batch_cosine_similarity(
                query_vec, [entry.embedding for entry in entries]
            )
        except ValueError as e:
            raise InvalidInputError(f"Index for project {project_id} is inconsistent: {e}") from e

        ranked = sorted(zip(entries, scores), key=lambda pair: (-pair[1], pair[0].file_name))
        return [
            FileReference(
                file_name=entry.file_name,
                summary=entry.summary,
                source_code=entry.source_code,
                similarity=score,
            )
            for entry, score in ranked[:k]
        ]
