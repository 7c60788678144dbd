"""
Repository Indexing Command

Walks a checked-out repository, describes and embeds every source file, and
stores the vectors for a project's retrieval index.

Usage:
    dionysus-index PROJECT_ID PATH [--dry-run]
    dionysus-index PROJECT_ID PATH --remove src/old_module.py
"""

import argparse
import asyncio
import sys

from ..common.config import ensure_directories, load_config
from ..common.embedding_service import EmbeddingService
from ..common.errors import DionysusError
from ..common.llm_client import LLMClient
from ..common.store import Store
from ..sync.summarizer import Summarizer
from .index import RetrievalIndex


async def _run(args: argparse.Namespace) -> int:
    config = load_config()
    ensure_directories()

    print(f"[Index] Embedding model: {config.embedding.mode}/{config.embedding.model}")
    embedding = EmbeddingService(
        mode=config.embedding.mode,
        model=config.embedding.model,
        google_api_key=config.llm.google_api_key or None,
    )
    if not embedding.is_available:
        print("[Index] ERROR: Embedding service not available")
        return 1

    summarizer = Summarizer(LLMClient.from_config(config.llm), timeout=config.llm.timeout)
    if not summarizer.has_llm:
        print("[Index] LLM not available, file descriptions will use the fallback")

    async with Store(config.database.url, echo=config.database.echo) as store:
        project = await store.get_project(args.project_id)
        if project is None:
            print(f"[Index] ERROR: Project not found: {args.project_id}")
            return 1

        index = RetrievalIndex(
            store,
            embedding,
            summarizer,
            excerpt_chars=config.retriever.excerpt_chars,
            topk=config.retriever.topk,
            max_file_bytes=config.retriever.max_file_bytes,
        )

        if args.remove:
            for file_name in args.remove:
                removed = await index.remove(project.id, file_name)
                print(f"[Index] {'Removed' if removed else 'Not indexed'}: {file_name}")
            return 0

        if args.dry_run:
            print(f"[Index] DRY RUN - would index {args.path} into project '{project.name}'")
            return 0

        indexed = await index.index_directory(project.id, args.path)
        print(f"[Index] Indexed {len(indexed)} files into project '{project.name}'")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Index a repository checkout for grounded Q&A")
    parser.add_argument("project_id", help="Project to index into")
    parser.add_argument("path", help="Path to the repository checkout")
    parser.add_argument("--dry-run", action="store_true", help="Check configuration without indexing")
    parser.add_argument("--remove", nargs="+", metavar="FILE", help="Remove files from the index instead")
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(_run(args)))
    except DionysusError as e:
        print(f"[Index] ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
