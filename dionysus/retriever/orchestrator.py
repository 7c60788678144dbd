"""
Question Answerer

Grounded answer generation from retrieved source files.

Key principle: an answer is either grounded or not given.
- Files come from the retrieval index, most similar first
- The model is told to use only those files and to say when they don't help
- A model failure is surfaced as GenerationError, never degraded
"""

import asyncio
import logging
from typing import List, Optional

from ..common.errors import GenerationError, InvalidInputError
from ..common.llm_client import LLMClient
from ..common.retry import RetryExecutor
from ..common.schemas.models import FileReference, Question
from ..common.store import Store
from .index import RetrievalIndex

logger = logging.getLogger("dionysus.retriever.orchestrator")


ANSWER_SYSTEM_PROMPT = (
    "You are an AI code assistant who answers questions about a software repository. "
    "Answer in Markdown. Be precise and cite file names when you use them."
)

ANSWER_PROMPT = """Answer the question below using ONLY the repository files provided.

Rules:
1. Do NOT make up code, files or behavior that is not shown in the files.
2. Refer to files by name, for example `src/auth.ts`.
3. Include short code snippets from the files when they help.
4. If the files do not contain the answer, say so plainly.

Question: {question}

Repository files (most relevant first):
{files}

Your Answer:"""

NO_FILES_CONTEXT = (
    "(No indexed files matched this question. Tell the user the repository index "
    "has no relevant files and suggest indexing the repository or rephrasing.)"
)


def format_files_for_prompt(references: List[FileReference]) -> str:
    if not references:
        return NO_FILES_CONTEXT

    formatted = []
    for i, ref in enumerate(references, 1):
        formatted.append(
            f"---\n"
            f"File {i}: {ref.file_name} (similarity {ref.similarity:.2f})\n"
            f"Description: {ref.summary}\n"
            f"Code:\n{ref.source_code}\n"
        )
    return "\n".join(formatted)


class QuestionAnswerer:
    """Retrieve, prompt, generate, persist."""

    def __init__(
        self,
        store: Store,
        index: RetrievalIndex,
        llm_client: Optional[LLMClient],
        executor: RetryExecutor,
        topk: int = 5,
        max_tokens: int = 2048,
        timeout: float = 60.0,
    ):
        self._store = store
        self._index = index
        self._llm = llm_client
        self._executor = executor
        self._topk = topk
        self._max_tokens = max_tokens
        self._timeout = timeout

    async def answer(self, project_id: str, question_text: str, asking_user_id: str) -> Question:
        """
        Answer a question about a project and record it.

        Raises:
            InvalidInputError: empty question text or missing user id
            GenerationError: the model failed or returned nothing
        """
        if not question_text or not question_text.strip():
            raise InvalidInputError("Question text is required")
        if not asking_user_id:
            raise InvalidInputError("asking_user_id is required")
        question_text = question_text.strip()

        references = await self._index.query(project_id, question_text, k=self._topk)
        logger.info(
            "Answering question for project %s with %d file(s)", project_id, len(references)
        )

        prompt = ANSWER_PROMPT.format(
            question=question_text,
            files=format_files_for_prompt(references),
        )
        answer_text = await self._generate(prompt)

        saved = await self._executor.execute(
            lambda: self._store.save_question(
                project_id,
                text=question_text,
                answer=answer_text,
                file_references=references,
                user_id=asking_user_id,
            ),
            description=f"save question for {project_id}",
        )
        return saved.unwrap()

    async def list_questions(self, project_id: str) -> List[Question]:
        result = await self._executor.execute(
            lambda: self._store.list_questions(project_id),
            description=f"list questions for {project_id}",
        )
        return result.unwrap()

    async def _generate(self, prompt: str) -> str:
        if self._llm is None or not self._llm.is_available:
            raise GenerationError("Language model is not available")
        try:
            text = await asyncio.to_thread(
                self._llm.generate,
                prompt,
                system=ANSWER_SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.error("Answer generation failed: %s", e)
            raise GenerationError(f"Answer generation failed: {e}") from e
        if not isinstance(text, str) or not text.strip():
            raise GenerationError("Language model returned an empty answer")
        return text.strip()
