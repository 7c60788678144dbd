"""
Retriever - Grounded Answers About Code

Key Components:
- RetrievalIndex: Embeds source files and ranks them by cosine similarity
- QuestionAnswerer: Builds a grounding prompt and records the answer

Pipeline:
1. Index repository files (summary + excerpt + embedding)
2. Embed the question and take the top-k most similar files
3. Generate an answer grounded in those files
4. Persist the question, answer and cited files
"""

from .index import RetrievalIndex
from .orchestrator import QuestionAnswerer

__all__ = [
    "RetrievalIndex",
    "QuestionAnswerer",
]
