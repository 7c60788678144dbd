"""
Dionysus Common Module

Shared infrastructure for commit sync, retrieval and jobs.
"""

from .config import DionysusConfig, load_config
from .embedding_service import EmbeddingService
from .errors import (
    DionysusError,
    GenerationError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    SyncError,
    TransientError,
    is_transient,
)
from .llm_client import LLMClient
from .result import Err, Ok, Result
from .retry import RetryExecutor
from .store import Store

__all__ = [
    "DionysusConfig",
    "load_config",
    "EmbeddingService",
    "DionysusError",
    "GenerationError",
    "InvalidInputError",
    "InvalidTransitionError",
    "NotFoundError",
    "SyncError",
    "TransientError",
    "is_transient",
    "LLMClient",
    "Ok",
    "Err",
    "Result",
    "RetryExecutor",
    "Store",
]
