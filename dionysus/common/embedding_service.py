"""
Embedding Service

Text embeddings for the retrieval index. Uses fastembed for on-device
embedding by default, or the Gemini embedding endpoint when mode="google".
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

logger = logging.getLogger("dionysus.common.embedding_service")

GOOGLE_EMBEDDING_MODEL = "models/text-embedding-004"

Embedder = Callable[[List[str]], Sequence[Sequence[float]]]


class EmbeddingService:
    """
    Embedding service for Dionysus.

    One instance is built at startup and handed to the components that need
    it. A custom ``embedder`` callable may be supplied instead of a mode.
    """

    def __init__(
        self,
        mode: str = "femb",
        model: str = "sentence-transformers/all-MiniLM-L6-v2",
        google_api_key: Optional[str] = None,
        embedder: Optional[Embedder] = None,
    ):
        self._mode = mode
        self._model = model
        self._embedder: Optional[Embedder] = embedder
        if self._embedder is None:
            self._init_embedder(google_api_key)

    def _init_embedder(self, google_api_key: Optional[str]) -> None:
        """Initialize the underlying embedding backend"""
        if self._mode == "femb":
            try:
                from fastembed import TextEmbedding

                backend = TextEmbedding(model_name=self._model)
                self._embedder = lambda texts: [vec.tolist() for vec in backend.embed(texts)]
                logger.info("Initialized embeddings with mode=%s, model=%s", self._mode, self._model)
            except ImportError:
                logger.warning("fastembed package not installed, embeddings unavailable")
            except Exception as e:
                logger.warning("Failed to initialize fastembed model %s: %s", self._model, e)
            return

        if self._mode == "google":
            if not google_api_key:
                logger.info("google API key not provided, embeddings unavailable")
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                model = self._model if self._model.startswith("models/") else GOOGLE_EMBEDDING_MODEL

                def _embed(texts: List[str]) -> List[List[float]]:
                    result = genai.embed_content(model=model, content=texts)
                    return result["embedding"]

                self._embedder = _embed
                logger.info("Initialized embeddings with mode=%s, model=%s", self._mode, model)
            except ImportError:
                logger.warning("google-generativeai package not installed, embeddings unavailable")
            except Exception as e:
                logger.warning("Failed to initialize Gemini embeddings: %s", e)
            return

        logger.warning("Unsupported embedding mode: %s", self._mode)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._embedder is not None

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors
        """
        if not self._embedder:
            raise RuntimeError("Embedding backend not initialized")

        if not texts:
            return []

        embeddings = self._embedder(list(texts))
        if isinstance(embeddings, np.ndarray):
            return embeddings.tolist()
        return [list(map(float, vec)) for vec in embeddings]

    def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        if not text:
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]

    @staticmethod
    def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
        """
        Cosine similarity between two vectors, clamped to [0, 1].

        Vectors are not assumed to be normalized. A zero vector has
        similarity 0 with everything; opposing directions clamp to 0.

        Raises:
            ValueError: on dimension mismatch
        """
        v1 = np.asarray(vec1, dtype=float)
        v2 = np.asarray(vec2, dtype=float)

        if v1.shape != v2.shape:
            raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

        norm = float(np.linalg.norm(v1) * np.linalg.norm(v2))
        if norm == 0.0:
            return 0.0

        similarity = float(np.dot(v1, v2)) / norm
        return max(0.0, min(1.0, similarity))

    @staticmethod
    def batch_cosine_similarity(
        query_vec: Sequence[float],
        vectors: Sequence[Sequence[float]],
    ) -> List[float]:
        """
        Cosine similarity between a query and multiple vectors.

        Raises:
            ValueError: if any vector's dimension differs from the query's
        """
        if not vectors:
            return []

        query = np.asarray(query_vec, dtype=float)
        for vec in vectors:
            if len(vec) != query.shape[0]:
                raise ValueError(f"Vector dimension mismatch: {len(vec)} vs {query.shape[0]}")
        matrix = np.asarray(vectors, dtype=float)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)

        return np.clip(similarities, 0.0, 1.0).tolist()
