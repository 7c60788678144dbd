"""Tests for EmbeddingService."""

import logging
import math

import numpy as np
import pytest

from dionysus.common.embedding_service import EmbeddingService


class TestCosineSimilarity:
    def test_identical(self):
        assert EmbeddingService.cosine_similarity([0.3, 0.4], [0.3, 0.4]) == pytest.approx(1.0)

    def test_not_assumed_normalized(self):
        assert EmbeddingService.cosine_similarity([2.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert EmbeddingService.cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_clamped_to_zero(self):
        assert EmbeddingService.cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == 0.0

    def test_zero_vector(self):
        assert EmbeddingService.cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_raw_value_not_rescaled(self):
        other = [0.91, math.sqrt(1 - 0.91 ** 2)]
        assert EmbeddingService.cosine_similarity([1.0, 0.0], other) == pytest.approx(0.91)

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError, match="mismatch"):
            EmbeddingService.cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestBatchCosineSimilarity:
    def test_matches_pairwise(self):
        query = [1.0, 2.0, 0.5]
        vectors = [[1.0, 0.0, 0.0], [0.0, 0.0, 0.0], [-1.0, -2.0, -0.5], [2.0, 4.0, 1.0]]

        scores = EmbeddingService.batch_cosine_similarity(query, vectors)

        expected = [EmbeddingService.cosine_similarity(query, v) for v in vectors]
        assert scores == pytest.approx(expected)
        assert scores[1] == 0.0
        assert scores[2] == 0.0
        assert scores[3] == pytest.approx(1.0)

    def test_empty(self):
        assert EmbeddingService.batch_cosine_similarity([1.0], []) == []

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            EmbeddingService.batch_cosine_similarity([1.0, 0.0], [[1.0, 0.0], [1.0]])


class TestEmbed:
    def test_custom_embedder(self):
        service = EmbeddingService(embedder=lambda texts: np.array([[float(len(t)), 1.0] for t in texts]))

        assert service.is_available
        assert service.embed(["ab", "abcd"]) == [[2.0, 1.0], [4.0, 1.0]]
        assert service.embed([]) == []
        assert service.embed_single("abc") == [3.0, 1.0]

    def test_embed_single_rejects_empty(self, unit_embedding):
        with pytest.raises(ValueError):
            unit_embedding.embed_single("")

    def test_unsupported_mode_unavailable(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dionysus.common.embedding_service"):
            service = EmbeddingService(mode="unknown-mode")

        assert not service.is_available
        assert "Unsupported" in caplog.text
        with pytest.raises(RuntimeError, match="not initialized"):
            service.embed(["x"])

    def test_google_mode_without_key(self, caplog):
        with caplog.at_level(logging.INFO, logger="dionysus.common.embedding_service"):
            service = EmbeddingService(mode="google")

        assert not service.is_available
        assert "API key not provided" in caplog.text
