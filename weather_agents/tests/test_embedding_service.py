"""Tests for cosine similarity and the embedding service wrapper."""

import math
import pytest


class TestCosineSimilarity:
    def test_identical_vectors(self):
        from weather_agents.common.embedding_service import cosine_similarity
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        from weather_agents.common.embedding_service import cosine_similarity
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        from weather_agents.common.embedding_service import cosine_similarity
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self):
        from weather_agents.common.embedding_service import cosine_similarity
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_result_stays_in_bounds(self):
        from weather_agents.common.embedding_service import cosine_similarity
        v = [1e-8, 3e8, 0.1]
        assert -1.0 <= cosine_similarity(v, v) <= 1.0

    def test_dimension_mismatch_raises(self):
        from weather_agents.common.embedding_service import cosine_similarity
        with pytest.raises(ValueError, match="dimension"):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_scale_invariant(self):
        from weather_agents.common.embedding_service import cosine_similarity
        a = cosine_similarity([1.0, 2.0], [2.0, 1.0])
        b = cosine_similarity([10.0, 20.0], [2.0, 1.0])
        assert a == pytest.approx(b)
        assert a == pytest.approx(4 / 5)


class TestEmbeddingService:
    def test_backend_is_lazy(self):
        from weather_agents.common.embedding_service import EmbeddingService
        service = EmbeddingService(mode="femb")
        assert service._backend is None
        assert service.mode == "femb"

    def test_empty_text_raises(self):
        from weather_agents.common.embedding_service import EmbeddingService
        with pytest.raises(ValueError, match="empty"):
            EmbeddingService().embed_single("")

    def test_openai_mode_requires_key(self):
        from weather_agents.common.embedding_service import EmbeddingService
        with pytest.raises(RuntimeError, match="API key"):
            EmbeddingService(mode="openai").embed_single("rain")

    def test_unsupported_mode(self):
        from weather_agents.common.embedding_service import EmbeddingService
        with pytest.raises(RuntimeError, match="Unsupported"):
            EmbeddingService(mode="nope").embed_single("rain")

    @pytest.mark.asyncio
    async def test_embed_uses_backend(self):
        from weather_agents.common.embedding_service import EmbeddingService

        class FakeBackend:
            def embed(self, texts):
                return [[float(len(t)), 1.0] for t in texts]

        service = EmbeddingService(mode="femb")
        service._backend = FakeBackend()

        vector = await service.embed("rain")
        assert vector == [4.0, 1.0]
        assert all(not math.isnan(x) for x in vector)
