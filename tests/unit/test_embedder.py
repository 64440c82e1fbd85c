"""Tests for provider embeddings and the deterministic fallback."""
import asyncio

import httpx
import numpy as np
import pytest

from app.llm_client import OllamaClient
from app.rag.embedder import Embedder, fallback_embedding, token_hash


class FakeProvider:
    """Stand-in for OllamaClient returning canned responses."""

    configured = True

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embeddings(self, prompt, model=None):
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if callable(self.response):
                return self.response(prompt)
            return self.response
        finally:
            self.in_flight -= 1


class TestTokenHash:

    def test_known_values(self):
        assert token_hash("a") == 97
        assert token_hash("ab") == 3105
        assert token_hash("hello") == 99162322

    def test_wraps_to_signed_32_bit(self):
        assert token_hash("polygenelubricants") == -(2 ** 31)

    def test_lone_surrogate_hashes_as_code_unit(self):
        assert token_hash("\ud800") == 0xD800


class TestFallbackEmbedding:

    def test_single_token_lands_in_expected_bucket(self):
        vector = fallback_embedding("hello", 768)

        assert len(vector) == 768
        assert vector[466] == pytest.approx(1.0)
        assert sum(1 for v in vector if v != 0.0) == 1

    def test_min_int_hash_is_folded_into_range(self):
        vector = fallback_embedding("polygenelubricants", 768)

        assert vector[512] == pytest.approx(1.0)

    def test_lowercases_tokens(self):
        assert fallback_embedding("Hello WORLD", 768) == fallback_embedding("hello world", 768)

    def test_is_unit_norm(self):
        vector = fallback_embedding("the quick brown fox jumps over the lazy dog", 768)

        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_repeated_tokens_accumulate(self):
        vector = np.array(fallback_embedding("hello hello world", 768))
        world = abs(token_hash("world")) % 768

        assert vector[466] == pytest.approx(2 / np.sqrt(5))
        assert vector[world] == pytest.approx(1 / np.sqrt(5))

    def test_empty_text_gives_zero_vector(self):
        vector = fallback_embedding("   ", 768)

        assert len(vector) == 768
        assert not any(vector)

    def test_is_deterministic(self):
        text = "Hybrid retrieval with sticky failover"
        assert fallback_embedding(text, 768) == fallback_embedding(text, 768)


class TestEmbedder:

    async def test_provider_vector_is_used(self):
        provider = FakeProvider(response={"embedding": [0.5] * 768})
        embedder = Embedder(client=provider, dimension=768)

        vector = await embedder.embed("hello")

        assert vector == [0.5] * 768
        assert embedder.stats == {"provider": 1, "fallback": 0}

    async def test_dimension_mismatch_falls_back(self):
        provider = FakeProvider(response={"embedding": [0.5] * 384})
        embedder = Embedder(client=provider, dimension=768)

        vector = await embedder.embed("hello")

        assert vector == fallback_embedding("hello", 768)
        assert embedder.stats["fallback"] == 1

    async def test_empty_provider_response_falls_back(self):
        provider = FakeProvider(response={"embedding": []})
        embedder = Embedder(client=provider, dimension=768)

        assert await embedder.embed("hello") == fallback_embedding("hello", 768)

    async def test_provider_error_falls_back(self):
        provider = FakeProvider(error=httpx.ConnectError("connection refused"))
        embedder = Embedder(client=provider, dimension=768)

        vector = await embedder.embed("hello world")

        assert vector == fallback_embedding("hello world", 768)
        assert len(provider.prompts) == 1

    async def test_unreachable_ollama_falls_back(self):
        client = OllamaClient(base_url="http://127.0.0.1:9", timeout=2.0)
        embedder = Embedder(client=client, dimension=768)

        assert await embedder.embed("hello") == fallback_embedding("hello", 768)

    async def test_unconfigured_provider_is_never_called(self):
        provider = FakeProvider(response={"embedding": [0.5] * 768})
        provider.configured = False
        embedder = Embedder(client=provider, dimension=768)

        vector = await embedder.embed("hello")

        assert vector == fallback_embedding("hello", 768)
        assert provider.prompts == []

    async def test_embed_many_preserves_order(self):
        def by_length(prompt):
            return {"embedding": [float(len(prompt))] * 8}

        provider = FakeProvider(response=by_length, delay=0.01)
        embedder = Embedder(client=provider, dimension=8, concurrency=2)

        vectors = await embedder.embed_many(["a", "bbb", "cc", "dddd"])

        assert [v[0] for v in vectors] == [1.0, 3.0, 2.0, 4.0]

    async def test_embed_many_bounds_concurrency(self):
        provider = FakeProvider(response={"embedding": [1.0] * 8}, delay=0.01)
        embedder = Embedder(client=provider, dimension=8, concurrency=3)

        await embedder.embed_many([f"text {i}" for i in range(10)])

        assert len(provider.prompts) == 10
        assert provider.max_in_flight <= 3

    async def test_embed_many_mixes_provider_and_fallback(self):
        def flaky(prompt):
            return {"embedding": [1.0] * 8} if prompt == "good" else {"embedding": [1.0] * 2}

        provider = FakeProvider(response=flaky)
        embedder = Embedder(client=provider, dimension=8)

        vectors = await embedder.embed_many(["good", "bad"])

        assert vectors[0] == [1.0] * 8
        assert vectors[1] == fallback_embedding("bad", 8)
        assert embedder.stats == {"provider": 1, "fallback": 1}

    async def test_lone_surrogate_text_still_embeds(self):
        embedder = Embedder(use_provider=False, dimension=768)

        vector = await embedder.embed("hello \ud800 world")

        assert len(vector) == 768
        assert vector[0xD800 % 768] > 0
        assert np.linalg.norm(vector) == pytest.approx(1.0)


async def test_list_models_raises_when_unreachable():
    client = OllamaClient(base_url="http://127.0.0.1:9", timeout=2.0)

    with pytest.raises(httpx.HTTPError):
        await client.list_models()
