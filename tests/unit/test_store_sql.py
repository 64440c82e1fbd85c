"""Tests for the SQLite fallback vector store."""
import numpy as np
import pytest

from app.rag.embedder import fallback_embedding
from app.rag.store_base import ProbeableStore, VectorStore, cosine_similarity
from app.rag.store_sql import SQLiteStore


X = [1.0, 0.0, 0.0]
Y = [0.0, 1.0, 0.0]
XY = [1.0, 1.0, 0.0]


@pytest.fixture
async def seeded(sqlite_store, make_chunk):
    """Two owners, two documents for bot1."""
    await sqlite_store.upsert(
        "bot1",
        [
            make_chunk("bot1", "doc_a", 0, "about x", X),
            make_chunk("bot1", "doc_a", 1, "about x and y", XY),
            make_chunk("bot1", "doc_b", 0, "about y", Y),
        ],
    )
    await sqlite_store.upsert("bot2", [make_chunk("bot2", "doc_c", 0, "other owner", X)])
    return sqlite_store


class TestCosineSimilarity:

    def test_scores_rows_against_query(self):
        scores = cosine_similarity(np.array([X, Y, XY]), np.array(X))

        assert scores[0] == pytest.approx(1.0)
        assert scores[1] == pytest.approx(0.0)
        assert scores[2] == pytest.approx(1 / np.sqrt(2))

    def test_zero_norm_scores_zero(self):
        scores = cosine_similarity(np.array([[0.0, 0.0, 0.0], X]), np.array(X))
        assert list(scores) == [0.0, 1.0]

        scores = cosine_similarity(np.array([X]), np.zeros(3))
        assert list(scores) == [0.0]


class TestSQLiteStore:

    def test_satisfies_store_contract(self, sqlite_store):
        assert isinstance(sqlite_store, VectorStore)
        assert not isinstance(sqlite_store, ProbeableStore)

    async def test_search_ranks_by_cosine(self, seeded):
        matches = await seeded.search("bot1", X, limit=5, score_threshold=0.0)

        assert [m.id for m in matches] == ["doc_a_chunk_0", "doc_a_chunk_1", "doc_b_chunk_0"]
        assert matches[0].score == pytest.approx(1.0)
        assert matches[1].score == pytest.approx(0.7071, abs=1e-4)
        assert matches[0].metadata["chatbot_id"] == "bot1"
        assert matches[0].metadata["document_id"] == "doc_a"

    async def test_threshold_filters_results(self, seeded):
        matches = await seeded.search("bot1", X, limit=5, score_threshold=0.5)

        assert [m.id for m in matches] == ["doc_a_chunk_0", "doc_a_chunk_1"]
        assert all(m.score >= 0.5 for m in matches)

    async def test_limit_caps_results(self, seeded):
        matches = await seeded.search("bot1", X, limit=1, score_threshold=0.0)

        assert len(matches) == 1
        assert matches[0].id == "doc_a_chunk_0"

    async def test_owners_are_isolated(self, seeded):
        matches = await seeded.search("bot2", X, limit=5, score_threshold=0.0)

        assert [m.id for m in matches] == ["doc_c_chunk_0"]
        assert await seeded.search("bot3", X, limit=5, score_threshold=0.0) == []

    async def test_ties_keep_insertion_order(self, sqlite_store, make_chunk):
        await sqlite_store.upsert(
            "bot1",
            [make_chunk("bot1", "doc", i, f"same {i}", X) for i in range(4)],
        )

        matches = await sqlite_store.search("bot1", X, limit=4, score_threshold=0.0)

        assert [m.chunk_index for m in matches] == [0, 1, 2, 3]

    async def test_reupsert_replaces_chunk(self, seeded, make_chunk):
        await seeded.upsert("bot1", [make_chunk("bot1", "doc_a", 0, "rewritten", Y)])

        stats = await seeded.stats("bot1")
        matches = await seeded.search("bot1", Y, limit=5, score_threshold=0.9)

        assert stats.chunk_count == 3
        assert [m.id for m in matches] == ["doc_b_chunk_0", "doc_a_chunk_0"]
        assert matches[1].text == "rewritten"

    async def test_mismatched_dimension_rows_are_skipped(self, seeded):
        assert await seeded.search("bot1", [1.0, 0.0], limit=5, score_threshold=0.0) == []

    async def test_distinct_texts_fall_below_high_threshold(self, sqlite_store, make_chunk):
        texts = ["apples grow on trees", "quarterly revenue report", "install the cli tool"]
        await sqlite_store.upsert(
            "bot1",
            [
                make_chunk("bot1", "doc", i, text, fallback_embedding(text, 768))
                for i, text in enumerate(texts)
            ],
        )

        query = fallback_embedding("weather forecast tomorrow", 768)
        assert await sqlite_store.search("bot1", query, limit=5, score_threshold=0.99) == []

    async def test_delete_document(self, seeded):
        await seeded.delete_document("bot1", "doc_a")

        matches = await seeded.search("bot1", X, limit=5, score_threshold=0.0)
        assert [m.document_id for m in matches] == ["doc_b"]

        stats = await seeded.stats("bot2")
        assert stats.chunk_count == 1

    async def test_delete_namespace(self, seeded):
        await seeded.delete_namespace("bot1")

        assert (await seeded.stats("bot1")).chunk_count == 0
        assert (await seeded.stats("bot2")).chunk_count == 1

    async def test_deletes_are_idempotent(self, seeded):
        await seeded.delete_document("bot1", "missing")
        await seeded.delete_namespace("nobody")
        await seeded.delete_namespace("nobody")

        assert (await seeded.stats("bot1")).chunk_count == 3

    async def test_stats_counts_documents_and_chunks(self, seeded):
        stats = await seeded.stats("bot1")

        assert stats.document_count == 2
        assert stats.chunk_count == 3
        assert stats.backend == "sqlite"

    async def test_data_survives_new_store_instance(self, seeded, db_path):
        reopened = SQLiteStore(db_path)

        assert (await reopened.stats("bot1")).chunk_count == 3

    async def test_score_equal_to_threshold_is_kept(self, seeded):
        matches = await seeded.search("bot1", Y, limit=5, score_threshold=0.0)

        # doc_a_chunk_0 is orthogonal to Y and scores exactly 0.0
        assert "doc_a_chunk_0" in [m.id for m in matches]
        assert len(matches) == 3
