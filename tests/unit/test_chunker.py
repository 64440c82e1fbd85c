"""Tests for the overlapping character chunker."""
import pytest

from app.errors import ValidationError
from app.rag.chunker import TextChunker, chunk


SENTENCE_TEXT = " ".join(
    f"Sentence number {i} talks about retrieval pipelines and chunk overlap."
    for i in range(60)
)


class TestChunkBoundaries:
    """Window sizing and breakpoint selection."""

    def test_short_text_yields_single_chunk(self):
        chunks = TextChunker(chunk_size=1000, chunk_overlap=200).chunk_text("  A short note.  ")

        assert len(chunks) == 1
        assert chunks[0].content == "A short note."
        assert chunks[0].chunk_index == 0

    def test_whitespace_only_text_yields_no_chunks(self):
        assert chunk("   \n\t   ") == []
        assert chunk("") == []

    def test_2500_chars_without_breakpoints_yields_three_chunks(self):
        text = "x" * 2500
        chunks = TextChunker(chunk_size=1000, chunk_overlap=200).chunk_text(text)

        assert len(chunks) == 3
        assert [(c.char_start, c.char_end) for c in chunks] == [
            (0, 1000),
            (800, 1800),
            (1600, 2500),
        ]

    def test_2500_chars_with_spaces_snaps_and_overlaps(self):
        text = "abcd " * 500
        chunks = TextChunker(chunk_size=1000, chunk_overlap=200).chunk_text(text)

        assert len(chunks) == 3
        assert all(len(c.content) >= 1 for c in chunks)
        # Windows end on a space, next window starts 200 raw chars earlier
        assert chunks[0].char_end == 999
        assert chunks[1].char_start == chunks[0].char_end - 200

    def test_period_preferred_over_space(self):
        text = "a" * 700 + ". " + "b " * 400
        chunks = TextChunker(chunk_size=1000, chunk_overlap=200).chunk_text(text)

        assert chunks[0].char_end == 701
        assert chunks[0].content.endswith(".")

    def test_newline_preferred_over_space(self):
        text = "a" * 600 + "\n" + "b " * 300 + "c" * 200
        chunks = TextChunker(chunk_size=1000, chunk_overlap=200).chunk_text(text)

        assert chunks[0].char_end == 601

    def test_breakpoint_in_first_half_is_ignored(self):
        text = "a" * 100 + "." + "c" * 1500
        chunks = TextChunker(chunk_size=1000, chunk_overlap=200).chunk_text(text)

        assert chunks[0].char_end == 1000

    def test_chunk_indices_are_contiguous(self):
        chunks = TextChunker(chunk_size=200, chunk_overlap=50).chunk_text(SENTENCE_TEXT)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))


class TestChunkProperties:
    """Determinism and coverage guarantees."""

    def test_chunking_is_deterministic(self):
        first = chunk(SENTENCE_TEXT, chunk_size=300, overlap=60)
        second = chunk(SENTENCE_TEXT, chunk_size=300, overlap=60)

        assert first == second
        assert len(first) > 1

    def test_raw_spans_cover_whole_text(self):
        chunks = TextChunker(chunk_size=300, chunk_overlap=60).chunk_text(SENTENCE_TEXT)

        assert chunks[0].char_start == 0
        assert chunks[-1].char_end == len(SENTENCE_TEXT)
        for previous, current in zip(chunks, chunks[1:]):
            assert current.char_start > previous.char_start
            assert current.char_start <= previous.char_end

    def test_chunks_are_trimmed_and_non_empty(self):
        for piece in chunk(SENTENCE_TEXT, chunk_size=250, overlap=50):
            assert piece
            assert piece == piece.strip()

    def test_large_overlap_still_terminates_and_covers(self):
        text = "word. " * 200
        chunks = TextChunker(chunk_size=40, chunk_overlap=35).chunk_text(text)

        assert chunks[-1].char_end == len(text)
        starts = [c.char_start for c in chunks]
        assert starts == sorted(set(starts))


class TestChunkerValidation:

    @pytest.mark.parametrize("size,overlap", [(100, 100), (100, 150), (100, -1)])
    def test_invalid_parameters_raise(self, size, overlap):
        with pytest.raises(ValidationError):
            TextChunker(chunk_size=size, chunk_overlap=overlap)

    def test_zero_overlap_is_allowed(self):
        chunks = TextChunker(chunk_size=100, chunk_overlap=0).chunk_text("y" * 250)

        assert [(c.char_start, c.char_end) for c in chunks] == [(0, 100), (100, 200), (200, 250)]

    def test_chunk_stats(self):
        chunker = TextChunker(chunk_size=100, chunk_overlap=0)
        stats = chunker.get_chunk_stats(chunker.chunk_text("y" * 250))

        assert stats["chunk_count"] == 3
        assert stats["max_chunk_size"] == 100
        assert stats["min_chunk_size"] == 50
