"""Tests for the token-window chunker."""

import pytest

from qmd.chunkers import TokenChunker, count_tokens


def words(count: int, start: int = 0) -> list[str]:
    return [f"w{i}" for i in range(start, start + count)]


class TestCountTokens:
    def test_words_and_punctuation(self):
        assert count_tokens("Hello, world!") == 4

    def test_empty(self):
        assert count_tokens("") == 0
        assert count_tokens("   \n\n ") == 0


class TestTokenChunker:
    def test_short_text_is_one_chunk(self):
        text = "A short document.\n\nWith two paragraphs."
        chunks = TokenChunker().chunk(text)

        assert len(chunks) == 1
        assert chunks[0].sequence == 0
        assert chunks[0].position == 0
        assert chunks[0].text == text
        assert chunks[0].token_count == count_tokens(text)

    def test_empty_text_is_one_chunk(self):
        chunks = TokenChunker().chunk("")
        assert [(c.sequence, c.position, c.text) for c in chunks] == [(0, 0, "")]

    def test_default_windows_and_overlap(self):
        text = " ".join(words(2000))
        chunks = TokenChunker().chunk(text)

        assert [c.sequence for c in chunks] == [0, 1, 2]
        assert [c.token_count for c in chunks] == [800, 800, 640]
        assert chunks[1].text.startswith("w680 ")
        assert chunks[2].text.startswith("w1360 ")
        assert chunks[2].text.endswith("w1999")

    def test_consecutive_chunks_share_overlap_tokens(self):
        text = " ".join(words(3000))
        chunks = TokenChunker(chunk_size=800, overlap=0.15).chunk(text)

        for current, following in zip(chunks, chunks[1:]):
            shared = text[following.position : current.position + len(current.text)]
            assert count_tokens(shared) == 120

    def test_chunks_cover_text_without_gaps(self):
        text = "\n".join(" ".join(words(37, start=i * 37)) + "." for i in range(60))
        chunks = TokenChunker(chunk_size=100, overlap=0.2).chunk(text)

        assert chunks[0].position == 0
        assert chunks[-1].position + len(chunks[-1].text) == len(text)
        for chunk in chunks:
            assert text[chunk.position : chunk.position + len(chunk.text)] == chunk.text
        for current, following in zip(chunks, chunks[1:]):
            assert following.position > current.position
            assert following.position <= current.position + len(current.text)

    def test_prefers_paragraph_break_in_overlap_region(self):
        text = " ".join(words(750)) + "\n\n" + " ".join(words(1250, start=750))
        chunks = TokenChunker().chunk(text)

        assert chunks[0].token_count == 750
        assert chunks[0].text.rstrip().endswith("w749")
        assert chunks[1].position == text.index(" w630 ") + 1

    def test_ignores_paragraph_break_outside_overlap_region(self):
        text = " ".join(words(300)) + "\n\n" + " ".join(words(1700, start=300))
        chunks = TokenChunker().chunk(text)

        assert chunks[0].token_count == 800

    def test_deterministic(self):
        text = "\n\n".join(" ".join(words(90, start=i * 90)) for i in range(40))
        chunker = TokenChunker(chunk_size=200, overlap=0.15)

        first = chunker.chunk(text)
        second = TokenChunker(chunk_size=200, overlap=0.15).chunk(text)

        assert first == second
        assert [c.sequence for c in first] == list(range(len(first)))

    def test_zero_overlap(self):
        text = " ".join(words(25))
        chunks = TokenChunker(chunk_size=10, overlap=0).chunk(text)

        assert [c.token_count for c in chunks] == [10, 10, 5]
        assert "".join(c.text for c in chunks) == text

    @pytest.mark.parametrize("size, overlap", [(0, 0.1), (100, 1.0), (100, -0.1)])
    def test_rejects_bad_parameters(self, size, overlap):
        with pytest.raises(ValueError):
            TokenChunker(chunk_size=size, overlap=overlap)
