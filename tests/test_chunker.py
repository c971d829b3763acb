"""Tests for the sentence-respecting chunker."""
import pytest

from urban_rag.processing.chunker import (
  Chunker, chunk_content, normalize_content, overlap_tail, split_sentences
)
from urban_rag.utils.config import CONFIG

from conftest import SENTENCE, make_text


def numbered_sentences(n):
  return " ".join(f"Article {i} sets rule number {i} for the territory." for i in range(n))


class TestNormalize:

  def test_collapses_whitespace_and_blank_lines(self):
    text = "  First line.\n\n\n   Second\tline.  \r\n\n Third.  "
    assert normalize_content(text) == "First line. Second line. Third."

  def test_empty_input(self):
    assert normalize_content("") == ""
    assert normalize_content(None) == ""


class TestSentences:

  def test_delimiter_stays_with_sentence(self):
    assert split_sentences("One. Two! Three? Four") == ["One.", "Two!", "Three?", "Four"]

  def test_no_split_without_whitespace(self):
    assert split_sentences("Art. 3.2 applies.Next one.") == ["Art.", "3.2 applies.Next one."]


class TestOverlapTail:

  def test_tail_is_suffix_within_limit(self):
    text = make_text(10)
    tail = overlap_tail(text, 200)
    assert 0 < len(tail) <= 200
    assert text.endswith(tail)

  def test_word_count_approximation(self):
    text = " ".join(["ab"] * 100)
    # 200 // 6 = 33 words
    assert overlap_tail(text, 200) == " ".join(["ab"] * 33)

  def test_zero_overlap(self):
    assert overlap_tail("some words here", 0) == ""


class TestChunkContent:

  def test_short_content_yields_no_chunks(self):
    assert chunk_content("Too short to be useful.", "t") == []
    assert chunk_content("   \n\n  ", "t") == []

  def test_small_document_single_chunk(self):
    content = make_text(3)
    chunks = chunk_content(content, "Title")
    assert len(chunks) == 1
    assert chunks[0].id == "chunk_0"
    assert chunks[0].index == 0
    assert chunks[0].text == content
    assert chunks[0].length == len(content)
    assert chunks[0].title == "Title"

  def test_twelve_hundred_characters_make_two_chunks(self):
    content = make_text(19)
    assert 1150 < len(content) <= 1200

    chunks = chunk_content(content, "Plan", chunk_size=1000, overlap=200)

    assert len(chunks) == 2
    assert chunks[0].length <= 1000
    tail = overlap_tail(chunks[0].text, 200)
    assert tail
    assert chunks[1].text.startswith(tail)
    assert chunks[0].text.endswith(tail)

  def test_indices_are_contiguous_and_bounded(self):
    chunks = chunk_content(numbered_sentences(200), "t", chunk_size=300, overlap=60)
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert [c.id for c in chunks] == [f"chunk_{i}" for i in range(len(chunks))]
    assert all(0 < c.length <= 300 + 60 for c in chunks)

  def test_tail_plus_full_sentence_stays_within_bound(self):
    # 100-character sentence whose last four words are exactly 29 characters
    sentence = "l" * 70 + " aaaaaaa bbbbbbb ccccccc dddd."
    assert len(sentence) == 100
    chunks = chunk_content(" ".join([sentence] * 3), "t", chunk_size=100, overlap=29)

    assert len(chunks) == 3
    assert chunks[1].text == "bbbbbbb ccccccc dddd. " + sentence
    assert all(c.length <= 100 + 29 for c in chunks)

  def test_removing_overlaps_reconstructs_content(self):
    content = numbered_sentences(60)
    chunks = chunk_content(content, "t", chunk_size=200, overlap=50)
    assert len(chunks) > 3

    pieces = [chunks[0].text]
    for previous, current in zip(chunks, chunks[1:]):
      tail = overlap_tail(previous.text, 50)
      assert current.text.startswith(tail + " ")
      pieces.append(current.text[len(tail) + 1:])

    assert " ".join(pieces) == normalize_content(content)

  def test_long_sentence_is_not_split(self):
    long_sentence = "word " * 300 + "end."
    content = f"Short opening sentence is here. {long_sentence.strip()} Closing sentence follows here."
    chunks = chunk_content(content, "t", chunk_size=500, overlap=100)
    assert any(long_sentence.strip() in c.text for c in chunks)

  def test_deterministic(self):
    content = numbered_sentences(80)
    assert chunk_content(content, "t") == chunk_content(content, "t")


class TestChunker:

  def test_from_config_uses_chunking_section(self):
    chunker = Chunker.from_config(CONFIG)
    assert chunker.chunk_size == CONFIG['chunking']['chunk_size']
    assert chunker.overlap == CONFIG['chunking']['overlap']

  def test_overlap_must_be_smaller_than_chunk_size(self):
    with pytest.raises(ValueError):
      Chunker(chunk_size=100, overlap=100)

  def test_chunk_delegates(self):
    chunker = Chunker(chunk_size=200, overlap=40)
    assert chunker.chunk(numbered_sentences(20), "x") == chunk_content(
      numbered_sentences(20), "x", chunk_size=200, overlap=40
    )
