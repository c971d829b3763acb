"""
Sentence-respecting text chunker.

Content is normalized, split into sentences and greedily packed into chunks
of at most chunk_size characters. Each new chunk starts with the trailing
words of the previous one (the overlap tail) so context survives the cut.
A sentence longer than chunk_size is never split.
"""

import re
from typing import Any, Dict, List, Optional

from urban_rag.models.document import Chunk

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 200
DEFAULT_MIN_CONTENT_LENGTH = 50
DEFAULT_MIN_CHUNK_LENGTH = 50
# Average characters per word, used to turn the overlap into a word count
AVG_WORD_LENGTH = 6

_WHITESPACE = re.compile(r'\s+')
_BLANK_LINES = re.compile(r'\n\s*\n')
_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


def normalize_content(text: Optional[str]) -> str:
  """Collapse blank-line and whitespace runs to single spaces and trim"""
  if not text:
    return ""
  text = _BLANK_LINES.sub('\n', text)
  return _WHITESPACE.sub(' ', text).strip()


def split_sentences(content: str) -> List[str]:
  """Break after '.', '!' or '?' followed by whitespace, delimiter stays with its sentence"""
  return [s for s in _SENTENCE_BOUNDARY.split(content) if s]


def overlap_tail(text: str, overlap: int = DEFAULT_OVERLAP) -> str:
  """Trailing words of text, shorter than overlap characters"""
  if overlap <= 0 or not text:
    return ""
  words = text.split(' ')[-max(overlap // AVG_WORD_LENGTH, 1):]
  while words and len(' '.join(words)) >= overlap:
    words.pop(0)
  return ' '.join(words)


def chunk_content(
    content: str,
    title: str = "",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
    min_chunk_length: int = DEFAULT_MIN_CHUNK_LENGTH) -> List[Chunk]:
  """
  Split content into ordered, overlapping chunks.

  Args:
    content: Raw document text
    title: Document title, copied on every chunk
    chunk_size: Nominal maximum chunk length in characters
    overlap: Upper bound (exclusive) on the tail carried into the next chunk;
      a chunk opened by a sentence of at most chunk_size characters stays
      within chunk_size + overlap
    min_content_length: Below this normalized length nothing is produced
    min_chunk_length: Buffers not longer than this are never emitted

  Returns:
    Chunks with index 0..n-1, or an empty list for too-short content
  """
  if chunk_size <= 0:
    raise ValueError("chunk_size must be positive")

  cleaned = normalize_content(content)
  if len(cleaned) < min_content_length:
    return []

  chunks: List[Chunk] = []
  buffer = ""

  for sentence in split_sentences(cleaned):
    candidate = f"{buffer} {sentence}" if buffer else sentence
    if len(candidate) <= chunk_size:
      buffer = candidate
      continue

    if len(buffer) > min_chunk_length:
      chunks.append(Chunk.build(len(chunks), buffer, title))

    tail = overlap_tail(buffer, overlap)
    buffer = f"{tail} {sentence}" if tail else sentence

  if len(buffer) > min_chunk_length:
    chunks.append(Chunk.build(len(chunks), buffer, title))

  return chunks


class Chunker:
  """Chunker bound to the sizes of the 'chunking' config section"""

  def __init__(
      self,
      chunk_size: int = DEFAULT_CHUNK_SIZE,
      overlap: int = DEFAULT_OVERLAP,
      min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
      min_chunk_length: int = DEFAULT_MIN_CHUNK_LENGTH):
    if overlap >= chunk_size:
      raise ValueError(f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})")
    self.chunk_size = chunk_size
    self.overlap = overlap
    self.min_content_length = min_content_length
    self.min_chunk_length = min_chunk_length

  @classmethod
  def from_config(cls, config: Dict[str, Any]) -> 'Chunker':
    chunking = config.get('chunking', {})
    return cls(
      chunk_size = chunking.get('chunk_size', DEFAULT_CHUNK_SIZE),
      overlap = chunking.get('overlap', DEFAULT_OVERLAP),
      min_content_length = chunking.get('min_content_length', DEFAULT_MIN_CONTENT_LENGTH),
      min_chunk_length = chunking.get('min_chunk_length', DEFAULT_MIN_CHUNK_LENGTH)
    )

  def chunk(self, content: str, title: str = "") -> List[Chunk]:
    return chunk_content(
      content,
      title,
      chunk_size=self.chunk_size,
      overlap=self.overlap,
      min_content_length=self.min_content_length,
      min_chunk_length=self.min_chunk_length
    )
