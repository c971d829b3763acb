from typing import Any, Dict, List

from urban_rag.embeddings.embedder import Embedder
from urban_rag.errors import ErrorKind
from urban_rag.llm.llm_client import LLMClient
from urban_rag.pipeline.result import Result
from urban_rag.utils.logger import get_logger
from urban_rag.vectorstore.vector_index import VectorIndex, VectorMatch

logger = get_logger("qa")

SYSTEM_PROMPT = (
  "You answer questions about Italian regional and national regulations. "
  "Use only the provided excerpts, cite the document titles you rely on, "
  "and say so plainly when the excerpts do not contain the answer. "
  "Answer in the language of the question."
)


def build_context(matches: List[VectorMatch]) -> str:
  """Numbered excerpts with their title and url"""
  parts = []
  for n, match in enumerate(matches, 1):
    meta = match.metadata
    parts.append(
      f"[{n}] {meta.get('title', 'Untitled')} ({meta.get('url', '')})\n{meta.get('text', '')}"
    )
  return "\n\n".join(parts)


def unique_sources(matches: List[VectorMatch]) -> List[Dict[str, Any]]:
  """One entry per document, best score first"""
  sources = {}
  for match in matches:
    doc_id = match.metadata.get('documentId')
    if doc_id not in sources:
      sources[doc_id] = {
        "documentId": doc_id,
        "title": match.metadata.get('title'),
        "url": match.metadata.get('url'),
        "score": round(match.score, 4),
      }
  return list(sources.values())


class QuestionAnswerer:
  """Retrieve the closest chunks and let the LLM answer from them"""

  def __init__(self, embedder: Embedder, index: VectorIndex, llm: LLMClient,
               top_k: int = 5, score_threshold: float = 0.7):
    self.embedder = embedder
    self.index = index
    self.llm = llm
    self.top_k = top_k
    self.score_threshold = score_threshold

  def retrieve(self, question: str) -> List[VectorMatch]:
    vector = self.embedder.embed_text(question)
    return self.index.query(vector, top_k=self.top_k, score_threshold=self.score_threshold)

  def ask(self, question: str) -> Result[Dict[str, Any]]:
    question = (question or "").strip()
    if not question:
      return Result.fail(ErrorKind.VALIDATION_ERROR, "Question is required")

    try:
      matches = self.retrieve(question)
    except Exception as e:
      logger.error(f"✗ retrieval failed: {e}")
      return Result.fail(ErrorKind.EXTERNAL_CALL_FAILURE, f"Retrieval failed: {e}")

    logger.info(f"Found {len(matches)} relevant chunks")
    context = build_context(matches)
    if context:
      prompt = f"Excerpts:\n{context}\n\nQuestion: {question}"
    else:
      prompt = f"No excerpts were found in the knowledge base.\n\nQuestion: {question}"

    try:
      answer = self.llm.generate(prompt, system=SYSTEM_PROMPT)
    except Exception as e:
      logger.error(f"✗ answer generation failed: {e}")
      return Result.fail(ErrorKind.EXTERNAL_CALL_FAILURE, f"Answer generation failed: {e}")

    sources = unique_sources(matches)
    return Result.ok({
      "answer": answer,
      "sources": sources,
      "sourcesFound": len(sources),
      "knowledgeBaseUsed": bool(matches),
    })
