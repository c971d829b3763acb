from datetime import datetime

import pytest

from urban_rag.errors import ErrorKind
from urban_rag.models.document import (
  Chunk, Document, DocumentStage, DocumentType, can_transition, stage_reached
)
from urban_rag.pipeline.result import BatchRunResult, ItemResult, Result


class TestStages:

  @pytest.mark.parametrize("current,target", [
    ("discovered", "scraped"), ("scraped", "processed"), ("processed", "embedded"),
  ])
  def test_forward_steps_are_allowed(self, current, target):
    assert can_transition(DocumentStage(current), DocumentStage(target))

  @pytest.mark.parametrize("current,target", [
    ("scraped", "embedded"), ("embedded", "processed"), ("processed", "processed"), ("embedded", "embedded"),
  ])
  def test_skips_and_backward_steps_are_rejected(self, current, target):
    assert not can_transition(DocumentStage(current), DocumentStage(target))

  def test_stage_reached(self):
    assert stage_reached(DocumentStage.EMBEDDED, DocumentStage.PROCESSED)
    assert stage_reached(DocumentStage.PROCESSED, DocumentStage.PROCESSED)
    assert not stage_reached(DocumentStage.SCRAPED, DocumentStage.PROCESSED)

  def test_flags_follow_stage(self):
    document = Document(url="u", title="t", content="c")
    assert (document.processed, document.embedded) == (False, False)
    document.stage = DocumentStage.PROCESSED
    assert (document.processed, document.embedded) == (True, False)
    document.stage = DocumentStage.EMBEDDED
    assert (document.processed, document.embedded) == (True, True)


class TestDocument:

  def test_chunk_build(self):
    chunk = Chunk.build(3, "  Some chunk text.  ", "Delibera")
    assert (chunk.id, chunk.index, chunk.text, chunk.length) == ("chunk_3", 3, "Some chunk text.", 16)

  def test_stored_shape(self):
    created = datetime(2024, 5, 1, 10, 30)
    document = Document(
      url="https://example.org/a.pdf", title="Delibera", content="abc", source="gazzetta_regioni",
      document_type=DocumentType.PDF, created_at=created
    )
    data = document.to_dict()
    assert data == {
      "url": "https://example.org/a.pdf",
      "title": "Delibera",
      "content": "abc",
      "source": "gazzetta_regioni",
      "documentType": "pdf",
      "contentLength": 3,
      "stage": "scraped",
      "createdAt": created,
    }
    assert "processed" not in data and "embedded" not in data

  def test_from_stored_document(self):
    data = {
      "_id": "65f0c0ffee00000000000001",
      "url": "https://example.org/a.pdf",
      "title": "Delibera",
      "content": "abc",
      "documentType": "pdf",
      "stage": "embedded",
      "chunks": [{"id": "chunk_0", "index": 0, "text": "abc", "length": 3, "title": "Delibera"}],
      "chunksEmbedded": 1,
    }
    document = Document.from_dict(data)
    assert document.id == "65f0c0ffee00000000000001"
    assert document.embedded
    assert document.chunks[0].text == "abc"
    assert Document.from_dict(document.to_dict()).chunks == document.chunks

  def test_summary(self):
    document = Document(url="u", title="t", content="abcd", id="x")
    assert document.summary() == {
      "documentId": "x", "url": "u", "title": "t", "documentType": "web", "contentLength": 4, "stage": "scraped"
    }


class TestResult:

  def test_success_envelope_merges_payload(self):
    result = Result.ok({"documentId": "x", "chunks": 4}, "Document processed")
    assert result.to_dict() == {
      "success": True, "error": None, "message": "Document processed", "alreadyDone": False,
      "documentId": "x", "chunks": 4,
    }

  def test_document_payload_is_summarized(self):
    document = Document(url="u", title="t", content="abcd", id="x")
    data = Result.ok(document, "exists", already_done=True).to_dict()
    assert data["alreadyDone"] is True
    assert data["documentId"] == "x"
    assert "content" not in data

  def test_failure(self):
    result = Result.fail(ErrorKind.CONTENT_TOO_SHORT, "too short")
    assert not result.success
    assert result.is_terminal
    assert result.to_dict()["error"] == "content_too_short"
    assert not Result.fail(ErrorKind.EXTERNAL_CALL_FAILURE, "timeout").is_terminal

  def test_batch_result_counts(self):
    batch = BatchRunResult(stage="embed")
    batch.add(ItemResult("a", "A", True))
    batch.add(ItemResult("b", "B", False, "not_processed", "must be processed"))
    assert (batch.attempted, batch.succeeded, batch.failed) == (2, 1, 1)
    assert batch.to_dict()["perItemResults"][1]["error"] == "not_processed"
