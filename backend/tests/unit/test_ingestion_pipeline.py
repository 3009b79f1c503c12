"""
Unit Tests — DocumentIngestionService.run_pipeline
═══════════════════════════════════════════════════
Every branch of the four-stage pipeline.

All tests:
  • Use mock_uploader, mock_extractor, memory_store from conftest.py
  • Collect progress events with progress_events.append as the sink
  • Never touch real PostgreSQL or S3

Coverage targets:
  ✅ Happy path → result rows + exact event sequence
  ✅ Upload failure (exception / empty URL) → no extraction, no store calls
  ✅ Extraction failure (exception / empty text) → no store calls
  ✅ Segmentation failure → parsing stage
  ✅ Document-record failure → storing stage, upload not undone
  ✅ Sentence failure → storing stage, paragraphs not undone
  ✅ Exactly one error event, always last, message "<Stage> failed"
  ✅ Fallback messages when an exception carries no text
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from docingest.core.exceptions import (
    ExtractionError,
    FileValidationError,
    SegmentationError,
    StorageError,
)
from docingest.processing.extractor import ExtractionResult
from docingest.schemas.documents import ProcessingStage
from docingest.services.collaborators import UploadResult


def _stages(events):
    return [(e.stage, e.progress) for e in events]


def _assert_single_trailing_error(events, stage: ProcessingStage, error: str):
    errors = [e for e in events if e.stage == ProcessingStage.ERROR]
    assert len(errors) == 1
    assert events[-1] is errors[0]
    assert errors[0].progress == 0
    assert errors[0].message == f"{stage.value.capitalize()} failed"
    assert errors[0].error == error
    assert not any(e.stage == ProcessingStage.COMPLETE for e in events)


# ─────────────────────────────────────────────────────────────────────────────
# Happy path
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ingestion
class TestPipelineHappyPath:

    async def test_returns_persisted_rows(self, make_service, make_file, project_id, memory_store):
        svc = make_service()

        result = await svc.run_pipeline(make_file("notes.txt"), project_id)

        assert result.success is True
        assert result.error is None
        assert result.failed_stage is None
        assert result.attempts == 1
        assert result.document is memory_store.documents[0]
        assert len(result.paragraphs) == 2
        assert len(result.sentences) == 3

    async def test_document_record_metadata(
        self, make_service, make_file, project_id, memory_store, sample_text
    ):
        svc = make_service()
        file = make_file("Quarterly Notes.MD")

        await svc.run_pipeline(file, project_id)

        (doc,) = memory_store.documents
        assert doc.title == "Quarterly Notes.MD"
        assert doc.project_id == project_id
        assert doc.file_type == "md"
        assert doc.file_size == file.size
        assert doc.content == sample_text
        assert doc.file_url.startswith("https://test-bucket.s3.")

    async def test_event_sequence(self, make_service, make_file, project_id, progress_events):
        svc = make_service()

        await svc.run_pipeline(make_file(), project_id, progress_events.append)

        assert _stages(progress_events) == [
            (ProcessingStage.UPLOADING,  10),
            (ProcessingStage.UPLOADING,  30),
            (ProcessingStage.EXTRACTING, 40),
            (ProcessingStage.EXTRACTING, 60),
            (ProcessingStage.PARSING,    70),
            (ProcessingStage.PARSING,    80),
            (ProcessingStage.STORING,    85),
            (ProcessingStage.STORING,    90),
            (ProcessingStage.COMPLETE,  100),
        ]
        messages = [e.message for e in progress_events]
        assert "Text extracted using direct" in messages
        assert "Parsed 2 paragraphs, 3 sentences" in messages
        assert messages[-1] == "Document processing complete!"
        assert all(e.error is None for e in progress_events)

    async def test_progress_never_decreases(self, make_service, make_file, project_id, progress_events):
        svc = make_service()

        await svc.run_pipeline(make_file(), project_id, progress_events.append)

        values = [e.progress for e in progress_events]
        assert values == sorted(values)

    async def test_extraction_method_is_reported(
        self, make_service, make_file, project_id, mock_extractor, progress_events
    ):
        mock_extractor.extract.return_value = ExtractionResult(text="A PDF line.", method="pypdf")
        svc = make_service()

        await svc.run_pipeline(make_file("scan.pdf"), project_id, progress_events.append)

        assert progress_events[3].message == "Text extracted using pypdf"

    async def test_runs_without_a_sink(self, make_service, make_file, project_id):
        result = await make_service().run_pipeline(make_file(), project_id)
        assert result.success is True

    async def test_collaborators_receive_the_file(
        self, make_service, make_file, project_id, mock_uploader, mock_extractor
    ):
        file = make_file()

        await make_service().run_pipeline(file, project_id)

        mock_uploader.upload.assert_awaited_once_with(file, project_id)
        mock_extractor.extract.assert_awaited_once_with(file)

    async def test_text_without_paragraphs_still_completes(
        self, make_service, make_file, project_id, mock_extractor, memory_store
    ):
        mock_extractor.extract.return_value = ExtractionResult(text="   \n\n   ", method="direct")

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.success is True
        assert result.paragraphs == []
        assert result.sentences == []
        assert len(memory_store.documents) == 1
        assert memory_store.paragraph_calls == []


# ─────────────────────────────────────────────────────────────────────────────
# Upload stage
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ingestion
class TestPipelineUploadFailure:

    async def test_storage_error_stops_pipeline(
        self, make_service, make_file, project_id, mock_uploader, mock_extractor,
        memory_store, progress_events,
    ):
        mock_uploader.upload.side_effect = StorageError("Upload failed (AccessDenied)")

        result = await make_service().run_pipeline(make_file(), project_id, progress_events.append)

        assert result.success is False
        assert result.error == "Upload failed (AccessDenied)"
        assert result.failed_stage == ProcessingStage.UPLOADING
        mock_extractor.extract.assert_not_awaited()
        assert memory_store.documents == []
        assert _stages(progress_events)[0] == (ProcessingStage.UPLOADING, 10)
        _assert_single_trailing_error(progress_events, ProcessingStage.UPLOADING, "Upload failed (AccessDenied)")

    async def test_validation_error_is_an_upload_failure(
        self, make_service, make_file, project_id, mock_uploader
    ):
        mock_uploader.upload.side_effect = FileValidationError("File is empty")

        result = await make_service().run_pipeline(make_file(content=b""), project_id)

        assert result.failed_stage == ProcessingStage.UPLOADING
        assert result.error == "File is empty"

    async def test_exception_without_message_uses_fallback(
        self, make_service, make_file, project_id, mock_uploader
    ):
        mock_uploader.upload.side_effect = RuntimeError()

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.error == "Upload failed"

    async def test_empty_file_url_is_a_failure(
        self, make_service, make_file, project_id, mock_uploader, mock_extractor, progress_events
    ):
        mock_uploader.upload.return_value = UploadResult(file_url="")

        result = await make_service().run_pipeline(make_file(), project_id, progress_events.append)

        assert result.success is False
        assert result.error == "Upload failed"
        mock_extractor.extract.assert_not_awaited()
        _assert_single_trailing_error(progress_events, ProcessingStage.UPLOADING, "Upload failed")


# ─────────────────────────────────────────────────────────────────────────────
# Extraction stage
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ingestion
class TestPipelineExtractionFailure:

    async def test_unsupported_type_never_reaches_store(
        self, make_service, make_file, project_id, mock_extractor, memory_store, progress_events
    ):
        mock_extractor.extract.side_effect = ExtractionError("Unsupported file type: exe")

        result = await make_service().run_pipeline(make_file("tool.exe"), project_id, progress_events.append)

        assert result.success is False
        assert result.failed_stage == ProcessingStage.EXTRACTING
        assert result.error == "Unsupported file type: exe"
        assert memory_store.documents == []
        assert memory_store.paragraph_calls == []
        assert memory_store.sentence_calls == []
        assert _stages(progress_events)[:3] == [
            (ProcessingStage.UPLOADING,  10),
            (ProcessingStage.UPLOADING,  30),
            (ProcessingStage.EXTRACTING, 40),
        ]
        _assert_single_trailing_error(progress_events, ProcessingStage.EXTRACTING, "Unsupported file type: exe")

    async def test_empty_text_is_a_failure(
        self, make_service, make_file, project_id, mock_extractor, memory_store
    ):
        mock_extractor.extract.return_value = ExtractionResult(text="", method="direct")

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.failed_stage == ProcessingStage.EXTRACTING
        assert result.error == "Text extraction failed"
        assert memory_store.documents == []

    async def test_exception_without_message_uses_fallback(
        self, make_service, make_file, project_id, mock_extractor
    ):
        mock_extractor.extract.side_effect = ValueError()

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.error == "Text extraction failed"


# ─────────────────────────────────────────────────────────────────────────────
# Parsing stage
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ingestion
class TestPipelineParsingFailure:

    async def test_segmentation_error(
        self, make_service, make_file, project_id, memory_store, progress_events
    ):
        with patch(
            "docingest.services.ingestion.segment_document",
            side_effect=SegmentationError("bad structure"),
        ):
            result = await make_service().run_pipeline(make_file(), project_id, progress_events.append)

        assert result.failed_stage == ProcessingStage.PARSING
        assert result.error == "bad structure"
        assert memory_store.documents == []
        _assert_single_trailing_error(progress_events, ProcessingStage.PARSING, "bad structure")

    async def test_exception_without_message_uses_fallback(self, make_service, make_file, project_id):
        with patch("docingest.services.ingestion.segment_document", side_effect=RuntimeError()):
            result = await make_service().run_pipeline(make_file(), project_id)

        assert result.error == "Parsing failed"


# ─────────────────────────────────────────────────────────────────────────────
# Storing stage
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ingestion
class TestPipelineStoringFailure:

    async def test_document_record_failure_keeps_upload(
        self, make_service, make_file, project_id, mock_uploader, memory_store, progress_events
    ):
        memory_store.fail_on["document"] = StorageError("Database insert failed: connection reset")

        result = await make_service().run_pipeline(make_file(), project_id, progress_events.append)

        assert result.failed_stage == ProcessingStage.STORING
        assert result.error == "Database insert failed: connection reset"
        mock_uploader.upload.assert_awaited_once()
        assert memory_store.paragraph_calls == []
        assert (ProcessingStage.STORING, 85) in _stages(progress_events)
        assert (ProcessingStage.STORING, 90) not in _stages(progress_events)
        _assert_single_trailing_error(
            progress_events, ProcessingStage.STORING, "Database insert failed: connection reset",
        )

    async def test_document_record_fallback_message(self, make_service, make_file, project_id, memory_store):
        memory_store.fail_on["document"] = RuntimeError()

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.error == "Failed to create document record"

    async def test_store_returning_no_document_is_a_failure(
        self, make_service, make_file, project_id, memory_store
    ):
        memory_store.create_document_record = AsyncMock(return_value=None)

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.failed_stage == ProcessingStage.STORING
        assert result.error == "Failed to create document record"

    async def test_sentence_failure_keeps_document_and_paragraphs(
        self, make_service, make_file, project_id, memory_store, progress_events
    ):
        memory_store.fail_on["sentences"] = StorageError("Failed to store sentences: deadlock")

        result = await make_service().run_pipeline(make_file(), project_id, progress_events.append)

        assert result.success is False
        assert result.failed_stage == ProcessingStage.STORING
        assert result.error == "Failed to store sentences: deadlock"
        assert result.document is None
        assert len(memory_store.documents) == 1
        assert len(memory_store.paragraphs) == 2
        assert (ProcessingStage.STORING, 90) in _stages(progress_events)
        _assert_single_trailing_error(
            progress_events, ProcessingStage.STORING, "Failed to store sentences: deadlock",
        )

    async def test_structure_fallback_message(self, make_service, make_file, project_id, memory_store):
        memory_store.fail_on["paragraphs"] = RuntimeError()

        result = await make_service().run_pipeline(make_file(), project_id)

        assert result.error == "Failed to store document structure"

    async def test_unnamed_file_fails_at_storing(
        self, make_service, make_file, project_id, memory_store
    ):
        # upload + extraction are mocked; the title constraint trips on the record
        result = await make_service().run_pipeline(make_file(filename=""), project_id)

        assert result.success is False
        assert result.failed_stage == ProcessingStage.STORING
        assert memory_store.documents == []
