"""
Document Ingestion Service

Drives one file through the four sequential stages:

    uploading (10–30%)  →  extracting (40–60%)  →  parsing (70–80%)
        →  storing (85–90%)  →  complete (100%) | error

  1. Upload the raw file                      (DocumentUploader)
  2. Extract plain text                       (TextExtractor)
  3. Segment into paragraphs and sentences    (processing.segmentation)
  4. Create the document record, then persist paragraphs + sentences
                                              (DocumentStore + storage_mapper)

Failure policy:
  - Fail fast: the first failing stage ends the run; later stages never run.
  - Every failure emits exactly one `error` progress event and returns
    ProcessingResult(success=False); collaborator exceptions never escape.
  - No rollback: an uploaded file or document record left behind by a later
    failure stays where it is.
  - run_with_retry() re-runs the whole pipeline from `uploading`, with
    exponential back-off between attempts. Individual stages are never retried.

Progress events go to a caller-supplied sink, synchronously, at every stage
transition. The sink must not raise; exceptions from it are not caught.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import UUID

from docingest.processing.extractor import TextExtractor
from docingest.processing.segmentation import segment_document
from docingest.schemas.documents import DocumentMetadata, ProcessingProgress, ProcessingStage
from docingest.services.collaborators import DocumentStore, DocumentUploader, IncomingFile
from docingest.services.storage_mapper import persist_parsed_document

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProcessingProgress], None]

# ---------------------------------------------------------------------------
# Retry configuration
# ---------------------------------------------------------------------------

MAX_RETRIES      = 3
RETRY_BASE_DELAY = 1.0   # seconds: doubles after every failed attempt


def retry_delay(failed_attempt: int) -> float:
    """Back-off after the given (1-based) failed attempt: 1s, 2s, 4s, …"""
    return RETRY_BASE_DELAY * 2 ** (failed_attempt - 1)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ProcessingResult:
    """
    Outcome of one pipeline run (or one retried submission).

    document / paragraphs / sentences are the persisted rows on success.
    failed_stage tells "upload kept failing" apart from "storage kept failing".
    """
    success:      bool
    document:     Any = None
    paragraphs:   list[Any] = field(default_factory=list)
    sentences:    list[Any] = field(default_factory=list)
    error:        str | None = None
    failed_stage: ProcessingStage | None = None
    attempts:     int = 1


def _error_message(exc: BaseException, fallback: str) -> str:
    return str(exc) or fallback


class _StageFailure(Exception):
    """Internal: carries the failing stage and message out of _run_stages()."""

    def __init__(self, stage: ProcessingStage, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class DocumentIngestionService:
    """
    Stateless service object; all collaborators are injected
    (testable, no hidden globals).
    """

    def __init__(
        self,
        uploader:  DocumentUploader,
        extractor: TextExtractor,
        store:     DocumentStore,
    ) -> None:
        self._uploader  = uploader
        self._extractor = extractor
        self._store     = store

    # ------------------------------------------------------------------
    # Single run
    # ------------------------------------------------------------------

    async def run_pipeline(
        self,
        file:        IncomingFile,
        project_id:  UUID,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessingResult:
        """Run upload → extract → parse → store once. Never raises for stage failures."""

        def emit(stage: ProcessingStage, progress: int, message: str, error: str | None = None) -> None:
            if on_progress is not None:
                on_progress(ProcessingProgress(stage=stage, progress=progress, message=message, error=error))

        logger.info(
            "Pipeline start | file=%s size=%d project=%s",
            file.filename, file.size, project_id,
        )

        try:
            result = await self._run_stages(file, project_id, emit)
        except _StageFailure as failure:
            logger.warning(
                "Pipeline failed | file=%s stage=%s error=%s",
                file.filename, failure.stage.value, failure.message,
            )
            emit(
                ProcessingStage.ERROR, 0,
                f"{failure.stage.value.capitalize()} failed",
                error=failure.message,
            )
            return ProcessingResult(success=False, error=failure.message, failed_stage=failure.stage)

        emit(ProcessingStage.COMPLETE, 100, "Document processing complete!")
        logger.info(
            "Pipeline complete | file=%s doc=%s paragraphs=%d sentences=%d",
            file.filename, getattr(result.document, "id", None),
            len(result.paragraphs), len(result.sentences),
        )
        return result

    async def _run_stages(self, file: IncomingFile, project_id: UUID, emit) -> ProcessingResult:
        # ---- Stage 1: Upload -------------------------------------------
        stage = ProcessingStage.UPLOADING
        emit(stage, 10, "Uploading document to storage...")
        try:
            upload = await self._uploader.upload(file, project_id)
        except Exception as exc:
            raise _StageFailure(stage, _error_message(exc, "Upload failed")) from exc
        if upload is None or not upload.file_url:
            raise _StageFailure(stage, "Upload failed")
        emit(stage, 30, "Upload complete")

        # ---- Stage 2: Extract ------------------------------------------
        stage = ProcessingStage.EXTRACTING
        emit(stage, 40, "Extracting text from document...")
        try:
            extraction = await self._extractor.extract(file)
        except Exception as exc:
            raise _StageFailure(stage, _error_message(exc, "Text extraction failed")) from exc
        if extraction is None or not extraction.text:
            raise _StageFailure(stage, "Text extraction failed")
        emit(stage, 60, f"Text extracted using {extraction.method}")

        # ---- Stage 3: Parse --------------------------------------------
        stage = ProcessingStage.PARSING
        emit(stage, 70, "Parsing document structure...")
        try:
            parsed = segment_document(extraction.text)
        except Exception as exc:
            raise _StageFailure(stage, _error_message(exc, "Parsing failed")) from exc
        emit(
            stage, 80,
            f"Parsed {parsed.total_paragraphs} paragraphs, {parsed.total_sentences} sentences",
        )

        # ---- Stage 4a: Document record ---------------------------------
        stage = ProcessingStage.STORING
        emit(stage, 85, "Creating document record...")
        try:
            metadata = DocumentMetadata(
                title=file.filename,
                project_id=project_id,
                file_type=file.extension,
                file_size=file.size,
            )
            document = await self._store.create_document_record(metadata, upload.file_url, extraction.text)
        except Exception as exc:
            raise _StageFailure(stage, _error_message(exc, "Failed to create document record")) from exc
        if document is None:
            raise _StageFailure(stage, "Failed to create document record")

        # ---- Stage 4b: Paragraphs + sentences --------------------------
        emit(stage, 90, "Storing paragraphs and sentences...")
        logger.debug(
            "Storing parsed structure | doc=%s paragraphs=%d sentences=%d",
            document.id, parsed.total_paragraphs, parsed.total_sentences,
        )
        try:
            stored = await persist_parsed_document(self._store, document.id, parsed)
        except Exception as exc:
            raise _StageFailure(stage, _error_message(exc, "Failed to store document structure")) from exc

        return ProcessingResult(
            success=True,
            document=document,
            paragraphs=stored.paragraphs,
            sentences=stored.sentences,
        )

    # ------------------------------------------------------------------
    # Retried run
    # ------------------------------------------------------------------

    async def run_with_retry(
        self,
        file:        IncomingFile,
        project_id:  UUID,
        on_progress: ProgressCallback | None = None,
        max_retries: int = MAX_RETRIES,
    ) -> ProcessingResult:
        """
        Re-run the entire pipeline up to `max_retries` times.

        Before attempt n > 1: announce the retry, then wait retry_delay(n - 1).
        The wait blocks this submission only; nothing else runs for this file.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        last: ProcessingResult | None = None

        for attempt in range(1, max_retries + 1):
            if attempt > 1:
                if on_progress is not None:
                    on_progress(ProcessingProgress(
                        stage=ProcessingStage.UPLOADING,
                        progress=0,
                        message=f"Retry attempt {attempt} of {max_retries}...",
                    ))
                delay = retry_delay(attempt - 1)
                logger.info(
                    "Retrying pipeline | file=%s attempt=%d/%d delay=%.1fs last_error=%s",
                    file.filename, attempt, max_retries, delay, last.error if last else None,
                )
                await asyncio.sleep(delay)

            result = await self.run_pipeline(file, project_id, on_progress)
            result.attempts = attempt

            if result.success:
                return result

            last = result

        logger.error(
            "Pipeline gave up | file=%s attempts=%d last_error=%s",
            file.filename, max_retries, last.error,
        )
        return ProcessingResult(
            success=False,
            error=f"Failed after {max_retries} attempts. Last error: {last.error}",
            failed_stage=last.failed_stage,
            attempts=max_retries,
        )
