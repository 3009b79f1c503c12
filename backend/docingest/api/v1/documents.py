"""
Document Ingestion API Router

POST /projects/{project_id}/documents          single file (optionally retried)
POST /projects/{project_id}/documents/batch    several files, processed sequentially

Both routes run the pipeline inline and return the outcome together with
every progress event emitted during the run, in emission order. Batch
events are grouped per file (the pipeline correlates them by index).

Status codes:
  201  single upload succeeded
  422  single upload failed in some stage (body says which, and why)
  200  batch finished; per-file success is in the body
  400  no usable file in the request
"""

from __future__ import annotations

import logging
from collections import defaultdict
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import JSONResponse

from docingest.core.config import settings
from docingest.processing.extractor import TextExtractionService
from docingest.schemas.documents import (
    BatchItemResponse,
    BatchResponse,
    DocumentSummary,
    ErrorResponse,
    ProcessingProgress,
    ProcessingResultResponse,
    UploadErrors,
)
from docingest.services.batch import run_batch, summarize_batch
from docingest.services.collaborators import IncomingFile
from docingest.services.ingestion import DocumentIngestionService, ProcessingResult
from docingest.services.repository import SqlAlchemyDocumentStore
from docingest.storage.s3 import S3DocumentUploader

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/projects/{project_id}/documents",
    tags=["Document Ingestion"],
)


# ---------------------------------------------------------------------------
# Dependency: overridden in tests
# ---------------------------------------------------------------------------

def get_ingestion_service() -> DocumentIngestionService:
    return DocumentIngestionService(
        uploader=S3DocumentUploader(),
        extractor=TextExtractionService(),
        store=SqlAlchemyDocumentStore(),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _read_upload(upload: UploadFile) -> IncomingFile:
    data = await upload.read()
    return IncomingFile(
        filename=upload.filename or "",
        content=data,
        content_type=upload.content_type,
    )


def _to_response(result: ProcessingResult, events: list[ProcessingProgress]) -> dict:
    return {
        "success":         result.success,
        "document":        DocumentSummary.model_validate(result.document) if result.document is not None else None,
        "paragraph_count": len(result.paragraphs),
        "sentence_count":  len(result.sentences),
        "attempts":        result.attempts,
        "error":           result.error,
        "failed_stage":    result.failed_stage,
        "progress":        events,
    }


# ---------------------------------------------------------------------------
# POST /projects/{project_id}/documents
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ProcessingResultResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest one document",
    responses={
        201: {"model": ProcessingResultResponse, "description": "Document parsed and stored"},
        400: {"model": ErrorResponse, "description": "No file provided"},
        422: {"model": ProcessingResultResponse, "description": "A pipeline stage failed"},
    },
)
async def ingest_document(
    project_id: UUID,
    file:    UploadFile = File(..., description="Document file (txt, md, docx, pdf)"),
    retry:   bool = Query(False, description="Retry the whole pipeline with exponential back-off"),
    service: DocumentIngestionService = Depends(get_ingestion_service),
) -> JSONResponse:
    incoming = await _read_upload(file)
    if not incoming.filename:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=UploadErrors.missing_file().model_dump(mode="json"),
        )

    events: list[ProcessingProgress] = []

    if retry:
        result = await service.run_with_retry(
            incoming, project_id, events.append, max_retries=settings.ingest_max_retries,
        )
    else:
        result = await service.run_pipeline(incoming, project_id, events.append)

    body = ProcessingResultResponse(**_to_response(result, events))
    headers = {}
    if result.success:
        headers["X-Document-ID"] = str(body.document.id)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED if result.success else status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


# ---------------------------------------------------------------------------
# POST /projects/{project_id}/documents/batch
# ---------------------------------------------------------------------------

@router.post(
    "/batch",
    response_model=BatchResponse,
    summary="Ingest several documents sequentially",
    responses={
        200: {"model": BatchResponse},
        400: {"model": ErrorResponse, "description": "No file provided"},
    },
)
async def ingest_batch(
    project_id: UUID,
    files:   list[UploadFile] = File(..., description="Document files, processed in order"),
    service: DocumentIngestionService = Depends(get_ingestion_service),
) -> JSONResponse:
    incoming = [await _read_upload(f) for f in files]
    if not incoming:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=UploadErrors.missing_file().model_dump(mode="json"),
        )

    events: dict[int, list[ProcessingProgress]] = defaultdict(list)

    def on_progress(index: int, event: ProcessingProgress) -> None:
        events[index].append(event)

    results = await run_batch(service, incoming, project_id, on_progress)
    stats = summarize_batch(results)

    logger.info(
        "Batch ingest | project=%s total=%d successful=%d failed=%d",
        project_id, stats.total, stats.successful, stats.failed,
    )

    body = BatchResponse(
        results=[
            BatchItemResponse(
                file_index=i,
                filename=f.filename,
                **_to_response(r, events[i]),
            )
            for i, (f, r) in enumerate(zip(incoming, results))
        ],
        stats=stats,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json"))
