"""
Document Ingestion — Pydantic Schemas

Covers:
  - Document metadata handed to the document-record collaborator
  - Progress events emitted by the stage orchestrator
  - Batch statistics
  - API response bodies for the upload / batch routes
  - Structured error bodies (400, 422, 500)

Design decisions:
  - progress is an integer percentage; the model rejects anything outside 0–100.
  - Stage names are a closed enum so clients can switch on them safely.
  - API responses carry counts, not the full paragraph/sentence payload;
    structure is read back through the datastore, not the upload route.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Allowed file types: enforced before touching S3
# ---------------------------------------------------------------------------

ALLOWED_FILE_TYPES: tuple[str, ...] = ("txt", "md", "docx", "pdf")


# ---------------------------------------------------------------------------
# Pipeline state machine
# ---------------------------------------------------------------------------

class ProcessingStage(str, Enum):
    """
    uploading → extracting → parsing → storing → complete | error
    Forward-only; a retry restarts from uploading in a new run.
    """
    UPLOADING  = "uploading"
    EXTRACTING = "extracting"
    PARSING    = "parsing"
    STORING    = "storing"
    COMPLETE   = "complete"
    ERROR      = "error"


class ProcessingProgress(BaseModel):
    """
    One progress event; delivered synchronously to the caller's sink at
    every stage transition.
    """
    stage:    ProcessingStage
    progress: int = Field(..., ge=0, le=100, description="Percent complete (0–100)")
    message:  str
    error:    str | None = None


# ---------------------------------------------------------------------------
# Document metadata: captured when the document record is created
# ---------------------------------------------------------------------------

class DocumentMetadata(BaseModel):
    title:      str  = Field(..., min_length=1, description="Original file name")
    project_id: UUID
    file_type:  str  = Field(..., description="Lowercased extension: txt | md | docx | pdf")
    file_size:  int  = Field(..., ge=0, description="File size in bytes")


# ---------------------------------------------------------------------------
# Batch statistics
# ---------------------------------------------------------------------------

class BatchStats(BaseModel):
    total:            int
    successful:       int
    failed:           int
    success_rate:     float = Field(..., description="successful / total × 100 (0.0 for an empty batch)")
    total_paragraphs: int
    total_sentences:  int


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------

class DocumentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:         UUID
    project_id: UUID
    title:      str
    file_type:  str
    file_url:   str
    file_size:  int
    created_at: datetime | None = None


class ProcessingResultResponse(BaseModel):
    """Body of POST /projects/{project_id}/documents."""
    success:        bool
    document:       DocumentSummary | None = None
    paragraph_count: int = 0
    sentence_count:  int = 0
    attempts:       int = 1
    error:          str | None = None
    failed_stage:   ProcessingStage | None = None
    progress:       list[ProcessingProgress] = Field(
        default_factory=list,
        description="Every progress event emitted during the run, in order",
    )


class BatchItemResponse(ProcessingResultResponse):
    file_index: int
    filename:   str


class BatchResponse(BaseModel):
    """Body of POST /projects/{project_id}/documents/batch."""
    results: list[BatchItemResponse]
    stats:   BatchStats


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error; may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


class UploadErrors:
    """Factories for the documented error cases (keeps route handlers thin)."""

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="No file was provided in the request.",
            details=[
                ErrorDetail(
                    field="file",
                    message="At least one non-empty multipart file is required.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def validation_error(details: list[ErrorDetail], request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=request_id,
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            details=[],
            request_id=request_id,
        )
