"""
Collaborator interfaces for the ingestion pipeline.

The stage orchestrator only speaks these interfaces, so the storage backend,
text extractor and datastore are swappable (and mockable) without touching
pipeline code.

Contract shared by every implementation:
  - Raise on failure (preferably an IngestionError subclass with a
    human-readable message). The orchestrator turns the exception into a
    failed ProcessingResult; it never retries individual calls.
  - Bulk inserts return persisted rows in submission order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence
from uuid import UUID

from docingest.schemas.documents import DocumentMetadata


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IncomingFile:
    """A raw file handed to the pipeline (already fully read into memory)."""
    filename:     str
    content:      bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        """Lowercased extension without the dot ("" when there is none)."""
        parts = self.filename.rsplit(".", 1)
        return parts[-1].lower() if len(parts) == 2 else ""


@dataclass(frozen=True)
class UploadResult:
    file_url:    str
    storage_key: str = ""


# ---------------------------------------------------------------------------
# Upload collaborator
# ---------------------------------------------------------------------------

class DocumentUploader(ABC):

    @abstractmethod
    async def upload(self, file: IncomingFile, project_id: UUID) -> UploadResult:
        """Store the raw file and return where it can be fetched from."""


# ---------------------------------------------------------------------------
# Document-record + persistence collaborator
# ---------------------------------------------------------------------------

class DocumentStore(ABC):
    """
    Datastore surface used by the pipeline.

    Rows are returned as objects exposing at least `id` and `position`
    (ORM instances in production).
    """

    @abstractmethod
    async def create_document_record(
        self,
        metadata:       DocumentMetadata,
        file_url:       str,
        extracted_text: str,
    ) -> Any:
        """Insert the document row; returns it with its id assigned."""

    @abstractmethod
    async def insert_paragraphs(self, records: Sequence[dict]) -> list[Any]:
        """Bulk insert {document_id, content, position} rows."""

    @abstractmethod
    async def insert_sentences(self, records: Sequence[dict]) -> list[Any]:
        """Bulk insert {document_id, paragraph_id, content, position, ...} rows."""
