"""
Ingestion error taxonomy.

Collaborators (uploader, extractor, store) raise these; the stage
orchestrator converts every one of them into a failed ProcessingResult,
so nothing below ever escapes a pipeline run.

    IngestionError
      ├── FileValidationError   rejected before touching storage
      ├── ExtractionError       unreadable / unsupported / empty document
      ├── SegmentationError     unexpected internal segmentation failure
      └── StorageError          persistence collaborator failure
            └── MappingError    persisted rows cannot be matched to parsed ones
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for every error raised inside the ingestion pipeline."""


class FileValidationError(IngestionError):
    pass


class ExtractionError(IngestionError):
    pass


class SegmentationError(IngestionError):
    pass


class StorageError(IngestionError):
    pass


class MappingError(StorageError):
    """Persisted paragraph rows could not be re-associated by position."""
