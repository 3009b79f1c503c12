"""
Batch ingestion — sequential, one file at a time.

Files are processed strictly in order: file i's pipeline finishes (success
or failure) before file i+1 starts. This bounds load on the extraction and
storage backends; callers that want parallelism must build it themselves.

Batches use run_pipeline, not run_with_retry. A failed file is reported,
not retried.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Sequence
from uuid import UUID

from docingest.schemas.documents import BatchStats, ProcessingProgress
from docingest.services.collaborators import IncomingFile
from docingest.services.ingestion import DocumentIngestionService, ProcessingResult

logger = logging.getLogger(__name__)

BatchProgressCallback = Callable[[int, ProcessingProgress], None]


async def run_batch(
    service:     DocumentIngestionService,
    files:       Sequence[IncomingFile],
    project_id:  UUID,
    on_progress: BatchProgressCallback | None = None,
) -> list[ProcessingResult]:
    """
    Return one ProcessingResult per file, in input order.
    A failure for one file never stops the files after it.
    """
    results: list[ProcessingResult] = []

    for index, file in enumerate(files):
        sink = functools.partial(on_progress, index) if on_progress is not None else None

        try:
            result = await service.run_pipeline(file, project_id, sink)
        except Exception as exc:
            logger.exception("Batch item crashed | index=%d file=%s", index, file.filename)
            result = ProcessingResult(success=False, error=str(exc) or "Unknown error occurred")

        logger.info(
            "Batch item done | index=%d/%d file=%s success=%s",
            index + 1, len(files), file.filename, result.success,
        )
        results.append(result)

    return results


def summarize_batch(results: Sequence[ProcessingResult]) -> BatchStats:
    total      = len(results)
    successful = sum(1 for r in results if r.success)

    return BatchStats(
        total=total,
        successful=successful,
        failed=total - successful,
        success_rate=(successful / total) * 100 if total else 0.0,
        total_paragraphs=sum(len(r.paragraphs) for r in results if r.success),
        total_sentences=sum(len(r.sentences) for r in results if r.success),
    )
