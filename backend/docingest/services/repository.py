"""
SQLAlchemy document store — the document-record and persistence collaborator.

Each method runs in its own transaction (see db/session.py), so a failure in
a later call never un-commits an earlier one.

Bulk inserts use ORM INSERT ... RETURNING with sort_by_parameter_order=True:
SQLAlchemy guarantees the returned rows line up with the submitted parameter
list, even when it batches the statement into several round trips.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Callable, Sequence

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docingest.core.exceptions import StorageError
from docingest.db.session import get_session
from docingest.models.documents import Document, Paragraph, Sentence
from docingest.schemas.documents import DocumentMetadata
from docingest.services.collaborators import DocumentStore

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SqlAlchemyDocumentStore(DocumentStore):
    """
    Stateless store; safe to construct per request.

    session_scope is injectable so tests can hand in a mocked session
    without a running PostgreSQL.
    """

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self._session_scope = session_scope

    async def create_document_record(
        self,
        metadata:       DocumentMetadata,
        file_url:       str,
        extracted_text: str,
    ) -> Document:
        doc = Document(
            project_id=metadata.project_id,
            title=metadata.title,
            file_type=metadata.file_type,
            file_size=metadata.file_size,
            file_url=file_url,
            content=extracted_text,
        )
        try:
            async with self._session_scope() as session:
                session.add(doc)
                await session.flush()        # assigns id, surfaces constraint errors
                await session.refresh(doc)   # server defaults (created_at)
        except SQLAlchemyError as exc:
            logger.exception("Document insert failed | project=%s title=%s", metadata.project_id, metadata.title)
            raise StorageError(f"Database insert failed: {exc}") from exc

        logger.info("Document record created | doc=%s project=%s", doc.id, doc.project_id)
        return doc

    async def insert_paragraphs(self, records: Sequence[dict]) -> list[Paragraph]:
        return await self._bulk_insert(Paragraph, records)

    async def insert_sentences(self, records: Sequence[dict]) -> list[Sentence]:
        return await self._bulk_insert(Sentence, records)

    async def _bulk_insert(self, model, records: Sequence[dict]) -> list:
        if not records:
            return []

        stmt = insert(model).returning(model, sort_by_parameter_order=True)
        try:
            async with self._session_scope() as session:
                result = await session.scalars(stmt, list(records))
                rows = list(result.all())
        except SQLAlchemyError as exc:
            logger.exception("Bulk insert failed | table=%s rows=%d", model.__tablename__, len(records))
            raise StorageError(f"Failed to store {model.__tablename__}: {exc}") from exc

        logger.debug("Bulk insert ok | table=%s rows=%d", model.__tablename__, len(rows))
        return rows
