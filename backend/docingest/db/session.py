"""
PostgreSQL engine and transaction scopes for the document store.

SqlAlchemyDocumentStore opens one `get_session()` scope per call:

    create_document_record  → its own transaction
    insert_paragraphs       → its own transaction
    insert_sentences        → its own transaction

so paragraphs are already committed when the sentence insert starts, and a
sentence failure leaves them in place.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docingest.core.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    echo=settings.db_echo_sql,
)

# Rows handed back to the pipeline are read after commit
SessionFactory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Session bound to one transaction: commit on clean exit, rollback on error."""
    async with SessionFactory() as session, session.begin():
        yield session


async def check_db_health() -> dict:
    """`SELECT 1` round trip. Used at startup and by /ready."""
    t0 = time.monotonic()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database ping failed | error=%s", exc)
        return {"status": "error", "detail": str(exc)}

    return {"status": "ok", "latency_ms": round((time.monotonic() - t0) * 1000, 1)}
