"""
SQLAlchemy ORM Models — Documents, Paragraphs, Sentences

Structure:
    documents   1 ──< paragraphs   (document_id)
    paragraphs  1 ──< sentences    (paragraph_id)
    documents   1 ──< sentences    (document_id, denormalized for per-document reads)

Rows are written once per ingestion run and never mutated by the pipeline.
position is unique within its parent, which is what lets the storage mapper
re-associate bulk-inserted rows with their parsed counterparts.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _uuid_pk():
    return mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )


def _parent_fk(target: str):
    return mapped_column(
        UUID(as_uuid=True),
        ForeignKey(target, ondelete="CASCADE"),
        nullable=False,
    )


def _created_at():
    return mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One uploaded file plus its full extracted text.
    Created in the storing stage, after upload / extract / parse succeeded.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "file_type IN ('txt', 'md', 'docx', 'pdf')",
            name="documents_file_type_check",
        ),
        Index("idx_documents_project_id", "project_id"),
    )

    id:         Mapped[uuid.UUID] = _uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    title:     Mapped[str] = mapped_column(Text, nullable=False, comment="Original file name")
    file_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_url:  Mapped[str] = mapped_column(Text, nullable=False, comment="URL returned by the uploader")
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    content:   Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Extracted text the paragraphs were segmented from",
    )

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} project={self.project_id} type={self.file_type} title={self.title!r}>"


# ---------------------------------------------------------------------------
# paragraphs
# ---------------------------------------------------------------------------

class Paragraph(Base):

    __tablename__ = "paragraphs"
    __table_args__ = (
        CheckConstraint("position >= 0", name="paragraphs_position_check"),
        UniqueConstraint("document_id", "position", name="uq_paragraphs_position"),
        Index("idx_paragraphs_document_id", "document_id"),
    )

    id:          Mapped[uuid.UUID] = _uuid_pk()
    document_id: Mapped[uuid.UUID] = _parent_fk("documents.id")
    content:     Mapped[str]       = mapped_column(Text, nullable=False)
    position:    Mapped[int]       = mapped_column(Integer, nullable=False)
    created_at:  Mapped[datetime]  = _created_at()

    def __repr__(self) -> str:
        return f"<Paragraph id={self.id} document={self.document_id} position={self.position}>"


# ---------------------------------------------------------------------------
# sentences
# ---------------------------------------------------------------------------

class Sentence(Base):
    """start_offset / end_offset index into the parent paragraph's content."""

    __tablename__ = "sentences"
    __table_args__ = (
        CheckConstraint("position >= 0", name="sentences_position_check"),
        CheckConstraint("end_offset >= start_offset", name="sentences_offsets_check"),
        UniqueConstraint("paragraph_id", "position", name="uq_sentences_position"),
        Index("idx_sentences_document_id",  "document_id"),
        Index("idx_sentences_paragraph_id", "paragraph_id"),
    )

    id:           Mapped[uuid.UUID] = _uuid_pk()
    document_id:  Mapped[uuid.UUID] = _parent_fk("documents.id")
    paragraph_id: Mapped[uuid.UUID] = _parent_fk("paragraphs.id")
    content:      Mapped[str]       = mapped_column(Text, nullable=False)
    position:     Mapped[int]       = mapped_column(Integer, nullable=False)
    start_offset: Mapped[int]       = mapped_column(Integer, nullable=False, server_default="0")
    end_offset:   Mapped[int]       = mapped_column(Integer, nullable=False, server_default="0")
    created_at:   Mapped[datetime]  = _created_at()

    def __repr__(self) -> str:
        return f"<Sentence id={self.id} paragraph={self.paragraph_id} position={self.position}>"
