"""
Storage Mapper — ParsedDocument → flat, foreign-keyed rows.

    ParsedParagraph[i]  →  paragraphs row  {document_id, content, position}
    ParsedSentence[j]   →  sentences row   {document_id, paragraph_id, content,
                                            position, start_offset, end_offset}

The sentence rows need the database id of their paragraph, so the mapper has
to know which persisted paragraph row came from which parsed paragraph.
The store returns rows in submission order; the mapper still keys the
association on `position` (unique per document) so a store that reorders rows
cannot silently attach sentences to the wrong paragraph.

Two separate inserts: paragraphs are committed before sentences are written,
and a sentence failure does not remove them. Readers may briefly see a
document with paragraphs and no sentences.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from docingest.core.exceptions import MappingError
from docingest.processing.segmentation import ParsedDocument
from docingest.services.collaborators import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class StoredStructure:
    paragraphs: list[Any] = field(default_factory=list)   # position order
    sentences:  list[Any] = field(default_factory=list)   # paragraph, then sentence order


def build_paragraph_records(document_id: UUID, parsed: ParsedDocument) -> list[dict]:
    return [
        {
            "document_id": document_id,
            "content":     p.content,
            "position":    p.position,
        }
        for p in parsed.paragraphs
    ]


def _associate_by_position(parsed: ParsedDocument, stored: list[Any]) -> list[Any]:
    """
    Return stored paragraph rows aligned index-for-index with parsed.paragraphs.
    Raises MappingError if the correspondence can't be established.
    """
    if len(stored) != len(parsed.paragraphs):
        raise MappingError(
            f"Paragraph insert returned {len(stored)} rows for "
            f"{len(parsed.paragraphs)} submitted paragraphs"
        )

    by_position: dict[int, Any] = {}
    for row in stored:
        if row.position in by_position:
            raise MappingError(f"Duplicate stored paragraph position {row.position}")
        by_position[row.position] = row

    aligned: list[Any] = []
    for p in parsed.paragraphs:
        row = by_position.get(p.position)
        if row is None:
            raise MappingError(f"No stored paragraph for position {p.position}")
        aligned.append(row)

    if any(a is not b for a, b in zip(aligned, stored)):
        logger.warning("Paragraph rows returned out of submission order; re-associated by position")

    return aligned


def build_sentence_records(
    document_id:       UUID,
    parsed:            ParsedDocument,
    stored_paragraphs: list[Any],
) -> list[dict]:
    records: list[dict] = []
    for p, row in zip(parsed.paragraphs, stored_paragraphs):
        for s in p.sentences:
            records.append({
                "document_id":  document_id,
                "paragraph_id": row.id,
                "content":      s.content,
                "position":     s.position,
                "start_offset": s.start_offset,
                "end_offset":   s.end_offset,
            })
    return records


async def persist_parsed_document(
    store:       DocumentStore,
    document_id: UUID,
    parsed:      ParsedDocument,
) -> StoredStructure:
    """
    Persist paragraphs, then sentences, keyed to `document_id`.

    Raises StorageError (from the store) or MappingError. On a sentence
    failure the already-stored paragraphs stay in place.
    """
    if not parsed.paragraphs:
        logger.info("Nothing to persist | doc=%s", document_id)
        return StoredStructure()

    # ---- Step 1: paragraphs (one bulk insert) ----------------------
    stored_paragraphs = await store.insert_paragraphs(build_paragraph_records(document_id, parsed))

    # ---- Step 2: parsed index → persisted id -----------------------
    aligned = _associate_by_position(parsed, list(stored_paragraphs))

    # ---- Step 3: sentences (one bulk insert) -----------------------
    sentence_records = build_sentence_records(document_id, parsed, aligned)
    stored_sentences = await store.insert_sentences(sentence_records) if sentence_records else []

    logger.info(
        "Structure persisted | doc=%s paragraphs=%d sentences=%d",
        document_id, len(aligned), len(stored_sentences),
    )
    return StoredStructure(paragraphs=aligned, sentences=list(stored_sentences))
