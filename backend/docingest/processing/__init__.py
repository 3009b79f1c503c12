"""
Document Processing Package
════════════════════════════

  extractor.py     Text extraction collaborator (plain text, python-docx, pypdf)
  segmentation.py  Deterministic paragraph / sentence segmentation

Both are stateless; segmentation is pure and never touches I/O.
"""

from docingest.processing.extractor import ExtractionResult, TextExtractionService, TextExtractor
from docingest.processing.segmentation import (
    ParsedDocument,
    ParsedParagraph,
    ParsedSentence,
    segment_document,
    segment_paragraphs,
    segment_sentences,
)

__all__ = [
    "ExtractionResult",
    "TextExtractionService",
    "TextExtractor",
    "ParsedDocument",
    "ParsedParagraph",
    "ParsedSentence",
    "segment_document",
    "segment_paragraphs",
    "segment_sentences",
]
