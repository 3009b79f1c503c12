"""
Document Segmenter  —  Paragraph / Sentence Structure
══════════════════════════════════════════════════════

Turns raw extracted text into an ordered, position-indexed tree:

    ParsedDocument
      └── ParsedParagraph  (position 0..N-1, reading order)
            └── ParsedSentence (position 0..M-1 within the paragraph)

Paragraph boundaries
────────────────────
  1. Normalize line endings (\\r\\n → \\n)
  2. Split at blank lines (newline, optional whitespace, newline)
  3. If that produced a single block longer than PARAGRAPH_FALLBACK_MIN_CHARS,
     the author never used blank lines; re-split at single newlines
  4. Trim, drop empties

Sentence boundaries
───────────────────
  A sentence is a run of non-terminal characters closed by one or more of
  . ! ?, accepted only when followed by whitespace + an uppercase letter,
  or by the end of the paragraph. A paragraph with no such run is kept
  whole as one sentence.

  Known approximations:
    - "Dr. Smith arrived." splits after "Dr."
    - text after the last accepted terminator is not emitted
      ("One. Two. three" → ["One."]) because "three" never closes

Everything here is pure and synchronous: no I/O, no logging on the hot
path, identical input → identical output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from docingest.core.exceptions import SegmentationError

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

# A single blank-line block above this size is re-split on single newlines
PARAGRAPH_FALLBACK_MIN_CHARS = 200

_BLANK_LINE_RE = re.compile(r"\n\s*\n")

# [^.!?]+   body of the sentence
# [.!?]+    one or more terminators ("?!", "...")
# lookahead whitespace + capital, or end of the paragraph
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+(?=\s+[A-Z]|\Z)")


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ParsedSentence:
    """
    One sentence inside a paragraph.

    start_offset / end_offset are character offsets of `content` within the
    parent paragraph's (trimmed) text: paragraph.content[start:end] == content.
    """
    content:      str
    position:     int    # 0-based rank within the parent paragraph
    start_offset: int
    end_offset:   int


@dataclass
class ParsedParagraph:
    content:   str
    position:  int                                   # 0-based rank in the document
    sentences: list[ParsedSentence] = field(default_factory=list)


@dataclass
class ParsedDocument:
    """
    Transient segmentation output; lives for one pipeline run only.

    Invariants:
        total_paragraphs == len(paragraphs)
        total_sentences  == sum(len(p.sentences) for p in paragraphs)
        paragraph positions are exactly 0..total_paragraphs-1
    """
    paragraphs:       list[ParsedParagraph]
    total_paragraphs: int
    total_sentences:  int


# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------

def segment_paragraphs(text: str) -> list[str]:
    """Split raw text into trimmed, non-empty paragraphs in reading order."""
    normalized = text.replace("\r\n", "\n")

    blocks = _BLANK_LINE_RE.split(normalized)

    # No blank-line separation at all: fall back to line-per-paragraph
    if len(blocks) == 1 and len(blocks[0]) > PARAGRAPH_FALLBACK_MIN_CHARS:
        blocks = normalized.split("\n")

    return [b.strip() for b in blocks if b.strip()]


# ---------------------------------------------------------------------------
# Sentences
# ---------------------------------------------------------------------------

def _sentence_spans(paragraph: str) -> list[tuple[str, int, int]]:
    """Return (sentence, start, end) triples with offsets into `paragraph`."""
    spans: list[tuple[str, int, int]] = []

    for match in _SENTENCE_RE.finditer(paragraph):
        raw = match.group(0)
        sentence = raw.strip()
        if not sentence:
            continue
        start = match.start() + (len(raw) - len(raw.lstrip()))
        spans.append((sentence, start, start + len(sentence)))

    if not spans:
        whole = paragraph.strip()
        if not whole:
            return []
        start = len(paragraph) - len(paragraph.lstrip())
        return [(whole, start, start + len(whole))]

    return spans


def segment_sentences(paragraph: str) -> list[str]:
    """
    Split one paragraph into sentences.

    Falls back to the whole paragraph when no terminated sentence is found
    (no . ! ? at all, or a script that doesn't use them).
    """
    return [sentence for sentence, _, _ in _sentence_spans(paragraph)]


# ---------------------------------------------------------------------------
# Whole document
# ---------------------------------------------------------------------------

def segment_document(text: str) -> ParsedDocument:
    """
    Build the full paragraph → sentence tree for `text`.

    Always succeeds for string input (empty text → zero paragraphs).
    Raises SegmentationError only on an unexpected internal failure.
    """
    try:
        paragraphs: list[ParsedParagraph] = []
        total_sentences = 0

        for p_idx, paragraph_text in enumerate(segment_paragraphs(text)):
            sentences = [
                ParsedSentence(
                    content=sentence,
                    position=s_idx,
                    start_offset=start,
                    end_offset=end,
                )
                for s_idx, (sentence, start, end) in enumerate(_sentence_spans(paragraph_text))
            ]
            paragraphs.append(ParsedParagraph(
                content=paragraph_text,
                position=p_idx,
                sentences=sentences,
            ))
            total_sentences += len(sentences)

    except Exception as exc:
        raise SegmentationError(str(exc) or f"Parsing failed: {type(exc).__name__}") from exc

    return ParsedDocument(
        paragraphs=paragraphs,
        total_paragraphs=len(paragraphs),
        total_sentences=total_sentences,
    )
