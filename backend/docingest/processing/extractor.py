"""
Text Extraction
═══════════════

The extraction collaborator: raw file bytes → plain text + the method used.

Routing (by lowercased extension):
    txt / md  →  direct decode (UTF-8, latin-1 fallback)     method="direct"
    docx      →  python-docx paragraphs                      method="python-docx"
    pdf       →  pypdf text layer, pages joined by "\\n\\n"   method="pypdf"
    other     →  ExtractionError("Unsupported file type: …")

Scanned PDFs (no text layer) are reported as an ExtractionError rather than
returning empty text; there is no OCR backend in this service.

Parsers are blocking; they run in the default thread executor so the event
loop is never stalled by a large document.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from docingest.core.exceptions import ExtractionError
from docingest.services.collaborators import IncomingFile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class ExtractionResult:
    """
    text   : full extracted text
    method : "direct" | "python-docx" | "pypdf"; reported in progress messages
    """
    text:   str
    method: str


# ---------------------------------------------------------------------------
# Abstract collaborator
# ---------------------------------------------------------------------------

class TextExtractor(ABC):

    @abstractmethod
    async def extract(self, file: IncomingFile) -> ExtractionResult:
        """Extract plain text. Raises ExtractionError on failure."""


# ---------------------------------------------------------------------------
# Format-specific parsers (blocking)
# ---------------------------------------------------------------------------

def _extract_plain(data: bytes) -> str:
    """Plain text / markdown; decode with UTF-8, fallback to latin-1."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1", errors="replace")


def _extract_docx(data: bytes) -> str:
    """Extract text from DOCX bytes using python-docx."""
    import docx

    document = docx.Document(io.BytesIO(data))
    # Blank line between Word paragraphs so the segmenter sees real paragraph breaks
    return "\n\n".join(para.text for para in document.paragraphs if para.text.strip())


def _extract_pdf(data: bytes) -> str:
    """Extract text from PDF bytes using pypdf."""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n\n".join(p for p in pages if p.strip())


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class TextExtractionService(TextExtractor):
    """
    Stateless; one instance can be shared across requests.

    Usage:
        result = await TextExtractionService().extract(file)
        result.text, result.method
    """

    _PARSERS = {
        "txt":  ("direct",      _extract_plain),
        "md":   ("direct",      _extract_plain),
        "docx": ("python-docx", _extract_docx),
        "pdf":  ("pypdf",       _extract_pdf),
    }

    async def extract(self, file: IncomingFile) -> ExtractionResult:
        ext = file.extension
        if ext not in self._PARSERS:
            raise ExtractionError(f"Unsupported file type: {ext or file.filename}")

        method, parser = self._PARSERS[ext]
        t0 = time.monotonic()

        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, parser, file.content)
        except Exception as exc:
            logger.warning(
                "Text extraction failed | file=%s method=%s error=%s",
                file.filename, method, exc,
            )
            raise ExtractionError(f"Failed to extract {ext.upper()} text: {exc}") from exc

        if not text.strip():
            if ext == "pdf":
                raise ExtractionError("No extractable text layer found in PDF (scanned document?)")
            raise ExtractionError("Extracted text is empty")

        logger.info(
            "Extraction | file=%s method=%s chars=%d elapsed_ms=%.0f",
            file.filename, method, len(text), (time.monotonic() - t0) * 1000,
        )
        return ExtractionResult(text=text, method=method)
