"""PDF text extraction with per-page OCR fallback.

Text is pulled from the PDF text layer with PyMuPDF. Pages whose text layer
is both sparse (low characters per square point) and short are re-read with
Tesseract from a rendered raster of the page. OCR output only replaces the
original text when it is strictly longer, and OCR failures or timeouts never
fail the document: the page keeps its original text.
"""

import asyncio
import io
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from backend.app.docs.errors import ExtractionError
from backend.app.models.docs import PageText, ProcessingMethod
from backend.app.utils.metrics import pipeline_metrics

logger = logging.getLogger(__name__)


@dataclass
class RawExtraction:
    """Text layer of a PDF, before any OCR fallback."""

    pages: list[PageText]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractionResult:
    """Final text of a document plus the details of how it was obtained."""

    content: str
    pages: list[PageText]
    page_count: int
    title: str
    author: str
    processing_method: ProcessingMethod
    metadata: dict[str, Any] = field(default_factory=dict)


class TextExtractor(Protocol):
    """Maps document bytes to per-page text."""

    def extract(self, data: bytes) -> RawExtraction:
        """Extract the text layer of every page.

        Raises:
            ExtractionError: If the bytes are not a readable document
        """
        ...


class PageRecognizer(Protocol):
    """Image-based text recognition for a single page."""

    def recognize(self, data: bytes, page_number: int) -> str:
        """Render page ``page_number`` (1-based) and return the recognized text."""
        ...


def needs_ocr_fallback(
    char_count: int,
    text_density: float,
    *,
    density_threshold: float,
    min_chars: int,
) -> bool:
    """Decide whether a page's text layer is too sparse to trust.

    Both conditions are required, so a short but dense page (a title page,
    say) keeps its text layer.
    """
    return text_density < density_threshold and char_count < min_chars


def _open_pdf(data: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        # MuPDF error types differ across PyMuPDF releases
        raise ExtractionError(f"unreadable PDF: {type(e).__name__}") from e

    # MuPDF repairs some garbage into an empty document instead of failing
    if doc.page_count == 0:
        doc.close()
        raise ExtractionError("unreadable PDF: no pages")
    return doc


class PyMuPDFExtractor:
    """TextExtractor backed by the PyMuPDF text layer."""

    def __init__(self, *, density_threshold: float, min_chars: int) -> None:
        """Initialize extractor.

        Args:
            density_threshold: Characters per square point below which a page is sparse
            min_chars: Character count below which a page is short
        """
        self._density_threshold = density_threshold
        self._min_chars = min_chars

    def extract(self, data: bytes) -> RawExtraction:
        """Extract text, density and fallback flag for every page."""
        pages: list[PageText] = []

        with _open_pdf(data) as doc:
            for page in doc:
                text = page.get_text()
                rect = page.rect
                area = rect.width * rect.height
                char_count = len(text.strip())
                density = char_count / area if area > 0 else 0.0

                pages.append(
                    PageText(
                        page_number=page.number + 1,
                        text=text,
                        text_density=density,
                        needs_fallback=needs_ocr_fallback(
                            char_count,
                            density,
                            density_threshold=self._density_threshold,
                            min_chars=self._min_chars,
                        ),
                    )
                )

            metadata = dict(doc.metadata or {})

        return RawExtraction(pages=pages, metadata=metadata)


class TesseractRecognizer:
    """PageRecognizer that rasterizes the page with PyMuPDF and runs Tesseract."""

    def __init__(self, *, zoom: float = 2.0, timeout_seconds: float = 30.0) -> None:
        """Initialize recognizer.

        Args:
            zoom: Render scale; 2.0 doubles resolution for better recognition
            timeout_seconds: Tesseract process timeout
        """
        self._zoom = zoom
        self._timeout_seconds = timeout_seconds

    def recognize(self, data: bytes, page_number: int) -> str:
        """Render one page to PNG and return Tesseract's text."""
        with _open_pdf(data) as doc:
            page = doc[page_number - 1]
            pix = page.get_pixmap(matrix=fitz.Matrix(self._zoom, self._zoom))
            img_data = pix.tobytes("png")

        image = Image.open(io.BytesIO(img_data))
        # Raises RuntimeError when the tesseract process exceeds the timeout
        return pytesseract.image_to_string(image, timeout=self._timeout_seconds)


async def _recognize_page(
    recognizer: PageRecognizer,
    data: bytes,
    page: PageText,
    timeout_seconds: float,
) -> PageText:
    """Run OCR for one flagged page; keep the original text on any failure."""
    started = time.perf_counter()
    try:
        ocr_text = await asyncio.wait_for(
            asyncio.to_thread(recognizer.recognize, data, page.page_number),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        logger.warning(
            f"OCR timed out on page {page.page_number}, keeping text layer",
            extra={"structured": {"page": page.page_number, "timeout_s": timeout_seconds}},
        )
        pipeline_metrics.inc_ocr(outcome="timeout")
        return page
    except Exception as e:
        logger.warning(
            f"OCR failed on page {page.page_number}, keeping text layer: {type(e).__name__}",
            extra={"structured": {"page": page.page_number, "error": str(e)}},
        )
        pipeline_metrics.inc_ocr(outcome="error")
        return page

    latency_ms = (time.perf_counter() - started) * 1000
    if len(ocr_text.strip()) > page.char_count:
        logger.info(
            f"OCR replaced text of page {page.page_number}",
            extra={
                "structured": {
                    "page": page.page_number,
                    "original_chars": page.char_count,
                    "ocr_chars": len(ocr_text.strip()),
                    "latency_ms": round(latency_ms, 2),
                }
            },
        )
        pipeline_metrics.inc_ocr(outcome="replaced")
        return page.model_copy(update={"text": ocr_text, "used_fallback": True})

    pipeline_metrics.inc_ocr(outcome="kept")
    return page


def _processing_method(pages: list[PageText]) -> ProcessingMethod:
    flagged = [p for p in pages if p.needs_fallback]
    replaced = [p for p in flagged if p.used_fallback]

    if not replaced:
        return ProcessingMethod.text_extraction
    if len(replaced) == len(flagged):
        return ProcessingMethod.ocr
    return ProcessingMethod.hybrid


def placeholder_text(title: str, page_count: int) -> str:
    """Synthetic content for documents whose pages yielded no text at all."""
    return (
        f"This document contains {page_count} page(s). Title: {title}. "
        "The content may be image-based or require OCR processing."
    )


async def extract_document(
    data: bytes,
    *,
    extractor: TextExtractor,
    recognizer: PageRecognizer,
    title: str | None = None,
    ocr_timeout_seconds: float = 30.0,
) -> ExtractionResult:
    """Extract the full text of a document, using OCR only for sparse pages.

    Args:
        data: Raw document bytes
        extractor: Text layer extractor
        recognizer: OCR fallback for flagged pages
        title: Display title; falls back to the PDF metadata title
        ocr_timeout_seconds: Per-page OCR bound

    Returns:
        ExtractionResult whose content is the page texts joined by blank lines

    Raises:
        ExtractionError: If the document cannot be read at all
    """
    if not data:
        raise ExtractionError("empty document")

    raw = await asyncio.to_thread(extractor.extract, data)

    pages: list[PageText] = []
    for page in raw.pages:
        if page.needs_fallback:
            page = await _recognize_page(recognizer, data, page, ocr_timeout_seconds)
        pages.append(page)

    resolved_title = title or raw.metadata.get("title") or "Untitled Document"
    author = raw.metadata.get("author") or "Unknown"

    content = "\n\n".join(p.text.strip() for p in pages if p.text.strip())
    if not content and pages:
        content = placeholder_text(resolved_title, len(pages))

    method = _processing_method(pages)
    logger.info(
        f"Extracted {len(content)} characters from {len(pages)} pages",
        extra={
            "structured": {
                "pages": len(pages),
                "flagged_pages": sum(1 for p in pages if p.needs_fallback),
                "processing_method": method.value,
            }
        },
    )

    return ExtractionResult(
        content=content,
        pages=pages,
        page_count=len(pages),
        title=resolved_title,
        author=author,
        processing_method=method,
        metadata=raw.metadata,
    )
