"""Unit tests for PDF extraction and the OCR fallback."""

import time

import fitz
import pytest

from backend.app.docs.errors import ExtractionError
from backend.app.docs.extractor import (
    PyMuPDFExtractor,
    extract_document,
    needs_ocr_fallback,
    placeholder_text,
)
from backend.app.models.docs import ProcessingMethod

PDF_BYTES = b"%PDF-1.7 stand-in bytes; extraction is faked"


def _build_pdf(page_char_counts: list[int]) -> bytes:
    """Render a PDF whose pages carry roughly the given number of characters."""
    doc = fitz.open()
    for count in page_char_counts:
        page = doc.new_page()
        text = ("abcdefghij" * (count // 10 + 1))[:count]
        lines = [text[i : i + 60] for i in range(0, len(text), 60)]
        for n, line in enumerate(lines):
            page.insert_text((40, 40 + n * 12), line, fontsize=8)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.mark.parametrize(
    ("chars", "density", "expected"),
    [
        (10, 0.00002, True),
        (10, 0.001, False),  # dense enough
        (150, 0.0001, False),  # long enough
        (0, 0.0, True),
    ],
)
def test_needs_ocr_fallback_requires_both_conditions(
    chars: int, density: float, expected: bool
) -> None:
    assert needs_ocr_fallback(chars, density, density_threshold=0.0005, min_chars=100) is expected


@pytest.mark.asyncio
async def test_three_page_scenario_runs_ocr_only_on_sparse_page(
    page_factory, extractor_factory, recognizer_factory
) -> None:
    """Pages of 2400, 10 and 900 chars: only the 10-char page goes through OCR."""
    pages = [
        page_factory(1, "a" * 2400, density=0.0048),
        page_factory(2, "Short text", density=0.00002, needs_fallback=True),
        page_factory(3, "c" * 900, density=0.0018),
    ]
    ocr_text = "Recognized procedure text " * 20
    recognizer = recognizer_factory(texts={2: ocr_text})

    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory(pages),
        recognizer=recognizer,
        title="FCOM Vol 1",
    )

    assert recognizer.requested == [2]
    assert result.page_count == 3
    assert result.pages[1].used_fallback is True
    assert result.processing_method == ProcessingMethod.ocr
    assert result.content == "\n\n".join(["a" * 2400, ocr_text.strip(), "c" * 900])


@pytest.mark.asyncio
async def test_shorter_ocr_text_never_replaces_original(
    page_factory, extractor_factory, recognizer_factory
) -> None:
    pages = [page_factory(1, "Short text", density=0.00002, needs_fallback=True)]

    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory(pages),
        recognizer=recognizer_factory(texts={1: "abc"}),
    )

    assert result.content == "Short text"
    assert result.pages[0].used_fallback is False
    assert result.processing_method == ProcessingMethod.text_extraction


@pytest.mark.asyncio
async def test_ocr_errors_keep_original_text(
    page_factory, extractor_factory, recognizer_factory
) -> None:
    pages = [page_factory(1, "Short text", density=0.00002, needs_fallback=True)]

    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory(pages),
        recognizer=recognizer_factory(error=RuntimeError("tesseract is not installed")),
    )

    assert result.content == "Short text"
    assert result.processing_method == ProcessingMethod.text_extraction


@pytest.mark.asyncio
async def test_ocr_timeout_keeps_original_text(page_factory, extractor_factory) -> None:
    class SlowRecognizer:
        def recognize(self, data: bytes, page_number: int) -> str:
            time.sleep(0.5)
            return "never used " * 50

    pages = [page_factory(1, "Short text", density=0.00002, needs_fallback=True)]

    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory(pages),
        recognizer=SlowRecognizer(),
        ocr_timeout_seconds=0.05,
    )

    assert result.content == "Short text"
    assert result.pages[0].used_fallback is False


@pytest.mark.asyncio
async def test_partial_ocr_replacement_is_hybrid(
    page_factory, extractor_factory, recognizer_factory
) -> None:
    pages = [
        page_factory(1, "tiny", density=0.00001, needs_fallback=True),
        page_factory(2, "small text", density=0.00002, needs_fallback=True),
    ]

    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory(pages),
        recognizer=recognizer_factory(texts={1: "much longer recognized text"}),
    )

    assert result.processing_method == ProcessingMethod.hybrid
    assert result.content == "much longer recognized text\n\nsmall text"


@pytest.mark.asyncio
async def test_empty_pages_are_skipped_when_joining(page_factory, extractor_factory, recognizer_factory) -> None:
    pages = [
        page_factory(1, "one"),
        page_factory(2, "   "),
        page_factory(3, "three"),
    ]

    result = await extract_document(
        PDF_BYTES, extractor=extractor_factory(pages), recognizer=recognizer_factory()
    )

    assert result.content == "one\n\nthree"


@pytest.mark.asyncio
async def test_placeholder_when_no_text_at_all(
    page_factory, extractor_factory, recognizer_factory
) -> None:
    pages = [
        page_factory(1, "", density=0.0, needs_fallback=True),
        page_factory(2, "", density=0.0, needs_fallback=True),
    ]

    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory(pages),
        recognizer=recognizer_factory(),
        title="QRH Scan",
    )

    assert result.content == placeholder_text("QRH Scan", 2)
    assert result.content.startswith("This document contains 2 page(s). Title: QRH Scan.")


@pytest.mark.asyncio
async def test_title_and_author_fall_back_to_metadata(
    page_factory, extractor_factory, recognizer_factory
) -> None:
    extractor = extractor_factory(
        [page_factory(1, "text")], metadata={"title": "A320 QRH", "author": "Airbus"}
    )

    result = await extract_document(PDF_BYTES, extractor=extractor, recognizer=recognizer_factory())

    assert result.title == "A320 QRH"
    assert result.author == "Airbus"


@pytest.mark.asyncio
async def test_title_and_author_defaults(page_factory, extractor_factory, recognizer_factory) -> None:
    result = await extract_document(
        PDF_BYTES,
        extractor=extractor_factory([page_factory(1, "text")]),
        recognizer=recognizer_factory(),
    )

    assert result.title == "Untitled Document"
    assert result.author == "Unknown"


@pytest.mark.asyncio
async def test_empty_bytes_raise(extractor_factory, recognizer_factory) -> None:
    with pytest.raises(ExtractionError):
        await extract_document(b"", extractor=extractor_factory([]), recognizer=recognizer_factory())


def test_pymupdf_extractor_flags_only_sparse_pages() -> None:
    data = _build_pdf([2400, 10, 900])
    extractor = PyMuPDFExtractor(density_threshold=0.0005, min_chars=100)

    raw = extractor.extract(data)

    assert [p.page_number for p in raw.pages] == [1, 2, 3]
    assert [p.needs_fallback for p in raw.pages] == [False, True, False]
    assert raw.pages[0].text_density > 0.0005
    assert raw.pages[1].char_count == 10


def test_pymupdf_extractor_flags_blank_page() -> None:
    data = _build_pdf([0])

    raw = PyMuPDFExtractor(density_threshold=0.0005, min_chars=100).extract(data)

    assert raw.pages[0].text_density == 0.0
    assert raw.pages[0].needs_fallback is True


def test_pymupdf_extractor_rejects_garbage() -> None:
    extractor = PyMuPDFExtractor(density_threshold=0.0005, min_chars=100)

    with pytest.raises(ExtractionError):
        extractor.extract(b"this is not a pdf at all")


@pytest.mark.asyncio
async def test_real_pdf_end_to_end_with_fake_ocr(recognizer_factory) -> None:
    data = _build_pdf([2400, 10, 900])
    recognizer = recognizer_factory(texts={2: "x" * 400})

    result = await extract_document(
        data,
        extractor=PyMuPDFExtractor(density_threshold=0.0005, min_chars=100),
        recognizer=recognizer,
        title="Generated",
    )

    assert recognizer.requested == [2]
    assert result.processing_method == ProcessingMethod.ocr
    assert "x" * 400 in result.content
