"""Standalone text extraction - POST /pdf-extract."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from backend.app.api.deps import ExtractorDep, RecognizerDep, SettingsDep
from backend.app.api.uploads import read_pdf_upload
from backend.app.docs.errors import ExtractionError
from backend.app.docs.extractor import extract_document
from backend.app.models.docs import PageText, ProcessingMethod

logger = logging.getLogger(__name__)

router = APIRouter(tags=["extract"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageDetail(_CamelModel):
    page_number: int
    char_count: int
    text_density: float
    needs_fallback: bool
    used_fallback: bool

    @classmethod
    def from_page(cls, page: PageText) -> "PageDetail":
        return cls(
            page_number=page.page_number,
            char_count=page.char_count,
            text_density=page.text_density,
            needs_fallback=page.needs_fallback,
            used_fallback=page.used_fallback,
        )


class ExtractMetadata(_CamelModel):
    pages: int
    title: str
    author: str
    subject: str
    creator: str
    producer: str
    creation_date: str | None
    modification_date: str | None
    processing_method: ProcessingMethod
    page_details: list[PageDetail]


class ExtractResponse(_CamelModel):
    """Response for POST /pdf-extract."""

    success: bool
    content: str
    metadata: ExtractMetadata
    extracted_at: datetime


@router.post("/pdf-extract", response_model=ExtractResponse)
async def pdf_extract(
    file: Annotated[UploadFile, File()],
    settings: SettingsDep,
    extractor: ExtractorDep,
    recognizer: RecognizerDep,
) -> ExtractResponse | JSONResponse:
    """Extract text from an uploaded PDF without storing anything.

    Returns:
        Extracted content and per-page diagnostics; 400 for empty or non-PDF
        uploads (via HTTPException), 500 with details when the PDF is unreadable
    """
    data = await read_pdf_upload(file, max_bytes=settings.max_upload_bytes)
    logger.info(f"Processing PDF buffer of size: {len(data)} bytes")

    try:
        result = await extract_document(
            data,
            extractor=extractor,
            recognizer=recognizer,
            ocr_timeout_seconds=settings.ocr_timeout_seconds,
        )
    except ExtractionError as e:
        logger.error(f"PDF extraction failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "PDF processing failed",
                "details": str(e),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        )

    return ExtractResponse(
        success=True,
        content=result.content,
        metadata=ExtractMetadata(
            pages=result.page_count,
            title=result.title,
            author=result.author,
            subject=result.metadata.get("subject") or "",
            creator=result.metadata.get("creator") or "",
            producer=result.metadata.get("producer") or "",
            creation_date=result.metadata.get("creationDate") or None,
            modification_date=result.metadata.get("modDate") or None,
            processing_method=result.processing_method,
            page_details=[PageDetail.from_page(p) for p in result.pages],
        ),
        extracted_at=datetime.now(UTC),
    )
