"""Document domain models for manual ingestion and retrieval."""

from datetime import datetime
from enum import Enum
from typing import assert_never
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentCategory(str, Enum):
    """Manual category."""

    FCOM = "FCOM"  # flight crew operating manual
    QRH = "QRH"  # quick reference handbook
    FCTM = "FCTM"  # flight crew training manual
    MEL = "MEL"  # minimum equipment list
    AFM = "AFM"  # aircraft flight manual
    OTHER = "OTHER"


class ProcessingStatus(str, Enum):
    """Document processing status.

    pending -> processing -> completed | failed. Both end states are terminal.
    """

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


def can_start_processing(status: ProcessingStatus) -> bool:
    """Return True if a document in this status may be claimed for ingestion."""
    match status:
        case ProcessingStatus.pending:
            return True
        case ProcessingStatus.processing | ProcessingStatus.completed | ProcessingStatus.failed:
            return False
        case _:
            assert_never(status)


class ProcessingMethod(str, Enum):
    """How the text of a document was obtained."""

    text_extraction = "text_extraction"
    ocr = "ocr"
    hybrid = "hybrid"


class UserDocument(BaseModel):
    """Uploaded manual metadata."""

    document_id: UUID
    owner_id: UUID
    title: str
    file_name: str
    storage_path: str
    file_size: int | None = None
    category: DocumentCategory = DocumentCategory.OTHER
    status: ProcessingStatus = ProcessingStatus.pending
    total_chunks: int = 0
    created_at: datetime
    updated_at: datetime


class SearchResultItem(BaseModel):
    """Chunk joined with its parent document, plus a similarity/distance score."""

    id: UUID
    document_id: UUID
    content: str
    page_number: int | None = None
    section_title: str | None = None
    document_title: str
    document_type: DocumentCategory
    file_name: str
    similarity: float


class PageText(BaseModel):
    """Text extracted from a single PDF page."""

    page_number: int = Field(..., ge=1)
    text: str
    text_density: float = Field(..., ge=0)
    needs_fallback: bool = False
    used_fallback: bool = False

    @property
    def char_count(self) -> int:
        return len(self.text.strip())
