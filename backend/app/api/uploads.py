"""Validation shared by the endpoints that accept PDF uploads."""

from fastapi import HTTPException, UploadFile, status

ALLOWED_CONTENT_TYPES = frozenset({"application/pdf"})
ALLOWED_EXTENSIONS = (".pdf",)


def is_pdf_upload(file: UploadFile) -> bool:
    """Accept by declared content type or by file extension."""
    if file.content_type in ALLOWED_CONTENT_TYPES:
        return True
    return (file.filename or "").lower().endswith(ALLOWED_EXTENSIONS)


async def read_pdf_upload(file: UploadFile, *, max_bytes: int) -> bytes:
    """Read an uploaded PDF, enforcing type, emptiness and size limits.

    Raises:
        HTTPException: 400 for a non-PDF or empty upload, 413 when too large
    """
    if not is_pdf_upload(file):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only PDF files are allowed",
        )

    # Read one byte past the limit so oversize uploads are detected without
    # buffering the whole body
    data = await file.read(max_bytes + 1)

    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file data received",
        )
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size must be less than {max_bytes // (1024 * 1024)}MB",
        )

    return data
