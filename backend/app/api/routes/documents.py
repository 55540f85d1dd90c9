"""Document endpoints - POST /documents, GET /documents, GET/DELETE /documents/{id}."""

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from backend.app.api.deps import (
    BlobStoreDep,
    ContextDep,
    DocumentStoreDep,
    PipelineDep,
    SettingsDep,
    enforce_upload_quota,
)
from backend.app.api.uploads import read_pdf_upload
from backend.app.docs.errors import DocumentPipelineError, StorageError
from backend.app.docs.ingest import describe_status
from backend.app.models.docs import DocumentCategory, ProcessingStatus, UserDocument
from backend.app.utils.sanitize import sanitize_file_name, sanitize_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])

TITLE_PATTERN = r"^[a-zA-Z0-9\s\-_.()]+$"


class DocumentResponse(BaseModel):
    """Document metadata as returned to clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    title: str
    file_name: str
    file_size: int | None
    category: DocumentCategory
    status: ProcessingStatus
    status_text: str
    total_chunks: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, document: UserDocument) -> "DocumentResponse":
        return cls(
            id=document.document_id,
            title=document.title,
            file_name=document.file_name,
            file_size=document.file_size,
            category=document.category,
            status=document.status,
            status_text=describe_status(document),
            total_chunks=document.total_chunks,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentListResponse(BaseModel):
    """Response for GET /documents."""

    documents: list[DocumentResponse]


@router.post(
    "",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_upload_quota)],
)
async def upload_document(
    ctx: ContextDep,
    settings: SettingsDep,
    store: DocumentStoreDep,
    blobs: BlobStoreDep,
    pipeline: PipelineDep,
    title: Annotated[str, Form(min_length=3, max_length=200, pattern=TITLE_PATTERN)],
    file: Annotated[UploadFile, File()],
    category: Annotated[DocumentCategory, Form()] = DocumentCategory.OTHER,
    process: Annotated[bool, Form()] = False,
) -> DocumentResponse:
    """Upload a manual and register it as a pending document.

    Args:
        ctx: Request context (owner_id)
        title: Display title
        file: PDF upload
        category: Manual category
        process: Run ingestion before responding

    Returns:
        Created document; with ``process`` set, its status after ingestion
    """
    data = await read_pdf_upload(file, max_bytes=settings.max_upload_bytes)
    file_name = sanitize_file_name(file.filename or "upload.pdf")

    try:
        storage_path = await blobs.put(ctx, file_name, data)
        document = await store.create_document(
            ctx,
            title=sanitize_input(title),
            file_name=file_name,
            storage_path=storage_path,
            file_size=len(data),
            category=category,
        )
    except StorageError as e:
        logger.error(f"Upload failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store document",
        ) from e

    logger.info(
        f"Registered document {document.document_id}",
        extra={"structured": {"document_id": str(document.document_id), "bytes": len(data)}},
    )

    if process:
        try:
            await pipeline.ingest(document.document_id, ctx)
        except DocumentPipelineError as e:
            # The upload itself succeeded; the returned status shows how far processing got
            logger.warning(f"Inline processing failed: {e}")
        document = await store.get_document(document.document_id, ctx) or document

    return DocumentResponse.from_domain(document)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: ContextDep,
    store: DocumentStoreDep,
    category: Annotated[DocumentCategory | None, Query()] = None,
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    documents = await store.list_documents(ctx, category=category)
    return DocumentListResponse(documents=[DocumentResponse.from_domain(d) for d in documents])


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    ctx: ContextDep,
    store: DocumentStoreDep,
) -> DocumentResponse:
    """Get one document.

    Raises:
        HTTPException: 404 if not found or owned by another user
    """
    document = await store.get_document(document_id, ctx)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} not found",
        )
    return DocumentResponse.from_domain(document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    ctx: ContextDep,
    store: DocumentStoreDep,
    blobs: BlobStoreDep,
) -> None:
    """Delete a document, its chunks and its stored file.

    Raises:
        HTTPException: 404 if not found or owned by another user
    """
    document = await store.delete_document(document_id, ctx)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} not found",
        )

    try:
        await blobs.delete(ctx, document.storage_path)
    except StorageError as e:
        # Row and chunks are gone; an orphaned file is not visible to anyone
        logger.warning(f"Could not remove blob {document.storage_path}: {e}")
