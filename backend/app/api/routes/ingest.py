"""Ingestion trigger - POST /process-pdf."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.api.deps import ContextDep, PipelineDep
from backend.app.docs.errors import (
    DocumentNotEligibleError,
    DocumentNotFoundError,
    DocumentPipelineError,
    IngestionError,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingest"])

GENERIC_FAILURE = "An error occurred processing the PDF"


class ProcessPdfRequest(BaseModel):
    """Request body for POST /process-pdf."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_id: UUID
    extracted_text: str | None = Field(
        None, description="Text extracted client-side; skips server-side extraction"
    )
    metadata: dict[str, Any] | None = None


class ProcessPdfResponse(BaseModel):
    """Response for POST /process-pdf."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    document_id: UUID
    chunks_processed: int


@router.post("/process-pdf", response_model=ProcessPdfResponse)
async def process_pdf(
    request: ProcessPdfRequest,
    ctx: ContextDep,
    pipeline: PipelineDep,
) -> ProcessPdfResponse | JSONResponse:
    """Chunk, embed and index a pending document.

    Runs to completion inside the request, so a client disconnect does not
    leave the document half-processed.

    Raises:
        HTTPException: 404 for an unknown document, 409 if not pending
    """
    if request.metadata:
        logger.info(
            f"Processing request for {request.document_id}",
            extra={"structured": {"metadata_keys": sorted(request.metadata)}},
        )

    try:
        outcome = await pipeline.ingest(
            request.document_id, ctx, extracted_text=request.extracted_text
        )
    except DocumentNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {request.document_id} not found",
        ) from e
    except DocumentNotEligibleError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Document is {e.status}, only pending documents can be processed",
        ) from e
    except IngestionError as e:
        logger.error(f"Error processing PDF: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": GENERIC_FAILURE},
        )
    except DocumentPipelineError as e:
        # Storage failures before the run started (claim, status read)
        logger.error(f"Could not start processing of {request.document_id}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": GENERIC_FAILURE},
        )

    return ProcessPdfResponse(
        success=True,
        document_id=outcome.document_id,
        chunks_processed=outcome.chunks_processed,
    )
