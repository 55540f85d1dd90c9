"""Retrieval endpoints - POST /search-documents and POST /chat."""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.api.deps import ContextDep, DocumentStoreDep, EmbedderDep, LLMClientDep, SettingsDep
from backend.app.docs.errors import DocumentPipelineError
from backend.app.docs.retriever import search_documents
from backend.app.models.answer import ChatAnswer
from backend.app.models.docs import DocumentCategory, SearchResultItem

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])

QUESTION_PATTERN = r"^[^<>{}]+$"


class SearchRequest(BaseModel):
    """Request body for POST /search-documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query: str = Field(..., min_length=1, max_length=1000)
    limit: int | None = Field(None, description="Clamped to [1, max_search_limit]")
    document_types: list[DocumentCategory] | None = None


class SearchResponse(BaseModel):
    """Response for POST /search-documents."""

    results: list[SearchResultItem]
    query: str
    total: int


class ChatRequest(BaseModel):
    """Request body for POST /chat."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: str = Field(..., min_length=1, max_length=1000, pattern=QUESTION_PATTERN)
    limit: int | None = None
    document_types: list[DocumentCategory] | None = None


@router.post("/search-documents", response_model=SearchResponse)
async def search_documents_endpoint(
    request: SearchRequest,
    ctx: ContextDep,
    settings: SettingsDep,
    store: DocumentStoreDep,
    embedder: EmbedderDep,
) -> SearchResponse | JSONResponse:
    """Return the chunks of completed documents most similar to the query.

    Args:
        request: Query, optional limit and category filter
        ctx: Request context (owner_id)

    Returns:
        Ranked results; empty when nothing matches
    """
    try:
        outcome = await search_documents(
            request.query,
            ctx,
            store=store,
            embedder=embedder,
            limit=request.limit,
            categories=set(request.document_types or ()),
            default_limit=settings.search_default_limit,
            max_limit=settings.max_search_limit,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Query must not be blank",
        ) from e
    except DocumentPipelineError as e:
        logger.error(f"Error searching documents: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Search failed"},
        )

    return SearchResponse(
        results=outcome.results,
        query=request.query,
        total=len(outcome.results),
    )


@router.post("/chat", response_model=ChatAnswer)
async def chat(
    request: ChatRequest,
    ctx: ContextDep,
    settings: SettingsDep,
    store: DocumentStoreDep,
    embedder: EmbedderDep,
    llm: LLMClientDep,
) -> ChatAnswer | JSONResponse:
    """Answer a crew question grounded in the caller's manuals."""
    try:
        outcome = await search_documents(
            request.question,
            ctx,
            store=store,
            embedder=embedder,
            limit=request.limit,
            categories=set(request.document_types or ()),
            default_limit=settings.search_default_limit,
            max_limit=settings.max_search_limit,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Question must not be blank",
        ) from e
    except DocumentPipelineError as e:
        logger.error(f"Retrieval for chat failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Search failed"},
        )

    return await llm.synthesize_answer(question=request.question, results=outcome.results)
