"""FastAPI dependency wiring for stores, providers and the ingestion pipeline."""

from datetime import UTC, datetime
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import get_current_context
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.engine import get_session
from backend.app.db.inmemory import InMemoryRateLimiter
from backend.app.db.repositories import BlobStore, DocumentStore, RateLimiter
from backend.app.db.sql_repositories import SqlDocumentStore
from backend.app.db.storage import LocalBlobStore
from backend.app.docs.embedder import Embedder, get_embedder
from backend.app.docs.extractor import (
    PageRecognizer,
    PyMuPDFExtractor,
    TesseractRecognizer,
    TextExtractor,
)
from backend.app.docs.ingest import IngestionPipeline
from backend.app.llm.client import LLMClient, get_llm_client
from backend.app.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from backend.app.ratelimit import RedisRateLimiter, get_redis_client

SettingsDep = Annotated[Settings, Depends(get_settings)]
ContextDep = Annotated[RequestContext, Depends(get_current_context)]


def get_document_store(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentStore:
    """Document store bound to the request's session."""
    return SqlDocumentStore(session)


def get_blob_store(settings: SettingsDep) -> BlobStore:
    """Blob store rooted at the configured storage directory."""
    return LocalBlobStore(settings.storage_dir)


def get_embedding_provider(settings: SettingsDep) -> Embedder:
    """Embedder selected from configuration."""
    return get_embedder(settings)


def get_text_extractor(settings: SettingsDep) -> TextExtractor:
    """PDF text extractor with the configured fallback thresholds."""
    return PyMuPDFExtractor(
        density_threshold=settings.ocr_density_threshold,
        min_chars=settings.ocr_min_chars,
    )


def get_page_recognizer(settings: SettingsDep) -> PageRecognizer:
    """OCR engine for sparse pages."""
    return TesseractRecognizer(zoom=settings.ocr_zoom, timeout_seconds=settings.ocr_timeout_seconds)


def get_answer_client(settings: SettingsDep) -> LLMClient:
    """LLM client selected from configuration."""
    return get_llm_client(settings)


DocumentStoreDep = Annotated[DocumentStore, Depends(get_document_store)]
BlobStoreDep = Annotated[BlobStore, Depends(get_blob_store)]
EmbedderDep = Annotated[Embedder, Depends(get_embedding_provider)]
ExtractorDep = Annotated[TextExtractor, Depends(get_text_extractor)]
RecognizerDep = Annotated[PageRecognizer, Depends(get_page_recognizer)]
LLMClientDep = Annotated[LLMClient, Depends(get_answer_client)]


def get_ingestion_pipeline(
    store: DocumentStoreDep,
    blobs: BlobStoreDep,
    embedder: EmbedderDep,
    extractor: ExtractorDep,
    recognizer: RecognizerDep,
    settings: SettingsDep,
) -> IngestionPipeline:
    """Ingestion pipeline for one request."""
    return IngestionPipeline(
        store=store,
        blobs=blobs,
        embedder=embedder,
        extractor=extractor,
        recognizer=recognizer,
        settings=settings,
    )


PipelineDep = Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)]


@lru_cache
def _in_memory_limiter(max_requests: int, window_seconds: int) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(max_requests=max_requests, window_seconds=window_seconds)


def get_rate_limiter(settings: SettingsDep) -> RateLimiter:
    """Upload rate limiter; shared through Redis when configured."""
    if settings.redis_url:
        client = get_redis_client(settings.redis_url)
        return RedisRateLimiter(
            client,
            max_requests=settings.uploads_per_window,
            window_seconds=settings.upload_window_seconds,
        )
    return _in_memory_limiter(settings.uploads_per_window, settings.upload_window_seconds)


def enforce_upload_quota(
    request: Request,
    ctx: ContextDep,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> None:
    """Reject the request with 429 when the caller exhausted its upload quota."""
    middleware = RateLimitMiddleware(limiter, create_default_bucket_map())
    allowed, retry_after = middleware.check_rate_limit(
        request.url.path, ctx, now=datetime.now(UTC)
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Upload limit reached, try again later",
            headers={"Retry-After": str(retry_after)},
        )
