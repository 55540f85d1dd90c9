"""Document retriever - semantic search over completed manuals."""

import logging
from dataclasses import dataclass
from typing import Literal

from backend.app.db.context import RequestContext
from backend.app.db.repositories import DocumentStore
from backend.app.docs.embedder import Embedder
from backend.app.docs.errors import VectorSearchUnavailableError
from backend.app.models.docs import DocumentCategory, SearchResultItem
from backend.app.utils.metrics import pipeline_metrics

logger = logging.getLogger(__name__)

SearchMode = Literal["vector", "lexical"]


@dataclass(frozen=True)
class SearchOutcome:
    """Ranked results plus the ranking mode that produced them."""

    results: list[SearchResultItem]
    mode: SearchMode


def clamp_limit(limit: int | None, *, default: int, max_limit: int) -> int:
    """Clamp a requested result count into ``[1, max_limit]``."""
    if limit is None:
        limit = default
    return max(1, min(limit, max_limit))


async def search_documents(
    query: str,
    ctx: RequestContext,
    *,
    store: DocumentStore,
    embedder: Embedder,
    limit: int | None = None,
    categories: set[DocumentCategory] | None = None,
    default_limit: int = 5,
    max_limit: int = 20,
) -> SearchOutcome:
    """Search chunks of the caller's completed documents.

    Scoring strategy:
    - Embed the query with the same embedder used at ingestion
    - Rank by ascending distance (ties: document creation, then chunk index)
    - If the store lacks vector support, fall back to token matching with
      a fixed similarity of 0.5

    Args:
        query: Free-text question; must be non-empty after trimming
        ctx: Request context (enforces tenancy)
        store: Document store
        embedder: Query embedder
        limit: Requested result count, clamped into ``[1, max_limit]``
        categories: Restrict to these categories; empty or None means all

    Returns:
        SearchOutcome with at most ``limit`` results

    Raises:
        ValueError: Query is empty
        EmbeddingError: Query could not be embedded
    """
    query = query.strip()
    if not query:
        raise ValueError("query must not be empty")

    limit = clamp_limit(limit, default=default_limit, max_limit=max_limit)
    categories = set(categories or ())

    embedding = await embedder.embed(query)

    try:
        results = await store.vector_search(
            ctx, embedding, limit=limit, categories=categories or None
        )
        mode: SearchMode = "vector"
    except VectorSearchUnavailableError as e:
        logger.warning(f"Vector search unavailable, using lexical fallback: {e}")
        results = await store.lexical_search(
            ctx, query, limit=limit, categories=categories or None
        )
        mode = "lexical"

    pipeline_metrics.inc_search(mode=mode)
    logger.info(f"Search returned {len(results)} results ({mode})")

    return SearchOutcome(results=results, mode=mode)
