"""In-memory implementations of repository interfaces."""

import math
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from backend.app.db.context import RequestContext
from backend.app.db.queries import LEXICAL_SIMILARITY, lexical_match_count, query_tokens
from backend.app.db.repositories import RetryAfter
from backend.app.docs.chunker import TextChunk
from backend.app.docs.errors import (
    DocumentNotEligibleError,
    DocumentNotFoundError,
    StorageError,
    VectorSearchUnavailableError,
)
from backend.app.models.docs import (
    DocumentCategory,
    ProcessingStatus,
    SearchResultItem,
    UserDocument,
    can_start_processing,
)


@dataclass(frozen=True)
class _StoredChunk:
    chunk_id: uuid.UUID
    chunk: TextChunk
    embedding: list[float]


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore."""

    def __init__(self, *, vector_search_enabled: bool = True) -> None:
        """Initialize store.

        Args:
            vector_search_enabled: When False, vector_search reports the
                capability as missing (mirrors a database without pgvector)
        """
        self.vector_search_enabled = vector_search_enabled
        self._documents: dict[uuid.UUID, UserDocument] = {}
        self._chunks: dict[uuid.UUID, list[_StoredChunk]] = {}

    def _owned(self, document_id: uuid.UUID, ctx: RequestContext) -> UserDocument | None:
        document = self._documents.get(document_id)
        if document is None or document.owner_id != ctx.owner_id:
            return None
        return document

    def _update(self, document_id: uuid.UUID, **changes: object) -> UserDocument:
        updated = self._documents[document_id].model_copy(
            update={**changes, "updated_at": datetime.now(UTC)}
        )
        self._documents[document_id] = updated
        return updated

    async def create_document(
        self,
        ctx: RequestContext,
        *,
        title: str,
        file_name: str,
        storage_path: str,
        file_size: int | None,
        category: DocumentCategory,
    ) -> UserDocument:
        """Create a document in pending status."""
        now = datetime.now(UTC)
        document = UserDocument(
            document_id=uuid.uuid4(),
            owner_id=ctx.owner_id,
            title=title,
            file_name=file_name,
            storage_path=storage_path,
            file_size=file_size,
            category=category,
            status=ProcessingStatus.pending,
            total_chunks=0,
            created_at=now,
            updated_at=now,
        )
        self._documents[document.document_id] = document
        self._chunks[document.document_id] = []
        return document

    async def get_document(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> UserDocument | None:
        """Get document by ID."""
        return self._owned(document_id, ctx)

    async def list_documents(
        self, ctx: RequestContext, *, category: DocumentCategory | None = None
    ) -> list[UserDocument]:
        """List the owner's documents, newest first."""
        results = [
            doc
            for doc in self._documents.values()
            if doc.owner_id == ctx.owner_id and (category is None or doc.category == category)
        ]
        results.sort(key=lambda doc: doc.created_at, reverse=True)
        return results

    async def delete_document(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> UserDocument | None:
        """Delete a document and its chunks."""
        document = self._owned(document_id, ctx)
        if document is None:
            return None

        del self._documents[document_id]
        self._chunks.pop(document_id, None)
        return document

    async def claim_for_processing(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> UserDocument:
        """Move pending -> processing (no await between check and write)."""
        document = self._owned(document_id, ctx)
        if document is None:
            raise DocumentNotFoundError(document_id)

        if not can_start_processing(document.status):
            raise DocumentNotEligibleError(document_id, document.status.value)

        return self._update(document_id, status=ProcessingStatus.processing)

    async def add_chunk(
        self,
        document_id: uuid.UUID,
        ctx: RequestContext,
        chunk: TextChunk,
        embedding: list[float],
    ) -> None:
        """Persist one chunk with its embedding."""
        if self._owned(document_id, ctx) is None:
            raise StorageError(f"document {document_id} not found")

        stored = self._chunks[document_id]
        if any(existing.chunk.index == chunk.index for existing in stored):
            raise StorageError(f"duplicate chunk index {chunk.index} for document {document_id}")

        stored.append(_StoredChunk(chunk_id=uuid.uuid4(), chunk=chunk, embedding=list(embedding)))

    async def purge_chunks(self, document_id: uuid.UUID, ctx: RequestContext) -> int:
        """Delete every chunk of a document."""
        if self._owned(document_id, ctx) is None:
            return 0

        removed = len(self._chunks.get(document_id, []))
        self._chunks[document_id] = []
        return removed

    async def mark_completed(
        self, document_id: uuid.UUID, ctx: RequestContext, *, total_chunks: int
    ) -> None:
        """Terminal transition to completed."""
        if self._owned(document_id, ctx) is None:
            raise StorageError(f"document {document_id} not found")
        self._update(document_id, status=ProcessingStatus.completed, total_chunks=total_chunks)

    async def mark_failed(self, document_id: uuid.UUID, ctx: RequestContext) -> None:
        """Terminal transition to failed."""
        if self._owned(document_id, ctx) is None:
            raise StorageError(f"document {document_id} not found")
        self._update(document_id, status=ProcessingStatus.failed, total_chunks=0)

    def chunks_for(self, document_id: uuid.UUID) -> list[TextChunk]:
        """Stored chunks of a document in index order (test inspection helper)."""
        return sorted(
            (stored.chunk for stored in self._chunks.get(document_id, [])),
            key=lambda chunk: chunk.index,
        )

    def _searchable(
        self, ctx: RequestContext, categories: set[DocumentCategory] | None
    ) -> list[tuple[UserDocument, _StoredChunk]]:
        rows: list[tuple[UserDocument, _StoredChunk]] = []
        for document_id, stored_chunks in self._chunks.items():
            document = self._documents[document_id]
            if document.owner_id != ctx.owner_id:
                continue
            if document.status != ProcessingStatus.completed:
                continue
            if categories and document.category not in categories:
                continue
            rows.extend((document, stored) for stored in stored_chunks)
        return rows

    async def vector_search(
        self,
        ctx: RequestContext,
        embedding: list[float],
        *,
        limit: int,
        categories: set[DocumentCategory] | None = None,
    ) -> list[SearchResultItem]:
        """Rank by ascending Euclidean distance."""
        if not self.vector_search_enabled:
            raise VectorSearchUnavailableError("vector search disabled for this store")

        scored = [
            (math.dist(stored.embedding, embedding), document, stored)
            for document, stored in self._searchable(ctx, categories)
        ]
        scored.sort(key=lambda x: (x[0], x[1].created_at, x[2].chunk.index))

        return [_to_result(document, stored, distance) for distance, document, stored in scored[:limit]]

    async def lexical_search(
        self,
        ctx: RequestContext,
        query: str,
        *,
        limit: int,
        categories: set[DocumentCategory] | None = None,
    ) -> list[SearchResultItem]:
        """Substring match on query tokens, more matching tokens first."""
        tokens = query_tokens(query)
        if not tokens:
            return []

        scored: list[tuple[int, UserDocument, _StoredChunk]] = []
        for document, stored in self._searchable(ctx, categories):
            match_count = lexical_match_count(stored.chunk.content, tokens)
            if match_count > 0:
                scored.append((match_count, document, stored))

        scored.sort(key=lambda x: (-x[0], x[1].created_at, x[2].chunk.index))

        return [
            _to_result(document, stored, LEXICAL_SIMILARITY)
            for _, document, stored in scored[:limit]
        ]


def _to_result(document: UserDocument, stored: _StoredChunk, score: float) -> SearchResultItem:
    return SearchResultItem(
        id=stored.chunk_id,
        document_id=document.document_id,
        content=stored.chunk.content,
        page_number=stored.chunk.page_hint,
        section_title=stored.chunk.section_hint,
        document_title=document.title,
        document_type=document.category,
        file_name=document.file_name,
        similarity=score,
    )


class InMemoryBlobStore:
    """In-memory implementation of BlobStore."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def put(self, ctx: RequestContext, file_name: str, data: bytes) -> str:
        """Store bytes under the owner's prefix."""
        path = f"{ctx.owner_id}/{int(datetime.now(UTC).timestamp() * 1000)}_{file_name}"
        self._blobs[path] = data
        return path

    async def get(self, ctx: RequestContext, path: str) -> bytes:
        """Load bytes owned by the caller."""
        if not path.startswith(f"{ctx.owner_id}/") or path not in self._blobs:
            raise StorageError(f"blob not found: {path}")
        return self._blobs[path]

    async def delete(self, ctx: RequestContext, path: str) -> None:
        """Remove bytes owned by the caller."""
        if path.startswith(f"{ctx.owner_id}/"):
            self._blobs.pop(path, None)


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed windows.

    Expired windows are evicted on every check, so memory stays bounded by
    the number of callers active within one window.
    """

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def evict_expired(self, now: datetime) -> int:
        """Drop windows that ended before ``now``; returns the number evicted."""
        ttl = timedelta(seconds=self._window_seconds)
        expired = [key for key, (start, _) in self._windows.items() if now >= start + ttl]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available."""
        self.evict_expired(now)

        if key not in self._windows:
            # First request in a fresh window
            self._windows[key] = (now, 1)
            return None

        window_start, count = self._windows[key]

        if count >= self._max_requests:
            # Over quota
            seconds_remaining = int(
                (window_start + timedelta(seconds=self._window_seconds) - now).total_seconds()
            )
            return RetryAfter(seconds=max(1, seconds_remaining))

        # Increment count
        self._windows[key] = (window_start, count + 1)
        return None
