"""Repository protocol interfaces for data access."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from backend.app.db.context import RequestContext
from backend.app.docs.chunker import TextChunk
from backend.app.models.docs import DocumentCategory, SearchResultItem, UserDocument


class DocumentStore(Protocol):
    """Durable storage for documents, chunks and vectors.

    Every method is scoped to ``ctx.owner_id``: documents of other owners
    behave exactly like missing documents.
    """

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
        ...

    async def get_document(self, document_id: UUID, ctx: RequestContext) -> UserDocument | None:
        """Get document by ID, or None if missing or foreign."""
        ...

    async def list_documents(
        self, ctx: RequestContext, *, category: DocumentCategory | None = None
    ) -> list[UserDocument]:
        """List the owner's documents, newest first."""
        ...

    async def delete_document(self, document_id: UUID, ctx: RequestContext) -> UserDocument | None:
        """Delete a document and all its chunks.

        Returns:
            The deleted document, or None if missing or foreign
        """
        ...

    async def claim_for_processing(self, document_id: UUID, ctx: RequestContext) -> UserDocument:
        """Atomically move a document from pending to processing.

        Raises:
            DocumentNotFoundError: If the document is missing or foreign
            DocumentNotEligibleError: If the document is not pending
        """
        ...

    async def add_chunk(
        self,
        document_id: UUID,
        ctx: RequestContext,
        chunk: TextChunk,
        embedding: list[float],
    ) -> None:
        """Persist one chunk with its embedding.

        Raises:
            StorageError: If the write fails
        """
        ...

    async def purge_chunks(self, document_id: UUID, ctx: RequestContext) -> int:
        """Delete every chunk of a document; returns the number removed."""
        ...

    async def mark_completed(
        self, document_id: UUID, ctx: RequestContext, *, total_chunks: int
    ) -> None:
        """Terminal transition processing -> completed with the final chunk count."""
        ...

    async def mark_failed(self, document_id: UUID, ctx: RequestContext) -> None:
        """Terminal transition processing -> failed; chunk count reset to 0."""
        ...

    async def vector_search(
        self,
        ctx: RequestContext,
        embedding: list[float],
        *,
        limit: int,
        categories: set[DocumentCategory] | None = None,
    ) -> list[SearchResultItem]:
        """Rank chunks of completed documents by ascending L2 distance.

        Raises:
            VectorSearchUnavailableError: If the store cannot rank by vector
        """
        ...

    async def lexical_search(
        self,
        ctx: RequestContext,
        query: str,
        *,
        limit: int,
        categories: set[DocumentCategory] | None = None,
    ) -> list[SearchResultItem]:
        """Match query tokens against chunk content of completed documents."""
        ...


class BlobStore(Protocol):
    """Storage for original file bytes, keyed by owner-scoped path."""

    async def put(self, ctx: RequestContext, file_name: str, data: bytes) -> str:
        """Store bytes and return the storage path ("<owner_id>/<name>")."""
        ...

    async def get(self, ctx: RequestContext, path: str) -> bytes:
        """Load bytes.

        Raises:
            StorageError: If the path is missing or belongs to another owner
        """
        ...

    async def delete(self, ctx: RequestContext, path: str) -> None:
        """Remove bytes; missing paths are ignored."""
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
