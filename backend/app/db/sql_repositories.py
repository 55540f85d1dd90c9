"""SQL implementations of repository interfaces."""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from backend.app.db.context import RequestContext
from backend.app.db.models import Document, DocumentChunk
from backend.app.db.queries import (
    LEXICAL_SIMILARITY,
    lexical_match_score,
    query_tokens,
    select_documents,
    select_searchable_chunks,
)
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
)

logger = logging.getLogger(__name__)


def _to_domain(doc: Document) -> UserDocument:
    return UserDocument(
        document_id=doc.document_id,
        owner_id=doc.owner_id,
        title=doc.title,
        file_name=doc.file_name,
        storage_path=doc.storage_path,
        file_size=doc.file_size,
        category=DocumentCategory(doc.category),
        status=ProcessingStatus(doc.status),
        total_chunks=doc.total_chunks,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


def _to_result(chunk: DocumentChunk, doc: Document, score: float) -> SearchResultItem:
    return SearchResultItem(
        id=chunk.chunk_id,
        document_id=doc.document_id,
        content=chunk.content,
        page_number=chunk.page_number,
        section_title=chunk.section_title,
        document_title=doc.title,
        document_type=DocumentCategory(doc.category),
        file_name=doc.file_name,
        similarity=float(score),
    )


class SqlDocumentStore:
    """SQL implementation of DocumentStore.

    On PostgreSQL every transaction first binds ``app.current_owner_id`` so
    the row level security policies from the migrations apply in addition to
    the explicit owner filters below.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._vector_capable: bool | None = None

    @property
    def _dialect(self) -> str:
        bind = self._session.bind
        return bind.dialect.name if bind is not None else ""

    async def _bind_owner(self, ctx: RequestContext) -> None:
        if self._dialect == "postgresql":
            await self._session.execute(
                text("SELECT set_config('app.current_owner_id', :owner_id, true)"),
                {"owner_id": str(ctx.owner_id)},
            )

    async def _commit(self, operation: str) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"{operation} failed: {type(e).__name__}") from e

    async def _load(self, document_id: uuid.UUID, ctx: RequestContext) -> Document | None:
        result = await self._session.execute(
            select_documents(ctx).where(Document.document_id == document_id)
        )
        return result.scalar_one_or_none()

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
        doc = Document(
            document_id=uuid.uuid4(),
            owner_id=ctx.owner_id,
            title=title,
            file_name=file_name,
            storage_path=storage_path,
            file_size=file_size,
            category=category.value,
            status=ProcessingStatus.pending.value,
            total_chunks=0,
            created_at=now,
            updated_at=now,
        )
        # Snapshot before commit; committed instances are expired
        created = _to_domain(doc)

        try:
            await self._bind_owner(ctx)
            self._session.add(doc)
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"create document failed: {type(e).__name__}") from e
        await self._commit("create document")

        return created

    async def get_document(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> UserDocument | None:
        """Get document by ID."""
        await self._bind_owner(ctx)
        doc = await self._load(document_id, ctx)
        return _to_domain(doc) if doc is not None else None

    async def list_documents(
        self, ctx: RequestContext, *, category: DocumentCategory | None = None
    ) -> list[UserDocument]:
        """List the owner's documents, newest first."""
        await self._bind_owner(ctx)

        stmt = select_documents(ctx)
        if category is not None:
            stmt = stmt.where(Document.category == category.value)
        stmt = stmt.order_by(Document.created_at.desc())

        result = await self._session.execute(stmt)
        return [_to_domain(doc) for doc in result.scalars().all()]

    async def delete_document(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> UserDocument | None:
        """Delete a document and its chunks."""
        try:
            await self._bind_owner(ctx)
            doc = await self._load(document_id, ctx)
            if doc is None:
                return None
            deleted = _to_domain(doc)

            # Explicit chunk delete; SQLite does not enforce ON DELETE CASCADE by default
            await self._session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            await self._session.execute(
                delete(Document).where(
                    Document.document_id == document_id, Document.owner_id == ctx.owner_id
                )
            )
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"delete document failed: {type(e).__name__}") from e
        await self._commit("delete document")

        return deleted

    async def claim_for_processing(
        self, document_id: uuid.UUID, ctx: RequestContext
    ) -> UserDocument:
        """Move pending -> processing with a single conditional UPDATE."""
        try:
            await self._bind_owner(ctx)
            result = await self._session.execute(
                update(Document)
                .where(
                    Document.document_id == document_id,
                    Document.owner_id == ctx.owner_id,
                    Document.status == ProcessingStatus.pending.value,
                )
                .values(
                    status=ProcessingStatus.processing.value,
                    updated_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"claim document failed: {type(e).__name__}") from e
        await self._commit("claim document")

        # Re-read after commit so the returned status reflects the database
        await self._bind_owner(ctx)
        self._session.expire_all()
        doc = await self._load(document_id, ctx)

        if doc is None:
            raise DocumentNotFoundError(document_id)
        if result.rowcount != 1:
            raise DocumentNotEligibleError(document_id, doc.status)

        return _to_domain(doc)

    async def add_chunk(
        self,
        document_id: uuid.UUID,
        ctx: RequestContext,
        chunk: TextChunk,
        embedding: list[float],
    ) -> None:
        """Persist one chunk with its embedding."""
        try:
            await self._bind_owner(ctx)
            if await self._load(document_id, ctx) is None:
                raise StorageError(f"document {document_id} not found")

            self._session.add(
                DocumentChunk(
                    chunk_id=uuid.uuid4(),
                    document_id=document_id,
                    chunk_index=chunk.index,
                    content=chunk.content,
                    page_number=chunk.page_hint,
                    section_title=chunk.section_hint,
                    embedding=embedding,
                )
            )
            await self._session.flush()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"store chunk {chunk.index} failed: {type(e).__name__}") from e
        await self._commit(f"store chunk {chunk.index}")

    async def purge_chunks(self, document_id: uuid.UUID, ctx: RequestContext) -> int:
        """Delete every chunk of a document."""
        try:
            await self._bind_owner(ctx)
            if await self._load(document_id, ctx) is None:
                return 0
            result = await self._session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"purge chunks failed: {type(e).__name__}") from e
        await self._commit("purge chunks")

        return result.rowcount or 0

    async def _set_terminal(
        self,
        document_id: uuid.UUID,
        ctx: RequestContext,
        status: ProcessingStatus,
        total_chunks: int,
    ) -> None:
        try:
            await self._bind_owner(ctx)
            result = await self._session.execute(
                update(Document)
                .where(
                    Document.document_id == document_id,
                    Document.owner_id == ctx.owner_id,
                    Document.status == ProcessingStatus.processing.value,
                )
                .values(
                    status=status.value,
                    total_chunks=total_chunks,
                    updated_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise StorageError(f"mark {status.value} failed: {type(e).__name__}") from e
        await self._commit(f"mark {status.value}")

        if result.rowcount != 1:
            raise StorageError(f"document {document_id} is not processing")

    async def mark_completed(
        self, document_id: uuid.UUID, ctx: RequestContext, *, total_chunks: int
    ) -> None:
        """Terminal transition to completed."""
        await self._set_terminal(document_id, ctx, ProcessingStatus.completed, total_chunks)

    async def mark_failed(self, document_id: uuid.UUID, ctx: RequestContext) -> None:
        """Terminal transition to failed."""
        await self._set_terminal(document_id, ctx, ProcessingStatus.failed, 0)

    async def supports_vector_search(self) -> bool:
        """Capability probe: PostgreSQL with the pgvector extension installed."""
        if self._vector_capable is None:
            if self._dialect != "postgresql":
                self._vector_capable = False
            else:
                try:
                    result = await self._session.execute(
                        text("SELECT 1 FROM pg_extension WHERE extname = 'vector'")
                    )
                except SQLAlchemyError as e:
                    raise StorageError(f"capability check failed: {type(e).__name__}") from e
                self._vector_capable = result.first() is not None
        return self._vector_capable

    async def vector_search(
        self,
        ctx: RequestContext,
        embedding: list[float],
        *,
        limit: int,
        categories: set[DocumentCategory] | None = None,
    ) -> list[SearchResultItem]:
        """Rank by ascending L2 distance (pgvector ``<->``)."""
        if not await self.supports_vector_search():
            raise VectorSearchUnavailableError(f"no vector support on {self._dialect!r}")

        distance = DocumentChunk.embedding.l2_distance(embedding).label("distance")
        stmt = (
            select_searchable_chunks(ctx, categories)
            .add_columns(distance)
            .where(DocumentChunk.embedding.is_not(None))
            .order_by(distance, Document.created_at, DocumentChunk.chunk_index)
            .limit(limit)
            .options(defer(DocumentChunk.embedding))
        )

        try:
            await self._bind_owner(ctx)
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"vector search failed: {type(e).__name__}") from e

        return [_to_result(chunk, doc, dist) for chunk, doc, dist in result.all()]

    async def lexical_search(
        self,
        ctx: RequestContext,
        query: str,
        *,
        limit: int,
        categories: set[DocumentCategory] | None = None,
    ) -> list[SearchResultItem]:
        """Case-insensitive containment of any query token, most tokens first.

        Scoring, ordering and the limit all run in the database.
        """
        tokens = query_tokens(query)
        if not tokens:
            return []

        content_lower = func.lower(DocumentChunk.content)
        score = lexical_match_score(tokens).label("match_count")
        stmt = (
            select_searchable_chunks(ctx, categories)
            .add_columns(score)
            .where(or_(*(content_lower.contains(token, autoescape=True) for token in tokens)))
            .order_by(score.desc(), Document.created_at, DocumentChunk.chunk_index)
            .limit(limit)
            .options(defer(DocumentChunk.embedding))
        )

        try:
            await self._bind_owner(ctx)
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"lexical search failed: {type(e).__name__}") from e

        return [_to_result(chunk, doc, LEXICAL_SIMILARITY) for chunk, doc, _ in result.all()]
