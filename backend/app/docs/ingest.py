"""Document ingestion - extract, chunk, embed and persist a manual.

State machine per document: pending -> processing -> completed | failed.
The pending -> processing claim is a single atomic store write and doubles
as the per-document mutual exclusion gate; both terminal transitions are made
here and nowhere else.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import assert_never
from uuid import UUID

from backend.app.config import Settings
from backend.app.db.context import RequestContext
from backend.app.db.repositories import BlobStore, DocumentStore
from backend.app.docs.chunker import TextChunk, chunk_text
from backend.app.docs.embedder import Embedder
from backend.app.docs.errors import ExtractionError, IngestionError
from backend.app.docs.extractor import PageRecognizer, TextExtractor, extract_document
from backend.app.models.docs import ProcessingStatus, UserDocument
from backend.app.utils.logging import StructuredPipelineLogger
from backend.app.utils.metrics import pipeline_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestionOutcome:
    """Result of a successful ingestion run."""

    document_id: UUID
    status: ProcessingStatus
    chunks_processed: int


class IngestionPipeline:
    """Orchestrates Extractor -> Chunker -> Embedder -> Store for one document."""

    def __init__(
        self,
        *,
        store: DocumentStore,
        blobs: BlobStore,
        embedder: Embedder,
        extractor: TextExtractor,
        recognizer: PageRecognizer,
        settings: Settings,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._embedder = embedder
        self._extractor = extractor
        self._recognizer = recognizer
        self._settings = settings
        self._log = StructuredPipelineLogger()

    async def ingest(
        self,
        document_id: UUID,
        ctx: RequestContext,
        *,
        extracted_text: str | None = None,
    ) -> IngestionOutcome:
        """Run ingestion for a pending document.

        Args:
            document_id: Document to process
            ctx: Request context (enforces tenancy)
            extracted_text: Text extracted upstream; skips blob load and extraction

        Returns:
            IngestionOutcome with the completed chunk count

        Raises:
            DocumentNotFoundError: Document missing or foreign (no state change)
            DocumentNotEligibleError: Document not pending (no state change)
            IngestionError: Run aborted; document is now failed and its chunks purged
            asyncio.CancelledError: Run cancelled; document is failed as above
        """
        document = await self._store.claim_for_processing(document_id, ctx)
        logger.info(f"Processing document: {document.title} ({document.file_name})")

        try:
            text = extracted_text if extracted_text is not None else await self._extract(document, ctx)
            chunks = chunk_text(
                text,
                chunk_size=self._settings.chunk_size,
                overlap=self._settings.chunk_overlap,
            )
            if not chunks:
                raise ExtractionError("no text to index")
            logger.info(f"Created {len(chunks)} text chunks for document {document_id}")

            await self._embed_and_store(document_id, ctx, chunks)
            await self._store.mark_completed(document_id, ctx, total_chunks=len(chunks))
        except asyncio.CancelledError as e:
            # A cancelled run must still reach a terminal status
            await self._fail(document_id, ctx, e)
            pipeline_metrics.inc_ingestion(outcome=ProcessingStatus.failed.value)
            raise
        except Exception as e:
            await self._fail(document_id, ctx, e)
            pipeline_metrics.inc_ingestion(outcome=ProcessingStatus.failed.value)
            raise IngestionError(document_id, type(e).__name__) from e

        pipeline_metrics.inc_ingestion(outcome=ProcessingStatus.completed.value)
        logger.info(f"Successfully processed document {document_id} with {len(chunks)} chunks")

        return IngestionOutcome(
            document_id=document_id,
            status=ProcessingStatus.completed,
            chunks_processed=len(chunks),
        )

    async def _extract(self, document: UserDocument, ctx: RequestContext) -> str:
        started = time.perf_counter()
        data = await self._blobs.get(ctx, document.storage_path)
        result = await extract_document(
            data,
            extractor=self._extractor,
            recognizer=self._recognizer,
            title=document.title,
            ocr_timeout_seconds=self._settings.ocr_timeout_seconds,
        )
        self._log.log_stage(
            document.document_id,
            "extract",
            "success",
            (time.perf_counter() - started) * 1000,
        )
        return result.content

    async def _embed_and_store(
        self,
        document_id: UUID,
        ctx: RequestContext,
        chunks: list[TextChunk],
    ) -> None:
        """Embed and persist chunks in index order; the first error aborts."""
        batch_size = max(1, self._settings.embedding_batch_size)

        for offset in range(0, len(chunks), batch_size):
            batch = chunks[offset : offset + batch_size]
            started = time.perf_counter()

            try:
                if len(batch) == 1:
                    vectors = [await self._embedder.embed(batch[0].content)]
                else:
                    vectors = await self._embedder.embed_many([c.content for c in batch])
            except Exception as e:
                self._log.log_stage(
                    document_id,
                    "embed",
                    "error",
                    (time.perf_counter() - started) * 1000,
                    chunk_index=batch[0].index,
                    error_reason=type(e).__name__,
                )
                raise

            for chunk, vector in zip(batch, vectors, strict=True):
                await self._store.add_chunk(document_id, ctx, chunk, vector)
                pipeline_metrics.inc_chunks()

            if offset % 10 == 0:
                logger.info(f"Processed {offset + len(batch)}/{len(chunks)} chunks")

    async def _fail(self, document_id: UUID, ctx: RequestContext, error: BaseException) -> None:
        """Best-effort failed transition; errors here are logged, never retried."""
        logger.error(
            f"Ingestion of document {document_id} failed: {error}",
            extra={"structured": {"document_id": str(document_id), "error": type(error).__name__}},
        )

        try:
            removed = await self._store.purge_chunks(document_id, ctx)
            if removed:
                logger.info(f"Purged {removed} chunks of failed document {document_id}")
        except Exception:
            logger.exception(f"Error purging chunks of failed document {document_id}")

        try:
            await self._store.mark_failed(document_id, ctx)
        except Exception:
            logger.exception(f"Error updating document {document_id} status to failed")


def describe_status(document: UserDocument) -> str:
    """Human-readable processing status for listings."""
    match document.status:
        case ProcessingStatus.pending:
            return "Waiting to be processed"
        case ProcessingStatus.processing:
            return "Processing"
        case ProcessingStatus.completed:
            return f"Ready ({document.total_chunks} chunks)"
        case ProcessingStatus.failed:
            return "Processing failed, re-upload to retry"
        case _:
            assert_never(document.status)
