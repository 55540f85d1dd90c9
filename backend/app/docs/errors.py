"""Exception types for the document ingestion and retrieval pipeline."""

from uuid import UUID


class DocumentPipelineError(Exception):
    """Base class for ingestion and retrieval failures."""

    pass


class ExtractionError(DocumentPipelineError):
    """Document bytes could not be turned into text."""

    pass


class EmbeddingError(DocumentPipelineError):
    """Embedding provider call failed or returned an unusable vector."""

    pass


class StorageError(DocumentPipelineError):
    """Document store or blob store operation failed."""

    pass


class VectorSearchUnavailableError(DocumentPipelineError):
    """Store cannot rank by vector distance (capability missing, not a data error)."""

    pass


class DocumentNotFoundError(DocumentPipelineError):
    """Document does not exist or belongs to another owner."""

    def __init__(self, document_id: UUID) -> None:
        super().__init__(f"document {document_id} not found")
        self.document_id = document_id


class DocumentNotEligibleError(DocumentPipelineError):
    """Document is not pending, so ingestion cannot start."""

    def __init__(self, document_id: UUID, status: str) -> None:
        super().__init__(f"document {document_id} is {status}, expected pending")
        self.document_id = document_id
        self.status = status


class IngestionError(DocumentPipelineError):
    """Ingestion run aborted; the document has been marked failed."""

    def __init__(self, document_id: UUID, reason: str) -> None:
        super().__init__(f"ingestion of document {document_id} failed: {reason}")
        self.document_id = document_id
        self.reason = reason
