"""Structured logging for ingestion stages."""

import logging
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


class StructuredPipelineLogger:
    """Structured logger for ingestion pipeline stages."""

    def log_stage(
        self,
        document_id: UUID,
        stage: str,
        outcome: str,
        latency_ms: float,
        *,
        chunk_index: int | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log one pipeline stage with structured data."""
        log_data: dict[str, Any] = {
            "document_id": str(document_id),
            "stage": stage,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if chunk_index is not None:
            log_data["chunk_index"] = chunk_index
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Ingestion stage: {stage} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
