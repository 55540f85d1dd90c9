"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - ingestion_runs_total{outcome}
    - embedding_latency_ms{provider, outcome}
    - ocr_fallback_total{outcome}
    - search_requests_total{mode}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
