"""Prometheus metrics for ingestion and retrieval."""

from prometheus_client import Counter, Histogram

ingestion_runs_total = Counter(
    "ingestion_runs_total",
    "Total document ingestion runs by terminal outcome",
    ["outcome"],
)

chunks_persisted_total = Counter(
    "chunks_persisted_total",
    "Total chunks embedded and persisted",
)

embedding_latency_ms = Histogram(
    "embedding_latency_ms",
    "Embedding provider call latency in milliseconds",
    ["provider", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

ocr_fallback_total = Counter(
    "ocr_fallback_total",
    "OCR fallback attempts by outcome",
    ["outcome"],
)

search_requests_total = Counter(
    "search_requests_total",
    "Total retrieval requests by ranking mode",
    ["mode"],
)


class PrometheusPipelineMetrics:
    """Prometheus-based pipeline metrics implementation."""

    def inc_ingestion(self, outcome: str) -> None:
        """Count an ingestion run reaching a terminal outcome."""
        ingestion_runs_total.labels(outcome=outcome).inc()

    def inc_chunks(self, count: int = 1) -> None:
        """Count persisted chunks."""
        chunks_persisted_total.inc(count)

    def record_embedding(self, provider: str, outcome: str, latency_ms: float) -> None:
        """Record embedding call latency."""
        embedding_latency_ms.labels(provider=provider, outcome=outcome).observe(latency_ms)

    def inc_ocr(self, outcome: str) -> None:
        """Count an OCR fallback attempt (replaced, kept, error, timeout)."""
        ocr_fallback_total.labels(outcome=outcome).inc()

    def inc_search(self, mode: str) -> None:
        """Count a search served by the given ranking mode."""
        search_requests_total.labels(mode=mode).inc()


pipeline_metrics = PrometheusPipelineMetrics()
