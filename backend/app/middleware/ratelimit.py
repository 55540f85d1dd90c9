"""Rate limiting middleware."""

from datetime import UTC, datetime

from backend.app.db.context import RequestContext
from backend.app.db.repositories import RateLimiter
from backend.app.ratelimit import make_rate_limit_key

UPLOAD_BUCKET = "upload"


class RateLimitMiddleware:
    """Maps request paths to buckets and enforces per-owner rate limits."""

    def __init__(self, limiter: RateLimiter, bucket_map: dict[str, str]) -> None:
        """Initialize rate limit middleware.

        Args:
            limiter: Rate limiter implementation
            bucket_map: Mapping from path patterns to bucket names
        """
        self._limiter = limiter
        self._bucket_map = bucket_map

    def check_rate_limit(
        self, path: str, ctx: RequestContext, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            path: Request path
            ctx: Request context
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = datetime.now(UTC)

        bucket = self._get_bucket(path)
        if bucket is None:
            # No rate limit for this path
            return (True, 0)

        retry_after = self._limiter.check_quota(make_rate_limit_key(ctx, bucket), now)
        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)

    def _get_bucket(self, path: str) -> str | None:
        for pattern, bucket in self._bucket_map.items():
            if path.rstrip("/") == pattern:
                return bucket
        return None


def create_default_bucket_map() -> dict[str, str]:
    """Create default bucket mapping.

    Only manual uploads are limited; search and chat are not.
    """
    return {"/documents": UPLOAD_BUCKET}
