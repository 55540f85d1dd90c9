"""Filesystem blob store for uploaded manuals."""

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path

from backend.app.db.context import RequestContext
from backend.app.docs.errors import StorageError
from backend.app.utils.sanitize import sanitize_file_name

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """BlobStore writing to ``<root>/<owner_id>/<timestamp>_<file name>``.

    Paths outside the caller's own folder are rejected, so one owner can never
    read or delete another owner's files even with a forged path.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, ctx: RequestContext, path: str) -> Path:
        owner_dir = (self._root / str(ctx.owner_id)).resolve()
        target = (self._root / path).resolve()
        if not target.is_relative_to(owner_dir):
            raise StorageError(f"path outside owner folder: {path}")
        return target

    async def put(self, ctx: RequestContext, file_name: str, data: bytes) -> str:
        """Write bytes and return the owner-scoped storage path."""
        timestamp = int(datetime.now(UTC).timestamp() * 1000)
        path = f"{ctx.owner_id}/{timestamp}_{sanitize_file_name(file_name)}"
        target = self._resolve(ctx, path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"write blob failed: {type(e).__name__}") from e

        logger.info(f"Saved upload to blob store: {path} ({len(data)} bytes)")
        return path

    async def get(self, ctx: RequestContext, path: str) -> bytes:
        """Read bytes owned by the caller."""
        target = self._resolve(ctx, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise StorageError(f"read blob failed: {type(e).__name__}") from e

    async def delete(self, ctx: RequestContext, path: str) -> None:
        """Remove bytes owned by the caller; missing files are ignored."""
        target = self._resolve(ctx, path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as e:
            raise StorageError(f"delete blob failed: {type(e).__name__}") from e
