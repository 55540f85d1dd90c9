"""Global pytest configuration."""

import os

# Settings are cached on first use; point the default engine at an in-memory
# database before backend.app is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
