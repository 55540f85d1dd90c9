"""Request context for tenancy enforcement."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the caller's identity.

    Every document, chunk and blob belongs to exactly one owner. Stores take a
    RequestContext on every call and scope their queries to ``owner_id``.
    """

    owner_id: UUID
