"""Tenancy-safe query helpers and lexical match scoring."""

from sqlalchemy import ColumnElement, Select, case, func, literal, select

from backend.app.db.context import RequestContext
from backend.app.db.models import Document, DocumentChunk
from backend.app.models.docs import DocumentCategory, ProcessingStatus

# Fixed score assigned to every lexical (non-vector) match
LEXICAL_SIMILARITY = 0.5


def select_documents(ctx: RequestContext) -> Select[tuple[Document]]:
    """Select documents with owner scoping enforced.

    Args:
        ctx: Request context with owner_id

    Returns:
        Select filtered by owner_id
    """
    return select(Document).where(Document.owner_id == ctx.owner_id)


def select_searchable_chunks(
    ctx: RequestContext,
    categories: set[DocumentCategory] | None = None,
) -> Select[tuple[DocumentChunk, Document]]:
    """Select (chunk, document) rows eligible for retrieval.

    Enforces owner scoping and the completed-status predicate, and applies
    the optional category filter.

    Args:
        ctx: Request context with owner_id
        categories: Allowed document categories (None or empty means all)

    Returns:
        Select over chunks joined to their documents
    """
    stmt = (
        select(DocumentChunk, Document)
        .join(Document, DocumentChunk.document_id == Document.document_id)
        .where(
            Document.owner_id == ctx.owner_id,
            Document.status == ProcessingStatus.completed.value,
        )
    )
    if categories:
        stmt = stmt.where(Document.category.in_(sorted(c.value for c in categories)))
    return stmt


def query_tokens(query: str) -> list[str]:
    """Lowercase whitespace tokens of a search query, duplicates removed."""
    tokens: list[str] = []
    for token in query.lower().split():
        token = token.strip()
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def lexical_match_count(content: str, tokens: list[str]) -> int:
    """Count how many query tokens appear as substrings of the content."""
    content_lower = content.lower()
    return sum(1 for token in tokens if token in content_lower)


def lexical_match_score(tokens: list[str]) -> ColumnElement[int]:
    """SQL twin of lexical_match_count over DocumentChunk.content.

    LIKE wildcards in the tokens are escaped, so ``%`` and ``_`` match literally.
    """
    content_lower = func.lower(DocumentChunk.content)
    score: ColumnElement[int] = literal(0)
    for token in tokens:
        score = score + case((content_lower.contains(token, autoescape=True), 1), else_=0)
    return score
