"""Models package - re-exports for convenience."""

from backend.app.models.answer import AnswerSource, ChatAnswer
from backend.app.models.docs import (
    DocumentCategory,
    PageText,
    ProcessingMethod,
    ProcessingStatus,
    SearchResultItem,
    UserDocument,
)

__all__ = [
    # Documents
    "DocumentCategory",
    "ProcessingStatus",
    "ProcessingMethod",
    "UserDocument",
    "PageText",
    "SearchResultItem",
    # Answers
    "AnswerSource",
    "ChatAnswer",
]
