"""Response models for grounded answers (POST /chat)."""

from typing import Literal

from pydantic import BaseModel, Field


class AnswerSource(BaseModel):
    """Manual excerpt backing an answer."""

    title: str = Field(..., description="Document title")
    section: str | None = Field(None, description="Best-effort section heading")
    page: int | None = Field(None, description="Best-effort page number")
    excerpt: str = Field(..., description="Chunk text, truncated for display")


class ChatAnswer(BaseModel):
    """Synthesized answer grounded in retrieved manual chunks."""

    answer_markdown: str = Field(..., description="Markdown answer shown to the crew")
    sources: list[AnswerSource] = Field(default_factory=list)
    synthesis_source: Literal["openai", "stub"] = Field(
        ..., description="Source of synthesis: 'openai' for real LLM, 'stub' for fallback"
    )
