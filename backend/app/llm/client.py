"""LLM client for grounded answer synthesis with OpenAI integration.

Security: Reads API key from environment only, never hardcoded.
Provides deterministic fallback when no key present for testing.
"""

import logging
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

from backend.app.config import Settings, get_settings
from backend.app.models.answer import AnswerSource, ChatAnswer
from backend.app.models.docs import SearchResultItem

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 300
MAX_ANSWER_CHARS = 10000


def _excerpt(content: str) -> str:
    return content if len(content) <= EXCERPT_CHARS else content[: EXCERPT_CHARS - 3] + "..."


def build_sources(results: list[SearchResultItem]) -> list[AnswerSource]:
    """Map retrieved chunks to citation entries, preserving rank order."""
    return [
        AnswerSource(
            title=item.document_title,
            section=item.section_title,
            page=item.page_number,
            excerpt=_excerpt(item.content),
        )
        for item in results
    ]


class LLMClient(Protocol):
    """Protocol for LLM client implementations."""

    async def synthesize_answer(
        self, *, question: str, results: list[SearchResultItem]
    ) -> ChatAnswer:
        """Answer a question using only the retrieved manual chunks.

        Args:
            question: Crew question
            results: Retrieved chunks, best first

        Returns:
            ChatAnswer with markdown answer and cited sources
        """
        ...


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def synthesize_answer(
        self, *, question: str, results: list[SearchResultItem]
    ) -> ChatAnswer:
        """Generate deterministic stub answer."""
        sources = build_sources(results)

        if not results:
            answer_markdown = (
                "No relevant passages were found in your manuals for this question.\n\n"
                "*This is a stub response generated without LLM synthesis.*"
            )
            return ChatAnswer(answer_markdown=answer_markdown, sources=[], synthesis_source="stub")

        lines = [f"**Question**: {question}", "", "Relevant passages:", ""]
        for source in sources:
            location = f"page {source.page}" if source.page is not None else "page unknown"
            lines.append(f"- *{source.title}* ({location}): {source.excerpt}")
        lines.append("")
        lines.append("*This is a stub response generated without LLM synthesis.*")

        return ChatAnswer(
            answer_markdown="\n".join(lines), sources=sources, synthesis_source="stub"
        )


class OpenAIClient:
    """OpenAI-backed LLM client for real synthesis."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def synthesize_answer(
        self, *, question: str, results: list[SearchResultItem]
    ) -> ChatAnswer:
        """Generate answer using OpenAI API."""
        stub = DeterministicStubClient()
        if not results:
            return await stub.synthesize_answer(question=question, results=results)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt()},
                    {"role": "user", "content": self._build_context(question, results)},
                ],
                temperature=0.2,
                max_tokens=1500,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI API call failed: {e}")
            logger.warning("Falling back to deterministic stub client for synthesis")
            return await stub.synthesize_answer(question=question, results=results)

        answer_markdown = response.choices[0].message.content or ""

        if not answer_markdown.strip():
            logger.warning("OpenAI returned empty response, using deterministic stub fallback")
            return await stub.synthesize_answer(question=question, results=results)

        if len(answer_markdown) > MAX_ANSWER_CHARS:
            logger.warning(
                f"OpenAI response unexpectedly large ({len(answer_markdown)} chars), "
                f"truncating to {MAX_ANSWER_CHARS}"
            )
            answer_markdown = answer_markdown[:MAX_ANSWER_CHARS] + "\n\n[Truncated]"

        return ChatAnswer(
            answer_markdown=answer_markdown,
            sources=build_sources(results),
            synthesis_source="openai",
        )

    def _build_system_prompt(self) -> str:
        """Build system prompt for synthesis."""
        return """You are an assistant for airline flight crew. Answer the question using
only the numbered manual excerpts provided below.

CRITICAL CONSTRAINTS:
- Do NOT invent procedures, limitations, values or checklist items that are not present
  in the excerpts.
- Quote numeric limits exactly as written.
- Cite excerpts inline as [1], [2], ... matching their numbers.
- If the excerpts do not answer the question, say so plainly and do not guess.

Format the response as concise markdown."""

    def _build_context(self, question: str, results: list[SearchResultItem]) -> str:
        """Build context string for LLM from retrieved chunks."""
        lines = [f"## Question\n{question}", "", "## Manual Excerpts"]
        for i, item in enumerate(results, start=1):
            header = f"[{i}] {item.document_title} ({item.document_type.value})"
            if item.section_title:
                header += f" - {item.section_title}"
            if item.page_number is not None:
                header += f", page {item.page_number}"
            lines.append(header)
            lines.append(item.content)
            lines.append("")
        return "\n".join(lines)


def get_llm_client(settings: Settings | None = None) -> LLMClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for synthesis")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_chat_model,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient()
