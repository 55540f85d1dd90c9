"""Tests for LLM answer synthesis.

All tests are deterministic and do not make real network calls.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError
from pydantic import SecretStr

from backend.app.config import Settings
from backend.app.llm.client import (
    EXCERPT_CHARS,
    DeterministicStubClient,
    OpenAIClient,
    build_sources,
    get_llm_client,
)
from backend.app.models.docs import DocumentCategory, SearchResultItem


def _result(content: str, *, title: str = "A320 QRH", page: int | None = 3) -> SearchResultItem:
    return SearchResultItem(
        id=uuid.uuid4(),
        document_id=uuid.uuid4(),
        content=content,
        page_number=page,
        section_title="ENGINE FIRE",
        document_title=title,
        document_type=DocumentCategory.QRH,
        file_name="qrh.pdf",
        similarity=0.12,
    )


@pytest.fixture
def results() -> list[SearchResultItem]:
    return [
        _result("Thrust lever of affected engine IDLE. Engine master OFF."),
        _result("Discharge agent 1 after 10 seconds.", title="A320 FCOM", page=None),
    ]


def _mock_completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def test_build_sources_preserves_order_and_truncates() -> None:
    long_text = "x" * (EXCERPT_CHARS + 50)

    sources = build_sources([_result("short"), _result(long_text)])

    assert [s.excerpt for s in sources][0] == "short"
    assert len(sources[1].excerpt) == EXCERPT_CHARS
    assert sources[1].excerpt.endswith("...")
    assert sources[0].section == "ENGINE FIRE"
    assert sources[0].page == 3


@pytest.mark.asyncio
async def test_stub_client_lists_passages(results: list[SearchResultItem]) -> None:
    answer = await DeterministicStubClient().synthesize_answer(
        question="What is the engine fire procedure?", results=results
    )

    assert answer.synthesis_source == "stub"
    assert len(answer.sources) == 2
    assert "A320 QRH" in answer.answer_markdown
    assert "page unknown" in answer.answer_markdown


@pytest.mark.asyncio
async def test_stub_client_is_deterministic(results: list[SearchResultItem]) -> None:
    stub = DeterministicStubClient()

    first = await stub.synthesize_answer(question="q", results=results)
    second = await stub.synthesize_answer(question="q", results=results)

    assert first == second


@pytest.mark.asyncio
async def test_stub_client_handles_no_results() -> None:
    answer = await DeterministicStubClient().synthesize_answer(question="q", results=[])

    assert answer.sources == []
    assert "No relevant passages" in answer.answer_markdown


@pytest.mark.asyncio
async def test_openai_client_returns_model_answer(results: list[SearchResultItem]) -> None:
    client = OpenAIClient(api_key="test-key")
    client.client = AsyncMock()
    client.client.chat.completions.create = AsyncMock(
        return_value=_mock_completion("Set thrust lever to IDLE [1].")
    )

    answer = await client.synthesize_answer(question="Engine fire?", results=results)

    assert answer.synthesis_source == "openai"
    assert answer.answer_markdown == "Set thrust lever to IDLE [1]."
    assert len(answer.sources) == 2

    messages = client.client.chat.completions.create.call_args.kwargs["messages"]
    assert "[1] A320 QRH (QRH) - ENGINE FIRE, page 3" in messages[1]["content"]
    assert "Engine fire?" in messages[1]["content"]


@pytest.mark.asyncio
async def test_openai_client_falls_back_to_stub_on_error(results: list[SearchResultItem]) -> None:
    client = OpenAIClient(api_key="test-key")
    client.client = AsyncMock()
    client.client.chat.completions.create = AsyncMock(side_effect=OpenAIError("API error"))

    answer = await client.synthesize_answer(question="q", results=results)

    assert answer.synthesis_source == "stub"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [None, "   "])
async def test_openai_client_falls_back_on_empty_response(
    results: list[SearchResultItem], content: str | None
) -> None:
    client = OpenAIClient(api_key="test-key")
    client.client = AsyncMock()
    client.client.chat.completions.create = AsyncMock(return_value=_mock_completion(content))

    answer = await client.synthesize_answer(question="q", results=results)

    assert answer.synthesis_source == "stub"


@pytest.mark.asyncio
async def test_openai_client_skips_call_without_results() -> None:
    client = OpenAIClient(api_key="test-key")
    client.client = AsyncMock()

    answer = await client.synthesize_answer(question="q", results=[])

    assert answer.synthesis_source == "stub"
    client.client.chat.completions.create.assert_not_called()


@pytest.mark.asyncio
async def test_openai_client_truncates_oversized_answer(results: list[SearchResultItem]) -> None:
    client = OpenAIClient(api_key="test-key")
    client.client = AsyncMock()
    client.client.chat.completions.create = AsyncMock(return_value=_mock_completion("y" * 20000))

    answer = await client.synthesize_answer(question="q", results=results)

    assert answer.answer_markdown.endswith("[Truncated]")
    assert len(answer.answer_markdown) < 10100


def test_get_llm_client_returns_stub_when_no_api_key() -> None:
    client = get_llm_client(Settings(openai_api_key=None))

    assert isinstance(client, DeterministicStubClient)


def test_get_llm_client_returns_openai_when_api_key_present() -> None:
    client = get_llm_client(
        Settings(openai_api_key=SecretStr("sk-test"), openai_chat_model="gpt-4o-mini")
    )

    assert isinstance(client, OpenAIClient)
    assert client.model == "gpt-4o-mini"
