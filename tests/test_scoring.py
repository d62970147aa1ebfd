import pytest
from openai import OpenAIError
from tenacity import wait_none

from ai.scoring import ReadinessScorer, format_transcript, get_async_llm_client, get_llm_client, parse_score
from conftest import mock_llm_client
from yenta.errors import UpstreamError

TRANSCRIPT = [
    {"role": "assistant", "content": "How urgent is this?"},
    {"role": "user", "content": "Very urgent, budget is approved."},
]


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ReadinessScorer._complete.retry, "wait", wait_none())


@pytest.mark.asyncio
async def test_score_parses_model_json() -> None:
    client = mock_llm_client({
        "total_score": 82,
        "category": "hot",
        "evidence": ["budget is approved"],
        "summary": "Ready to buy.",
    }, asynchronous=True)
    result = await ReadinessScorer(client, model="test-model").score(TRANSCRIPT)

    assert result.total_score == 82
    assert result.category == "HOT"
    assert result.evidence == ["budget is approved"]
    client.chat.completions.create.assert_awaited_once()
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert "user: Very urgent" in kwargs["messages"][1]["content"]


def test_score_is_clamped_and_categorized() -> None:
    assert parse_score({"total_score": 140}).total_score == 100
    assert parse_score({"total_score": -5}).category == "COLD"
    assert parse_score({"total_score": 55, "category": "lukewarm"}).category == "WARM"


def test_missing_total_is_upstream_error() -> None:
    with pytest.raises(UpstreamError):
        parse_score({"category": "HOT"})


@pytest.mark.asyncio
async def test_invalid_json_is_upstream_error() -> None:
    scorer = ReadinessScorer(mock_llm_client("not json", asynchronous=True))
    with pytest.raises(UpstreamError):
        await scorer.score(TRANSCRIPT)


@pytest.mark.asyncio
async def test_provider_failure_retries_then_raises() -> None:
    client = mock_llm_client(side_effect=OpenAIError("boom"), asynchronous=True)
    scorer = ReadinessScorer(client)
    with pytest.raises(UpstreamError) as exc_info:
        await scorer.score(TRANSCRIPT)
    assert "boom" in exc_info.value.detail
    assert client.chat.completions.create.await_count == 3


@pytest.mark.asyncio
async def test_empty_transcript_is_rejected() -> None:
    client = mock_llm_client({"total_score": 10}, asynchronous=True)
    with pytest.raises(UpstreamError):
        await ReadinessScorer(client).score([])
    client.chat.completions.create.assert_not_awaited()


def test_format_transcript_skips_system_messages() -> None:
    text = format_transcript([{"role": "system", "content": "x"}, *TRANSCRIPT])
    assert text.splitlines() == ["assistant: How urgent is this?", "user: Very urgent, budget is approved."]


@pytest.mark.parametrize("factory", [get_llm_client, get_async_llm_client])
def test_unconfigured_client_raises(factory) -> None:
    factory.cache_clear()
    with pytest.raises(UpstreamError):
        factory()
