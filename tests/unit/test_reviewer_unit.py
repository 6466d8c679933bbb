"""Unit tests for the AI poem reviewer with litellm mocked."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from inkwell import observability
from inkwell.config import Config
from inkwell.errors import ProviderError
from inkwell.models import ReviewTone
from inkwell.providers.reviewer import (
    PoemReviewer,
    build_system_prompt,
    build_user_prompt,
    parse_review,
    review_provider,
    strip_code_fences,
)
from inkwell.text_metrics import hash_poem_body

BODY = "The fog comes\non little cat feet."

ANSWER = {
    "summary": "Fog arrives quietly.",
    "themes": [{"name": "stillness", "explanation": "the city pauses"}],
    "literary_devices": [
        {"device": "metaphor", "example": "little cat feet", "explanation": "fog as cat"}
    ],
    "structure_analysis": "Free verse, two short lines.",
    "interpretation": "Change can arrive softly.",
}


def completion(content: str, prompt_tokens: int = 120, completion_tokens: int = 80):
    """Build an object shaped like a litellm ModelResponse."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def test_user_prompt_includes_form_only_when_given() -> None:
    assert build_user_prompt("", "body") == "Poem Title: Untitled\n---\nbody"
    assert build_user_prompt("Fog", "body", "haiku") == "Poem Title: Fog\nForm: haiku\n---\nbody"


def test_system_prompt_varies_by_tone() -> None:
    assert "scholarly" in build_system_prompt(ReviewTone.ACADEMIC)
    assert "conversational" in build_system_prompt(ReviewTone.CASUAL)
    assert "supportive" in build_system_prompt(ReviewTone.ENCOURAGING)


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_review_stamps_body_hash() -> None:
    review = parse_review(json.dumps(ANSWER), "p1", BODY, ReviewTone.CASUAL)

    assert review.poem_id == "p1"
    assert review.poem_body_hash == hash_poem_body(BODY)
    assert review.themes[0].name == "stillness"
    assert review.literary_devices[0].example == "little cat feet"
    assert review.is_stale(BODY) is False
    assert review.is_stale(BODY + " again") is True


def test_parse_review_rejects_bad_answers() -> None:
    """Test non-JSON and incomplete answers raise ProviderError."""
    with pytest.raises(ProviderError, match="not valid JSON"):
        parse_review("I loved it!", "p1", BODY, ReviewTone.CASUAL)

    partial = {k: v for k, v in ANSWER.items() if k != "interpretation"}
    with pytest.raises(ProviderError, match="missing fields: interpretation"):
        parse_review(json.dumps(partial), "p1", BODY, ReviewTone.CASUAL)


def test_review_calls_litellm_with_config() -> None:
    """Test the request carries model, key, api_base and a fenced answer still parses."""
    config = Config(review_model="openai/gpt-4o-mini", review_api_base="http://localhost:4000")
    reviewer = PoemReviewer(config)
    fenced = f"```json\n{json.dumps(ANSWER)}\n```"

    with patch(
        "inkwell.providers.reviewer.litellm.acompletion",
        new=AsyncMock(return_value=completion(fenced)),
    ) as mock_completion:
        review = asyncio.run(
            reviewer.review("p1", "Fog", BODY, tone="academic", api_key="sk-test")
        )

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["api_base"] == "http://localhost:4000"
    assert kwargs["messages"][1]["content"].startswith("Poem Title: Fog")
    assert review.tone is ReviewTone.ACADEMIC
    assert review.summary == "Fog arrives quietly."

    events = [e["event"] for e in observability.get_logger().read_events()]
    assert events == ["llm.call", "review.generated"]


def test_review_refuses_empty_body() -> None:
    reviewer = PoemReviewer(Config())
    with patch("inkwell.providers.reviewer.litellm.acompletion", new=AsyncMock()) as mock_completion:
        with pytest.raises(ProviderError, match="empty poem"):
            asyncio.run(reviewer.review("p1", "Blank", "  \n "))
    mock_completion.assert_not_called()


def test_review_wraps_provider_failures() -> None:
    """Test litellm exceptions surface as ProviderError and are logged as errors."""
    reviewer = PoemReviewer(Config())
    with patch(
        "inkwell.providers.reviewer.litellm.acompletion",
        new=AsyncMock(side_effect=RuntimeError("rate limited")),
    ):
        with pytest.raises(ProviderError, match="rate limited"):
            asyncio.run(reviewer.review("p1", "Fog", BODY))

    (event,) = observability.get_logger().read_events()
    assert event["event"] == "llm.call"
    assert event["status"] == "error"


@pytest.mark.parametrize(
    "model,expected",
    [
        ("anthropic/claude-sonnet-4-20250514", "anthropic"),
        ("openai/gpt-4o-mini", "openai"),
        ("OpenAI/gpt-4o", "openai"),
        ("gpt-4o-mini", "openai"),
        ("o3-mini", "openai"),
        ("claude-3-5-haiku-latest", "anthropic"),
        ("ollama/llama3", "ollama"),
    ],
)
def test_review_provider_follows_model_prefix(model: str, expected: str) -> None:
    assert review_provider(model) == expected


def test_reviewer_exposes_provider_of_configured_model() -> None:
    assert PoemReviewer(Config(review_model="openai/gpt-4o-mini")).provider == "openai"
    assert PoemReviewer(Config()).provider == "anthropic"


def test_validate_api_key_makes_one_token_call() -> None:
    """Test a working key is reported valid after a minimal completion."""
    reviewer = PoemReviewer(Config(review_model="openai/gpt-4o-mini"))
    mock = AsyncMock(return_value=completion("H", 1, 1))

    with patch("inkwell.providers.reviewer.litellm.acompletion", new=mock):
        assert asyncio.run(reviewer.validate_api_key("sk-openai")) is True

    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["api_key"] == "sk-openai"
    assert kwargs["max_tokens"] == 1
    events = observability.get_logger().read_events()
    assert [e["status"] for e in events if e["event"] == "llm.validate"] == ["success"]


def test_validate_api_key_rejected_key_is_false() -> None:
    """Test an authentication failure is reported as an invalid key, not raised."""
    reviewer = PoemReviewer(Config())
    mock = AsyncMock(side_effect=RuntimeError("invalid x-api-key"))

    with patch("inkwell.providers.reviewer.litellm.acompletion", new=mock):
        assert asyncio.run(reviewer.validate_api_key("sk-bad")) is False

    events = observability.get_logger().read_events()
    assert [e["status"] for e in events if e["event"] == "llm.validate"] == ["error"]
