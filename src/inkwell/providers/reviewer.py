"""AI poem review using an LLM via litellm."""

import json
import logging
import time
from typing import Any, Optional

import litellm

from ..config import Config
from ..defaults import API_TIMEOUTS
from ..errors import ProviderError
from ..models import LiteraryDevice, PoemReview, ReviewTheme, ReviewTone
from ..observability import log as obs_log
from ..text_metrics import hash_poem_body

logger = logging.getLogger(__name__)

TONE_INSTRUCTIONS = {
    ReviewTone.ACADEMIC: (
        "Write in a scholarly, analytical tone. Use literary criticism vocabulary. "
        "Be precise and objective."
    ),
    ReviewTone.CASUAL: (
        "Write in a warm, conversational tone. Use accessible language. "
        "Be relatable and approachable."
    ),
    ReviewTone.ENCOURAGING: (
        "Write in a supportive, uplifting tone. Highlight strengths while gently "
        "noting areas for growth. Be enthusiastic."
    ),
}

REQUIRED_FIELDS = (
    "summary",
    "themes",
    "literary_devices",
    "structure_analysis",
    "interpretation",
)

# Bare model names litellm routes to OpenAI
_OPENAI_PREFIXES = ("gpt-", "o1", "o3", "o4", "chatgpt-")


def review_provider(model: str) -> str:
    """Vault provider whose key a review model needs.

    Uses the litellm routing prefix ("openai/gpt-4o", "anthropic/claude-...");
    bare names fall back on the model family.
    """
    if "/" in model:
        return model.split("/", 1)[0].lower()
    if model.lower().startswith(_OPENAI_PREFIXES):
        return "openai"
    return "anthropic"


def build_system_prompt(tone: ReviewTone) -> str:
    return f"""You are a thoughtful poetry reviewer. Analyze the poem you are given.

{TONE_INSTRUCTIONS[tone]}

Respond with a single JSON object and nothing else, using exactly these keys:
- "summary": 2-3 sentences on what the poem is about
- "themes": list of {{"name": string, "explanation": string}}
- "literary_devices": list of {{"device": string, "example": string, "explanation": string}}
- "structure_analysis": form, meter, rhyme and line breaks
- "interpretation": a deeper reading of the poem's meaning"""


def build_user_prompt(title: str, body: str, form_type: Optional[str] = None) -> str:
    lines = [f"Poem Title: {title or 'Untitled'}"]
    if form_type:
        lines.append(f"Form: {form_type}")
    lines.extend(["---", body])
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_review(
    text: str, poem_id: str, body: str, tone: ReviewTone
) -> PoemReview:
    """Turn the model's JSON answer into a PoemReview.

    Raises:
        ProviderError: If the answer is not JSON or misses a field
    """
    try:
        data: dict[str, Any] = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ProviderError(f"Review response was not valid JSON: {e}") from e

    missing = [name for name in REQUIRED_FIELDS if name not in data]
    if missing:
        raise ProviderError(f"Review response missing fields: {', '.join(missing)}")

    return PoemReview(
        poem_id=poem_id,
        summary=str(data["summary"]),
        themes=[
            ReviewTheme(name=t.get("name", ""), explanation=t.get("explanation", ""))
            for t in data["themes"] or []
        ],
        literary_devices=[
            LiteraryDevice(
                device=d.get("device", ""),
                example=d.get("example", ""),
                explanation=d.get("explanation", ""),
            )
            for d in data["literary_devices"] or []
        ],
        structure_analysis=str(data["structure_analysis"]),
        interpretation=str(data["interpretation"]),
        tone=tone,
        poem_body_hash=hash_poem_body(body),
    )


class PoemReviewer:
    """Generate structured poem reviews with a configurable LLM."""

    def __init__(self, config: Config):
        self.model = config.review_model
        self.api_base = config.review_api_base
        self.temperature = config.review_temperature
        self.max_tokens = config.review_max_tokens
        self.provider = review_provider(self.model)

        litellm.drop_params = True

        logger.info(f"PoemReviewer initialized with model: {self.model}")

    async def review(
        self,
        poem_id: str,
        title: str,
        body: str,
        tone: ReviewTone = ReviewTone.ENCOURAGING,
        form_type: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> PoemReview:
        """Review one poem.

        Args:
            poem_id: Id the review will be attached to
            title: Poem title, "Untitled" when empty
            body: Poem text
            tone: Voice of the review
            form_type: Optional form name (sonnet, haiku, ...)
            api_key: Provider key from the vault

        Returns:
            The parsed review, stamped with the body hash

        Raises:
            ProviderError: If the body is empty, the call fails, or the
                answer cannot be parsed
        """
        if not body.strip():
            raise ProviderError("Cannot review an empty poem")

        tone = ReviewTone(tone)
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(tone)},
                {"role": "user", "content": build_user_prompt(title, body, form_type)},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": API_TIMEOUTS["review"],
        }
        if api_key:
            kwargs["api_key"] = api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        start_time = time.time()
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            obs_log(
                "llm.call",
                action="review",
                model=self.model,
                status="error",
                error=str(e),
                duration_ms=duration_ms,
            )
            logger.error(f"Review request failed: {e}")
            raise ProviderError(f"Review request failed: {e}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        usage = getattr(response, "usage", None)
        obs_log(
            "llm.call",
            action="review",
            model=self.model,
            tokens={
                "prompt": usage.prompt_tokens if usage else 0,
                "completion": usage.completion_tokens if usage else 0,
            },
            duration_ms=duration_ms,
            status="success",
        )

        text = response.choices[0].message.content or ""
        review = parse_review(text, poem_id, body, tone)
        obs_log("review.generated", poem_id=poem_id, tone=tone.value)
        logger.debug(f"Review generated for poem {poem_id}")
        return review

    async def validate_api_key(self, api_key: str) -> bool:
        """Check a key with a one-token completion against the configured model.

        Returns False on any failure rather than raising; the caller only
        needs to know whether the key works.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 1,
            "api_key": api_key,
            "timeout": API_TIMEOUTS["validate"],
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            await litellm.acompletion(**kwargs)
        except Exception as e:
            logger.debug(f"{self.provider} key check failed: {e}")
            obs_log("llm.validate", model=self.model, status="error", error=str(e))
            return False

        obs_log("llm.validate", model=self.model, status="success")
        return True
