"""External quality model (Gemini REST API) used as the last cascade tier."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from interaction_analytics.exceptions import ModelCallError
from interaction_analytics.store.records import Label

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-lite-preview-06-17"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 10.0
DEFAULT_REASON = "llm_evaluation"
DEFAULT_CONFIDENCE = 0.7

EVALUATION_PROMPT = """
You are evaluating voice assistant interactions for quality. Analyze this interaction:

Query: "{query_text}"
Intent: {intent}
Response: "{answer_text}"
Action: {action_taken}
Success: {success}

Evaluate this as:
- GOOD: The assistant understood correctly and provided a helpful response
- REVIEW: The interaction needs human review (unclear intent, partial success)
- BAD: Clear failure (misunderstanding, error, unhelpful response)

Respond with JSON only:
{{"label": "GOOD|REVIEW|BAD", "reason": "brief_explanation", "confidence": 0.0-1.0}}
"""


@dataclass(frozen=True)
class ModelJudgment:
    """Structured judgment returned by the quality model."""

    label: Label
    reason: str
    confidence: float


def build_prompt(
    query_text: str,
    intent: str | None = None,
    answer_text: str | None = None,
    action_taken: str | None = None,
    action_success: bool | None = None,
) -> str:
    """Build the evaluation prompt for one interaction."""
    return EVALUATION_PROMPT.format(
        query_text=query_text,
        intent=intent or "unknown",
        answer_text=answer_text or "no response",
        action_taken=action_taken or "none",
        success="yes" if action_success else "no",
    )


def parse_judgment(data: Any) -> ModelJudgment:
    """Validate a ``{label, reason, confidence}`` object.

    Raises:
        ModelCallError: If the label is missing or not one of GOOD/REVIEW/BAD
    """
    if not isinstance(data, dict):
        raise ModelCallError("Judgment is not a JSON object")

    raw_label = str(data.get("label", "")).strip().upper()
    try:
        label = Label(raw_label)
    except ValueError:
        raise ModelCallError(f"Unexpected label {raw_label!r}") from None

    reason = data.get("reason") or DEFAULT_REASON
    if not isinstance(reason, str):
        reason = str(reason)

    # Missing or zero confidence falls back to the default
    raw_confidence = data.get("confidence")
    try:
        confidence = float(raw_confidence) if raw_confidence else DEFAULT_CONFIDENCE
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE
    confidence = min(max(confidence, 0.0), 1.0)

    return ModelJudgment(label=label, reason=reason[:256], confidence=confidence)


class QualityModelClient:
    """Single request/response call to Gemini ``generateContent``.

    There are no retries: any failure surfaces as ``ModelCallError`` and the
    caller falls back to a REVIEW label.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        temperature: float = 0.3,
        max_output_tokens: int = 100,
    ):
        """Initialize quality model client.

        Args:
            api_key: Gemini API key
            model: Model name
            base_url: API base URL
            timeout: Hard timeout for the whole call, in seconds
            temperature: Sampling temperature
            max_output_tokens: Maximum tokens in the judgment
        """
        if not api_key:
            raise ValueError("Quality model API key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "gemini"

    @property
    def endpoint(self) -> str:
        """URL of the generateContent call."""
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def evaluate(self, prompt: str) -> ModelJudgment:
        """Ask the model for a judgment.

        Raises:
            ModelCallError: On timeout, non-2xx status or malformed body
        """
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        try:
            # Hard bound on the whole call, including a slowly streamed body
            async with asyncio.timeout(self.timeout):
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, json=body, headers=headers)
                    response.raise_for_status()
                    data = response.json()
        except (TimeoutError, httpx.TimeoutException) as e:
            raise ModelCallError(f"Request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise ModelCallError(
                f"HTTP {e.response.status_code}: {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise ModelCallError(f"API error: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ModelCallError(f"Response body is not JSON: {e}") from e

        return parse_judgment(self._extract_judgment(data))

    def _extract_judgment(self, data: Any) -> Any:
        """Pull the JSON judgment out of a generateContent response."""
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelCallError(f"Unexpected response shape: {e}") from e

        if not isinstance(text, str):
            raise ModelCallError("Judgment text missing")

        text = text.strip()
        # Remove markdown code blocks if present
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]

        try:
            return json.loads(text.strip())
        except json.JSONDecodeError as e:
            logger.debug(f"Raw judgment: {text}")
            raise ModelCallError(f"Judgment is not valid JSON: {e}") from e
