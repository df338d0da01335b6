"""Structured-output classifier backed by the OpenAI chat completions API."""

import json
import logging
import math
from typing import TYPE_CHECKING, Any

from openai import AsyncOpenAI, OpenAIError

from ..errors import ClassificationError, ConfigurationError
from ..models import ClassificationResult, Post

if TYPE_CHECKING:
    from ..stages import StageConfig

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500
MIN_SCORE = 0
MAX_SCORE = 10


def response_schema(stage: "StageConfig") -> dict:
    """JSON schema the model must answer with for this stage."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": f"{stage.name}_result",
            "strict": True,
            "schema": {
                "type": "object",
                "properties": {
                    "passed": {
                        "type": "boolean",
                        "description": stage.pass_description,
                    },
                    "score": {
                        "type": "integer",
                        "description": "Score from 0-10, where 7+ passes",
                    },
                    "reason": {
                        "type": "string",
                        "description": "Brief 1-2 sentence explanation",
                    },
                },
                "required": ["passed", "score", "reason"],
                "additionalProperties": False,
            },
        },
    }


def build_prompt(stage: "StageConfig", post: Post) -> str:
    """Interpolate a post into the stage's rubric template."""
    return stage.prompt_template.format(**post.prompt_fields())


def clamp_score(value: Any) -> int:
    """Round half-up to an integer and clamp to [0, 10]."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ClassificationError(f"Score is not a number: {value!r}")
    if not math.isfinite(value):
        raise ClassificationError(f"Score is not finite: {value!r}")
    return max(MIN_SCORE, min(MAX_SCORE, math.floor(value + 0.5)))


def normalize_result(payload: Any) -> ClassificationResult:
    """Validate a decoded response and normalize it.

    Raises ClassificationError for anything that does not match the schema.
    """
    if not isinstance(payload, dict):
        raise ClassificationError(f"Expected a JSON object, got {type(payload).__name__}")

    missing = [key for key in ("passed", "score", "reason") if key not in payload]
    if missing:
        raise ClassificationError(f"Response missing fields: {', '.join(missing)}")

    reason = payload["reason"]
    if not isinstance(reason, str) or not reason.strip():
        raise ClassificationError("Response reason is empty")

    return ClassificationResult(
        passed=bool(payload["passed"]),
        score=clamp_score(payload["score"]),
        reason=reason.strip()[:MAX_REASON_LENGTH],
    )


class ClassifierClient:
    """Classifies posts for one stage.

    The API key is checked when the client is built, not on first use.
    Requests are never retried here; a failed call raises ClassificationError.
    """

    def __init__(
        self,
        stage: "StageConfig",
        api_key: str | None,
        model: str,
        timeout: float = 60.0,
        reasoning_effort: str = "low",
        client: AsyncOpenAI | None = None,
    ):
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable is not set")

        self.stage = stage
        self.model = model
        self.reasoning_effort = reasoning_effort
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def _call_llm(self, prompt: str) -> str:
        """Make a single schema-constrained completion call."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_completion_tokens=4000,
                reasoning_effort=self.reasoning_effort,
                response_format=response_schema(self.stage),
            )
        except OpenAIError as e:
            raise ClassificationError(f"{self.stage.label} call failed: {e}") from e

        if not response.choices:
            raise ClassificationError("Response contained no choices")

        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise ClassificationError(f"Model refused: {message.refusal}")
        if not message.content:
            raise ClassificationError("Response content is empty")
        return message.content

    async def classify(self, post: Post) -> ClassificationResult:
        """Classify a post against this stage's rubric."""
        prompt = build_prompt(self.stage, post)
        text = await self._call_llm(prompt)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug(f"Raw response: {text}")
            raise ClassificationError(f"Response is not valid JSON: {e}") from e

        return normalize_result(payload)
