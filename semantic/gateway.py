"""AI gateway comparer: asks a chat-completions model to rate text similarity.

The model is prompted for ``{"score": 0-1, "reasoning": "..."}``. Replies that
cannot be parsed fall back to a neutral 0.5 rather than failing the match.
"""
from __future__ import annotations

import json
import logging
import re

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from crm.config import settings

from .base import SemanticComparisonError, SemanticScore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a semantic matching expert. Compare two texts and return a "
    "similarity score (0-1) and brief reasoning."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def build_user_prompt(text1: str, text2: str, context: str) -> str:
    return (
        f'Compare these two "{context}" values and rate their semantic similarity '
        f"from 0 (completely different) to 1 (identical meaning):\n\n"
        f"Text 1: {text1}\n\nText 2: {text2}\n\n"
        f'Respond with JSON: {{"score": 0.0-1.0, "reasoning": "brief explanation"}}'
    )


def parse_model_reply(content: str) -> SemanticScore:
    """Parse the model's JSON reply; markdown fences are tolerated."""
    cleaned = _FENCE_RE.sub("", (content or "").strip())
    try:
        parsed = json.loads(cleaned)
        return SemanticScore(
            score=float(parsed.get("score", 0)),
            reasoning=str(parsed.get("reasoning", "")),
        )
    except (ValueError, TypeError, AttributeError):
        logger.warning(f"Unparseable similarity reply: {content!r}")
        return SemanticScore(score=0.5, reasoning="Unable to parse AI response")


class GatewayComparer:
    """OpenAI-compatible chat-completions client."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        url: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or settings.semantic.gateway_api_key
        self.url = url or settings.semantic.gateway_url
        self.model = model or settings.semantic.model
        self._client = client

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _post(self, client: httpx.AsyncClient, payload: dict) -> dict:
        response = await client.post(
            self.url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        return response.json()

    async def compare(self, text1: str, text2: str, context: str) -> SemanticScore:
        """Rate the similarity of two field values.

        Args:
            text1: Value from the pro record
            text2: Value from the client record
            context: Field name, included in the prompt

        Returns:
            SemanticScore with a clamped score

        Raises:
            SemanticComparisonError: Missing API key or the request failed
        """
        if not self.api_key:
            raise SemanticComparisonError("SEMANTIC_GATEWAY_API_KEY not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(text1, text2, context)},
            ],
            "temperature": settings.semantic.temperature,
            "max_tokens": settings.semantic.max_tokens,
        }

        try:
            if self._client is not None:
                data = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=settings.http.timeout) as client:
                    data = await self._post(client, payload)
        except httpx.HTTPError as e:
            logger.error(f"AI gateway request failed: {e}")
            raise SemanticComparisonError(f"AI gateway request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise SemanticComparisonError(f"Malformed AI gateway response: {e}") from e

        return parse_model_reply(content)
