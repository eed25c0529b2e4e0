"""Gemini ``generateContent`` client used for mission text."""
import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class GeminiError(RuntimeError):
    pass


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class GeminiClient:
    """Sends a single-turn prompt and returns the first candidate's text."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def generate(self, prompt: str) -> str:
        logger.info("Calling Gemini API")
        response = await self._client.post(
            self._api_url,
            params={"key": self._api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise GeminiError(f"Gemini API returned non-JSON body (status {response.status_code})") from exc

        if response.is_error:
            message = None
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                message = data["error"].get("message")
            logger.warning("Gemini API error response: status=%s", response.status_code)
            raise GeminiError(message or "Failed to generate AI content")

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GeminiError("Invalid response from Gemini API") from exc
        if not isinstance(text, str):
            raise GeminiError("Invalid response from Gemini API")
        logger.debug("Gemini API response text length: %s", len(text))
        return text

    async def close(self) -> None:
        await self._client.aclose()
