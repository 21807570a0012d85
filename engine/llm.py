"""Gemini wrapper: one prompt in, one short spoken-style reply out.

Every call is independent. No conversation history is kept between calls.
"""

import logging
from typing import Optional

import httpx

from .types import UpstreamError

log = logging.getLogger("llm")


class TextGenerator:
    """Calls the Gemini generateContent endpoint with a fixed system instruction."""

    def __init__(
        self,
        api_key: str,
        model: str,
        system: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.system = system
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            log.info("httpx client initialized for Gemini (%s)", self.model)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_payload(self, prompt: str) -> dict:
        return {
            "systemInstruction": {"parts": [{"text": self.system}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }

    async def generate_reply(self, prompt: str) -> str:
        """Generate a reply for a single user prompt.

        Raises:
            UpstreamError: the request failed, returned a non-success status,
                or came back without any text.
        """
        client = self._get_client()
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"
        log.info("LLM generate: model=%s, %d chars", self.model, len(prompt))
        try:
            resp = await client.post(
                url,
                headers={"x-goog-api-key": self.api_key},
                json=self._build_payload(prompt),
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Gemini request failed: {e}", service="gemini") from e

        if resp.status_code != 200:
            raise UpstreamError(
                f"Gemini API error: {resp.status_code}",
                status=resp.status_code,
                service="gemini",
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamError("Gemini returned invalid JSON", status=resp.status_code, service="gemini") from e

        candidates = body.get("candidates") or []
        if not candidates:
            raise UpstreamError("Gemini returned no candidates", status=resp.status_code, service="gemini")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts).strip()
        if not text:
            raise UpstreamError("Gemini returned an empty reply", status=resp.status_code, service="gemini")

        log.info("Gemini response: %d chars, finish=%s", len(text), candidates[0].get("finishReason"))
        return text
