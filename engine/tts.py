"""ElevenLabs TTS wrapper: text to MPEG audio, buffered or streamed."""

import logging
from typing import AsyncIterator, Optional

import httpx

from .types import SynthesisRequest, UpstreamError

log = logging.getLogger("tts")

DEFAULT_VOICE = "21m00Tcm4TlvDq8ikWAM"  # Rachel
DEFAULT_MODEL = "eleven_monolingual_v1"


class AudioStream:
    """Finite, single-use async iterator over upstream audio chunks.

    Owns the open upstream response and closes it once the chunks are
    exhausted, on error, or on aclose().
    """

    def __init__(self, response: httpx.Response):
        self._response = response
        self._consumed = False

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("AudioStream can only be iterated once")
        self._consumed = True
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        total = 0
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    total += len(chunk)
                    yield chunk
        except httpx.HTTPError as e:
            raise UpstreamError(f"ElevenLabs stream interrupted: {e}", service="elevenlabs") from e
        finally:
            await self._response.aclose()
        log.debug("TTS stream finished: %d bytes", total)

    async def aclose(self) -> None:
        await self._response.aclose()


class SpeechSynthesizer:
    """Calls the ElevenLabs text-to-speech endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        voice_id: str = DEFAULT_VOICE,
        model_id: str = DEFAULT_MODEL,
        stability: float = 0.5,
        similarity_boost: float = 0.5,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.voice_id = voice_id
        self.model_id = model_id
        self.stability = stability
        self.similarity_boost = similarity_boost
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            log.info("httpx client initialized for ElevenLabs")
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _request(self, text: str, voice_id: Optional[str]) -> SynthesisRequest:
        return SynthesisRequest(
            text=text,
            voice_id=voice_id or self.voice_id,
            model_id=self.model_id,
            stability=self.stability,
            similarity_boost=self.similarity_boost,
        )

    def _headers(self) -> dict:
        return {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """Convert text to a complete MPEG audio payload.

        Raises:
            UpstreamError: transport failure or non-success status.
        """
        req = self._request(text, voice_id)
        client = self._get_client()
        url = f"{self.base_url}/v1/text-to-speech/{req.voice_id}"
        try:
            resp = await client.post(url, headers=self._headers(), json=req.to_payload())
        except httpx.HTTPError as e:
            raise UpstreamError(f"ElevenLabs request failed: {e}", service="elevenlabs") from e

        if not resp.is_success:
            raise UpstreamError(
                f"ElevenLabs API error: {resp.status_code}",
                status=resp.status_code,
                service="elevenlabs",
            )

        audio = resp.content
        log.info("TTS [%s]: %d chars -> %d bytes", req.voice_id, len(text), len(audio))
        return audio

    async def synthesize_stream(self, text: str, voice_id: Optional[str] = None) -> AudioStream:
        """Open a streaming synthesis request.

        The upstream status is checked before returning, so a failing call
        raises here rather than while the caller is already streaming.

        Raises:
            UpstreamError: transport failure or non-success status.
        """
        req = self._request(text, voice_id)
        client = self._get_client()
        url = f"{self.base_url}/v1/text-to-speech/{req.voice_id}/stream"
        request = client.build_request("POST", url, headers=self._headers(), json=req.to_payload())
        try:
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"ElevenLabs request failed: {e}", service="elevenlabs") from e

        if not resp.is_success:
            await resp.aclose()
            raise UpstreamError(
                f"ElevenLabs API error: {resp.status_code}",
                status=resp.status_code,
                service="elevenlabs",
            )

        log.info("TTS stream [%s]: %d chars, upstream ready", req.voice_id, len(text))
        return AudioStream(resp)
