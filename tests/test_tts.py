from __future__ import annotations

import json

import httpx
import pytest

from conftest import mock_client

from engine.tts import DEFAULT_MODEL, DEFAULT_VOICE, SpeechSynthesizer
from engine.types import UpstreamError


def _synth(handler) -> SpeechSynthesizer:
    return SpeechSynthesizer(api_key="xi-key", base_url="https://tts.test", client=mock_client(handler))


async def test_synthesize_posts_fixed_settings_to_default_voice():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"\xff\xfbaudio", headers={"Content-Type": "audio/mpeg"})

    synth = _synth(handler)
    audio = await synth.synthesize("Hi")

    assert audio == b"\xff\xfbaudio"
    [req] = seen
    assert req.url.path == f"/v1/text-to-speech/{DEFAULT_VOICE}"
    assert req.headers["xi-api-key"] == "xi-key"
    assert req.headers["accept"] == "audio/mpeg"
    assert json.loads(req.content) == {
        "text": "Hi",
        "model_id": DEFAULT_MODEL,
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
    }
    await synth.close()


async def test_synthesize_honours_explicit_voice():
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, content=b"x")

    await _synth(handler).synthesize("Hi", "voice-42")
    assert paths == ["/v1/text-to-speech/voice-42"]


async def test_synthesize_error_status_carries_status():
    synth = _synth(lambda request: httpx.Response(401, json={"detail": "bad key"}))

    with pytest.raises(UpstreamError) as exc_info:
        await synth.synthesize("Hi")
    assert exc_info.value.status == 401
    assert exc_info.value.service == "elevenlabs"


async def test_stream_yields_chunks_in_order():
    async def body():
        for part in (b"one-", b"two-", b"three"):
            yield part

    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, content=body())

    stream = await _synth(handler).synthesize_stream("Hi")
    chunks = [chunk async for chunk in stream]

    assert b"".join(chunks) == b"one-two-three"
    assert paths == [f"/v1/text-to-speech/{DEFAULT_VOICE}/stream"]
    assert stream.closed


async def test_stream_initial_failure_raises_before_iteration():
    synth = _synth(lambda request: httpx.Response(500, content=b"upstream down"))

    with pytest.raises(UpstreamError) as exc_info:
        await synth.synthesize_stream("Hi")
    assert exc_info.value.status == 500


async def test_stream_mid_failure_surfaces_as_upstream_error():
    async def body():
        yield b"partial"
        raise httpx.ReadError("connection lost")

    stream = await _synth(lambda request: httpx.Response(200, content=body())).synthesize_stream("Hi")

    received = []
    with pytest.raises(UpstreamError):
        async for chunk in stream:
            received.append(chunk)
    assert received == [b"partial"]


async def test_stream_is_not_restartable():
    stream = await _synth(lambda request: httpx.Response(200, content=b"abc")).synthesize_stream("Hi")
    assert [c async for c in stream] == [b"abc"]

    with pytest.raises(RuntimeError):
        async for _ in stream:
            pass
