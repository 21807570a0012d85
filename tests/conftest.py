from __future__ import annotations

from typing import Callable, Optional

import httpx
import pytest

from gateway.config import Settings
from gateway.registry import ConnectionRegistry
from gateway.server import create_app


class FakeTextGenerator:
    """Stands in for TextGenerator; records prompts."""

    def __init__(self, reply: str = "Hi there!", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def generate_reply(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply

    async def close(self) -> None:
        pass


class FakeSynthesizer:
    """Stands in for SpeechSynthesizer's buffered path; records texts."""

    def __init__(self, audio: bytes = b"ID3fake-mpeg", error: Optional[Exception] = None):
        self.audio = audio
        self.error = error
        self.calls: list[tuple[str, Optional[str]]] = []

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        self.calls.append((text, voice_id))
        if self.error is not None:
            raise self.error
        return self.audio

    async def close(self) -> None:
        pass


class FakeChannel:
    """Minimal connection: a closed flag and a send log."""

    def __init__(self, name: str = "", closed: bool = False, fail: bool = False):
        self.name = name
        self.closed = closed
        self.fail = fail
        self.sent: list[str] = []

    async def send_str(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    def __repr__(self) -> str:
        return f"FakeChannel({self.name!r})"


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="gemini-test-key",
        elevenlabs_api_key="eleven-test-key",
    )


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def app(test_settings, registry, text_generator, synthesizer):
    return create_app(test_settings, registry, text_generator, synthesizer)


@pytest.fixture
async def client(aiohttp_client, app):
    return await aiohttp_client(app)
