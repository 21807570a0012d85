from __future__ import annotations

import base64
from datetime import datetime

import pytest

from gateway import protocol
from gateway.protocol import AudioRequestMessage, ChatMessage, MalformedMessage


def test_parse_chat():
    msg = protocol.parse_inbound('{"type": "chat", "text": "Hello"}')
    assert isinstance(msg, ChatMessage)
    assert msg.text == "Hello"


def test_parse_audio_request_without_text():
    msg = protocol.parse_inbound('{"type": "audioRequest"}')
    assert isinstance(msg, AudioRequestMessage)
    assert msg.text is None


def test_parse_ignores_extra_fields():
    msg = protocol.parse_inbound('{"type": "chat", "text": "hi", "lang": "en"}')
    assert msg.text == "hi"


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        '"chat"',
        '{"text": "no type"}',
        '{"type": "dance", "text": "x"}',
        '{"type": "chat", "text": 42}',
    ],
)
def test_parse_rejects_unrecognized_shapes(raw):
    with pytest.raises(MalformedMessage):
        protocol.parse_inbound(raw)


def test_timestamp_is_iso8601_utc():
    stamp = protocol.utc_timestamp()
    assert stamp.endswith("Z")
    parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
    assert parsed.utcoffset().total_seconds() == 0


def test_audio_frame_is_base64():
    frame = protocol.audio(b"\xff\xfbmpeg")
    assert frame["type"] == "audio"
    assert base64.b64decode(frame["data"]) == b"\xff\xfbmpeg"
    assert "timestamp" in frame


def test_outbound_frame_shapes():
    assert set(protocol.notification("n")) == {"type", "message", "timestamp"}
    assert set(protocol.response("r")) == {"type", "text", "timestamp"}
    assert set(protocol.error("e")) == {"type", "message", "timestamp"}
