"""WebSocket wire protocol: inbound frame parsing and outbound frame builders.

Inbound frames are JSON objects tagged by "type":
  {"type": "chat", "text": "..."}
  {"type": "audioRequest", "text": "..."}

Outbound frames always carry an ISO-8601 UTC "timestamp" stamped at build time.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictStr, TypeAdapter, ValidationError


class MalformedMessage(ValueError):
    """An inbound frame is not JSON or not a recognized message shape."""


class ChatMessage(BaseModel):
    type: Literal["chat"]
    text: Optional[StrictStr] = None


class AudioRequestMessage(BaseModel):
    type: Literal["audioRequest"]
    text: Optional[StrictStr] = None


InboundMessage = Annotated[Union[ChatMessage, AudioRequestMessage], Field(discriminator="type")]

_inbound = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes) -> ChatMessage | AudioRequestMessage:
    """Parse one text frame. Raises MalformedMessage on anything unrecognized."""
    try:
        return _inbound.validate_json(raw)
    except ValidationError as e:
        raise MalformedMessage(f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Outbound frames ───────────────────────────────────────────

def notification(message: str) -> dict:
    return {"type": "notification", "message": message, "timestamp": utc_timestamp()}


def response(text: str) -> dict:
    return {"type": "response", "text": text, "timestamp": utc_timestamp()}


def audio(data: bytes) -> dict:
    """Audio frame; the MPEG payload travels base64-encoded."""
    return {
        "type": "audio",
        "data": base64.b64encode(data).decode("ascii"),
        "timestamp": utc_timestamp(),
    }


def error(message: str) -> dict:
    return {"type": "error", "message": message, "timestamp": utc_timestamp()}
