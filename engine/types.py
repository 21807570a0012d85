"""Shared types for the upstream gateways."""

from dataclasses import dataclass
from typing import Optional


class UpstreamError(Exception):
    """An upstream service call failed or answered with a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None, service: str = ""):
        super().__init__(message)
        self.status = status
        self.service = service


@dataclass(frozen=True)
class SynthesisRequest:
    """One text-to-speech call: text + voice + fixed model settings."""
    text: str
    voice_id: str
    model_id: str
    stability: float = 0.5
    similarity_boost: float = 0.5

    def to_payload(self) -> dict:
        return {
            "text": self.text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": self.stability,
                "similarity_boost": self.similarity_boost,
            },
        }
