"""Settings for the voice relay.

Uses pydantic-settings to load from the environment and the project's .env
file, with type validation and defaults matching the hosted APIs.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, friendly voice assistant. Answer concisely and "
    "naturally, as if you were talking. Keep replies between one and three "
    "sentences so they work well for speech synthesis."
)


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]

    # Generative text (Gemini)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash-exp"
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Speech synthesis (ElevenLabs)
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"  # Rachel
    elevenlabs_model_id: str = "eleven_monolingual_v1"
    tts_stability: float = 0.5
    tts_similarity_boost: float = 0.5

    # None = wait on upstreams indefinitely
    upstream_timeout: Optional[float] = None

    # Logging
    log_dir: Path = PROJECT_ROOT / "logs"
    log_level: str = "INFO"

    model_config = {
        "env_file": str(PROJECT_ROOT / ".env"),
        "extra": "ignore",
    }


settings = Settings()
