"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("concierge.config")


class Settings(BaseSettings):
    # Language model + transcription (OpenAI)
    openai_api_key: str = ""
    completion_model: str = "gpt-4o"
    completion_temperature: float = 0.3
    completion_max_tokens: int = 500
    stream_max_tokens: int = 300
    transcription_model: str = "whisper-1"
    transcription_language: str = "ru"

    # Speech synthesis (ElevenLabs)
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = "pNInz6obpgDQGcFmaJgB"
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_api_url: str = "https://api.elevenlabs.io/v1"

    # Message delivery (Green API / WhatsApp)
    green_api_url: str = ""
    green_api_token: str = ""

    # Timeouts (seconds)
    llm_timeout: float = 20.0
    tts_timeout: float = 15.0
    ack_timeout: float = 3.0

    # Dialogue
    history_window: int = 4
    phrase_max_chars: int = 40
    intent_patterns_path: str = ""

    # Catalog + presentations
    listings_path: str = ""
    presentations_dir: str = "presentations"
    public_base_url: str = "http://localhost:8080"

    # Sessions
    session_idle_timeout: float = 1800.0
    session_sweep_interval: float = 60.0

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:5173"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk-...", "your-key-here"}

        if not self.openai_api_key or self.openai_api_key in _placeholders:
            warnings.append(
                "OPENAI_API_KEY is missing — transcription and the language-model "
                "path will fail; only local intents will work."
            )

        if not self.elevenlabs_api_key or self.elevenlabs_api_key in _placeholders:
            warnings.append("ELEVENLABS_API_KEY is missing — speech synthesis disabled.")

        if not self.green_api_url or not self.green_api_token:
            warnings.append("GREEN_API_URL / GREEN_API_TOKEN not set — presentations can't be sent.")

        if self.phrase_max_chars < 10:
            raise ValueError("PHRASE_MAX_CHARS must be at least 10")

        return warnings


settings = Settings()

# Runtime-mutable settings (admin API can change these)
runtime_settings = {
    "ack_enabled": True,
    "ack_phrases": [
        "Сейчас уточню...",
        "Секундочку, ищу...",
        "Подождите, посмотрю...",
        "Сейчас посмотрим...",
        "Уточняю информацию...",
    ],
}
