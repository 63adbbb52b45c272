"""Runtime settings read from the environment (and a local .env file, if any)."""

import os
import tempfile
from dataclasses import dataclass

from dotenv import load_dotenv

from .models import MAX_MEDIA_BYTES

TRANSCRIPTION_BACKENDS = ("aws", "openai")


@dataclass(frozen=True)
class Settings:
    scratch_dir: str
    max_media_bytes: int = MAX_MEDIA_BYTES
    fetch_timeout: float = 10.0
    transcription_backend: str = "aws"
    aws_region: str = "eu-west-1"
    transcribe_language: str = "en-US"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4"
    whisper_model: str = "whisper-1"
    log_level: str = "INFO"


def _positive(name: str, value: str, cast):
    try:
        parsed = cast(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return parsed


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    load_dotenv()

    backend = os.getenv("TRANSCRIPTION_BACKEND", "aws").strip().lower()
    if backend not in TRANSCRIPTION_BACKENDS:
        raise ValueError(f"TRANSCRIPTION_BACKEND must be one of {TRANSCRIPTION_BACKENDS}, got {backend!r}")

    return Settings(
        scratch_dir=os.getenv("SCRATCH_DIR") or os.path.join(tempfile.gettempdir(), "scene-analyzer"),
        max_media_bytes=_positive("MAX_MEDIA_BYTES", os.getenv("MAX_MEDIA_BYTES", str(MAX_MEDIA_BYTES)), int),
        fetch_timeout=_positive("FETCH_TIMEOUT_SECONDS", os.getenv("FETCH_TIMEOUT_SECONDS", "10"), float),
        transcription_backend=backend,
        # The AWS client also picks up AWS_PROFILE from the environment
        aws_region=os.getenv("AWS_REGION", "eu-west-1"),
        transcribe_language=os.getenv("TRANSCRIBE_LANGUAGE", "en-US"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4"),
        whisper_model=os.getenv("WHISPER_MODEL", "whisper-1"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
