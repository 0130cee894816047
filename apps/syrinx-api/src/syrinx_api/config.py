"""Configuration for the syrinx-api service."""

from __future__ import annotations

from syrinx_common.config import get_env, get_env_float, get_env_int


class SyrinxConfig:
    """Service configuration from environment variables."""

    # Voices: one HTS voice file per voice name
    models_dir: str = get_env("SYRINX_MODELS_DIR", "models")

    # Transcoder
    ffmpeg_path: str = get_env("FFMPEG_PATH", "ffmpeg")
    read_size: int = get_env_int("SYRINX_READ_SIZE", 4096)
    kill_grace_seconds: float = get_env_float("SYRINX_KILL_GRACE_SECONDS", 2.0)

    # Requests
    max_text_length: int = get_env_int("SYRINX_MAX_TEXT_LENGTH", 1000)
    rate_limit: str = get_env("SYRINX_RATE_LIMIT", "20/minute")
    prefetch_chunks: int = get_env_int("SYRINX_PREFETCH_CHUNKS", 4)
    max_stream_seconds: float = get_env_float("SYRINX_MAX_STREAM_SECONDS", 300.0)

    # Server
    host: str = get_env("HOST", "0.0.0.0")
    port: int = get_env_int("PORT", 3000)
    openapi_server: str = get_env("SYRINX_OPENAPI_SERVER", "/syrinx-api")

    # Logging
    log_level: str = get_env("LOG_LEVEL", "INFO")
    log_format: str = get_env("LOG_FORMAT", "console")


settings = SyrinxConfig()
