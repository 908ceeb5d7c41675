"""Clip Audio API - Configuration.

Runtime settings are read from the environment exactly once, at startup,
and carried around as an immutable Settings value. Fixed conversion
parameters live here as module constants.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from app.schemas import ConversionProfile

logger = logging.getLogger(__name__)

# Default upload ceiling: 50 MiB
DEFAULT_SIZE_LIMIT_BYTES = 50 * 1024 * 1024

# ffmpeg deadline per request in seconds
DEFAULT_CONVERT_TIMEOUT_SEC = 300.0

DEFAULT_PORT = 3000
DEFAULT_API_PATH = "/convert"

# Prefix for per-request scratch directories (used by the orphan sweep)
WORKSPACE_PREFIX = "clipaudio-"

# Fixed encoder parameters: MP4 in, 128 kbit/s MP3 out, video dropped
MP3_PROFILE = ConversionProfile(
    input_extension=".mp4",
    output_extension=".mp3",
    audio_codec="libmp3lame",
    audio_bitrate_kbps=128,
    container_format="mp3",
    media_type="audio/mpeg",
)


class Settings(BaseModel):
    """Process-wide settings, constructed once and passed to the app."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(default="0.0.0.0", min_length=1)
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    api_path: str = Field(default=DEFAULT_API_PATH, pattern=r"^/\S*$")
    size_limit_bytes: int = Field(
        default=DEFAULT_SIZE_LIMIT_BYTES,
        ge=0,
        description="Upload ceiling in bytes; 0 disables the check",
    )
    convert_timeout_sec: float = Field(
        default=DEFAULT_CONVERT_TIMEOUT_SEC,
        ge=0,
        description="ffmpeg deadline per request; 0 disables the deadline",
    )
    temp_dir: Path | None = Field(
        default=None,
        description="Parent directory for request workspaces (system temp when unset)",
    )
    ffmpeg_bin: str = Field(default="ffmpeg", min_length=1)
    log_level: str = Field(default="INFO", pattern=r"^(CRITICAL|ERROR|WARNING|INFO|DEBUG)$")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Malformed numbers fall back to their default (with a warning).
        Well-formed but out-of-range values raise pydantic.ValidationError.

        Args:
            environ: Mapping to read from (defaults to os.environ).

        Returns:
            A frozen Settings instance.
        """
        env = os.environ if environ is None else environ

        temp_dir = env.get("TEMP_DIR")
        return cls(
            host=env.get("HOST") or "0.0.0.0",
            port=_get_int(env, "PORT", DEFAULT_PORT),
            api_path=env.get("API_PATH") or DEFAULT_API_PATH,
            size_limit_bytes=_get_int(env, "SIZE_LIMIT_BYTES", DEFAULT_SIZE_LIMIT_BYTES),
            convert_timeout_sec=_get_float(
                env, "CONVERT_TIMEOUT_SEC", DEFAULT_CONVERT_TIMEOUT_SEC
            ),
            temp_dir=Path(temp_dir) if temp_dir else None,
            ffmpeg_bin=env.get("FFMPEG_BIN") or "ffmpeg",
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %d", name, raw, default)
        return default


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default
