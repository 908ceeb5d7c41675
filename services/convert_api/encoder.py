"""Clip Audio API - ffmpeg audio encoder.

Extracts the audio track of a staged video into a staged audio file.

Dependencies:
- Requires ffmpeg installed and in PATH (or FFMPEG_BIN)

ffmpeg runs as an asyncio subprocess so only the owning request waits on
it. The process is killed and reaped on deadline expiry and on task
cancellation (client disconnect), so no encoder outlives its request.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from app.config import DEFAULT_CONVERT_TIMEOUT_SEC, MP3_PROFILE
from app.schemas import ConversionProfile

logger = logging.getLogger(__name__)

# Lines of ffmpeg stderr kept in the error message
STDERR_TAIL_LINES = 5


class EncoderError(Exception):
    """The external encoder did not produce a usable output file."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AudioEncoder(Protocol):
    """Anything that can turn a staged input file into a staged output file."""

    async def encode(self, input_path: Path, output_path: Path) -> None:
        """Write the encoded audio of input_path to output_path.

        Raises:
            EncoderError: If encoding fails for any reason.
        """
        ...


class FfmpegEncoder:
    """AudioEncoder backed by the ffmpeg command-line tool."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        profile: ConversionProfile = MP3_PROFILE,
        timeout_seconds: float = DEFAULT_CONVERT_TIMEOUT_SEC,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.profile = profile
        # 0 (or None) disables the deadline
        self.timeout_seconds = timeout_seconds or None

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        """Build the ffmpeg argv: drop video, fixed codec, bitrate and format."""
        return [
            self.ffmpeg_bin,
            "-hide_banner",
            "-nostdin",
            "-v",
            "error",
            "-y",
            "-i",
            str(input_path),
            "-vn",
            "-acodec",
            self.profile.audio_codec,
            "-b:a",
            self.profile.audio_bitrate,
            "-f",
            self.profile.container_format,
            str(output_path),
        ]

    async def encode(self, input_path: Path, output_path: Path) -> None:
        """Run ffmpeg and wait for it to finish.

        Args:
            input_path: Staged input video.
            output_path: Where ffmpeg writes the audio.

        Raises:
            EncoderError: On non-zero exit, timeout, missing binary or empty output.
            asyncio.CancelledError: Propagated after ffmpeg has been killed.
        """
        cmd = self.build_command(input_path, output_path)
        logger.debug("Running %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            logger.error("ffmpeg not found: %s", self.ffmpeg_bin)
            raise EncoderError(f"ffmpeg not found: {self.ffmpeg_bin}") from e
        except OSError as e:
            logger.error("ffmpeg execution failed: %s", e)
            raise EncoderError(f"ffmpeg execution failed: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            await _kill(proc)
            logger.error("ffmpeg timed out after %s seconds", self.timeout_seconds)
            raise EncoderError(
                f"ffmpeg timed out after {self.timeout_seconds:g} seconds"
            ) from e
        except asyncio.CancelledError:
            await _kill(proc)
            logger.info("ffmpeg cancelled, process %s killed", proc.pid)
            raise

        if proc.returncode != 0:
            message = _stderr_tail(stderr) or f"ffmpeg exited with code {proc.returncode}"
            logger.error("ffmpeg failed (exit %s): %s", proc.returncode, message)
            raise EncoderError(message)

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncoderError("ffmpeg produced no audio output")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a subprocess and reap it, tolerating one that already exited."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    # Shielded so a second cancellation cannot leave a zombie behind
    await asyncio.shield(proc.wait())


def _stderr_tail(stderr: bytes | None) -> str:
    if not stderr:
        return ""
    lines = [
        line.strip()
        for line in stderr.decode("utf-8", errors="replace").splitlines()
        if line.strip()
    ]
    return "\n".join(lines[-STDERR_TAIL_LINES:])
