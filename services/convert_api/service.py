"""Clip Audio API - Conversion service logic.

Core request handling implementing:
- Upload validation (content type, field, extension, size ceiling)
- Staging the upload into a per-request workspace
- Delegating to the audio encoder and collecting its output

No HTTP response construction here; main.py maps results and errors
onto responses.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Coroutine
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from app.config import MP3_PROFILE
from app.utils.filenames import base_filename, has_extension, output_filename
from app.utils.staging import conversion_workspace, stream_to_file
from services.convert_api.encoder import EncoderError

if TYPE_CHECKING:
    from starlette.requests import Request

    from app.config import Settings
    from app.schemas import ConversionProfile
    from services.convert_api.encoder import AudioEncoder

logger = logging.getLogger(__name__)

# Multipart field carrying the video
UPLOAD_FIELD = "file"

# How often to check for a vanished client while ffmpeg runs
DISCONNECT_POLL_SECONDS = 0.5


# --- Error Codes ---


class ConvertErrorCode(StrEnum):
    """Error codes for the conversion endpoint."""

    BAD_REQUEST = "BAD_REQUEST"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    NOT_FOUND = "NOT_FOUND"


class ConvertError(Exception):
    """Base exception for conversion errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"{error_code}: {message}")


class BadRequestError(ConvertError):
    """Wrong content type, unparseable body, or missing/invalid file."""

    def __init__(self, message: str):
        super().__init__(ConvertErrorCode.BAD_REQUEST, message)


class PayloadTooLargeError(ConvertError):
    """Declared upload size exceeds the configured ceiling."""

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(
            ConvertErrorCode.PAYLOAD_TOO_LARGE,
            f"File too large (max {limit_bytes / 1024 / 1024:g}MB)",
        )


class ConversionFailedError(ConvertError):
    """The encoder reported a failure; message is passed through verbatim."""

    def __init__(self, message: str):
        super().__init__(ConvertErrorCode.CONVERSION_FAILED, message)


class ClientDisconnectedError(Exception):
    """The client went away before the conversion finished."""


# --- Result Types ---


@dataclass
class ConversionResult:
    """Encoded audio plus what the response needs to describe it."""

    content: bytes
    filename: str
    media_type: str
    input_bytes: int
    elapsed_ms: int


# --- Validation ---


def check_content_type(content_type: str | None) -> None:
    """Reject anything that is not a multipart form upload.

    Raises:
        BadRequestError: If content_type is missing or not multipart/form-data.
    """
    if not content_type or "multipart/form-data" not in content_type.lower():
        raise BadRequestError("Expected multipart/form-data")


async def read_upload(
    request: Request,
    profile: ConversionProfile = MP3_PROFILE,
) -> UploadFile:
    """Parse the multipart body and return the validated upload field.

    Raises:
        BadRequestError: If the body is malformed, the field is missing,
            or the filename lacks the expected extension.
    """
    try:
        form = await request.form()
    except MultiPartException as e:
        raise BadRequestError(f"Malformed multipart body: {e.message}") from e
    except HTTPException as e:
        # Starlette wraps parser errors in a 400 HTTPException inside an app
        raise BadRequestError(f"Malformed multipart body: {e.detail}") from e

    upload = form.get(UPLOAD_FIELD)
    if not isinstance(upload, UploadFile) or not has_extension(
        upload.filename, profile.input_extension
    ):
        raise BadRequestError(f"Must upload an {profile.input_label} file")

    return upload


def declared_size(upload: UploadFile) -> int:
    """Size of the upload as received, without reading it."""
    if upload.size is not None:
        return upload.size
    # Older Starlette releases do not track size; measure the spooled file
    position = upload.file.tell()
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(position)
    return size


def check_size(upload: UploadFile, limit_bytes: int) -> None:
    """Enforce the upload ceiling. A limit of 0 disables the check.

    Raises:
        PayloadTooLargeError: If the declared size exceeds limit_bytes.
    """
    if limit_bytes > 0 and declared_size(upload) > limit_bytes:
        raise PayloadTooLargeError(limit_bytes)


# --- Conversion ---


async def convert_upload(
    upload: UploadFile,
    encoder: AudioEncoder,
    settings: Settings,
    request: Request | None = None,
    profile: ConversionProfile = MP3_PROFILE,
) -> ConversionResult:
    """Stage an upload, encode it, and return the encoded bytes.

    The workspace is gone by the time this returns or raises. When a
    request is given, a client disconnect cancels the encoder.

    Args:
        upload: Validated upload.
        encoder: Encoder to delegate to.
        settings: Process settings (temp dir).
        request: Originating request, watched for disconnects.
        profile: Conversion profile (extensions, media type).

    Returns:
        ConversionResult with the audio bytes and download filename.

    Raises:
        ConversionFailedError: If the encoder fails or produces no output.
        ClientDisconnectedError: If the client disconnected mid-conversion.
        OSError: If staging the upload fails.
    """
    filename = base_filename(upload.filename or "")
    started = time.monotonic()

    with conversion_workspace(settings.temp_dir) as workspace:
        input_path = workspace / f"input{profile.input_extension}"
        output_path = workspace / f"output{profile.output_extension}"

        input_bytes = await run_in_threadpool(stream_to_file, upload.file, input_path)
        logger.debug("Staged %s (%d bytes) at %s", filename, input_bytes, input_path)

        try:
            if request is None:
                await encoder.encode(input_path, output_path)
            else:
                await _encode_until_disconnect(request, encoder.encode(input_path, output_path))
        except EncoderError as e:
            raise ConversionFailedError(e.message) from e

        try:
            content = await run_in_threadpool(output_path.read_bytes)
        except FileNotFoundError as e:
            raise ConversionFailedError("Encoder produced no output file") from e

    if not content:
        raise ConversionFailedError("Encoder produced an empty output file")

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Converted %s: %d bytes in, %d bytes out, %dms",
        filename,
        input_bytes,
        len(content),
        elapsed_ms,
    )

    return ConversionResult(
        content=content,
        filename=output_filename(filename, profile.input_extension, profile.output_extension),
        media_type=profile.media_type,
        input_bytes=input_bytes,
        elapsed_ms=elapsed_ms,
    )


async def _encode_until_disconnect(request: Request, encode: Coroutine[Any, Any, None]) -> None:
    """Await an encode coroutine, cancelling it if the client disconnects.

    Raises:
        ClientDisconnectedError: If the client disconnected first.
    """
    task = asyncio.ensure_future(encode)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                task.result()
                return
            if await request.is_disconnected():
                raise ClientDisconnectedError()
    finally:
        if not task.done():
            task.cancel()
            # Waits for the encoder to kill and reap ffmpeg
            await asyncio.gather(task, return_exceptions=True)
