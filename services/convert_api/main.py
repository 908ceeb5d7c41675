"""Clip Audio API - FastAPI application.

Routes:
- GET  /          usage text
- POST <api_path> multipart upload (field "file", *.mp4) -> MP3 download
- anything else   404

Output is staged and buffered: ffmpeg writes into a per-request workspace,
the finished file is read into memory and the workspace removed before the
response is returned.

Run with:
    python -m services.convert_api
    uvicorn --factory services.convert_api.main:create_app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.config import MP3_PROFILE, Settings
from app.utils.filenames import content_disposition
from app.utils.staging import cleanup_orphan_workspaces
from services.convert_api.encoder import AudioEncoder, FfmpegEncoder
from services.convert_api.service import (
    BadRequestError,
    ClientDisconnectedError,
    ConversionFailedError,
    ConvertError,
    ConvertErrorCode,
    PayloadTooLargeError,
    check_content_type,
    check_size,
    convert_upload,
    read_upload,
)

logger = logging.getLogger(__name__)

# Status recorded when the client hangs up mid-conversion (nginx convention)
CLIENT_CLOSED_REQUEST = 499


# --- Dependencies ---


def get_settings(request: Request) -> Settings:
    """Dependency that provides the settings the app was built with."""
    return request.app.state.settings


def get_encoder(request: Request) -> AudioEncoder:
    """Dependency that provides the audio encoder."""
    return request.app.state.encoder


# --- Lifespan ---


def _cleanup_orphan_workspaces_safe(settings: Settings) -> None:
    """Remove workspaces a crashed predecessor left in TEMP_DIR (best-effort).

    Skipped when no dedicated TEMP_DIR is configured: the shared system
    temp dir may hold live workspaces of sibling processes.
    """
    if settings.temp_dir is None:
        return
    try:
        removed = cleanup_orphan_workspaces(settings.temp_dir)
        if removed > 0:
            logger.info("Startup cleanup: removed %d orphan workspaces", removed)
    except Exception:
        logger.warning("Startup cleanup failed (non-fatal)", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    _cleanup_orphan_workspaces_safe(app.state.settings)
    yield


# --- Error Handling ---


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes."""
    if error_code == ConvertErrorCode.BAD_REQUEST:
        return 400
    if error_code == ConvertErrorCode.PAYLOAD_TOO_LARGE:
        return 413
    if error_code == ConvertErrorCode.NOT_FOUND:
        return 404
    return 500


def make_error_response(error_code: str, error_message: str) -> PlainTextResponse:
    """Create a plain-text error response.

    Server-side failures are prefixed with "Error: ", client errors are not.
    """
    status_code = error_code_to_status(error_code)
    body = f"Error: {error_message}" if status_code >= 500 else error_message
    return PlainTextResponse(body, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Render routing errors as plain text; unknown routes and methods are 404."""
    if exc.status_code in (404, 405):
        return make_error_response(ConvertErrorCode.NOT_FOUND, "Not Found")
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    """Last line of defence for errors raised outside the endpoint body."""
    logger.error("Unhandled error for %s %s", request.method, request.url.path, exc_info=exc)
    return make_error_response(
        ConvertErrorCode.CONVERSION_FAILED,
        "An unexpected error occurred",
    )


# --- Endpoints ---


async def usage(settings: Annotated[Settings, Depends(get_settings)]) -> PlainTextResponse:
    """Describe how to use the API."""
    profile = MP3_PROFILE
    return PlainTextResponse(
        f"{profile.input_label} to {profile.output_label} API. "
        f"POST {settings.api_path} with multipart/form-data "
        f"file=your{profile.input_extension}"
    )


async def convert(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    encoder: Annotated[AudioEncoder, Depends(get_encoder)],
) -> Response:
    """Convert an uploaded video to an audio download.

    Accepts multipart form data with:
    - file: the video (required, *.mp4)

    Validation order: content type, body/field/extension, size ceiling.
    """
    try:
        check_content_type(request.headers.get("content-type"))
        upload = await read_upload(request)
        check_size(upload, settings.size_limit_bytes)

        result = await convert_upload(upload, encoder, settings, request=request)
        return Response(
            content=result.content,
            media_type=result.media_type,
            headers={"Content-Disposition": content_disposition(result.filename)},
        )
    except BadRequestError as e:
        logger.info("Rejected upload: %s", e.message)
        return make_error_response(e.error_code, e.message)
    except PayloadTooLargeError as e:
        logger.info("Rejected upload: %s", e.message)
        return make_error_response(e.error_code, e.message)
    except ConversionFailedError as e:
        return make_error_response(e.error_code, e.message)
    except ConvertError as e:
        return make_error_response(e.error_code, e.message)
    except ClientDisconnectedError:
        logger.info("Client disconnected during conversion; encoder cancelled")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except Exception:
        # Log full exception server-side, return generic message to client
        logger.exception("Unexpected error during conversion")
        return make_error_response(
            ConvertErrorCode.CONVERSION_FAILED,
            "An unexpected error occurred during conversion",
        )
    finally:
        # Closes spooled upload files held by the parsed form
        await request.close()


# --- FastAPI App ---


def create_app(
    settings: Settings | None = None,
    encoder: AudioEncoder | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Process settings (read from the environment when None).
        encoder: Audio encoder (an FfmpegEncoder built from settings when None).

    Returns:
        Configured FastAPI app with settings and encoder on app.state.
    """
    if settings is None:
        settings = Settings.from_env()
    if encoder is None:
        encoder = FfmpegEncoder(
            ffmpeg_bin=settings.ffmpeg_bin,
            profile=MP3_PROFILE,
            timeout_seconds=settings.convert_timeout_sec,
        )

    application = FastAPI(
        title="Clip Audio API",
        description="Extracts the audio track of an uploaded video as MP3.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        # Exact path matching: "/convert/" is a 404, not a redirect
        redirect_slashes=False,
    )
    application.state.settings = settings
    application.state.encoder = encoder

    application.add_api_route(
        "/",
        usage,
        methods=["GET"],
        response_class=PlainTextResponse,
        summary="Usage",
    )
    application.add_api_route(
        settings.api_path,
        convert,
        methods=["POST"],
        summary="Convert an uploaded video to audio",
    )

    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    return application
