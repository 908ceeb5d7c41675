"""Clip Audio API - Conversion service.

FastAPI service that turns an uploaded MP4 into an MP3 download via ffmpeg.
"""

__all__: list[str] = []
