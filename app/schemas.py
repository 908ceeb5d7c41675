"""Clip Audio API - Pydantic models.

Validated, immutable value types shared by the API and the encoder.
"""

from pydantic import BaseModel, ConfigDict, Field


class ConversionProfile(BaseModel):
    """Fixed encoder parameters for one input/output pairing."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    input_extension: str = Field(
        ...,
        pattern=r"^\.[a-z0-9]+$",
        description="Accepted upload extension, lowercase with leading dot",
    )
    output_extension: str = Field(
        ...,
        pattern=r"^\.[a-z0-9]+$",
        description="Extension of the produced audio file",
    )
    audio_codec: str = Field(..., min_length=1, description="ffmpeg audio encoder name")
    audio_bitrate_kbps: int = Field(..., gt=0, description="Target audio bitrate")
    container_format: str = Field(..., min_length=1, description="ffmpeg output format")
    media_type: str = Field(..., min_length=1, description="Content-Type of the output")

    @property
    def audio_bitrate(self) -> str:
        """Bitrate in ffmpeg's notation, e.g. "128k"."""
        return f"{self.audio_bitrate_kbps}k"

    @property
    def input_label(self) -> str:
        """Human label for the input format, e.g. "MP4"."""
        return self.input_extension.lstrip(".").upper()

    @property
    def output_label(self) -> str:
        return self.output_extension.lstrip(".").upper()
