"""Clip Audio API - Utility modules."""

from app.utils.filenames import (
    base_filename,
    content_disposition,
    has_extension,
    output_filename,
)
from app.utils.staging import (
    cleanup_orphan_workspaces,
    conversion_workspace,
    remove_workspace,
    stream_to_file,
)

__all__ = [
    # filenames
    "base_filename",
    "content_disposition",
    "has_extension",
    "output_filename",
    # staging
    "cleanup_orphan_workspaces",
    "conversion_workspace",
    "remove_workspace",
    "stream_to_file",
]
