"""Clip Audio API - Per-request scratch workspaces.

Every conversion stages its input and output in a private directory:
1. Create a uniquely named directory (prefix WORKSPACE_PREFIX)
2. Copy the upload into it, let the encoder write next to it
3. Remove the whole directory when the request ends, whatever the outcome

A crash between steps 1 and 3 leaves an orphan directory behind; the
startup sweep removes those from a dedicated TEMP_DIR.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from app.config import WORKSPACE_PREFIX

logger = logging.getLogger(__name__)


def _write_all(fd: int, data: bytes) -> None:
    """Write all bytes to a file descriptor, handling short writes and EINTR.

    Raises:
        OSError: If write fails or returns 0 bytes unexpectedly.
    """
    total_written = 0
    data_len = len(data)

    while total_written < data_len:
        try:
            written = os.write(fd, data[total_written:])
            if written == 0:
                raise OSError("os.write() returned 0 bytes unexpectedly")
            total_written += written
        except InterruptedError:
            continue


@contextmanager
def conversion_workspace(base_dir: str | Path | None = None) -> Iterator[Path]:
    """Create a scratch directory that is removed on exit.

    Removal happens on normal exit, on exceptions and on task cancellation.

    Args:
        base_dir: Parent directory; the system temp dir when None.

    Yields:
        Path to the freshly created, empty workspace directory.
    """
    if base_dir is not None:
        Path(base_dir).mkdir(parents=True, exist_ok=True)

    workspace = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=base_dir))
    logger.debug("Created workspace %s", workspace)
    try:
        yield workspace
    finally:
        remove_workspace(workspace)


def remove_workspace(workspace: str | Path) -> None:
    """Remove a workspace directory and everything in it.

    Failures are logged, never raised: cleanup must not mask the
    outcome of the request it belongs to.
    """
    workspace = Path(workspace)
    try:
        shutil.rmtree(workspace)
        logger.debug("Removed workspace %s", workspace)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove workspace %s: %s", workspace, e)


def stream_to_file(
    stream: BinaryIO,
    dest_path: str | Path,
    chunk_size: int = 65536,
) -> int:
    """Copy a file-like object to a new file in chunks.

    On failure, the partially written destination is removed.

    Args:
        stream: File-like object with read(); rewound before copying if seekable.
        dest_path: Target path (created or truncated).
        chunk_size: Buffer size for reading (default: 64KB).

    Returns:
        Total bytes written.

    Raises:
        OSError: If the write fails.
    """
    dest_path = Path(dest_path)

    if stream.seekable():
        stream.seek(0)

    total_bytes = 0
    fd = os.open(dest_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            _write_all(fd, chunk)
            total_bytes += len(chunk)
    except OSError:
        os.close(fd)
        try:
            os.remove(dest_path)
        except OSError:
            pass
        raise
    else:
        os.close(fd)

    return total_bytes


def cleanup_orphan_workspaces(base_dir: str | Path, prefix: str = WORKSPACE_PREFIX) -> int:
    """Remove workspace directories left behind by a previous process.

    Only directories whose name starts with prefix are touched.

    Args:
        base_dir: Directory to scan.
        prefix: Workspace name prefix (default: WORKSPACE_PREFIX).

    Returns:
        Number of directories removed.
    """
    base_dir = Path(base_dir)
    removed = 0

    if not base_dir.is_dir():
        return 0

    for entry in base_dir.glob(f"{prefix}*"):
        if not entry.is_dir() or entry.is_symlink():
            continue
        try:
            shutil.rmtree(entry)
            removed += 1
        except OSError:
            logger.warning("Could not remove orphan workspace %s", entry, exc_info=True)

    return removed
