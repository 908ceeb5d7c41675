"""Tests for per-request workspaces (app/utils/staging.py)."""

import io
import os

import pytest

from app.config import WORKSPACE_PREFIX
from app.utils.staging import (
    cleanup_orphan_workspaces,
    conversion_workspace,
    remove_workspace,
    stream_to_file,
)


class TestConversionWorkspace:
    def test_created_and_removed(self, tmp_path):
        with conversion_workspace(tmp_path) as workspace:
            assert workspace.is_dir()
            assert workspace.parent == tmp_path
            assert workspace.name.startswith(WORKSPACE_PREFIX)
            (workspace / "input.mp4").write_bytes(b"video")
            (workspace / "output.mp3").write_bytes(b"audio")

        assert not workspace.exists()
        assert list(tmp_path.iterdir()) == []

    def test_removed_on_exception(self, tmp_path):
        with pytest.raises(RuntimeError):
            with conversion_workspace(tmp_path) as workspace:
                (workspace / "input.mp4").write_bytes(b"video")
                raise RuntimeError("encoder blew up")

        assert not workspace.exists()

    def test_creates_missing_base_dir(self, tmp_path):
        base = tmp_path / "nested" / "work"

        with conversion_workspace(base) as workspace:
            assert workspace.parent == base

        assert base.is_dir()

    def test_unique_per_call(self, tmp_path):
        with conversion_workspace(tmp_path) as first, conversion_workspace(tmp_path) as second:
            assert first != second

    def test_system_temp_when_unset(self):
        with conversion_workspace() as workspace:
            assert workspace.is_dir()

        assert not workspace.exists()

    def test_remove_already_gone(self, tmp_path):
        # Must not raise
        remove_workspace(tmp_path / "never-existed")


class TestStreamToFile:
    def test_copies_all_bytes(self, tmp_path):
        data = os.urandom(200_000)
        dest = tmp_path / "input.mp4"

        written = stream_to_file(io.BytesIO(data), dest, chunk_size=4096)

        assert written == len(data)
        assert dest.read_bytes() == data

    def test_rewinds_seekable_stream(self, tmp_path):
        stream = io.BytesIO(b"0123456789")
        stream.read(5)
        dest = tmp_path / "input.mp4"

        written = stream_to_file(stream, dest)

        assert written == 10
        assert dest.read_bytes() == b"0123456789"

    def test_empty_stream(self, tmp_path):
        dest = tmp_path / "input.mp4"

        assert stream_to_file(io.BytesIO(b""), dest) == 0
        assert dest.read_bytes() == b""

    def test_read_failure_removes_partial_file(self, tmp_path):
        class FailingStream(io.RawIOBase):
            def __init__(self):
                self.reads = 0

            def seekable(self):
                return False

            def read(self, size=-1):
                self.reads += 1
                if self.reads > 1:
                    raise OSError("connection reset")
                return b"x" * 10

        dest = tmp_path / "input.mp4"

        with pytest.raises(OSError, match="connection reset"):
            stream_to_file(FailingStream(), dest)

        assert not dest.exists()


class TestCleanupOrphanWorkspaces:
    def test_removes_prefixed_dirs_only(self, tmp_path):
        orphan1 = tmp_path / f"{WORKSPACE_PREFIX}aaa"
        orphan2 = tmp_path / f"{WORKSPACE_PREFIX}bbb"
        for orphan in (orphan1, orphan2):
            orphan.mkdir()
            (orphan / "input.mp4").write_bytes(b"stale")
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        prefixed_file = tmp_path / f"{WORKSPACE_PREFIX}file"
        prefixed_file.write_bytes(b"not a workspace")

        removed = cleanup_orphan_workspaces(tmp_path)

        assert removed == 2
        assert not orphan1.exists()
        assert not orphan2.exists()
        assert other_dir.exists()
        assert prefixed_file.exists()

    def test_empty_directory(self, tmp_path):
        assert cleanup_orphan_workspaces(tmp_path) == 0

    def test_nonexistent_directory(self, tmp_path):
        assert cleanup_orphan_workspaces(tmp_path / "missing") == 0
