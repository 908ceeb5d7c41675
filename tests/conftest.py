"""Shared pytest fixtures for Clip Audio API tests.

The default client runs against a fake encoder, so nothing here needs
ffmpeg installed. Tests that exercise real ffmpeg live in
test_ffmpeg_acceptance.py and skip when it is missing.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from services.convert_api.encoder import EncoderError
from services.convert_api.main import create_app

# Bytes the fake encoder "produces"; starts like a real ID3-tagged MP3
FAKE_MP3 = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\xff\xfb\x90\x00" * 64


class FakeEncoder:
    """Encoder stand-in that records calls and writes a canned payload."""

    def __init__(self, payload: bytes = FAKE_MP3):
        self.payload = payload
        self.calls: list[dict] = []

    async def encode(self, input_path: Path, output_path: Path) -> None:
        self.calls.append(
            {
                "input_path": input_path,
                "output_path": output_path,
                "input_bytes": input_path.read_bytes(),
            }
        )
        output_path.write_bytes(self.payload)


class FailingEncoder:
    """Encoder stand-in that always fails like ffmpeg on a corrupt input."""

    def __init__(self, message: str = "clip.mp4: Invalid data found when processing input"):
        self.message = message
        self.calls = 0

    async def encode(self, input_path: Path, output_path: Path) -> None:
        self.calls += 1
        raise EncoderError(self.message)


@pytest.fixture
def workspace_root(tmp_path):
    """Dedicated TEMP_DIR for request workspaces."""
    return tmp_path / "workspaces"


@pytest.fixture
def settings(workspace_root):
    """Settings with a small upload ceiling and a private temp dir."""
    return Settings(temp_dir=workspace_root, size_limit_bytes=4096)


@pytest.fixture
def fake_encoder():
    return FakeEncoder()


@pytest.fixture
def make_client():
    """Factory for test clients with custom settings and encoders.

    Clients are entered (so lifespan runs) and closed after the test.
    """
    clients = []

    def _make(settings: Settings, encoder=None) -> TestClient:
        client = TestClient(create_app(settings, encoder=encoder))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, settings, fake_encoder):
    """Test client backed by the fake encoder.

    Yields:
        tuple: (test_client, fake_encoder)
    """
    yield make_client(settings, fake_encoder), fake_encoder


@pytest.fixture
def sample_video_bytes():
    """Small payload posing as an MP4 (contents are never decoded by the fake)."""
    return b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 1000
