"""
Shared test fixtures for SceneStitch tests.

Provides:
- Isolated settings (staging and storage under tmp_path, memory job store)
- A fake asset server built on httpx.MockTransport
- Request payload factory
- Mock Redis for the Redis job store
"""

import os
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing app modules
os.environ["JOB_STORE_BACKEND"] = "memory"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"

_test_root = tempfile.mkdtemp(prefix="scenestitch_test_")
os.environ["STAGING_PATH"] = str(Path(_test_root) / "staging")
os.environ["STORAGE_PATH"] = str(Path(_test_root) / "storage")

from scenestitch.core.config import Settings, get_settings
from scenestitch.core.database import reset_engine
from scenestitch.core.object_store import LocalObjectStore
from scenestitch.core.redis import close_connection_pool
from scenestitch.tasks.progress import InMemoryJobStore
from tests.utils.fakes import FakeAssetServer


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Each test sees settings built from the current environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_connections() -> Generator[None, None, None]:
    """Drop cached engines and pools so each test binds to its own settings."""
    yield
    reset_engine()
    close_connection_pool()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with all filesystem paths under tmp_path."""
    return Settings(
        staging_path=str(tmp_path / "staging"),
        STORAGE_PATH=str(tmp_path / "storage"),
        storage_backend="local",
        public_base_url="http://testserver/api/artifacts",
        job_store_backend="memory",
        transcode_timeout_seconds=30,
        fetch_timeout_seconds=5.0,
    )


@pytest.fixture
def memory_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def object_store(test_settings: Settings) -> LocalObjectStore:
    return LocalObjectStore(test_settings.storage_root, test_settings.public_base_url)


# =============================================================================
# Fake Asset Server
# =============================================================================


@pytest.fixture
def asset_server() -> Generator[FakeAssetServer, None, None]:
    server = FakeAssetServer()
    yield server
    server.client.close()


# =============================================================================
# Request Factories
# =============================================================================


@pytest.fixture
def make_payload(asset_server: FakeAssetServer) -> Callable[..., dict]:
    """
    Factory for request payloads whose assets exist on the fake server.

    Usage:
        payload = make_payload(durations=[3, 4], audio=[True, False])
    """

    def _make(
        job_id: str = "job-1",
        durations: Optional[List[float]] = None,
        audio: Optional[List[bool]] = None,
        **extra,
    ) -> dict:
        durations = durations or [5.0]
        audio = audio or [False] * len(durations)
        scenes = []
        for index, duration in enumerate(durations):
            scene = {
                "id": f"s{index}",
                "imageLocator": asset_server.add(f"{job_id}/img{index}.png", b"png-bytes"),
                "duration": duration,
            }
            if audio[index]:
                scene["audioLocator"] = asset_server.add(f"{job_id}/voice{index}.mp3", b"mp3-bytes")
            scenes.append(scene)

        payload = {
            "jobId": job_id,
            "scenes": scenes,
            "outputFormat": "mp4",
            "resolutionLabel": "720p",
        }
        payload.update(extra)
        return payload

    return _make


# =============================================================================
# Mock Redis
# =============================================================================


@pytest.fixture
def mock_redis() -> MagicMock:
    """Mock Redis connection for tests."""
    mock = MagicMock()
    mock.hgetall.return_value = {}
    pipe = MagicMock()
    pipe.execute.return_value = [True, True]
    mock.pipeline.return_value = pipe
    return mock
