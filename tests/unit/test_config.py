"""
Unit tests for settings loading.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from scenestitch.core.config import Settings, get_settings
from scenestitch.core.database import get_engine, get_session_factory, reset_engine
from scenestitch.core.redis import close_connection_pool, get_connection_pool, get_redis_connection
from scenestitch.core.object_store import GCSObjectStore, LocalObjectStore, get_object_store


class TestSettings:
    """Tests for Settings."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRANSCODE_TIMEOUT_SECONDS", "90")
        monkeypatch.setenv("OUTPUT_FPS", "24")
        monkeypatch.setenv("JOB_STORE_BACKEND", "database")

        settings = Settings()

        assert settings.transcode_timeout_seconds == 90
        assert settings.output_fps == 24
        assert settings.job_store_backend == "database"

    def test_storage_path_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("STORAGE_PATH", str(tmp_path))
        assert Settings().storage_root == tmp_path.resolve()

    def test_invalid_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("JOB_STORE_BACKEND", "mongo")
        with pytest.raises(ValueError):
            Settings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestGetObjectStore:
    """Tests for object store selection."""

    def test_local_by_default(self, test_settings: Settings):
        store = get_object_store(test_settings)
        assert isinstance(store, LocalObjectStore)
        assert store.root == test_settings.storage_root

    def test_gcs_requires_bucket(self, test_settings: Settings):
        settings = test_settings.model_copy(update={"storage_backend": "gcs", "gcs_bucket": None})
        with pytest.raises(ValueError, match="GCS_BUCKET"):
            get_object_store(settings)

    def test_gcs_store(self, test_settings: Settings):
        settings = test_settings.model_copy(update={"storage_backend": "gcs", "gcs_bucket": "renders"})
        store = get_object_store(settings)
        assert isinstance(store, GCSObjectStore)
        assert store.bucket_name == "renders"


class TestGCSObjectStore:
    """Tests for GCSObjectStore with a mocked client."""

    def test_put_sets_headers_and_returns_public_url(self):
        client = MagicMock()
        blob = client.bucket.return_value.blob.return_value
        blob.public_url = "https://storage.googleapis.com/renders/videos/j_1.mp4"

        store = GCSObjectStore("renders", client=client)
        url = store.put("videos/j_1.mp4", b"data", "video/mp4")

        client.bucket.assert_called_once_with("renders")
        client.bucket.return_value.blob.assert_called_once_with("videos/j_1.mp4")
        blob.upload_from_string.assert_called_once_with(b"data", content_type="video/mp4")
        assert blob.cache_control == "public, max-age=3600"
        assert url == blob.public_url

    def test_invalid_credentials_json(self):
        store = GCSObjectStore("renders", credentials_json="{not json")
        with patch("scenestitch.core.object_store.storage.Client") as client_cls:
            with pytest.raises(ValueError, match="GCP_CREDENTIALS"):
                store.put("k", b"d", "video/mp4")
        client_cls.assert_not_called()


class TestConnectionCaches:
    """Tests for the cached Redis pool and database engine."""

    def test_redis_pool_is_shared_until_closed(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache.test:6380/2")

        pool = get_connection_pool()
        assert get_redis_connection().connection_pool is pool
        assert pool.connection_kwargs["host"] == "cache.test"
        assert pool.connection_kwargs["decode_responses"] is True

        close_connection_pool()

        assert get_connection_pool() is not pool

    def test_engine_follows_database_url_after_reset(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'first.db'}")
        first = get_engine()
        factory = get_session_factory()
        assert first.url.database == str(tmp_path / "first.db")

        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'second.db'}")
        get_settings.cache_clear()
        assert get_engine() is first

        reset_engine()

        assert get_engine().url.database == str(tmp_path / "second.db")
        assert get_session_factory() is not factory
