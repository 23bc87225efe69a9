"""
Unit tests for render progress tracking and the job stores.
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scenestitch.core.database import init_db
from scenestitch.schemas.render import RenderJobStatus, RenderProgress
from scenestitch.tasks.progress import (
    STAGE_PERCENT,
    DatabaseJobStore,
    InMemoryJobStore,
    ProgressReporter,
    RedisJobStore,
    get_job_store,
)


def _status(job_id: str = "job-1", stage: str = "rendering", percent: int = 70) -> RenderJobStatus:
    return RenderJobStatus(
        job_id=job_id,
        status=stage,
        progress=RenderProgress(stage=stage, percent=percent, message="Rendering", estimated_seconds_remaining=12),
        updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_stage_percentages(self, memory_store):
        reporter = ProgressReporter(memory_store, "job-1")

        seen = []
        for stage in ("preparing", "downloading", "processing", "rendering", "uploading"):
            seen.append(reporter.report(stage).progress.percent)
        seen.append(reporter.complete("https://cdn.test/v.mp4").progress.percent)

        assert seen == [0, 10, 30, 60, 90, 100]
        assert seen == [STAGE_PERCENT[s] for s in (
            "preparing", "downloading", "processing", "rendering", "uploading", "complete",
        )]

    def test_record_written_after_each_transition(self, memory_store):
        reporter = ProgressReporter(memory_store, "job-1")

        reporter.report("downloading", "Downloading assets")
        assert memory_store.get("job-1").status == "downloading"

        reporter.complete("https://cdn.test/v.mp4")
        record = memory_store.get("job-1")
        assert record.status == "complete"
        assert record.progress.percent == 100
        assert record.output_url == "https://cdn.test/v.mp4"

    def test_percent_never_regresses(self, memory_store):
        reporter = ProgressReporter(memory_store, "job-1")

        reporter.report("uploading")
        status = reporter.report("rendering", percent=70)

        assert status.progress.percent == 90

    def test_render_progress_scaled(self, memory_store):
        reporter = ProgressReporter(memory_store, "job-1")
        reporter.report("rendering")

        assert reporter.render_progress(0).progress.percent == 60
        assert reporter.render_progress(50).progress.percent == 74
        assert reporter.render_progress(100).progress.percent == 89

    def test_render_progress_estimates_remaining_time(self, memory_store):
        clock = FakeClock(100.0)
        reporter = ProgressReporter(memory_store, "job-1", clock=clock)
        reporter.report("rendering")

        clock.now = 110.0
        status = reporter.render_progress(25)

        assert status.progress.estimated_seconds_remaining == 30

    def test_error_record(self, memory_store):
        reporter = ProgressReporter(memory_store, "job-1")
        reporter.report("rendering")

        status = reporter.fail("Transcoder exited with code 1")

        assert status.status == "error"
        assert status.progress.percent == 0
        assert memory_store.get("job-1").progress.message == "Transcoder exited with code 1"

    def test_store_failure_does_not_raise(self):
        store = MagicMock()
        store.put.side_effect = ConnectionError("redis down")
        reporter = ProgressReporter(store, "job-1")

        status = reporter.report("downloading")

        assert status.progress.percent == 10

    def test_without_job_id_nothing_is_written(self):
        store = MagicMock()
        ProgressReporter(store, None).report("preparing")
        store.put.assert_not_called()

    def test_mirrors_into_rq_job_meta(self, memory_store):
        job = MagicMock()
        job.meta = {}

        with patch("scenestitch.tasks.progress.get_current_job", return_value=job):
            ProgressReporter(memory_store, "job-1").report("processing", "Building")

        assert job.meta == {"progress_percent": 30, "progress_message": "Building", "stage": "processing"}
        job.save_meta.assert_called_once()


class TestInMemoryJobStore:
    """Tests for InMemoryJobStore."""

    def test_round_trip_returns_copy(self):
        store = InMemoryJobStore()
        store.put(_status())

        record = store.get("job-1")
        record.progress.percent = 1

        assert store.get("job-1").progress.percent == 70

    def test_unknown_job(self):
        assert InMemoryJobStore().get("missing") is None


class TestRedisJobStore:
    """Tests for RedisJobStore with a mocked connection."""

    def test_put_writes_hash_with_expiry(self, mock_redis):
        store = RedisJobStore(mock_redis, expiry_seconds=600)

        store.put(_status())

        pipe = mock_redis.pipeline.return_value
        key, = pipe.hset.call_args.args
        mapping = pipe.hset.call_args.kwargs["mapping"]
        assert key == "scenestitch:progress:job-1"
        assert mapping["status"] == "rendering"
        assert mapping["percent"] == "70"
        assert json.loads(mapping["record"])["jobId"] == "job-1"
        pipe.expire.assert_called_once_with("scenestitch:progress:job-1", 600)
        pipe.execute.assert_called_once()

    def test_get_parses_record(self, mock_redis):
        mock_redis.hgetall.return_value = {
            "status": "rendering",
            "record": _status().model_dump_json(by_alias=True),
        }

        record = RedisJobStore(mock_redis).get("job-1")

        assert record.job_id == "job-1"
        assert record.progress.estimated_seconds_remaining == 12

    def test_get_missing(self, mock_redis):
        assert RedisJobStore(mock_redis).get("job-1") is None


class TestDatabaseJobStore:
    """Tests for DatabaseJobStore on in-memory SQLite."""

    @pytest.fixture
    def store(self) -> DatabaseJobStore:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        init_db(engine)
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        yield DatabaseJobStore(factory)
        engine.dispose()

    def test_upsert(self, store):
        store.put(_status(stage="downloading", percent=10))
        store.put(_status(stage="rendering", percent=70))

        record = store.get("job-1")
        assert record.status == "rendering"
        assert record.progress.percent == 70
        assert record.progress.estimated_seconds_remaining == 12

    def test_missing(self, store):
        assert store.get("nope") is None


class TestGetJobStore:
    """Tests for job store selection."""

    def test_memory_store_is_shared(self, test_settings):
        assert get_job_store(test_settings) is get_job_store(test_settings)

    def test_redis_store(self, test_settings):
        settings = test_settings.model_copy(update={"job_store_backend": "redis", "progress_expiry_seconds": 60})
        store = get_job_store(settings)
        assert isinstance(store, RedisJobStore)
        assert store.expiry_seconds == 60

    def test_database_store_creates_table_at_configured_url(self, test_settings, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'jobs.db'}")
        settings = test_settings.model_copy(update={"job_store_backend": "database"})

        store = get_job_store(settings)
        store.put(_status())

        assert isinstance(store, DatabaseJobStore)
        assert (tmp_path / "jobs.db").exists()
        assert store.get("job-1").progress.percent == 70
