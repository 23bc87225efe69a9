"""
Render Progress Tracking

Writes the externally visible record of a render after every stage
transition so pollers can follow it.

Stage percentages:
- preparing 0, downloading 10, processing 30, rendering 60,
  uploading 90, complete 100, error 0
- while rendering, transcoder progress is scaled into 60-89

Stores:
- redis: hash at scenestitch:progress:<job_id> with expiry
- database: one render_jobs row per job
- memory: process-local dict (single-process runs and tests)

A failed store write is logged and never aborts the render.
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from redis import Redis
from rq import get_current_job
from sqlalchemy.orm import sessionmaker

from ..core.config import Settings, get_settings
from ..core.database import get_db_session, init_db
from ..core.redis import get_redis_connection
from ..models.job import RenderJobRecord
from ..schemas.render import RenderJobStatus, RenderProgress

logger = logging.getLogger(__name__)

STAGE_PERCENT: Dict[str, int] = {
    "preparing": 0,
    "downloading": 10,
    "processing": 30,
    "rendering": 60,
    "uploading": 90,
    "complete": 100,
    "error": 0,
}

RENDER_PERCENT_MIN = 60
RENDER_PERCENT_MAX = 89

# Progress key prefix
PROGRESS_KEY_PREFIX = "scenestitch:progress"


def _get_progress_key(job_id: str) -> str:
    """Get the Redis key for a job's progress."""
    return f"{PROGRESS_KEY_PREFIX}:{job_id}"


class JobStore:
    """Keyed storage for render job records."""

    def put(self, status: RenderJobStatus) -> None:
        raise NotImplementedError

    def get(self, job_id: str) -> Optional[RenderJobStatus]:
        raise NotImplementedError


class InMemoryJobStore(JobStore):
    """Process-local store. Records vanish with the process."""

    def __init__(self):
        self._records: Dict[str, RenderJobStatus] = {}
        self._lock = threading.Lock()

    def put(self, status: RenderJobStatus) -> None:
        with self._lock:
            self._records[status.job_id] = status.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[RenderJobStatus]:
        with self._lock:
            record = self._records.get(job_id)
            return record.model_copy(deep=True) if record else None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class RedisJobStore(JobStore):
    """
    Stores each record as a Redis hash.

    Flat fields (status, percent, message) are readable with HGETALL; the
    full record is kept as JSON in the ``record`` field.
    """

    def __init__(self, redis: Optional[Redis] = None, expiry_seconds: int = 24 * 3600):
        self._redis = redis
        self.expiry_seconds = expiry_seconds

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection()
        return self._redis

    def put(self, status: RenderJobStatus) -> None:
        key = _get_progress_key(status.job_id)
        progress_data = {
            "status": status.status,
            "percent": str(status.progress.percent),
            "message": status.progress.message,
            "updated_at": status.updated_at.isoformat() if status.updated_at else "",
            "record": status.model_dump_json(by_alias=True),
        }

        # Use pipeline for atomic operation
        pipe = self.redis.pipeline()
        pipe.hset(key, mapping=progress_data)
        pipe.expire(key, self.expiry_seconds)
        pipe.execute()

    def get(self, job_id: str) -> Optional[RenderJobStatus]:
        data = self.redis.hgetall(_get_progress_key(job_id))
        if not data or "record" not in data:
            return None
        record = data["record"]
        if isinstance(record, bytes):
            record = record.decode("utf-8")
        return RenderJobStatus.model_validate(json.loads(record))


class DatabaseJobStore(JobStore):
    """Stores records in the render_jobs table (one row per job, upserted)."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def put(self, status: RenderJobStatus) -> None:
        with get_db_session(self.session_factory) as db:
            record = db.get(RenderJobRecord, status.job_id)
            if record is None:
                record = RenderJobRecord(job_id=status.job_id)
                db.add(record)

            record.status = status.status
            record.stage = status.progress.stage
            record.progress_percent = status.progress.percent
            record.progress_message = status.progress.message
            record.estimated_seconds_remaining = status.progress.estimated_seconds_remaining
            record.output_url = status.output_url
            if status.updated_at is not None:
                record.updated_at = status.updated_at.replace(tzinfo=None)
            db.commit()

    def get(self, job_id: str) -> Optional[RenderJobStatus]:
        with get_db_session(self.session_factory) as db:
            record = db.get(RenderJobRecord, job_id)
            if record is None:
                return None
            return RenderJobStatus(
                job_id=record.job_id,
                status=record.status,
                progress=RenderProgress(
                    stage=record.stage,
                    percent=record.progress_percent,
                    message=record.progress_message,
                    estimated_seconds_remaining=record.estimated_seconds_remaining,
                ),
                output_url=record.output_url,
                updated_at=record.updated_at,
            )


_memory_store = InMemoryJobStore()


def get_job_store(settings: Optional[Settings] = None) -> JobStore:
    """
    Build the job store selected by JOB_STORE_BACKEND.

    The memory store is shared process-wide so the API can read what a
    synchronous render wrote.
    """
    settings = settings or get_settings()

    if settings.job_store_backend == "memory":
        return _memory_store
    if settings.job_store_backend == "database":
        init_db()
        return DatabaseJobStore()
    return RedisJobStore(expiry_seconds=settings.progress_expiry_seconds)


def update_job_meta(percent: int, message: str, stage: str) -> None:
    """
    Mirror progress into RQ job metadata when running inside a worker.

    Args:
        percent: Progress percentage (0-100)
        message: Progress message
        stage: Pipeline stage
    """
    job = get_current_job()
    if job:
        job.meta["progress_percent"] = percent
        job.meta["progress_message"] = message
        job.meta["stage"] = stage
        job.save_meta()


class ProgressReporter:
    """
    Reports the progress of one render job.

    Percent never decreases across non-error reports; the error record
    always carries 0.
    """

    def __init__(
        self,
        store: JobStore,
        job_id: Optional[str],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.job_id = job_id
        self.clock = clock
        self.percent = 0
        self.stage: Optional[str] = None
        self._render_started: Optional[float] = None

    def report(
        self,
        stage: str,
        message: str = "",
        percent: Optional[int] = None,
        estimated_seconds_remaining: Optional[int] = None,
        output_url: Optional[str] = None,
    ) -> RenderJobStatus:
        """
        Record a stage transition or an in-stage update.

        Args:
            stage: One of STAGE_PERCENT's keys
            message: Human-readable progress message
            percent: Overrides the stage's default percent
            estimated_seconds_remaining: Optional ETA
            output_url: Artifact URL (complete only)

        Returns:
            The record that was written
        """
        if percent is None:
            percent = STAGE_PERCENT[stage]

        if stage == "error":
            percent = 0
        else:
            percent = max(percent, self.percent)
            self.percent = percent

        if stage == "rendering" and self._render_started is None:
            self._render_started = self.clock()

        self.stage = stage
        status = RenderJobStatus(
            job_id=self.job_id or "",
            status=stage,
            progress=RenderProgress(
                stage=stage,
                percent=percent,
                message=message,
                estimated_seconds_remaining=estimated_seconds_remaining,
            ),
            output_url=output_url,
            updated_at=datetime.now(timezone.utc),
        )
        self._write(status)
        return status

    def render_progress(self, transcoder_percent: int, message: Optional[str] = None) -> RenderJobStatus:
        """
        Forward transcoder progress (0-100), scaled into the rendering band.

        The remaining-time estimate extrapolates from time spent rendering.
        """
        transcoder_percent = max(0, min(100, transcoder_percent))
        span = RENDER_PERCENT_MAX - RENDER_PERCENT_MIN
        scaled = RENDER_PERCENT_MIN + (transcoder_percent * span) // 100

        if self._render_started is None:
            self._render_started = self.clock()

        eta = None
        if 0 < transcoder_percent < 100:
            elapsed = self.clock() - self._render_started
            eta = int(round(elapsed * (100 - transcoder_percent) / transcoder_percent))

        return self.report(
            "rendering",
            message or f"Rendering: {transcoder_percent}%",
            percent=scaled,
            estimated_seconds_remaining=eta,
        )

    def complete(self, output_url: str) -> RenderJobStatus:
        return self.report("complete", "Render complete", output_url=output_url)

    def fail(self, message: str) -> RenderJobStatus:
        return self.report("error", message)

    def _write(self, status: RenderJobStatus) -> None:
        if not self.job_id:
            logger.debug(f"No job ID, progress not persisted: {status.status}")
            return

        try:
            self.store.put(status)
        except Exception as e:
            logger.warning(
                f"Failed to write progress for job {self.job_id} ({status.status}): {e}",
                exc_info=True,
            )

        try:
            update_job_meta(status.progress.percent, status.progress.message, status.status)
        except Exception as e:
            logger.warning(f"Failed to update RQ job meta for {self.job_id}: {e}")
