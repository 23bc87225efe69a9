"""
Render Task for SceneStitch

Turns a scene list into one published video:

    validate -> acquire -> compile -> execute -> publish -> complete

Every stage failure ends the run: it is logged with full detail, written
once as an ``error`` record with a short public message, and the staged
files are removed. Cleanup runs on every path out of ``RenderPipeline.run``.

Entry points:
- RenderPipeline.run: synchronous (API handler, CLI, tests)
- render_scenes: RQ task (payload is the request dict)
- enqueue_render: puts render_scenes on the render queue
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from ..core.config import Settings, get_settings
from ..core.object_store import ObjectStore, get_object_store
from ..core.storage import StagingArea
from ..exceptions import InternalError, JobValidationError, RenderError
from ..schemas.render import RenderRequest, RenderResult
from .acquisition import AssetFetcher, acquire_assets
from .cleanup import cleanup_files
from .ffmpeg_command import EncodingOptions, compile_transcode_command
from .ffmpeg_runner import execute_transcode
from .progress import JobStore, ProgressReporter, get_job_store
from .publisher import publish_artifact
from .validation import parse_render_request

logger = logging.getLogger(__name__)

TranscodeRunner = Callable[..., Path]

_JOB_ID_KEYS = ("jobId", "projectId", "job_id")


def _peek_job_id(job: Any) -> Optional[str]:
    """Best-effort job ID from an unvalidated payload, for error records."""
    if isinstance(job, RenderRequest):
        return job.job_id or None
    if isinstance(job, dict):
        for key in _JOB_ID_KEYS:
            value = job.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return None


class RenderPipeline:
    """
    Runs render jobs end to end.

    Collaborators are injectable so tests can swap the HTTP transport,
    the stores and the transcoder without patching.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        job_store: Optional[JobStore] = None,
        object_store: Optional[ObjectStore] = None,
        http_client: Optional[httpx.Client] = None,
        runner: Optional[TranscodeRunner] = None,
    ):
        self.settings = settings or get_settings()
        self.job_store = job_store or get_job_store(self.settings)
        self._object_store = object_store
        self.http_client = http_client
        self.runner = runner or execute_transcode

    @property
    def object_store(self) -> ObjectStore:
        # Built lazily so a misconfigured store fails the job, not the constructor
        if self._object_store is None:
            self._object_store = get_object_store(self.settings)
        return self._object_store

    def encoding_options(self) -> EncodingOptions:
        return EncodingOptions(
            ffmpeg_binary=self.settings.ffmpeg_binary,
            fps=self.settings.output_fps,
            preset=self.settings.ffmpeg_preset,
            audio_bitrate=self.settings.audio_bitrate,
            font_file=self.settings.overlay_font_file,
        )

    def run(self, job: Any) -> RenderResult:
        """
        Execute one render job.

        Args:
            job: Request payload (dict) or a RenderRequest

        Returns:
            RenderResult with ``video_url`` on success, ``error`` otherwise
        """
        started = time.monotonic()
        reporter = ProgressReporter(self.job_store, None)
        staging: Optional[StagingArea] = None
        output_path: Optional[Path] = None

        try:
            request = parse_render_request(job)
            reporter.job_id = request.job_id
            reporter.report("preparing", "Preparing render")
            logger.info(
                f"Starting render for job={request.job_id}: {len(request.scenes)} scene(s), "
                f"{request.output_format} {request.resolution_label}, "
                f"duration={request.total_duration:g}s"
            )

            staging = StagingArea(self.settings.staging_root, request.job_id)

            reporter.report("downloading", f"Downloading assets for {len(request.scenes)} scene(s)")
            with AssetFetcher(
                client=self.http_client,
                timeout_seconds=self.settings.fetch_timeout_seconds,
                max_bytes=self.settings.max_asset_bytes,
            ) as fetcher:
                staged = acquire_assets(request, staging, fetcher)

            reporter.report("processing", "Building transcode command")
            output_path = staging.output_path(request.output_format)
            command = compile_transcode_command(
                request, staged, output_path, self.encoding_options()
            )

            reporter.report("rendering", "Rendering video")
            self.runner(
                command.args,
                command.output_path,
                command.total_duration,
                progress_callback=lambda percent, message: reporter.render_progress(percent),
                timeout_seconds=self.settings.transcode_timeout_seconds,
            )

            reporter.report("uploading", "Uploading video")
            video_url = publish_artifact(
                request.job_id, output_path, request.output_format, self.object_store
            )

            reporter.complete(video_url)
            logger.info(
                f"Render complete for job={request.job_id} in "
                f"{time.monotonic() - started:.1f}s: {video_url}"
            )
            return RenderResult(success=True, video_url=video_url)

        except JobValidationError as e:
            reporter.job_id = self._unclaimed_job_id(job)
            return self._fail(reporter, e)
        except RenderError as e:
            return self._fail(reporter, e)
        except Exception as e:
            logger.exception(f"Unexpected error in render job {reporter.job_id}")
            wrapped = InternalError(f"{e.__class__.__name__}: {e}")
            wrapped.__cause__ = e
            return self._fail(reporter, wrapped)
        finally:
            if staging is not None:
                cleanup_files(staging.all_paths(output_path), staging.job_dir)

    def _unclaimed_job_id(self, job: Any) -> Optional[str]:
        """
        Job ID under which a rejected request may record its error.

        Only IDs with no existing record qualify, so an invalid request
        cannot overwrite the progress of another job using the same ID.
        """
        job_id = _peek_job_id(job)
        if job_id is None:
            return None

        try:
            existing = self.job_store.get(job_id)
        except Exception as e:
            logger.warning(f"Could not check job store for {job_id}: {e}")
            return None

        if existing is not None:
            logger.warning(f"Rejected request reuses job ID {job_id}; existing record left untouched")
            return None
        return job_id

    def _fail(self, reporter: ProgressReporter, error: RenderError) -> RenderResult:
        logger.error(f"Render job {reporter.job_id} failed during {error.stage}: {error.message}")
        reporter.fail(error.public_message)
        return RenderResult(
            success=False,
            error=error.public_message,
            failed_stage=error.stage,
        )


# ============================================================================
# Queue Entry Points
# ============================================================================


def render_scenes(payload: dict) -> dict:
    """
    RQ task to render a scene list.

    The outcome is also recorded in the job store, which is what pollers
    read; the return value is kept as the RQ job result.

    Args:
        payload: Render request as a camelCase dict

    Returns:
        ``{"success": true, "videoUrl": ...}`` or ``{"success": false, "error": ...}``
    """
    result = RenderPipeline().run(payload)
    return result.to_response()


def enqueue_render(request: RenderRequest, queue=None):
    """
    Enqueue a render job with the configured timeout.

    Use this instead of directly enqueueing the task.

    Args:
        request: Validated render request
        queue: Queue to use (defaults to the render queue)

    Returns:
        RQ Job instance
    """
    from ..queues import render_queue

    settings = get_settings()
    queue = queue or render_queue

    return queue.enqueue(
        render_scenes,
        request.model_dump(by_alias=True),
        job_timeout=settings.render_job_timeout,
        description=f"render {request.job_id}",
    )
