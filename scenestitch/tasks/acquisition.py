"""
Asset Acquisition

Downloads every scene's image and optional audio into the job's staging
area, one asset at a time and in scene order. The first failure aborts the
stage and names the scene index and asset kind that failed; everything
already written stays tracked on the staging area for cleanup.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from ..core.storage import StagingArea, extension_from_locator
from ..exceptions import AcquisitionError
from ..schemas.render import RenderRequest

logger = logging.getLogger(__name__)


@dataclass
class StagedAsset:
    """A downloaded scene input living in the staging area."""

    local_path: Path
    kind: str  # "image" or "audio"
    owner_scene_index: int


class AssetFetcher:
    """
    Streams remote assets to local files with a timeout and size cap.

    ``timeout_seconds`` bounds each connect and read step and also the
    whole download, so a server trickling bytes cannot hold a fetch open.

    Pass an ``httpx.Client`` to control transport (tests use
    ``httpx.MockTransport``); otherwise one is created and owned here.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout_seconds: float = 60.0,
        max_bytes: int = 200 * 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self.clock = clock

    def __enter__(self) -> "AssetFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def fetch(self, locator: str, destination: Path) -> int:
        """
        Download ``locator`` to ``destination``.

        Returns:
            Number of bytes written

        Raises:
            httpx.HTTPError: On transport errors, timeouts (per step or
                for the whole download) and non-2xx responses
            ValueError: If the body is empty or larger than ``max_bytes``
        """
        written = 0
        deadline = self.clock() + self.timeout_seconds
        with self.client.stream("GET", locator, timeout=self.timeout_seconds) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_bytes():
                    if self.clock() > deadline:
                        raise httpx.ReadTimeout(
                            f"download exceeded {self.timeout_seconds:g}s",
                            request=response.request,
                        )
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise ValueError(f"asset exceeds {self.max_bytes} bytes")
                    f.write(chunk)

        if written == 0:
            raise ValueError("empty response body")

        return written


def _describe_failure(exc: Exception, timeout_seconds: float) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return f"timed out after {timeout_seconds:g}s"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.HTTPError):
        return f"network error ({exc.__class__.__name__})"
    return str(exc) or exc.__class__.__name__


def _acquire_one(
    fetcher: AssetFetcher,
    staging: StagingArea,
    scene_index: int,
    kind: str,
    locator: str,
) -> StagedAsset:
    path = staging.asset_path(scene_index, kind, extension_from_locator(locator, kind))
    # Track before writing so a partial file is still cleaned up
    staging.track(path)

    try:
        size = fetcher.fetch(locator, path)
    except (httpx.HTTPError, ValueError, OSError) as exc:
        reason = _describe_failure(exc, fetcher.timeout_seconds)
        logger.warning(f"Scene {scene_index} {kind} download failed from {locator}: {exc}")
        raise AcquisitionError(scene_index, kind, reason) from exc

    logger.info(f"Downloaded scene {scene_index} {kind} ({size} bytes) -> {path.name}")
    return StagedAsset(local_path=path, kind=kind, owner_scene_index=scene_index)


def acquire_assets(
    request: RenderRequest,
    staging: StagingArea,
    fetcher: AssetFetcher,
) -> List[StagedAsset]:
    """
    Download all scene inputs sequentially.

    For each scene in order the image is fetched first, then the audio when
    the scene has one.

    Args:
        request: Validated render request
        staging: The job's staging area (created here if needed)
        fetcher: Downloader to use

    Returns:
        Staged assets in acquisition order

    Raises:
        AcquisitionError: On the first failed download
    """
    staging.prepare()
    staged: List[StagedAsset] = []

    for index, scene in enumerate(request.scenes):
        staged.append(_acquire_one(fetcher, staging, index, "image", scene.image_locator))
        if scene.audio_locator:
            staged.append(_acquire_one(fetcher, staging, index, "audio", scene.audio_locator))

    return staged
