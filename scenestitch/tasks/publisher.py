"""
Artifact Publisher

Uploads a rendered video to object storage under a key derived from the
job ID and the upload time, and returns its public URL.
"""

import logging
import time
from pathlib import Path
from typing import Optional

from ..core.object_store import DEFAULT_CACHE_CONTROL, ObjectStore
from ..exceptions import UploadError
from .catalog import OUTPUT_FORMATS

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "videos"


def artifact_key(job_id: str, output_format: str, epoch_ms: Optional[int] = None) -> str:
    """
    Object key for a rendered video.

    Example:
        >>> artifact_key("proj-1", "mp4", epoch_ms=1700000000000)
        'videos/proj-1_1700000000000.mp4'
    """
    if epoch_ms is None:
        epoch_ms = int(time.time() * 1000)
    return f"{ARTIFACT_PREFIX}/{job_id}_{epoch_ms}.{output_format}"


def publish_artifact(
    job_id: str,
    output_path: Path,
    output_format: str,
    store: ObjectStore,
) -> str:
    """
    Upload the rendered file and return its public URL.

    The whole file is read into memory before the upload.

    Args:
        job_id: Job the artifact belongs to
        output_path: File produced by the transcoder
        output_format: mp4 or webm
        store: Destination object store

    Returns:
        Public URL of the uploaded artifact

    Raises:
        UploadError: If the file cannot be read or the upload fails
    """
    fmt = OUTPUT_FORMATS.get(output_format)
    content_type = fmt.content_type if fmt else f"video/{output_format}"
    key = artifact_key(job_id, output_format)

    try:
        data = Path(output_path).read_bytes()
    except OSError as e:
        raise UploadError(f"Could not read rendered output: {e}") from e

    try:
        url = store.put(key, data, content_type, cache_control=DEFAULT_CACHE_CONTROL)
    except Exception as e:
        logger.error(f"Upload of {key} failed: {e}", exc_info=True)
        raise UploadError(f"Failed to upload rendered video: {e}") from e

    logger.info(f"Published {len(data)} bytes for job {job_id} as {key}")
    return url
