"""
Staging Storage & Path Safety

Provides the per-job staging area used by a single pipeline run:
- Filesystem-safe, collision-free directory names derived from job IDs
- Deterministic paths keyed by (job, scene index, asset kind)
- Tracking of every path written so cleanup can remove all of it
"""

import hashlib
import os
import re
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlparse
from uuid import uuid4

# Fallback extensions when a locator carries none
DEFAULT_EXTENSIONS: dict[str, str] = {
    "image": "jpg",
    "audio": "mp3",
}

_EXTENSION_RE = re.compile(r"^[A-Za-z0-9]{1,5}$")


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename to prevent path traversal and other security issues.

    - Strips directory components (basename only)
    - Removes null bytes
    - Removes characters that are problematic on various filesystems
    - Limits filename length to 100 characters (excluding extension)

    Args:
        filename: Original filename to sanitize

    Returns:
        str: Sanitized filename safe for filesystem use

    Example:
        >>> sanitize_filename("../../../etc/passwd")
        'passwd'
        >>> sanitize_filename("my<file>name.mp4")
        'myfilename.mp4'
    """
    filename = os.path.basename(filename)
    filename = filename.replace("\x00", "")

    # < > : " / \ | ? * are forbidden on Windows, plus control characters
    filename = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", filename)

    name, ext = os.path.splitext(filename)
    name = name.strip(". ")
    name = name[:100]

    if not name:
        name = uuid4().hex[:8]

    return f"{name}{ext}"


def job_directory_name(job_id: str) -> str:
    """
    Build the staging directory name for a job.

    The sanitized ID keeps paths readable; the digest suffix keeps two
    distinct job IDs from ever sharing a directory after sanitization.

    Example:
        job_directory_name("proj-1")  ->  "proj-1-<8 hex chars>"
    """
    digest = hashlib.sha256(job_id.encode("utf-8")).hexdigest()[:8]
    # Staged paths end up inside ffmpeg arguments, keep them to [A-Za-z0-9_-]
    safe = re.sub(r"[^A-Za-z0-9_-]", "_", sanitize_filename(job_id))[:64]
    return f"{safe}-{digest}"


def extension_from_locator(locator: str, kind: str) -> str:
    """
    Derive a file extension from a URL or path.

    Query strings and fragments are ignored. Anything that does not look
    like a short alphanumeric extension falls back to the kind default.

    Example:
        >>> extension_from_locator("https://cdn.example.com/a/img.png?sig=1", "image")
        'png'
        >>> extension_from_locator("https://cdn.example.com/render", "audio")
        'mp3'
    """
    path = unquote(urlparse(locator).path) or locator
    suffix = Path(path).suffix.lstrip(".")
    if suffix and _EXTENSION_RE.match(suffix):
        return suffix.lower()
    return DEFAULT_EXTENSIONS.get(kind, "bin")


class StagingArea:
    """
    Local scratch space owned by exactly one pipeline run.

    Every path handed out through ``asset_path``/``output_path`` lives under
    ``<root>/<job dir>/`` and embeds the scene index and kind, so concurrent
    jobs never collide without any locking.
    """

    def __init__(self, root: Path, job_id: str):
        self.root = Path(root)
        self.job_id = job_id
        self.job_dir = self.root / job_directory_name(job_id)
        self._tracked: List[Path] = []

    def prepare(self) -> Path:
        """Create the job directory."""
        self.job_dir.mkdir(parents=True, exist_ok=True)
        return self.job_dir

    def asset_path(self, scene_index: int, kind: str, extension: str) -> Path:
        """Path for one scene asset, e.g. ``scene_2_audio.mp3``."""
        return self.job_dir / f"scene_{scene_index}_{kind}.{extension}"

    def output_path(self, output_format: str) -> Path:
        """Path the transcoder writes the rendered video to."""
        return self.job_dir / f"output.{output_format}"

    def track(self, path: Path) -> Path:
        """Remember a path for cleanup. Returns it for chaining."""
        path = Path(path)
        if path not in self._tracked:
            self._tracked.append(path)
        return path

    @property
    def tracked_paths(self) -> List[Path]:
        return list(self._tracked)

    def all_paths(self, output_path: Optional[Path] = None) -> List[Path]:
        """Tracked paths plus the output path, if one was allocated."""
        paths = self.tracked_paths
        if output_path is not None and Path(output_path) not in paths:
            paths.append(Path(output_path))
        return paths
