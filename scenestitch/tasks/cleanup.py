"""
Staging Cleanup

Removes every file a pipeline run staged or produced. Safe to call more
than once and on paths that were never created.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


def cleanup_files(paths: Iterable[Path], job_dir: Optional[Path] = None) -> int:
    """
    Delete the given files, then the job directory if it ends up empty.

    Per-file failures are logged and skipped so one stuck file never keeps
    the rest around.

    Args:
        paths: Staged inputs and the output path
        job_dir: The job's staging directory

    Returns:
        Number of files actually removed
    """
    removed = 0
    for path in paths:
        path = Path(path)
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Failed to remove staged file {path}: {e}")

    if job_dir is not None:
        _remove_empty_dir(Path(job_dir))

    if removed:
        logger.info(f"Cleaned up {removed} staged file(s)")
    return removed


def _remove_empty_dir(directory: Path) -> None:
    try:
        directory.rmdir()
    except FileNotFoundError:
        pass
    except OSError as e:
        # Not empty or not removable, leave it for an operator
        logger.warning(f"Staging directory {directory} not removed: {e}")
