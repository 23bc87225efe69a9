"""
FFmpeg Runner with Timeout Enforcement

Runs FFmpeg commands with:
- Progress tracking via -progress pipe:1
- Strict timeout enforcement (a timer kills the process group, so a
  silent, hung ffmpeg is stopped too)
- Full capture of the diagnostic stream on a background thread
- Process group management for clean termination

This is the primary protection against runaway FFmpeg processes.
"""

import logging
import os
import re
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from ..exceptions import TranscodeError, TranscodeTimeout

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

# Patterns for parsing progress output
# Prefer out_time_us (microseconds) as it's most reliable
TIME_US_PATTERN = re.compile(r"out_time_us=(\d+)")
TIME_MS_PATTERN = re.compile(r"out_time_ms=(\d+)")
TIME_STR_PATTERN = re.compile(r"out_time=(\d+):(\d+):(\d+)\.(\d+)")
PROGRESS_PATTERN = re.compile(r"progress=(\w+)")

DIAGNOSTIC_LOG_TAIL = 2000


def with_progress_args(cmd: List[str]) -> List[str]:
    """
    Insert progress reporting options right after the binary.

    Options placed after the output file would be ignored by ffmpeg.
    """
    return cmd[:1] + ["-progress", "pipe:1", "-nostats"] + cmd[1:]


def run_ffmpeg_with_progress(
    cmd: List[str],
    total_duration_ms: int,
    progress_callback: Optional[ProgressCallback] = None,
    timeout_seconds: float = 1800,
) -> str:
    """
    Run FFmpeg command with progress tracking and timeout enforcement.

    This function:
    1. Adds -progress pipe:1 to capture progress output
    2. Runs FFmpeg in its own process group for clean termination
    3. Drains stderr on a thread so the diagnostic text is kept in full
    4. Parses progress output and calls progress_callback(percent, message)
    5. Kills the process group with SIGKILL when the timeout elapses

    Args:
        cmd: FFmpeg command as list of arguments (without -progress)
        total_duration_ms: Expected total duration in milliseconds
        progress_callback: Optional function called with (percent, message)
        timeout_seconds: Maximum allowed runtime in seconds

    Returns:
        The complete stderr text of the run

    Raises:
        TranscodeTimeout: If FFmpeg exceeds the timeout
        TranscodeError: If FFmpeg cannot start or exits non-zero
    """
    cmd_with_progress = with_progress_args(cmd)
    report = progress_callback or (lambda percent, message: None)

    logger.info(f"Starting FFmpeg with timeout={timeout_seconds}s, duration={total_duration_ms}ms")
    logger.debug(f"FFmpeg command: {' '.join(cmd_with_progress)}")

    try:
        # preexec_fn=os.setsid creates a new session/process group
        process = subprocess.Popen(
            cmd_with_progress,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            preexec_fn=os.setsid,
        )
    except OSError as e:
        raise TranscodeError(
            f"Transcoder could not be started: {e.strerror or e}",
            diagnostics=str(e),
        ) from e

    stderr_chunks: List[str] = []
    stderr_thread = threading.Thread(
        target=_drain_stream,
        args=(process.stderr, stderr_chunks),
        daemon=True,
    )
    stderr_thread.start()

    timed_out = threading.Event()

    def _on_timeout() -> None:
        timed_out.set()
        logger.warning(f"FFmpeg exceeded timeout of {timeout_seconds}s, killing")
        _kill_process_group(process)

    timer = threading.Timer(timeout_seconds, _on_timeout)
    timer.daemon = True
    timer.start()

    start_time = time.time()
    last_percent = 0

    try:
        for line in process.stdout:
            line = line.strip()

            progress_match = PROGRESS_PATTERN.search(line)
            if progress_match and progress_match.group(1) == "end":
                logger.info("FFmpeg signaled completion")
                continue

            current_ms = parse_progress_time(line)
            if current_ms is not None and total_duration_ms > 0:
                percent = min(99, int((current_ms / total_duration_ms) * 100))
                if percent > last_percent:
                    last_percent = percent
                    report(percent, f"Rendering: {percent}%")

        return_code = process.wait()
    except Exception as e:
        logger.error(f"Unexpected error during FFmpeg execution: {e}", exc_info=True)
        _kill_process_group(process)
        raise TranscodeError(f"Transcoder error: {e}") from e
    finally:
        timer.cancel()
        stderr_thread.join(timeout=5)

    diagnostics = "".join(stderr_chunks)

    if timed_out.is_set():
        raise TranscodeTimeout(
            f"Transcoder exceeded the time limit of {timeout_seconds:g} seconds",
            diagnostics=diagnostics,
            returncode=return_code,
        )

    if return_code != 0:
        logger.error(
            f"FFmpeg failed with code {return_code}: {diagnostics[-DIAGNOSTIC_LOG_TAIL:]}"
        )
        raise TranscodeError(
            f"Transcoder exited with code {return_code}",
            diagnostics=diagnostics,
            returncode=return_code,
        )

    elapsed = time.time() - start_time
    logger.info(f"FFmpeg completed successfully in {elapsed:.1f}s")
    report(100, "Complete")
    return diagnostics


def parse_progress_time(line: str) -> Optional[int]:
    """
    Parse current output time from FFmpeg progress line.

    Tries multiple formats in order of preference:
    1. out_time_us (microseconds) - most accurate
    2. out_time_ms (microseconds as well, despite the name)
    3. out_time (HH:MM:SS.microseconds string)

    Args:
        line: Line of FFmpeg progress output

    Returns:
        Current time in milliseconds, or None if not found
    """
    match = TIME_US_PATTERN.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = TIME_MS_PATTERN.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = TIME_STR_PATTERN.search(line)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2))
        seconds = int(match.group(3))
        # Group 4 is microseconds (6 digits, but may be truncated)
        micro_str = match.group(4).ljust(6, "0")[:6]
        return (
            hours * 3600000
            + minutes * 60000
            + seconds * 1000
            + int(micro_str) // 1000
        )

    return None


def _drain_stream(stream, sink: List[str]) -> None:
    for chunk in iter(stream.readline, ""):
        sink.append(chunk)
    stream.close()


def _kill_process_group(process: subprocess.Popen) -> None:
    """
    Kill FFmpeg process and its entire process group.

    Uses SIGKILL to ensure immediate termination.

    Args:
        process: The subprocess.Popen instance to kill
    """
    try:
        pgid = os.getpgid(process.pid)
        logger.info(f"Killing FFmpeg process group {pgid}")
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process already terminated")
    except OSError as e:
        logger.warning(f"Error killing process group: {e}")
        try:
            process.kill()
        except OSError:
            logger.debug("Fallback kill failed, process likely gone")


def execute_transcode(
    cmd: List[str],
    output_path: Path,
    total_duration: float,
    progress_callback: Optional[ProgressCallback] = None,
    timeout_seconds: float = 1800,
) -> Path:
    """
    Run a compiled transcode and verify it produced a file.

    Returns:
        Path to the produced output file

    Raises:
        TranscodeError: On non-zero exit, timeout or a missing/empty output
    """
    run_ffmpeg_with_progress(
        cmd=cmd,
        total_duration_ms=int(total_duration * 1000),
        progress_callback=progress_callback,
        timeout_seconds=timeout_seconds,
    )

    output_path = Path(output_path)
    if not output_path.exists():
        raise TranscodeError("Transcoder did not produce an output file")
    if output_path.stat().st_size == 0:
        raise TranscodeError("Transcoder produced an empty output file")

    return output_path


def validate_ffmpeg_available(binary: str = "ffmpeg") -> bool:
    """
    Check if FFmpeg is available and working.

    Returns:
        True if FFmpeg is available, False otherwise
    """
    try:
        result = subprocess.run(
            [binary, "-version"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"FFmpeg not available: {e}")
        return False
