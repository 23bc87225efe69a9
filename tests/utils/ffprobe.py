"""FFprobe validation utilities for integration tests.

Provides utilities to:
- Extract video metadata using ffprobe
- Verify video duration within tolerance
- Generate small media fixtures with ffmpeg's lavfi sources
"""

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def media_tools_available() -> bool:
    """True when both ffmpeg and ffprobe are on PATH."""
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


@dataclass
class VideoInfo:
    """Container for video file metadata extracted via ffprobe."""

    duration_sec: float
    width: int
    height: int
    has_video: bool
    has_audio: bool
    video_codec: Optional[str]
    audio_codec: Optional[str]

    @property
    def duration_ms(self) -> int:
        """Duration in milliseconds."""
        return int(self.duration_sec * 1000)


def probe_video(path: Path) -> VideoInfo:
    """Extract metadata from a video file using ffprobe.

    Raises:
        FileNotFoundError: If video file doesn't exist
        subprocess.CalledProcessError: If ffprobe fails
        ValueError: If ffprobe output cannot be parsed
    """
    if not path.exists():
        raise FileNotFoundError(f"Video file not found: {path}")

    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True)

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse ffprobe output: {e}")

    streams = data.get("streams", [])
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

    return VideoInfo(
        duration_sec=float(data.get("format", {}).get("duration", 0)),
        width=int(video_stream.get("width", 0)) if video_stream else 0,
        height=int(video_stream.get("height", 0)) if video_stream else 0,
        has_video=video_stream is not None,
        has_audio=audio_stream is not None,
        video_codec=video_stream.get("codec_name") if video_stream else None,
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
    )


def verify_duration(path: Path, expected_ms: int, tolerance_ms: int = 300) -> bool:
    """Verify that a video file's duration matches expected within tolerance."""
    return abs(probe_video(path).duration_ms - expected_ms) <= tolerance_ms


def make_still_image(path: Path, color: str = "red", size: str = "640x480") -> bytes:
    """Render a single-frame PNG with ffmpeg and return its bytes."""
    subprocess.run(
        [
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", f"color=c={color}:s={size}",
            "-frames:v", "1",
            str(path),
        ],
        check=True,
    )
    return path.read_bytes()


def make_tone(path: Path, duration_sec: float, frequency: int = 440) -> bytes:
    """Render a sine tone (AAC in .m4a) with ffmpeg and return its bytes."""
    subprocess.run(
        [
            "ffmpeg", "-y", "-v", "error",
            "-f", "lavfi", "-i", f"sine=frequency={frequency}:duration={duration_sec}",
            "-c:a", "aac",
            str(path),
        ],
        check=True,
    )
    return path.read_bytes()
