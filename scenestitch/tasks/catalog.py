"""
Resolution & Format Catalog

Static lookup tables for output dimensions, encoder pairs and quality
levels. Built once at import and exposed read-only.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ..exceptions import CompilationError


@dataclass(frozen=True)
class Resolution:
    """Output frame size for a resolution label."""

    label: str
    width: int
    height: int

    @property
    def size(self) -> str:
        """ffmpeg ``-s`` value, e.g. ``1280x720``."""
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class OutputFormat:
    """
    Container plus encoder pair.

    Attributes:
        name: Container/extension (mp4, webm)
        video_codec: ffmpeg video encoder
        audio_codec: ffmpeg audio encoder
        content_type: MIME type used when publishing
        crf_by_quality: Constant-rate-factor per quality level
    """

    name: str
    video_codec: str
    audio_codec: str
    content_type: str
    crf_by_quality: Mapping[str, int]


RESOLUTIONS: Mapping[str, Resolution] = MappingProxyType({
    "480p": Resolution("480p", 854, 480),
    "720p": Resolution("720p", 1280, 720),
    "1080p": Resolution("1080p", 1920, 1080),
})

OUTPUT_FORMATS: Mapping[str, OutputFormat] = MappingProxyType({
    "mp4": OutputFormat(
        name="mp4",
        video_codec="libx264",
        audio_codec="aac",
        content_type="video/mp4",
        crf_by_quality=MappingProxyType({"high": 18, "medium": 23, "low": 28}),
    ),
    "webm": OutputFormat(
        name="webm",
        video_codec="libvpx-vp9",
        audio_codec="libopus",
        content_type="video/webm",
        # VP9 CRF scale is 0-63
        crf_by_quality=MappingProxyType({"high": 24, "medium": 31, "low": 38}),
    ),
})

QUALITY_LEVELS = ("high", "medium", "low")

# Overlay colors: a name ("white", optionally "@0.5" alpha) or [#|0x]RRGGBB[AA]
COLOR_PATTERN = re.compile(
    r"^(?:[A-Za-z]+(?:@(?:0?\.\d+|1(?:\.0+)?|0))?|(?:#|0x)?[0-9A-Fa-f]{6}(?:[0-9A-Fa-f]{2})?)$"
)


def get_resolution(label: str) -> Resolution:
    """
    Look up pixel dimensions for a resolution label.

    Raises:
        CompilationError: If the label is not in the catalog
    """
    try:
        return RESOLUTIONS[label]
    except KeyError:
        raise CompilationError(f"No catalog entry for resolution {label!r}") from None


def get_output_format(name: str) -> OutputFormat:
    """
    Look up the encoder pair for an output format.

    Raises:
        CompilationError: If the format is not in the catalog
    """
    try:
        return OUTPUT_FORMATS[name]
    except KeyError:
        raise CompilationError(f"No catalog entry for output format {name!r}") from None


def get_crf(output_format: OutputFormat, quality: str) -> int:
    """
    CRF value for a format at a quality level.

    Raises:
        CompilationError: If the quality level is unknown
    """
    try:
        return output_format.crf_by_quality[quality]
    except KeyError:
        raise CompilationError(f"No CRF defined for quality {quality!r}") from None
