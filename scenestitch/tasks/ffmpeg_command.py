"""
FFmpeg Command Builder for Scene Renders

Turns an ordered scene list plus its staged assets into one ffmpeg
invocation.

FFmpeg Filter Graph:
- Every scene image is a looped still input (-loop 1), audio inputs follow
- Each scene chain is trimmed, re-based to zero and normalised to the
  output size so concat sees identical streams
- Multi-scene: per-scene trim windows at cumulative offsets feed one
  video concat; multiple audio inputs feed one audio concat, with
  silence standing in for scenes that have no audio
- Video and audio sub-graphs always share ONE -filter_complex with
  distinct [vout]/[aout] labels, each mapped separately
- Text overlays become drawtext filters on their scene's chain
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..exceptions import CompilationError
from ..schemas.render import RenderRequest, Scene, TextOverlay
from .acquisition import StagedAsset
from .catalog import get_crf, get_output_format, get_resolution

logger = logging.getLogger(__name__)

AUDIO_SAMPLE_RATE = 48000


@dataclass
class EncodingOptions:
    """
    Encoder settings that are not part of the request.

    Output size, codecs and CRF come from the catalog; these come from
    configuration.
    """

    ffmpeg_binary: str = "ffmpeg"
    fps: int = 30
    preset: str = "medium"
    audio_bitrate: str = "128k"
    font_file: Optional[str] = None


@dataclass
class TranscodeCommand:
    """A compiled ffmpeg invocation and what the executor needs to know about it."""

    args: List[str]
    output_path: Path
    total_duration: float
    has_audio: bool
    filter_graph: str = ""
    video_trims: List[Tuple[float, float]] = field(default_factory=list)


def format_seconds(value: float) -> str:
    """
    Render seconds for ffmpeg with millisecond precision and no float noise.

    Example:
        >>> format_seconds(3.0)
        '3'
        >>> format_seconds(0.1 + 0.2)
        '0.3'
    """
    text = f"{round(float(value), 3):.3f}".rstrip("0").rstrip(".")
    return text or "0"


def escape_filter_value(value: str) -> str:
    """
    Escape a string used as a filter option value inside -filter_complex.

    Two levels apply: the filter's own option parser (``\\ ' :``), then the
    filtergraph parser (``\\ ' [ ] , ;``).
    """
    option_level = "".join(f"\\{c}" if c in "\\':" else c for c in value)
    return "".join(f"\\{c}" if c in "\\'[],;" else c for c in option_level)


def normalize_color(color: str) -> str:
    """Accept CSS-style ``#rrggbb`` as well as ffmpeg color names."""
    if color.startswith("#"):
        return "0x" + color[1:]
    return color


class SceneCommandBuilder:
    """
    Builds the ffmpeg argument list for a scene render.

    Key design:
    - One looped input per scene image, then one input per scene audio
    - Input indices are tracked per scene so chains can reference them
    - The whole graph is a single string joined with ';'
    """

    def __init__(
        self,
        request: RenderRequest,
        staged_assets: Sequence[StagedAsset],
        output_path: Path,
        options: Optional[EncodingOptions] = None,
    ):
        """
        Initialize the builder.

        Args:
            request: Validated render request
            staged_assets: Output of asset acquisition
            output_path: Where ffmpeg writes the video
            options: Encoder settings from configuration

        Raises:
            CompilationError: On catalog misses or missing scene images
        """
        self.request = request
        self.scenes: List[Scene] = list(request.scenes)
        self.output_path = Path(output_path)
        self.options = options or EncodingOptions()

        self.resolution = get_resolution(request.resolution_label)
        self.output_format = get_output_format(request.output_format)
        self.crf = get_crf(self.output_format, request.quality)

        if not self.scenes:
            raise CompilationError("Cannot compile a render with no scenes")

        self.images: Dict[int, StagedAsset] = {}
        self.audio: List[StagedAsset] = []
        for asset in staged_assets:
            if asset.kind == "image":
                self.images[asset.owner_scene_index] = asset
            elif asset.kind == "audio":
                self.audio.append(asset)
            else:
                raise CompilationError(f"Unknown staged asset kind: {asset.kind}")
        self.audio.sort(key=lambda a: a.owner_scene_index)

        missing = [i for i in range(len(self.scenes)) if i not in self.images]
        if missing:
            raise CompilationError(f"No staged image for scene(s) {missing}")

        # Track input indices
        self.image_input_idx: Dict[int, int] = {}  # scene_index -> input index
        self.audio_input_idx: List[Tuple[int, int]] = []  # (scene_index, input index)
        self.video_trims: List[Tuple[float, float]] = []

    @property
    def total_duration(self) -> float:
        return sum(scene.duration for scene in self.scenes)

    def build(self) -> TranscodeCommand:
        """
        Build the complete ffmpeg command.

        Returns:
            TranscodeCommand with the argument list (binary first, output last)
        """
        cmd = [self.options.ffmpeg_binary, "-y", "-hide_banner"]
        cmd.extend(self._build_inputs())

        filters, video_label = self._build_video_graph()
        audio_filters, audio_map = self._build_audio_graph()
        filters.extend(audio_filters)

        filter_graph = ";".join(filters)
        cmd.extend(["-filter_complex", filter_graph, "-map", video_label])
        if audio_map:
            cmd.extend(["-map", audio_map])

        cmd.extend(self._build_output_options(has_audio=audio_map is not None))
        cmd.append(str(self.output_path))

        return TranscodeCommand(
            args=cmd,
            output_path=self.output_path,
            total_duration=self.total_duration,
            has_audio=audio_map is not None,
            filter_graph=filter_graph,
            video_trims=list(self.video_trims),
        )

    def _build_inputs(self) -> List[str]:
        """
        Build input arguments.

        - Images first, in scene order, looped so they can be trimmed by time
        - Audio after, in scene order
        """
        inputs: List[str] = []
        next_idx = 0

        for scene_index in range(len(self.scenes)):
            path = self.images[scene_index].local_path
            inputs.extend([
                "-loop", "1",
                "-framerate", str(self.options.fps),
                "-i", str(path),
            ])
            self.image_input_idx[scene_index] = next_idx
            next_idx += 1

        for asset in self.audio:
            inputs.extend(["-i", str(asset.local_path)])
            self.audio_input_idx.append((asset.owner_scene_index, next_idx))
            next_idx += 1

        return inputs

    def _normalize_chain(self) -> str:
        w = self.resolution.width
        h = self.resolution.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black,"
            f"setsar=1,fps={self.options.fps},format=yuv420p"
        )

    def _build_video_graph(self) -> Tuple[List[str], str]:
        """Per-scene chains plus the concat (multi-scene only)."""
        filters: List[str] = []

        if len(self.scenes) == 1:
            scene = self.scenes[0]
            self.video_trims.append((0.0, scene.duration))
            chain = f"[{self.image_input_idx[0]}:v]{self._normalize_chain()}"
            chain += self._overlay_suffix(scene)
            filters.append(f"{chain}[vout]")
            return filters, "[vout]"

        offset = 0.0
        labels: List[str] = []
        for scene_index, scene in enumerate(self.scenes):
            start = offset
            end = offset + scene.duration
            self.video_trims.append((start, end))

            chain = (
                f"[{self.image_input_idx[scene_index]}:v]"
                f"trim=start={format_seconds(start)}:end={format_seconds(end)},"
                f"setpts=PTS-STARTPTS,"
                f"{self._normalize_chain()}"
                f"{self._overlay_suffix(scene)}"
                f"[v{scene_index}]"
            )
            filters.append(chain)
            labels.append(f"[v{scene_index}]")
            offset = end

        filters.append(f"{''.join(labels)}concat=n={len(labels)}:v=1:a=0[vout]")
        return filters, "[vout]"

    def _overlay_suffix(self, scene: Scene) -> str:
        if not self.request.include_subtitles or not scene.text_overlays:
            return ""
        return "".join(f",{self._drawtext(o, scene)}" for o in scene.text_overlays)

    def _drawtext(self, overlay: TextOverlay, scene: Scene) -> str:
        """
        Build a drawtext filter for one overlay.

        Chains are re-based to zero before overlays are applied, so ``t`` is
        scene-relative here.
        """
        end = min(overlay.end_time, scene.duration)
        parts = [
            f"text={escape_filter_value(overlay.text)}",
            "expansion=none",
            f"fontsize={overlay.font_size}",
            f"fontcolor={escape_filter_value(normalize_color(overlay.color))}",
            f"x={format_seconds(overlay.position.x)}",
            f"y={format_seconds(overlay.position.y)}",
            f"enable=between(t\\,{format_seconds(overlay.start_time)}\\,{format_seconds(end)})",
        ]
        if self.options.font_file:
            parts.append(f"fontfile={escape_filter_value(self.options.font_file)}")
        return "drawtext=" + ":".join(parts)

    def _build_audio_graph(self) -> Tuple[List[str], Optional[str]]:
        """
        Audio handling.

        Returns:
            (filters, map target). The map target is None for silent output,
            ``N:a`` for a single input and ``[aout]`` for a concat.
        """
        if not self.audio_input_idx:
            return [], None

        if len(self.audio_input_idx) == 1:
            _, input_idx = self.audio_input_idx[0]
            return [], f"{input_idx}:a"

        filters: List[str] = []
        labels: List[str] = []
        audio_by_scene = dict(self.audio_input_idx)
        for scene_index, scene in enumerate(self.scenes):
            duration = format_seconds(scene.duration)
            label = f"[a{scene_index}]"
            input_idx = audio_by_scene.get(scene_index)
            if input_idx is None:
                # Silence keeps later narration aligned with its scene
                filters.append(
                    f"anullsrc=channel_layout=stereo:sample_rate={AUDIO_SAMPLE_RATE},"
                    f"atrim=0:{duration}"
                    f"{label}"
                )
            else:
                filters.append(
                    f"[{input_idx}:a]"
                    f"aformat=sample_rates={AUDIO_SAMPLE_RATE}:channel_layouts=stereo,"
                    f"atrim=0:{duration},asetpts=PTS-STARTPTS,"
                    f"apad=whole_dur={duration}"
                    f"{label}"
                )
            labels.append(label)

        filters.append(f"{''.join(labels)}concat=n={len(labels)}:v=0:a=1[aout]")
        return filters, "[aout]"

    def _build_output_options(self, has_audio: bool) -> List[str]:
        """Build output encoding options."""
        fmt = self.output_format
        opts = ["-c:v", fmt.video_codec]
        if fmt.name == "mp4":
            opts.extend(["-preset", self.options.preset])
        opts.extend(["-crf", str(self.crf)])
        if fmt.name == "webm":
            # Constant quality mode for VP9
            opts.extend(["-b:v", "0"])
        opts.extend(["-pix_fmt", "yuv420p", "-s", self.resolution.size])

        if has_audio:
            opts.extend(["-c:a", fmt.audio_codec, "-b:a", self.options.audio_bitrate])
        else:
            opts.append("-an")

        if fmt.name == "mp4":
            opts.extend(["-movflags", "+faststart"])

        opts.extend(["-t", format_seconds(self.total_duration)])
        return opts


def compile_transcode_command(
    request: RenderRequest,
    staged_assets: Sequence[StagedAsset],
    output_path: Path,
    options: Optional[EncodingOptions] = None,
) -> TranscodeCommand:
    """
    Compile the ffmpeg invocation for a render.

    Raises:
        CompilationError: If the request cannot be expressed with the catalog
    """
    builder = SceneCommandBuilder(request, staged_assets, output_path, options)
    command = builder.build()
    logger.info(
        f"Compiled ffmpeg command: {len(request.scenes)} scene(s), "
        f"{len(builder.audio)} audio input(s), duration={format_seconds(command.total_duration)}s"
    )
    logger.debug(f"Filter graph: {command.filter_graph}")
    return command
