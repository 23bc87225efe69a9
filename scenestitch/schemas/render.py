"""
Pydantic schemas for render requests, progress records and results.

Wire format is camelCase. Field names that the scene editor historically
sent (projectId, imageUrl, audioUrl, resolution) are accepted as aliases.

Enumerated options (outputFormat, resolutionLabel, quality) are typed as
plain strings; the job validator checks them against the
catalog so that every problem in a request is reported together.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RenderStage = Literal[
    "preparing",
    "downloading",
    "processing",
    "rendering",
    "uploading",
    "complete",
    "error",
]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request Schemas ---


class OverlayPosition(CamelModel):
    """Top-left anchor of an overlay, in output-frame pixels."""

    x: float = 0.0
    y: float = 0.0


class TextOverlay(CamelModel):
    """Text drawn over a scene during a scene-relative time window."""

    text: str
    position: OverlayPosition = Field(default_factory=OverlayPosition)
    font_size: int = Field(32, gt=0, description="Font size in pixels")
    color: str = Field("white", description="Color name or #rrggbb")
    start_time: float = Field(0.0, description="Scene-relative start in seconds")
    end_time: float = Field(..., description="Scene-relative end in seconds")


class Scene(CamelModel):
    """One timed visual unit of a render job."""

    id: Optional[str] = None
    image_locator: str = Field(
        "",
        validation_alias=AliasChoices("imageLocator", "imageUrl", "image_locator"),
        serialization_alias="imageLocator",
        description="URL of the still image shown for the scene",
    )
    audio_locator: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("audioLocator", "audioUrl", "audio_locator"),
        serialization_alias="audioLocator",
        description="Optional narration audio URL",
    )
    duration: float = Field(..., description="Scene length in seconds")
    text_overlays: List[TextOverlay] = Field(default_factory=list)


class RenderRequest(CamelModel):
    """Invocation contract of the render pipeline."""

    job_id: str = Field(
        ...,
        validation_alias=AliasChoices("jobId", "projectId", "job_id"),
        serialization_alias="jobId",
        description="Caller-supplied identifier, unique per concurrent render",
    )
    scenes: List[Scene] = Field(default_factory=list)
    output_format: str = Field("mp4", description="mp4 or webm")
    resolution_label: str = Field(
        "1080p",
        validation_alias=AliasChoices("resolutionLabel", "resolution", "resolution_label"),
        serialization_alias="resolutionLabel",
        description="480p, 720p or 1080p",
    )
    include_subtitles: bool = Field(
        False, description="Burn scene text overlays into the video"
    )
    quality: str = Field("medium", description="high, medium or low")

    @property
    def total_duration(self) -> float:
        """Expected output duration: the sum of all scene durations."""
        return sum(scene.duration for scene in self.scenes)


# --- Progress / Status Schemas ---


class RenderProgress(CamelModel):
    """Progress tuple written after every stage transition."""

    stage: RenderStage
    percent: int = Field(0, ge=0, le=100)
    message: str = ""
    estimated_seconds_remaining: Optional[int] = None


class RenderJobStatus(CamelModel):
    """Externally visible record that pollers read, keyed by job ID."""

    job_id: str
    status: RenderStage
    progress: RenderProgress
    output_url: Optional[str] = None
    updated_at: Optional[datetime] = None


# --- Response Schemas ---


class RenderResult(CamelModel):
    """Pipeline outcome: ``{success, videoUrl}`` or ``{success, error}``."""

    success: bool
    video_url: Optional[str] = None
    error: Optional[str] = None
    # Stage that failed; used for HTTP status mapping, never serialized
    failed_stage: Optional[str] = Field(None, exclude=True)

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class RenderJobAccepted(CamelModel):
    """Response when a render is queued (202 Accepted)."""

    job_id: str
    status: Literal["queued"] = "queued"
    rq_job_id: Optional[str] = None
