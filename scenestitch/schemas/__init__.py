"""
Pydantic schemas for the SceneStitch API and pipeline.
"""

from .render import (
    OverlayPosition,
    RenderJobAccepted,
    RenderJobStatus,
    RenderProgress,
    RenderRequest,
    RenderResult,
    RenderStage,
    Scene,
    TextOverlay,
)

__all__ = [
    "OverlayPosition",
    "RenderJobAccepted",
    "RenderJobStatus",
    "RenderProgress",
    "RenderRequest",
    "RenderResult",
    "RenderStage",
    "Scene",
    "TextOverlay",
]
