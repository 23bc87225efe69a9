"""
SQLAlchemy models for SceneStitch.
"""

from .job import RenderJobRecord

__all__ = ["RenderJobRecord"]
