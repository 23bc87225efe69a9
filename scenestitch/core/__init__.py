"""
SceneStitch core services: configuration, Redis, database, staging and
artifact storage.
"""

from .config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
