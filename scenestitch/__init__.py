"""
SceneStitch

Renders an ordered list of timed scenes (still image, optional narration,
optional text overlays) into a single published video.

Packages:
- core: configuration, Redis, database, staging and artifact storage
- tasks: the render pipeline stages and the RQ task
- api: FastAPI routes
"""

__version__ = "0.1.0"
