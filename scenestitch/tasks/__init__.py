"""
SceneStitch Render Tasks

Pipeline stages, in execution order:
- validation: parse_render_request
- acquisition: acquire_assets
- ffmpeg_command: compile_transcode_command
- ffmpeg_runner: execute_transcode
- publisher: publish_artifact
- progress: ProgressReporter and the job stores
- cleanup: cleanup_files

Entry points:
- RenderPipeline: runs one job synchronously
- render_scenes: RQ task function
- enqueue_render: Enqueue render with the configured job timeout
"""

from .render import (
    RenderPipeline,
    enqueue_render,
    render_scenes,
)

__all__ = [
    "RenderPipeline",
    "enqueue_render",
    "render_scenes",
]
