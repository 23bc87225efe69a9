"""
Render Job Validation

Checks a render request for completeness before any network or disk
access. All violations are collected and reported together.
"""

import logging
import math
from typing import Any, List, Mapping

from pydantic import ValidationError

from ..exceptions import JobValidationError
from ..schemas.render import RenderRequest
from .catalog import COLOR_PATTERN, OUTPUT_FORMATS, QUALITY_LEVELS, RESOLUTIONS

logger = logging.getLogger(__name__)

# Scene timings are emitted to ffmpeg with millisecond precision
MIN_SCENE_DURATION = 0.001


def collect_validation_errors(request: RenderRequest) -> List[str]:
    """
    Validate a parsed render request.

    Checks:
    - job ID is non-empty
    - at least one scene
    - every scene has a finite duration of at least 1 ms and an image locator
    - output format, resolution and quality exist in the catalog
    - overlay windows fall inside their scene

    Args:
        request: Parsed render request

    Returns:
        List of error messages (empty if valid)
    """
    errors: List[str] = []

    if not request.job_id or not request.job_id.strip():
        errors.append("jobId must not be empty")

    if not request.scenes:
        errors.append("scenes must contain at least one scene")

    for index, scene in enumerate(request.scenes):
        if not math.isfinite(scene.duration):
            errors.append(f"Scene {index}: duration must be a finite number (got {scene.duration})")
        elif scene.duration <= 0:
            errors.append(f"Scene {index}: duration must be positive (got {scene.duration})")
        elif scene.duration < MIN_SCENE_DURATION:
            errors.append(
                f"Scene {index}: duration must be at least {MIN_SCENE_DURATION:g}s (got {scene.duration})"
            )

        if not scene.image_locator or not scene.image_locator.strip():
            errors.append(f"Scene {index}: imageLocator is required")

        for overlay_index, overlay in enumerate(scene.text_overlays):
            where = f"Scene {index} overlay {overlay_index}"
            if not (math.isfinite(overlay.start_time) and math.isfinite(overlay.end_time)):
                errors.append(f"{where}: startTime and endTime must be finite numbers")
            elif overlay.start_time < 0:
                errors.append(f"{where}: startTime must not be negative")
            if overlay.end_time <= overlay.start_time:
                errors.append(f"{where}: endTime must be after startTime")
            if scene.duration > 0 and overlay.start_time >= scene.duration:
                errors.append(f"{where}: starts after the scene ends")
            if not overlay.text.strip():
                errors.append(f"{where}: text must not be empty")
            if not COLOR_PATTERN.match(overlay.color):
                errors.append(f"{where}: unsupported color {overlay.color!r}")

    if request.output_format not in OUTPUT_FORMATS:
        errors.append(
            f"outputFormat must be one of {sorted(OUTPUT_FORMATS)} "
            f"(got {request.output_format!r})"
        )

    if request.resolution_label not in RESOLUTIONS:
        errors.append(
            f"resolutionLabel must be one of {list(RESOLUTIONS)} "
            f"(got {request.resolution_label!r})"
        )

    if request.quality not in QUALITY_LEVELS:
        errors.append(
            f"quality must be one of {list(QUALITY_LEVELS)} (got {request.quality!r})"
        )

    return errors


def validate_render_request(request: RenderRequest) -> RenderRequest:
    """
    Raise if the request is not renderable.

    Raises:
        JobValidationError: Listing every violated constraint
    """
    errors = collect_validation_errors(request)
    if errors:
        raise JobValidationError(errors)
    return request


def _format_pydantic_error(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def parse_render_request(payload: Any) -> RenderRequest:
    """
    Parse and validate a raw request payload.

    Structural problems reported by pydantic and semantic problems found by
    ``collect_validation_errors`` surface as the same exception type.

    Args:
        payload: Request body (dict) or an already-parsed RenderRequest

    Returns:
        The validated RenderRequest

    Raises:
        JobValidationError: If the payload is malformed or incomplete
    """
    if isinstance(payload, RenderRequest):
        return validate_render_request(payload)

    try:
        request = RenderRequest.model_validate(payload)
    except ValidationError as exc:
        errors = [_format_pydantic_error(error) for error in exc.errors()]
        logger.info(f"Rejected malformed render request: {errors}")
        raise JobValidationError(errors) from None

    return validate_render_request(request)
