"""
SceneStitch API routes package.
"""

from fastapi import APIRouter

from .render import router as render_router

# Main API router that includes all sub-routers
api_router = APIRouter()

api_router.include_router(render_router, tags=["render"])

__all__ = [
    "api_router",
    "render_router",
]
