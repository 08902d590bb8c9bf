from __future__ import annotations
"""Master API router: mounts all sub-routers."""

from fastapi import APIRouter

from scenesmith.api.assets import router as assets_router
from scenesmith.api.generation import router as generation_router
from scenesmith.api.metrics import router as metrics_router
from scenesmith.api.projects import router as projects_router
from scenesmith.api.scenes import router as scenes_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(projects_router, prefix="/projects", tags=["Projects"])
api_router.include_router(scenes_router, prefix="/projects/{project_id}/scenes", tags=["Scenes"])
api_router.include_router(assets_router, prefix="/projects/{project_id}/assets", tags=["Assets"])
api_router.include_router(generation_router, tags=["Generation"])
api_router.include_router(metrics_router, prefix="/metrics", tags=["Metrics"])
