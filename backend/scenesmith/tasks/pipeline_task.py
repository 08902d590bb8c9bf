from __future__ import annotations
"""Celery task running a full generation pipeline for one project."""

import logging

from celery import shared_task

from scenesmith.config import get_settings
from scenesmith.errors import SceneSmithError
from scenesmith.services.cancellation import redis_cancel_check
from scenesmith.services.pipeline import PipelineCoordinator
from scenesmith.tasks import run_async

logger = logging.getLogger(__name__)
settings = get_settings()


@shared_task(
    time_limit=settings.PIPELINE_TIMEOUT + 300,
    soft_time_limit=settings.PIPELINE_TIMEOUT + 120,
)
def run_pipeline(project_id: str) -> dict:
    """Run every stage for a project; failure state is already on the project row.

    No automatic retry: a failed run is re-triggered by the user and resumes
    from the scenes that already have clips.
    """
    coordinator = PipelineCoordinator(cancel_check=redis_cancel_check(project_id))
    try:
        result = run_async(coordinator.run(project_id))
    except SceneSmithError as exc:
        logger.error("Pipeline task failed for project=%s: %s", project_id[:8], exc.message)
        return {"project_id": project_id, "status": "failed", "error": exc.message}

    return {
        "project_id": project_id,
        "status": result.status,
        "final_video_url": result.final_video_url,
        "thumbnail_url": result.thumbnail_url,
    }
