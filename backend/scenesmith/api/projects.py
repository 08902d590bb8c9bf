from __future__ import annotations
"""Project CRUD, background generation and progress endpoints."""

import asyncio
import logging

from fastapi import APIRouter, Depends
from kombu.exceptions import OperationalError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from scenesmith.api.deps import ensure_not_generating, get_owned_project, get_user_id
from scenesmith.database import get_db
from scenesmith.errors import ConfigurationError, NotFoundError, ValidationError
from scenesmith.models.project import Project, ProjectStatus
from scenesmith.schemas.generation import GenerationQueued
from scenesmith.schemas.project import (
    ProjectCreate,
    ProjectProgress,
    ProjectRead,
    ProjectSummary,
    ProjectUpdate,
)
from scenesmith.services.cancellation import clear_cancel, request_cancel

logger = logging.getLogger(__name__)
router = APIRouter()


async def _load_full(db: AsyncSession, project_id: str) -> Project:
    result = await db.execute(
        select(Project)
        .where(Project.id == project_id)
        .options(selectinload(Project.scenes), selectinload(Project.assets))
        .execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project not found")
    return project


@router.get("", response_model=list[ProjectSummary])
async def list_projects(user_id: str = Depends(get_user_id), db: AsyncSession = Depends(get_db)):
    """List the caller's projects, newest first."""
    result = await db.execute(
        select(Project).where(Project.owner_id == user_id).order_by(Project.created_at.desc())
    )
    return result.scalars().all()


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    data: ProjectCreate,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a project in draft status."""
    values = data.model_dump()
    values["title"] = values.get("title") or data.prompt.strip()[:60]
    project = Project(owner_id=user_id, status=ProjectStatus.DRAFT.value, **values)
    db.add(project)
    await db.flush()
    return await _load_full(db, project.id)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(project: Project = Depends(get_owned_project), db: AsyncSession = Depends(get_db)):
    """Project with configuration, run state, scenes and assets (polled by clients)."""
    return await _load_full(db, project.id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    data: ProjectUpdate,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    ensure_not_generating(project)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(project, key, value)
    await db.flush()
    return await _load_full(db, project.id)


@router.delete("/{project_id}", status_code=204)
async def delete_project(project: Project = Depends(get_owned_project), db: AsyncSession = Depends(get_db)):
    """Delete a project with its scenes and assets."""
    ensure_not_generating(project)
    full = await _load_full(db, project.id)
    await db.delete(full)


@router.get("/{project_id}/progress", response_model=ProjectProgress)
async def get_progress(project: Project = Depends(get_owned_project)):
    return project


@router.post("/{project_id}/generate", response_model=GenerationQueued, status_code=202)
async def start_generation(project: Project = Depends(get_owned_project), db: AsyncSession = Depends(get_db)):
    """Queue a full pipeline run on a Celery worker."""
    from scenesmith.tasks.pipeline_task import run_pipeline

    ensure_not_generating(project)
    await asyncio.to_thread(clear_cancel, project.id)
    project.progress_message = "Queued"
    await db.flush()

    try:
        task = run_pipeline.delay(project.id)
    except OperationalError as e:
        raise ConfigurationError(f"Task queue unavailable: {e}") from e

    logger.info("Queued pipeline for project=%s (task=%s)", project.id[:8], task.id)
    return GenerationQueued(project_id=project.id, task_id=task.id, status="queued")


@router.post("/{project_id}/cancel", response_model=GenerationQueued)
async def cancel_generation(project: Project = Depends(get_owned_project)):
    """Ask the active run to stop at its next stage boundary."""
    if project.status != ProjectStatus.GENERATING.value:
        raise ValidationError("No generation run in progress")
    await asyncio.to_thread(request_cancel, project.id)
    logger.info("Cancellation requested for project=%s", project.id[:8])
    return GenerationQueued(project_id=project.id, status="cancelling")

