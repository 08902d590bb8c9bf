from __future__ import annotations
"""Shared FastAPI dependencies: caller identity and project ownership."""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from scenesmith.config import get_settings
from scenesmith.database import get_db
from scenesmith.errors import NotFoundError, ValidationError
from scenesmith.models.project import Project, ProjectStatus

settings = get_settings()


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity as resolved by the upstream identity layer."""
    return (x_user_id or "").strip() or settings.DEFAULT_USER_ID


async def load_owned_project(db: AsyncSession, project_id: str, user_id: str) -> Project:
    project = await db.get(Project, project_id)
    if project is None or project.owner_id != user_id:
        raise NotFoundError("Project not found")
    return project


async def get_owned_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
) -> Project:
    """Path dependency: the project, or 404 when missing or owned by someone else."""
    return await load_owned_project(db, project_id, user_id)


def ensure_not_generating(project: Project) -> None:
    """Project rows belong to the pipeline while a run is active."""
    if project.status == ProjectStatus.GENERATING.value:
        raise ValidationError("Project is generating; wait for the run to finish or cancel it")
