from __future__ import annotations
"""Persistence used by pipeline runs.

Every method opens its own short-lived session, so concurrent scene tasks
never share a session. A scene row is only written by the task generating
it (or by the coordinator when the scene is skipped).
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scenesmith.config import get_settings
from scenesmith.database import async_session_factory
from scenesmith.errors import NotFoundError, PersistenceWarning
from scenesmith.models.asset import Asset
from scenesmith.models.project import Project, ProjectStatus
from scenesmith.models.scene import Scene, SceneStatus
from scenesmith.services.progress import ProgressSnapshot
from scenesmith.services.script_planner import PlannedScene

logger = logging.getLogger(__name__)
settings = get_settings()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ProjectState:
    """Detached snapshot of a project with its scenes and assets."""
    project: Project
    scenes: list[Scene]
    assets: list[Asset]


class PipelineStore:
    def __init__(self, session_factory: async_sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker:
        return self._session_factory or async_session_factory

    async def load(self, project_id: str) -> ProjectState:
        async with self.session_factory() as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")
            scenes = (await session.execute(
                select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
            )).scalars().all()
            assets = (await session.execute(
                select(Asset).where(Asset.project_id == project_id).order_by(Asset.asset_number)
            )).scalars().all()
            return ProjectState(project=project, scenes=list(scenes), assets=list(assets))

    async def update_project(self, project_id: str, **fields: Any) -> None:
        async with self.session_factory() as session:
            await session.execute(update(Project).where(Project.id == project_id).values(**fields))
            await session.commit()

    async def begin_run(self, project_id: str) -> None:
        await self.update_project(
            project_id,
            status=ProjectStatus.GENERATING.value,
            error_message=None,
            progress_percent=0,
            progress_stage="plan",
            progress_message="Starting",
            started_at=utcnow(),
            finished_at=None,
        )

    async def finish_run(self, project_id: str, final_video_url: str, thumbnail_url: str | None = None) -> None:
        await self.update_project(
            project_id,
            status=ProjectStatus.COMPLETED.value,
            final_video_url=final_video_url,
            thumbnail_url=thumbnail_url,
            finished_at=utcnow(),
        )

    async def fail_run(self, project_id: str, message: str) -> None:
        await self.update_project(
            project_id,
            status=ProjectStatus.FAILED.value,
            error_message=message,
            finished_at=utcnow(),
        )

    async def save_plan(self, project_id: str, script: str, planned: list[PlannedScene]) -> list[Scene]:
        """Replace the project's scenes with planned ones (numbers 1..N)."""
        async with self.session_factory() as session:
            scenes = await replace_with_planned_scenes(session, project_id, planned)
            await session.execute(update(Project).where(Project.id == project_id).values(script=script))
            await session.commit()
            return scenes

    async def update_scene(self, scene_id: str, **fields: Any) -> None:
        """Write scene fields; DB failure after generation is a PersistenceWarning."""
        try:
            async with self.session_factory() as session:
                await session.execute(update(Scene).where(Scene.id == scene_id).values(**fields))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceWarning(f"Scene {scene_id[:8]} update failed: {e}") from e

    async def save_progress(self, snapshot: ProgressSnapshot) -> None:
        await self.update_project(
            snapshot.project_id,
            progress_percent=snapshot.percent,
            progress_stage=snapshot.stage,
            progress_message=snapshot.message[:500],
        )

    async def save_checkpoint(self, project_id: str, checkpoint: dict[str, Any]) -> None:
        await self.update_project(project_id, pipeline_checkpoint=json.dumps(checkpoint))


async def list_scenes(session: AsyncSession, project_id: str) -> list[Scene]:
    result = await session.execute(
        select(Scene).where(Scene.project_id == project_id).order_by(Scene.scene_number)
    )
    return list(result.scalars().all())


async def replace_with_planned_scenes(
    session: AsyncSession, project_id: str, planned: list[PlannedScene],
) -> list[Scene]:
    """Delete every scene of the project and insert the planned ones."""
    for scene in await list_scenes(session, project_id):
        await session.delete(scene)
    await session.flush()

    scenes = [
        Scene(
            project_id=project_id,
            scene_number=p.scene_number,
            prompt=p.prompt,
            duration=p.duration,
            start_time=p.start_time,
            end_time=p.end_time,
            selected_asset_ids=[],
            extend_previous=False,
            status=SceneStatus.PENDING.value,
        )
        for p in planned
    ]
    session.add_all(scenes)
    await session.flush()
    return scenes


async def renumber_scenes(session: AsyncSession, scenes: list[Scene]) -> list[Scene]:
    """Give scenes numbers 1..N in list order and recompute their timeline.

    Numbers pass through negative placeholders first so the per-project
    unique constraint holds at every flush.
    """
    for index, scene in enumerate(scenes, start=1):
        scene.scene_number = -index
    await session.flush()

    t = 0.0
    for index, scene in enumerate(scenes, start=1):
        scene.scene_number = index
        if scene.duration:
            scene.start_time = round(t, 3)
            scene.end_time = round(t + scene.duration, 3)
            t += scene.duration
    await session.flush()
    for scene in scenes:
        await session.refresh(scene)
    return scenes


async def recover_interrupted_runs(
    session_factory: async_sessionmaker | None = None,
    older_than: float | None = None,
) -> tuple[int, int]:
    """Reset rows left mid-run by a crashed process.

    Only runs started more than ``older_than`` seconds ago (default
    ``PIPELINE_TIMEOUT``) are touched; younger ones may still be live on a
    worker. Those projects become failed ("interrupted") and their scenes
    stuck generating go back to pending so the next run regenerates them.
    """
    factory = session_factory or async_session_factory
    age = settings.PIPELINE_TIMEOUT if older_than is None else older_than
    cutoff = utcnow() - timedelta(seconds=age)
    async with factory() as session:
        stale_ids = (await session.execute(
            select(Project.id).where(
                Project.status == ProjectStatus.GENERATING.value,
                or_(Project.started_at.is_(None), Project.started_at < cutoff),
            )
        )).scalars().all()
        if not stale_ids:
            return 0, 0
        projects = await session.execute(
            update(Project)
            .where(Project.id.in_(stale_ids))
            .values(
                status=ProjectStatus.FAILED.value,
                error_message="Generation interrupted by a server restart; start it again to resume",
                finished_at=utcnow(),
            )
        )
        scenes = await session.execute(
            update(Scene)
            .where(Scene.project_id.in_(stale_ids), Scene.status == SceneStatus.GENERATING.value)
            .values(status=SceneStatus.PENDING.value)
        )
        await session.commit()
    recovered = (projects.rowcount or 0, scenes.rowcount or 0)
    if any(recovered):
        logger.warning("Recovered %d interrupted projects and %d scenes", *recovered)
    return recovered
