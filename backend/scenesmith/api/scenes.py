from __future__ import annotations
"""Scene CRUD API endpoints.

Scene numbers stay contiguous (1..N): deleting or reordering renumbers the
remaining scenes, inserting at a position shifts the scenes after it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from scenesmith.api.deps import ensure_not_generating, get_owned_project
from scenesmith.database import get_db
from scenesmith.errors import NotFoundError, ValidationError
from scenesmith.models.project import Project
from scenesmith.models.scene import Scene, SceneStatus
from scenesmith.schemas.scene import SceneCreate, SceneRead, SceneReorder, SceneUpdate
from scenesmith.services.asset_generator import list_project_assets
from scenesmith.services.repository import list_scenes, renumber_scenes

router = APIRouter()


async def _check_asset_ids(db: AsyncSession, project_id: str, asset_ids: list[str]) -> None:
    owned = {a.id for a in await list_project_assets(db, project_id)}
    foreign = [a for a in asset_ids if a not in owned]
    if foreign:
        raise ValidationError(f"Assets do not belong to this project: {', '.join(foreign)}")


async def _get_scene(db: AsyncSession, project_id: str, scene_id: str) -> Scene:
    scene = await db.get(Scene, scene_id)
    if scene is None or scene.project_id != project_id:
        raise NotFoundError("Scene not found")
    return scene


@router.get("", response_model=list[SceneRead])
async def list_project_scenes(project: Project = Depends(get_owned_project), db: AsyncSession = Depends(get_db)):
    return await list_scenes(db, project.id)


@router.post("", response_model=list[SceneRead], status_code=201)
async def add_scene(
    data: SceneCreate,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Insert a scene at scene_number (default: append); returns the renumbered list."""
    ensure_not_generating(project)
    await _check_asset_ids(db, project.id, data.selected_asset_ids)

    scenes = await list_scenes(db, project.id)
    position = len(scenes) + 1 if data.scene_number is None else data.scene_number
    if position > len(scenes) + 1:
        raise ValidationError(f"Scene number must be between 1 and {len(scenes) + 1}")

    scene = Scene(
        project_id=project.id,
        scene_number=0,
        prompt=data.prompt,
        duration=data.duration,
        selected_asset_ids=data.selected_asset_ids,
        extend_previous=data.extend_previous,
        status=SceneStatus.PENDING.value,
    )
    db.add(scene)
    scenes.insert(position - 1, scene)
    return await renumber_scenes(db, scenes)


@router.patch("/{scene_id}", response_model=SceneRead)
async def update_scene(
    scene_id: str,
    data: SceneUpdate,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Edit a scene; changing what it generates from clears its clip."""
    ensure_not_generating(project)
    scene = await _get_scene(db, project.id, scene_id)
    changes = data.model_dump(exclude_unset=True)
    if "selected_asset_ids" in changes:
        await _check_asset_ids(db, project.id, changes["selected_asset_ids"] or [])

    for key, value in changes.items():
        setattr(scene, key, value)
    if {"prompt", "selected_asset_ids", "extend_previous", "duration"} & changes.keys():
        scene.video_url = None
        scene.first_frame_url = None
        scene.last_frame_url = None
        scene.status = SceneStatus.PENDING.value
        scene.error_message = None
    await db.flush()
    await db.refresh(scene)
    return scene


@router.delete("/{scene_id}", response_model=list[SceneRead])
async def delete_scene(
    scene_id: str,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Delete a scene; the rest are renumbered 1..N."""
    ensure_not_generating(project)
    scene = await _get_scene(db, project.id, scene_id)
    await db.delete(scene)
    await db.flush()
    return await renumber_scenes(db, await list_scenes(db, project.id))


@router.post("/reorder", response_model=list[SceneRead])
async def reorder_scenes(
    data: SceneReorder,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    ensure_not_generating(project)
    scenes = {s.id: s for s in await list_scenes(db, project.id)}
    if sorted(data.scene_ids) != sorted(scenes):
        raise ValidationError("Reorder must list every scene of the project exactly once")
    return await renumber_scenes(db, [scenes[i] for i in data.scene_ids])
