from __future__ import annotations
"""Project asset listing and deletion (ordinals stay dense)."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from scenesmith.api.deps import ensure_not_generating, get_owned_project
from scenesmith.database import get_db
from scenesmith.errors import NotFoundError
from scenesmith.models.asset import Asset
from scenesmith.models.project import Project
from scenesmith.models.scene import Scene
from scenesmith.schemas.asset import AssetRead
from scenesmith.services.asset_generator import list_project_assets, renumber_assets
from scenesmith.services.repository import list_scenes
from scenesmith.services.storage import get_media_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=list[AssetRead])
async def list_assets(project: Project = Depends(get_owned_project), db: AsyncSession = Depends(get_db)):
    return await list_project_assets(db, project.id)


@router.delete("/{asset_id}", response_model=list[AssetRead])
async def delete_asset(
    asset_id: str,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Delete an asset, drop it from scene selections, renumber the rest 1..N."""
    ensure_not_generating(project)
    asset = await db.get(Asset, asset_id)
    if asset is None or asset.project_id != project.id:
        raise NotFoundError("Asset not found")

    scenes: list[Scene] = await list_scenes(db, project.id)
    for scene in scenes:
        if scene.selected_asset_ids and asset_id in scene.selected_asset_ids:
            scene.selected_asset_ids = [a for a in scene.selected_asset_ids if a != asset_id]

    storage_key = asset.storage_key
    await db.delete(asset)
    await db.flush()
    remaining = await renumber_assets(db, project.id)
    get_media_store().delete(storage_key)
    logger.info("Asset %s deleted from project=%s, %d remain", asset_id[:8], project.id[:8], len(remaining))
    return remaining
