"""Pydantic v2 schemas package."""

from scenesmith.schemas.asset import AssetRead
from scenesmith.schemas.project import (
    ProjectCreate,
    ProjectProgress,
    ProjectRead,
    ProjectSummary,
    ProjectUpdate,
)
from scenesmith.schemas.scene import SceneCreate, SceneRead, SceneReorder, SceneUpdate

__all__ = [
    "AssetRead",
    "ProjectCreate",
    "ProjectProgress",
    "ProjectRead",
    "ProjectSummary",
    "ProjectUpdate",
    "SceneCreate",
    "SceneRead",
    "SceneReorder",
    "SceneUpdate",
]
