"""ORM model package: registers all models with Base.metadata."""

from scenesmith.models.project import Project, ProjectStatus, VALID_TRANSITIONS
from scenesmith.models.scene import Scene, SceneStatus
from scenesmith.models.asset import Asset, AssetKind, MAX_ASSETS_PER_PROJECT

__all__ = [
    "Project",
    "ProjectStatus",
    "VALID_TRANSITIONS",
    "Scene",
    "SceneStatus",
    "Asset",
    "AssetKind",
    "MAX_ASSETS_PER_PROJECT",
]
