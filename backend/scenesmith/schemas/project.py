from __future__ import annotations
"""Pydantic v2 schemas for Project model."""

from datetime import datetime

from pydantic import Field

from scenesmith.models.asset import MAX_ASSETS_PER_PROJECT
from scenesmith.schemas.asset import AssetRead
from scenesmith.schemas.common import CamelModel
from scenesmith.schemas.scene import SceneRead


class ProjectCreate(CamelModel):
    """Schema for creating a new project."""

    title: str | None = Field(None, max_length=255)
    prompt: str = Field(..., min_length=1, max_length=5000)
    category: str | None = Field(None, max_length=50)
    style: str | None = Field(None, max_length=100)
    mood: str | None = Field(None, max_length=100)
    aspect_ratio: str = Field("16:9", max_length=10)
    color_palette: str | None = Field(None, max_length=100)
    pacing: str | None = Field(None, max_length=50)
    duration: int = Field(30, gt=0, le=600)
    video_model_id: str | None = None
    image_model_id: str | None = None
    use_reference_frame: bool = False
    continuous: bool = False
    parallel: bool = False
    asset_prompts: list[str] = Field(default_factory=list, max_length=MAX_ASSETS_PER_PROJECT)
    music_url: str | None = None
    music_volume: float | None = Field(None, ge=0, le=2)


class ProjectUpdate(CamelModel):
    """Schema for updating a project's configuration (all fields optional)."""

    title: str | None = Field(None, max_length=255)
    prompt: str | None = Field(None, min_length=1, max_length=5000)
    category: str | None = Field(None, max_length=50)
    style: str | None = Field(None, max_length=100)
    mood: str | None = Field(None, max_length=100)
    aspect_ratio: str | None = Field(None, max_length=10)
    color_palette: str | None = Field(None, max_length=100)
    pacing: str | None = Field(None, max_length=50)
    duration: int | None = Field(None, gt=0, le=600)
    video_model_id: str | None = None
    image_model_id: str | None = None
    use_reference_frame: bool | None = None
    continuous: bool | None = None
    parallel: bool | None = None
    asset_prompts: list[str] | None = Field(None, max_length=MAX_ASSETS_PER_PROJECT)
    music_url: str | None = None
    music_volume: float | None = Field(None, ge=0, le=2)
    script: str | None = None


class ProjectProgress(CamelModel):
    """Progress fields polled by clients while a run is active."""

    id: str
    status: str
    progress_percent: float = 0
    progress_stage: str | None = None
    progress_message: str | None = None
    error_message: str | None = None
    final_video_url: str | None = None
    thumbnail_url: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class ProjectSummary(CamelModel):
    id: str
    title: str
    prompt: str
    category: str | None = None
    status: str
    final_video_url: str | None = None
    thumbnail_url: str | None = None
    created_at: datetime
    updated_at: datetime


class ProjectRead(ProjectProgress):
    """Full project: configuration, run state, scenes and assets."""

    title: str
    prompt: str
    category: str | None = None
    style: str | None = None
    mood: str | None = None
    aspect_ratio: str
    color_palette: str | None = None
    pacing: str | None = None
    duration: int
    video_model_id: str | None = None
    image_model_id: str | None = None
    use_reference_frame: bool
    continuous: bool
    parallel: bool
    asset_prompts: list[str] | None = None
    script: str | None = None
    music_url: str | None = None
    music_volume: float | None = None
    pipeline_checkpoint: str | None = None
    created_at: datetime
    updated_at: datetime
    scenes: list[SceneRead] = Field(default_factory=list)
    assets: list[AssetRead] = Field(default_factory=list)
