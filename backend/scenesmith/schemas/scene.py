from __future__ import annotations
"""Pydantic v2 schemas for Scene model."""

from datetime import datetime

from pydantic import Field

from scenesmith.schemas.common import CamelModel


class SceneCreate(CamelModel):
    """Schema for adding a scene; appended at the end when no number is given."""

    prompt: str = Field(..., min_length=1)
    scene_number: int | None = Field(None, ge=1)
    duration: float | None = Field(None, gt=0)
    selected_asset_ids: list[str] = Field(default_factory=list)
    extend_previous: bool = False


class SceneUpdate(CamelModel):
    prompt: str | None = Field(None, min_length=1)
    duration: float | None = Field(None, gt=0)
    selected_asset_ids: list[str] | None = None
    extend_previous: bool | None = None


class SceneReorder(CamelModel):
    """New order given as the full list of scene ids."""

    scene_ids: list[str] = Field(..., min_length=1)


class SceneRead(CamelModel):
    id: str
    project_id: str
    scene_number: int
    prompt: str
    duration: float | None = None
    start_time: float | None = None
    end_time: float | None = None
    selected_asset_ids: list[str] | None = None
    extend_previous: bool
    video_url: str | None = None
    first_frame_url: str | None = None
    last_frame_url: str | None = None
    status: str
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
