from __future__ import annotations
"""Pydantic v2 schemas for Asset model."""

from datetime import datetime

from scenesmith.schemas.common import CamelModel


class AssetRead(CamelModel):
    id: str
    project_id: str | None = None
    kind: str
    prompt: str | None = None
    model_id: str | None = None
    url: str
    asset_number: int | None = None
    created_at: datetime | None = None
