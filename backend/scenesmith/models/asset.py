from __future__ import annotations
"""Asset ORM model: a generated or uploaded reference used to steer scenes."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scenesmith.database import Base

MAX_ASSETS_PER_PROJECT = 5


class AssetKind(str, enum.Enum):
    """Types of project assets."""
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    BRAND_KIT = "brand_kit"


class Asset(Base):
    """A stored asset with its dense 1..N display/generation ordinal."""

    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("project_id", "asset_number", name="uq_asset_project_number"),
        {
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    project_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=AssetKind.IMAGE.value)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    asset_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    # Relationships
    project = relationship("Project", back_populates="assets")
