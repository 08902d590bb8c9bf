from __future__ import annotations
"""Scene ORM model: one generated clip, ordered by scene_number."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scenesmith.database import Base


class SceneStatus(str, enum.Enum):
    """Scene generation statuses."""

    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Scene(Base):
    """A single scene with its prompt, references and generated clip/frames."""

    __tablename__ = "scenes"
    __table_args__ = (
        UniqueConstraint("project_id", "scene_number", name="uq_scene_project_number"),
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
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scene_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Content fields
    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    selected_asset_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    extend_previous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Generated artifacts (object store URLs)
    video_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    first_frame_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    last_frame_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SceneStatus.PENDING.value
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project = relationship("Project", back_populates="scenes")
