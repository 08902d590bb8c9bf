from __future__ import annotations
"""Project ORM model: one video concept with its generation configuration."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scenesmith.database import Base


class ProjectStatus(str, enum.Enum):
    """Project lifecycle statuses."""

    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


# Explicit valid transitions: status -> set of reachable statuses
VALID_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    ProjectStatus.DRAFT: {ProjectStatus.GENERATING},
    ProjectStatus.GENERATING: {ProjectStatus.COMPLETED, ProjectStatus.FAILED},
    ProjectStatus.COMPLETED: {ProjectStatus.GENERATING, ProjectStatus.DRAFT},
    ProjectStatus.FAILED: {ProjectStatus.GENERATING, ProjectStatus.DRAFT},
}


class Project(Base):
    """A video project: prompt, style parameters, continuity flags and run state."""

    __tablename__ = "projects"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Style parameters
    style: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    mood: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    aspect_ratio: Mapped[str] = mapped_column(String(10), nullable=False, default="16:9")
    color_palette: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pacing: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    # Model selection
    video_model_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    image_model_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Continuity / concurrency flags
    use_reference_frame: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    continuous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parallel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Declared asset prompts (up to 5), generated during the Assets stage
    asset_prompts: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    script: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audio
    music_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    music_volume: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Run state
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.DRAFT.value
    )
    final_video_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    progress_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    progress_stage: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    progress_message: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    pipeline_checkpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    scenes = relationship(
        "Scene",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Scene.scene_number",
    )
    assets = relationship(
        "Asset",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Asset.asset_number",
    )

    def can_transition_to(self, target_status: str) -> bool:
        """Check if the project can move to the target status."""
        try:
            current = ProjectStatus(self.status)
            target = ProjectStatus(target_status)
        except ValueError:
            return False
        return target in VALID_TRANSITIONS.get(current, set())
