"""Initial schema: projects, scenes, assets

Revision ID: 0001
Revises: None
Create Date: 2026-10-19 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("style", sa.String(100), nullable=True),
        sa.Column("mood", sa.String(100), nullable=True),
        sa.Column("aspect_ratio", sa.String(10), nullable=False, server_default="16:9"),
        sa.Column("color_palette", sa.String(100), nullable=True),
        sa.Column("pacing", sa.String(50), nullable=True),
        sa.Column("duration", sa.Integer, nullable=False, server_default="30"),
        sa.Column("video_model_id", sa.String(100), nullable=True),
        sa.Column("image_model_id", sa.String(100), nullable=True),
        sa.Column("use_reference_frame", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("continuous", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("parallel", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("asset_prompts", sa.JSON, nullable=True),
        sa.Column("script", sa.Text, nullable=True),
        sa.Column("music_url", sa.String(1024), nullable=True),
        sa.Column("music_volume", sa.Float, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("final_video_url", sa.String(1024), nullable=True),
        sa.Column("progress_percent", sa.Float, nullable=False, server_default="0"),
        sa.Column("progress_stage", sa.String(50), nullable=True),
        sa.Column("progress_message", sa.String(500), nullable=True),
        sa.Column("pipeline_checkpoint", sa.Text, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime, nullable=True),
        sa.Column("finished_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        mysql_charset="utf8mb4",
        mysql_collate="utf8mb4_unicode_ci",
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "scenes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scene_number", sa.Integer, nullable=False),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("duration", sa.Float, nullable=True),
        sa.Column("start_time", sa.Float, nullable=True),
        sa.Column("end_time", sa.Float, nullable=True),
        sa.Column("selected_asset_ids", sa.JSON, nullable=True),
        sa.Column("extend_previous", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("video_url", sa.String(1024), nullable=True),
        sa.Column("first_frame_url", sa.String(1024), nullable=True),
        sa.Column("last_frame_url", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=True, server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "scene_number", name="uq_scene_project_number"),
        mysql_charset="utf8mb4",
        mysql_collate="utf8mb4_unicode_ci",
    )
    op.create_index("ix_scenes_project_id", "scenes", ["project_id"])

    op.create_table(
        "assets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True),
        sa.Column("kind", sa.String(20), nullable=False, server_default="image"),
        sa.Column("prompt", sa.Text, nullable=True),
        sa.Column("model_id", sa.String(100), nullable=True),
        sa.Column("storage_key", sa.String(1024), nullable=False),
        sa.Column("url", sa.String(1024), nullable=False),
        sa.Column("asset_number", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        mysql_charset="utf8mb4",
        mysql_collate="utf8mb4_unicode_ci",
    )
    op.create_index("ix_assets_project_id", "assets", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_assets_project_id", table_name="assets")
    op.drop_table("assets")
    op.drop_index("ix_scenes_project_id", table_name="scenes")
    op.drop_table("scenes")
    op.drop_index("ix_projects_owner_id", table_name="projects")
    op.drop_table("projects")
