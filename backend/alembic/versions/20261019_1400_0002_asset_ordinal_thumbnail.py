"""Unique asset ordinals per project, project thumbnail column

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 14:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- assets: one asset per (project, ordinal) ---
    with op.batch_alter_table("assets") as batch:
        batch.create_unique_constraint("uq_asset_project_number", ["project_id", "asset_number"])

    # --- projects: thumbnail of the final video ---
    op.add_column("projects", sa.Column("thumbnail_url", sa.String(1024), nullable=True))


def downgrade() -> None:
    op.drop_column("projects", "thumbnail_url")

    with op.batch_alter_table("assets") as batch:
        batch.drop_constraint("uq_asset_project_number", type_="unique")
