"""add subject levels and weekly hours

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("subjects", sa.Column("weekly_hours", sa.Float(), nullable=True))

    op.create_table(
        "subject_levels",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("level_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("subject_id", "level_id", name="uq_subject_levels_identity"),
    )
    op.create_index("ix_subject_levels_school_id", "subject_levels", ["school_id"])
    op.create_index("ix_subject_levels_subject_id", "subject_levels", ["subject_id"])
    op.create_index("ix_subject_levels_level_id", "subject_levels", ["level_id"])


def downgrade() -> None:
    op.drop_index("ix_subject_levels_level_id", table_name="subject_levels")
    op.drop_index("ix_subject_levels_subject_id", table_name="subject_levels")
    op.drop_index("ix_subject_levels_school_id", table_name="subject_levels")
    op.drop_table("subject_levels")
    with op.batch_alter_table("subjects") as batch_op:
        batch_op.drop_column("weekly_hours")
