"""create timetable engine tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True, nullable=False)


def _school_column() -> sa.Column:
    return sa.Column("school_id", sa.String(length=36), sa.ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)


def _window_columns() -> list[sa.Column]:
    return [
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
    ]


def upgrade() -> None:
    run_status = sa.Enum("running", "succeeded", "failed", name="timetable_run_status")

    op.create_table(
        "schools",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("timetable_start_time", sa.String(length=5), nullable=False, server_default="08:00"),
        sa.Column("timetable_end_time", sa.String(length=5), nullable=False, server_default="17:00"),
        sa.Column("teaching_days", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "sections",
        _id_column(),
        _school_column(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("level_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_sections_school_id", "sections", ["school_id"])
    op.create_index("ix_sections_level_id", "sections", ["level_id"])

    op.create_table(
        "subjects",
        _id_column(),
        _school_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
    )
    op.create_index("ix_subjects_school_id", "subjects", ["school_id"])

    op.create_table(
        "staff",
        _id_column(),
        _school_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("max_weekly_teaching_hours", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_staff_school_id", "staff", ["school_id"])

    op.create_table(
        "staff_subject_levels",
        _id_column(),
        _school_column(),
        sa.Column("staff_id", sa.String(length=36), sa.ForeignKey("staff.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("level_id", sa.String(length=36), nullable=True),
        sa.UniqueConstraint("staff_id", "subject_id", "level_id", name="uq_staff_subject_levels_identity"),
    )
    op.create_index("ix_staff_subject_levels_school_id", "staff_subject_levels", ["school_id"])
    op.create_index("ix_staff_subject_levels_staff_id", "staff_subject_levels", ["staff_id"])
    op.create_index("ix_staff_subject_levels_subject_id", "staff_subject_levels", ["subject_id"])

    op.create_table(
        "rooms",
        _id_column(),
        _school_column(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("room_type", sa.String(length=50), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rooms_school_id", "rooms", ["school_id"])

    op.create_table(
        "timetable_entries",
        _id_column(),
        _school_column(),
        sa.Column("section_id", sa.String(length=36), sa.ForeignKey("sections.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("staff_id", sa.String(length=36), sa.ForeignKey("staff.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True),
        *_window_columns(),
        sa.Column("generated_by_run_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("school_id", "section_id", "day_of_week", "start_time", name="uq_timetable_entries_section_start"),
        sa.UniqueConstraint("school_id", "staff_id", "day_of_week", "start_time", name="uq_timetable_entries_staff_start"),
        sa.UniqueConstraint("school_id", "room_id", "day_of_week", "start_time", name="uq_timetable_entries_room_start"),
    )
    for column in ("school_id", "section_id", "subject_id", "staff_id", "room_id", "day_of_week", "generated_by_run_id"):
        op.create_index(f"ix_timetable_entries_{column}", "timetable_entries", [column])

    op.create_table(
        "section_subject_requirements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        _school_column(),
        sa.Column("section_id", sa.String(length=36), sa.ForeignKey("sections.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("periods_per_week", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("min_gap_mins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("allow_double", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("preferred_room_type", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("school_id", "section_id", "subject_id", name="uq_section_subject_requirements_pair"),
    )
    op.create_index("ix_section_subject_requirements_school_id", "section_subject_requirements", ["school_id"])
    op.create_index("ix_section_subject_requirements_section_id", "section_subject_requirements", ["section_id"])
    op.create_index("ix_section_subject_requirements_subject_id", "section_subject_requirements", ["subject_id"])

    op.create_table(
        "pinned_timetable_slots",
        _id_column(),
        _school_column(),
        sa.Column("section_id", sa.String(length=36), sa.ForeignKey("sections.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("staff_id", sa.String(length=36), sa.ForeignKey("staff.id", ondelete="SET NULL"), nullable=True),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True),
        *_window_columns(),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_pinned_timetable_slots_school_id", "pinned_timetable_slots", ["school_id"])
    op.create_index("ix_pinned_timetable_slots_section_id", "pinned_timetable_slots", ["section_id"])

    op.create_table(
        "staff_unavailability",
        _id_column(),
        _school_column(),
        sa.Column("staff_id", sa.String(length=36), sa.ForeignKey("staff.id", ondelete="CASCADE"), nullable=False),
        *_window_columns(),
        sa.Column("reason", sa.String(length=200), nullable=True),
    )
    op.create_index("ix_staff_unavailability_school_id", "staff_unavailability", ["school_id"])
    op.create_index("ix_staff_unavailability_staff_id", "staff_unavailability", ["staff_id"])

    op.create_table(
        "room_unavailability",
        _id_column(),
        _school_column(),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        *_window_columns(),
        sa.Column("reason", sa.String(length=200), nullable=True),
    )
    op.create_index("ix_room_unavailability_school_id", "room_unavailability", ["school_id"])
    op.create_index("ix_room_unavailability_room_id", "room_unavailability", ["room_id"])

    op.create_table(
        "timetable_runs",
        _id_column(),
        _school_column(),
        sa.Column("status", run_status, nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("metrics", sa.JSON(), nullable=False),
        sa.Column("error", sa.String(length=500), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_timetable_runs_school_id", "timetable_runs", ["school_id"])
    op.create_index("ix_timetable_runs_status", "timetable_runs", ["status"])

    op.create_table(
        "timetable_generation_locks",
        _id_column(),
        _school_column(),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("run_id", sa.String(length=36), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("school_id", "section_id", name="uq_timetable_generation_locks_section"),
    )
    op.create_index("ix_timetable_generation_locks_school_id", "timetable_generation_locks", ["school_id"])
    op.create_index("ix_timetable_generation_locks_run_id", "timetable_generation_locks", ["run_id"])


def downgrade() -> None:
    op.drop_table("timetable_generation_locks")
    op.drop_table("timetable_runs")
    op.drop_table("room_unavailability")
    op.drop_table("staff_unavailability")
    op.drop_table("pinned_timetable_slots")
    op.drop_table("section_subject_requirements")
    op.drop_table("timetable_entries")
    op.drop_table("rooms")
    op.drop_table("staff_subject_levels")
    op.drop_table("staff")
    op.drop_table("subjects")
    op.drop_table("sections")
    op.drop_table("schools")
    sa.Enum(name="timetable_run_status").drop(op.get_bind(), checkfirst=True)
