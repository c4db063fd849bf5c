"""Create organizations, rotas, shifts, time clock and timesheet tables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_ENUMS: dict[str, tuple[str, ...]] = {
    "rota_status": ("draft", "published", "locked"),
    "shift_assignment_status": ("proposed", "assigned", "accepted", "declined"),
    "clock_event_kind": ("clock_in", "clock_out", "break_start", "break_end"),
    "clock_event_source": ("kiosk", "mobile"),
    "timesheet_status": ("draft", "approved", "locked"),
    "audit_actor_type": ("USER", "SYSTEM"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in _ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_locations_org_id", "locations", ["org_id"], unique=False)

    op.create_table(
        "rotas",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("status", _enum("rota_status"), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("labor_budget_eur", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("location_id", "week_start_date", name="uq_rotas_location_week"),
    )
    op.create_index("ix_rotas_org_id", "rotas", ["org_id"], unique=False)
    op.create_index("ix_rotas_location_id", "rotas", ["location_id"], unique=False)
    op.create_index("ix_rotas_week_start_date", "rotas", ["week_start_date"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("rota_id", sa.Integer(), nullable=False),
        sa.Column("job_tag_id", sa.Integer(), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("break_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["rota_id"], ["rotas.id"], ondelete="CASCADE"),
        sa.CheckConstraint("end_at > start_at", name="ck_shifts_end_after_start"),
        sa.CheckConstraint("break_minutes >= 0", name="ck_shifts_break_minutes_non_negative"),
    )
    op.create_index("ix_shifts_org_id", "shifts", ["org_id"], unique=False)
    op.create_index("ix_shifts_location_id", "shifts", ["location_id"], unique=False)
    op.create_index("ix_shifts_rota_id", "shifts", ["rota_id"], unique=False)
    op.create_index("ix_shifts_start_at", "shifts", ["start_at"], unique=False)

    op.create_table(
        "shift_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            _enum("shift_assignment_status"),
            nullable=False,
            server_default=sa.text("'assigned'"),
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("proposed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("shift_id", "user_id", name="uq_shift_assignments_shift_user"),
    )
    op.create_index("ix_shift_assignments_org_id", "shift_assignments", ["org_id"], unique=False)
    op.create_index("ix_shift_assignments_shift_id", "shift_assignments", ["shift_id"], unique=False)
    op.create_index("ix_shift_assignments_user_id", "shift_assignments", ["user_id"], unique=False)

    op.create_table(
        "time_clock_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", _enum("clock_event_kind"), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", _enum("clock_event_source"), nullable=False, server_default=sa.text("'kiosk'")),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_time_clock_events_org_id", "time_clock_events", ["org_id"], unique=False)
    op.create_index("ix_time_clock_events_location_id", "time_clock_events", ["location_id"], unique=False)
    op.create_index("ix_time_clock_events_user_id", "time_clock_events", ["user_id"], unique=False)
    op.create_index("ix_time_clock_events_occurred_at", "time_clock_events", ["occurred_at"], unique=False)
    op.create_index(
        "ix_time_clock_events_user_location_occurred_at",
        "time_clock_events",
        ["user_id", "location_id", "occurred_at"],
        unique=False,
    )

    op.create_table(
        "timesheets",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column(
            "totals",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("status", _enum("timesheet_status"), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "user_id",
            "location_id",
            "period_start",
            "period_end",
            name="uq_timesheets_user_location_period",
        ),
    )
    op.create_index("ix_timesheets_org_id", "timesheets", ["org_id"], unique=False)
    op.create_index("ix_timesheets_location_id", "timesheets", ["location_id"], unique=False)
    op.create_index("ix_timesheets_user_id", "timesheets", ["user_id"], unique=False)
    op.create_index("ix_timesheets_period_start", "timesheets", ["period_start"], unique=False)
    op.create_index("ix_timesheets_period_end", "timesheets", ["period_end"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _timestamp("ts_utc"),
        sa.Column("actor_type", _enum("audit_actor_type"), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("timesheets")
    op.drop_table("time_clock_events")
    op.drop_table("shift_assignments")
    op.drop_table("shifts")
    op.drop_table("rotas")
    op.drop_table("locations")
    op.drop_table("organizations")

    bind = op.get_bind()
    for name in reversed(list(_ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
