"""Initial schema: cycles, participations, payments, payouts and settings.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def _money(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=12, scale=2), nullable=nullable, **kwargs)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_administrator", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_users_email", "email"),
        sa.Index("idx_users_admin_active", "is_administrator", "is_active"),
    )

    op.create_table(
        "cycles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("number_picking_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum("UPCOMING", "ACTIVE", "COMPLETED", "CANCELLED", name="cyclestatus"),
            nullable=False,
        ),
        sa.Column("total_slots", sa.Integer(), nullable=False),
        sa.Column("participant_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_deadline_day", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("total_slots >= 1", name="ck_cycles_total_slots_positive"),
        sa.CheckConstraint(
            "participant_count <= total_slots", name="ck_cycles_participant_count_capacity"
        ),
        sa.CheckConstraint(
            "payment_deadline_day BETWEEN 1 AND 31", name="ck_cycles_payment_deadline_day"
        ),
        sa.Index("ix_cycles_status", "status"),
    )

    op.create_table(
        "participations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("cycle_id", sa.Integer(), nullable=False),
        sa.Column(
            "contribution_mode",
            sa.Enum("PACK_20K", "PACK_50K", "PACK_100K", name="contributiontier"),
            nullable=False,
        ),
        _money("monthly_amount"),
        _money("total_payout"),
        _money("fine_amount"),
        sa.Column("picked_number", sa.Integer(), nullable=True),
        sa.Column("has_opted_out", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cycle_id"], ["cycles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "cycle_id", name="uq_participation_user_cycle"),
        sa.UniqueConstraint("cycle_id", "picked_number", name="uq_participation_cycle_number"),
        sa.Index("ix_participations_user_id", "user_id"),
        sa.Index("ix_participations_cycle_id", "cycle_id"),
        sa.Index("idx_participation_cycle_opted_out", "cycle_id", "has_opted_out"),
    )

    op.create_table(
        "bank_details",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("participation_id", sa.Integer(), nullable=False),
        sa.Column("bank_name", sa.String(length=255), nullable=False),
        sa.Column("account_number", sa.String(length=10), nullable=False),
        sa.Column("account_name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["participation_id"], ["participations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("participation_id"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("participation_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("cycle_id", sa.Integer(), nullable=False),
        sa.Column("month_number", sa.Integer(), nullable=False),
        _money("amount"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.Enum("PENDING", "PAID", name="paymentstatus"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _money("paid_amount", nullable=True),
        sa.Column("has_fine", sa.Boolean(), nullable=False, server_default="0"),
        _money("fine_amount", server_default="0"),
        sa.Column("fine_paid", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("proof_of_payment", sa.String(length=1024), nullable=True),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["participation_id"], ["participations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cycle_id"], ["cycles.id"]),
        sa.ForeignKeyConstraint(["verified_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "participation_id", "month_number", name="uq_payment_participation_month"
        ),
        sa.Index("ix_payments_participation_id", "participation_id"),
        sa.Index("ix_payments_user_id", "user_id"),
        sa.Index("ix_payments_cycle_id", "cycle_id"),
        sa.Index("ix_payments_due_date", "due_date"),
        sa.Index("ix_payments_status", "status"),
        sa.Index("idx_payment_status_due", "status", "due_date"),
        sa.Index("idx_payment_status_paid_at", "status", "paid_at"),
    )

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("participation_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("cycle_id", sa.Integer(), nullable=False),
        _money("amount"),
        sa.Column("scheduled_month", sa.Integer(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column(
            "status", sa.Enum("PENDING", "PAID", "WAIVED", name="payoutstatus"), nullable=False
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transfer_reference", sa.String(length=255), nullable=True),
        sa.Column("processed_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["participation_id"], ["participations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cycle_id"], ["cycles.id"]),
        sa.ForeignKeyConstraint(["processed_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("participation_id"),
        sa.Index("ix_payouts_user_id", "user_id"),
        sa.Index("ix_payouts_cycle_id", "cycle_id"),
        sa.Index("ix_payouts_scheduled_date", "scheduled_date"),
        sa.Index("ix_payouts_status", "status"),
        sa.Index("idx_payout_status_paid_at", "status", "paid_at"),
    )

    op.create_table(
        "opt_out_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("cycle_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING_APPROVAL", "APPROVED", "REJECTED", name="optoutstatus"),
            nullable=False,
        ),
        _money("total_paid"),
        _money("penalty_amount"),
        _money("refund_amount"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cycle_id"], ["cycles.id"]),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_opt_out_requests_user_id", "user_id"),
        sa.Index("ix_opt_out_requests_cycle_id", "cycle_id"),
        sa.Index("ix_opt_out_requests_status", "status"),
    )

    op.create_table(
        "system_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        _money("pack_20k_monthly", nullable=True),
        _money("pack_20k_payout", nullable=True),
        _money("pack_20k_fine", nullable=True),
        _money("pack_50k_monthly", nullable=True),
        _money("pack_50k_payout", nullable=True),
        _money("pack_50k_fine", nullable=True),
        _money("pack_100k_monthly", nullable=True),
        _money("pack_100k_payout", nullable=True),
        _money("pack_100k_fine", nullable=True),
        sa.Column("opt_out_penalty_percent", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )


def downgrade() -> None:
    for table in (
        "audit_logs",
        "system_settings",
        "opt_out_requests",
        "payouts",
        "payments",
        "bank_details",
        "participations",
        "cycles",
        "users",
    ):
        op.drop_table(table)
    for enum_name in ("optoutstatus", "payoutstatus", "paymentstatus", "contributiontier", "cyclestatus"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
