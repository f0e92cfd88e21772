"""Initial schema: back_office_users, fee_schedules, fee_rates, client_fee_assignments.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PAYMENT_METHOD = sa.Enum("CREDIT", "DEBIT", "PIX", name="payment_method")


def upgrade() -> None:
    op.create_table(
        "back_office_users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_back_office_users_username", "back_office_users", ["username"], unique=True)

    op.create_table(
        "fee_schedules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2048), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "fee_rates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("schedule_id", sa.String(36), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=False),
        sa.Column("installment_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("final_rate_percent", sa.Numeric(7, 4), nullable=False),
        sa.Column("root_share_percent", sa.Numeric(7, 4), nullable=False),
        sa.Column("forwarding_share_percent", sa.Numeric(7, 4), nullable=False),
        sa.ForeignKeyConstraint(["schedule_id"], ["fee_schedules.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "schedule_id",
            "payment_method",
            "installment_count",
            name="uq_fee_rates_schedule_method_installments",
        ),
        sa.CheckConstraint("installment_count >= 1", name="ck_fee_rates_installment_count_positive"),
        sa.CheckConstraint(
            "final_rate_percent >= 0 AND final_rate_percent <= 100",
            name="ck_fee_rates_final_rate_range",
        ),
    )
    op.create_index("ix_fee_rates_schedule_id", "fee_rates", ["schedule_id"])

    op.create_table(
        "client_fee_assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("fee_schedule_id", sa.String(36), nullable=False),
        sa.Column("assigned_by", sa.String(255), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["fee_schedule_id"], ["fee_schedules.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_client_fee_assignments_client_id", "client_fee_assignments", ["client_id"])
    op.create_index("ix_client_fee_assignments_fee_schedule_id", "client_fee_assignments", ["fee_schedule_id"])
    # At most one active assignment per client
    op.create_index(
        "uq_client_fee_assignments_one_active",
        "client_fee_assignments",
        ["client_id"],
        unique=True,
        postgresql_where=sa.text("active"),
        sqlite_where=sa.text("active = 1"),
    )


def downgrade() -> None:
    op.drop_index("uq_client_fee_assignments_one_active", table_name="client_fee_assignments")
    op.drop_table("client_fee_assignments")
    op.drop_table("fee_rates")
    op.drop_table("fee_schedules")
    op.drop_table("back_office_users")
    PAYMENT_METHOD.drop(op.get_bind(), checkfirst=True)
