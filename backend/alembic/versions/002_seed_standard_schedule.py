"""Seed the Standard fee schedule (not assigned to anyone)

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union
import uuid

from alembic import op
import sqlalchemy as sa
from sqlalchemy import text


revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STANDARD_NAME = "Standard"

# (method, installments, final, root, forwarding)
STANDARD_RATES = [
    ("CREDIT", 1, "3.50", "2.00", "1.50"),
    ("CREDIT", 6, "5.90", "3.00", "2.90"),
    ("DEBIT", 1, "1.20", "1.20", "0.00"),
    ("PIX", 1, "0.90", "0.90", "0.00"),
]


def upgrade() -> None:
    conn = op.get_bind()
    schedule_id = str(uuid.uuid4())
    conn.execute(
        text("INSERT INTO fee_schedules (id, name, description) VALUES (:id, :name, :description)"),
        {"id": schedule_id, "name": STANDARD_NAME, "description": "Default pricing for new clients"},
    )
    for method, installments, final, root, forwarding in STANDARD_RATES:
        conn.execute(
            text(
                "INSERT INTO fee_rates (id, schedule_id, payment_method, installment_count, "
                "final_rate_percent, root_share_percent, forwarding_share_percent) "
                "VALUES (:id, :sid, :method, :installments, :final, :root, :forwarding)"
            ),
            {
                "id": str(uuid.uuid4()),
                "sid": schedule_id,
                "method": method,
                "installments": installments,
                "final": final,
                "root": root,
                "forwarding": forwarding,
            },
        )


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(
        text(
            "DELETE FROM fee_schedules WHERE name = :name AND id NOT IN "
            "(SELECT fee_schedule_id FROM client_fee_assignments)"
        ),
        {"name": STANDARD_NAME},
    )
