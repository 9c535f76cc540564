"""initial schema: materials, purchase_records, stock_movements

Revision ID: 0001
Revises:
Create Date: 2026-10-05
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
QTY = sa.Numeric(18, 3)
MONEY = sa.Numeric(14, 2)
TOTAL = sa.Numeric(16, 2)

PURCHASE_STATUS = sa.Enum("PENDING", "RECEIVED", "CANCELLED", name="purchase_status")
MOVEMENT_DIRECTION = sa.Enum("IN", "OUT", name="movement_direction")
MOVEMENT_REASON = sa.Enum(
    "PURCHASE_RECEIPT",
    "OPENING_BALANCE",
    "ADJUSTMENT",
    "PRODUCTION",
    name="movement_reason",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "materials",
        sa.Column("id", PK, primary_key=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("qty_on_hand", QTY, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("code", name="uq_materials_code"),
        sa.CheckConstraint("qty_on_hand >= 0", name="ck_material_qty_on_hand_nonneg"),
    )

    op.create_table(
        "purchase_records",
        sa.Column("id", PK, primary_key=True),
        sa.Column(
            "material_id",
            PK,
            sa.ForeignKey("materials.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("supplier", sa.String(255), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("price_per_unit", MONEY, nullable=False),
        sa.Column("total_cost", TOTAL, nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("status", PURCHASE_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("invoice_number", sa.String(64)),
        sa.Column("receipt_path", sa.String(500)),
        sa.Column("notes", sa.Text()),
        sa.Column("delivery_date", sa.Date()),
        sa.Column("received_quantity", QTY),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_qty_pos"),
        sa.CheckConstraint("price_per_unit > 0", name="ck_purchase_price_pos"),
    )
    op.create_index("ix_purchase_records_material_id", "purchase_records", ["material_id"])
    op.create_index("ix_purchase_records_invoice_number", "purchase_records", ["invoice_number"])
    op.create_index("ix_purchase_records_date", "purchase_records", ["purchase_date"])

    op.create_table(
        "stock_movements",
        sa.Column("id", PK, primary_key=True),
        sa.Column(
            "material_id",
            PK,
            sa.ForeignKey("materials.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "purchase_record_id",
            PK,
            sa.ForeignKey("purchase_records.id", ondelete="RESTRICT"),
        ),
        sa.Column("direction", MOVEMENT_DIRECTION, nullable=False),
        sa.Column("reason", MOVEMENT_REASON, nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("unit_cost", MONEY),
        sa.Column("total_cost", TOTAL),
        sa.Column("qty_after_snapshot", QTY, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
    )
    op.create_index("ix_stock_movements_material_id", "stock_movements", ["material_id"])
    op.create_index("ix_stock_movements_purchase_record_id", "stock_movements", ["purchase_record_id"])
    op.create_index(
        "ix_stock_movements_material_time",
        "stock_movements",
        ["material_id", "occurred_at"],
    )


def downgrade() -> None:
    op.drop_table("stock_movements")
    op.drop_table("purchase_records")
    op.drop_table("materials")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        MOVEMENT_REASON.drop(bind, checkfirst=True)
        MOVEMENT_DIRECTION.drop(bind, checkfirst=True)
        PURCHASE_STATUS.drop(bind, checkfirst=True)
