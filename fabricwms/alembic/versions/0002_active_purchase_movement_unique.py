"""at most one active stock movement per purchase record

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-05
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, Sequence[str], None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEX_NAME = "uq_stock_movements_active_purchase"


def upgrade() -> None:
    # Index partiel: les entrées extournées (is_active = false) restent illimitées
    op.create_index(
        INDEX_NAME,
        "stock_movements",
        ["purchase_record_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )


def downgrade() -> None:
    op.drop_index(INDEX_NAME, table_name="stock_movements")
