from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    BigInteger,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fabricwms.app.db.base import Base
from fabricwms.app.db.models.core_types import (
    PurchaseStatus,
    MovementDirection,
    MovementReason,
)

# BigInteger en Postgres, INTEGER (rowid autoincrement) en SQLite
PK = BigInteger().with_variant(Integer, "sqlite")

QTY = Numeric(18, 3)
MONEY = Numeric(14, 2)
TOTAL = Numeric(16, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [m.value for m in enum_cls]


# ---------- MASTER DATA ----------
class Material(Base):
    __tablename__ = "materials"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="pcs", nullable=False)

    # Agrégat matérialisé: écrit UNIQUEMENT par services.inventory (UPDATE atomique)
    qty_on_hand: Mapped[Decimal] = mapped_column(QTY, default=Decimal("0"), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    __table_args__ = (CheckConstraint("qty_on_hand >= 0", name="ck_material_qty_on_hand_nonneg"),)


# ---------- PROCUREMENT ----------
class PurchaseRecord(Base):
    __tablename__ = "purchase_records"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    material_id: Mapped[int] = mapped_column(
        ForeignKey("materials.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    supplier: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(TOTAL, nullable=False)

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PurchaseStatus] = mapped_column(
        Enum(PurchaseStatus, name="purchase_status", values_callable=_enum_values),
        default=PurchaseStatus.pending,
        nullable=False,
    )
    invoice_number: Mapped[str | None] = mapped_column(String(64), index=True)
    receipt_path: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)
    delivery_date: Mapped[date | None] = mapped_column(Date)
    received_quantity: Mapped[Decimal | None] = mapped_column(QTY)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    material: Mapped[Material] = relationship()
    movements: Mapped[list["StockMovement"]] = relationship(
        back_populates="purchase_record",
        order_by="StockMovement.id",
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_qty_pos"),
        CheckConstraint("price_per_unit > 0", name="ck_purchase_price_pos"),
        Index("ix_purchase_records_date", "purchase_date"),
    )

    @property
    def active_movement(self) -> "StockMovement | None":
        for mv in self.movements:
            if mv.is_active:
                return mv
        return None

    @property
    def receive_quantity(self) -> Decimal:
        """Quantité qui entre en stock à la réception."""
        return self.received_quantity if self.received_quantity is not None else self.quantity


# ---------- INVENTORY ----------
class StockMovement(Base):
    """
    Ledger: append-only.
    Seul `is_active` peut changer (True -> False = extourne), jamais de DELETE.
    """

    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(PK, primary_key=True)

    material_id: Mapped[int] = mapped_column(
        ForeignKey("materials.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    purchase_record_id: Mapped[int | None] = mapped_column(
        ForeignKey("purchase_records.id", ondelete="RESTRICT"),
        index=True,
    )

    direction: Mapped[MovementDirection] = mapped_column(
        Enum(MovementDirection, name="movement_direction", values_callable=_enum_values),
        nullable=False,
    )
    reason: Mapped[MovementReason] = mapped_column(
        Enum(MovementReason, name="movement_reason", values_callable=_enum_values),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(MONEY)
    total_cost: Mapped[Decimal | None] = mapped_column(TOTAL)

    # Stock juste après application (audit)
    qty_after_snapshot: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    purchase_record: Mapped[PurchaseRecord | None] = relationship(back_populates="movements")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        Index("ix_stock_movements_material_time", "material_id", "occurred_at"),
        # Au plus UNE entrée active par achat
        Index(
            "uq_stock_movements_active_purchase",
            "purchase_record_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )
