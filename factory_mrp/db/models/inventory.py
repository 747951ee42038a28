"""
Stock ledger and incoming supply.

inventory holds one row per part; inventory_transactions is the append-only
audit trail of every stock movement; scheduled_receipts are outstanding
purchase orders owned by procurement staff.
"""

from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import String, DateTime, Date, Integer, Numeric, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from factory_mrp.db.base import Base
from factory_mrp.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class TransactionType:
    RECEIPT = "入荷"
    ISSUE = "出庫"
    RESERVE = "予約"
    RELEASE = "予約解除"
    STOCKTAKE_ADJUST = "棚おろし修正"
    INITIAL = "初期在庫"


class ReceiptStatus:
    AWAITING_REPLY = "納期回答待ち"
    SCHEDULED = "入荷予定"
    RECEIVED = "入荷済み"
    CANCELLED = "キャンセル"

    # Receipts that still count as incoming supply
    OUTSTANDING = (AWAITING_REPLY, SCHEDULED)


class Inventory(Base, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "inventory"

    part_code: Mapped[str] = mapped_column(ForeignKey("parts.part_code"), primary_key=True)
    current_stock: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)
    # Denormalised sum of inventory_reservations.reserved_quantity for the part
    reserved_stock: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)
    safety_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class InventoryTransaction(Base, HasId, HasCreatedAt):
    __tablename__ = "inventory_transactions"

    part_code: Mapped[str] = mapped_column(ForeignKey("parts.part_code"), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)  # signed
    before_stock: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    after_stock: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # production_plan|scheduled_receipt

    transaction_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)

Index("ix_inv_txn_part_date", InventoryTransaction.part_code, InventoryTransaction.transaction_date)
Index("ix_inv_txn_reference", InventoryTransaction.reference_type, InventoryTransaction.reference_id)


class ScheduledReceipt(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "scheduled_receipts"

    order_no: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    part_code: Mapped[str] = mapped_column(ForeignKey("parts.part_code"), nullable=False, index=True)
    supplier: Mapped[str] = mapped_column(String(100), nullable=False)

    order_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    scheduled_quantity: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)  # set on delivery reply

    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(16), default=ReceiptStatus.AWAITING_REPLY, nullable=False, index=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)
