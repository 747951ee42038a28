from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import String, DateTime, Date, Integer, Numeric, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from factory_mrp.db.base import Base
from factory_mrp.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class PlanStatus:
    PLANNED = "計画"
    IN_PRODUCTION = "生産中"
    COMPLETED = "完了"
    CANCELLED = "キャンセル"

    ALL = (PLANNED, IN_PRODUCTION, COMPLETED, CANCELLED)
    # Not terminal: still editable
    ACTIVE = (PLANNED, IN_PRODUCTION)
    TERMINAL = (COMPLETED, CANCELLED)


class ProductionPlan(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "production_plans"

    building_no: Mapped[str | None] = mapped_column(String(10), nullable=True, index=True)
    product_code: Mapped[str] = mapped_column(ForeignKey("products.product_code", ondelete="RESTRICT"), nullable=False, index=True)
    planned_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)  # set on completion
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), default=PlanStatus.PLANNED, nullable=False, index=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)

    reservations: Mapped[list["InventoryReservation"]] = relationship(
        back_populates="plan",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class InventoryReservation(Base, HasId, HasCreatedAt):
    __tablename__ = "inventory_reservations"
    __table_args__ = (
        # one reservation per plan and part
        UniqueConstraint("production_plan_id", "part_code", name="uk_plan_part"),
    )

    production_plan_id: Mapped[int] = mapped_column(ForeignKey("production_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    part_code: Mapped[str] = mapped_column(ForeignKey("parts.part_code", ondelete="RESTRICT"), nullable=False, index=True)
    reserved_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    reservation_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)

    plan: Mapped[ProductionPlan] = relationship(back_populates="reservations")

Index("ix_reservation_part_plan", InventoryReservation.part_code, InventoryReservation.production_plan_id)
