"""
Master data referenced by the requirements engine: parts, products,
work stations and the station-based bill of materials.

Maintained by master-data admins; the engine only reads it.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, ForeignKey, Boolean, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from factory_mrp.db.base import Base
from factory_mrp.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class Part(Base, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "parts"

    part_code: Mapped[str] = mapped_column(String(30), primary_key=True)
    part_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    specification: Mapped[str | None] = mapped_column(String(200), nullable=True)
    unit: Mapped[str] = mapped_column(String(10), default="個", nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    supplier: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)

    # Planning
    lead_time_days: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    safety_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class Product(Base, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "products"

    product_code: Mapped[str] = mapped_column(String(20), primary_key=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class WorkStation(Base, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "work_stations"

    station_code: Mapped[str] = mapped_column(String(20), primary_key=True)
    process_group: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # sub1|main1|test1...
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class BOMItem(Base, HasId, HasCreatedAt, HasUpdatedAt):
    """One product x station x part line. Soft-deleted via is_active."""
    __tablename__ = "bom_items"
    __table_args__ = (
        UniqueConstraint("product_code", "station_code", "part_code", name="uk_product_station_part"),
    )

    product_code: Mapped[str] = mapped_column(ForeignKey("products.product_code", ondelete="CASCADE"), nullable=False, index=True)
    station_code: Mapped[str] = mapped_column(ForeignKey("work_stations.station_code", ondelete="CASCADE"), nullable=False, index=True)
    part_code: Mapped[str] = mapped_column(ForeignKey("parts.part_code", ondelete="CASCADE"), nullable=False, index=True)

    # Units of part per one unit of product
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=1, nullable=False)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    product: Mapped[Product] = relationship()
    station: Mapped[WorkStation] = relationship()
    part: Mapped[Part] = relationship()

Index("ix_bom_items_product_active", BOMItem.product_code, BOMItem.is_active)
