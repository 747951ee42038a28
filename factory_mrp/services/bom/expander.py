"""
BOM expansion: product x planned quantity -> per-part requirements.

Only active BOM lines count, and only when the product, the station and the
part are active too. A part used at several stations of the same product is
folded into one requirement so shortage is always computed once per part.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from factory_mrp.db.models.master import BOMItem, Part, Product, WorkStation
from factory_mrp.services._quantities import dec


@dataclass
class BomRequirement:
    part_code: str
    part_specification: str | None
    unit_quantity: Decimal
    required_quantity: Decimal
    supplier: str | None
    lead_time_days: int


@dataclass
class StationRequirement:
    station_code: str
    process_group: str
    part_code: str
    unit_quantity: Decimal
    required_quantity: Decimal


def _active_lines(db: Session, product_code: str):
    return (db.query(BOMItem, Part, WorkStation)
            .join(Part, Part.part_code == BOMItem.part_code)
            .join(WorkStation, WorkStation.station_code == BOMItem.station_code)
            .join(Product, Product.product_code == BOMItem.product_code)
            .filter(BOMItem.product_code == product_code,
                    BOMItem.is_active == True,  # noqa: E712
                    Part.is_active == True,  # noqa: E712
                    WorkStation.is_active == True,  # noqa: E712
                    Product.is_active == True))  # noqa: E712


def has_active_bom(db: Session, product_code: str) -> bool:
    return _active_lines(db, product_code).first() is not None


def expand(db: Session, product_code: str, planned_quantity: int) -> list[BomRequirement]:
    """Flat per-part requirement list, ordered by part_code.

    Returns [] when the product has no active BOM; callers must treat that as
    "BOM not configured", never as "nothing is short".
    """
    qty = dec(planned_quantity)
    by_part: dict[str, BomRequirement] = {}
    for line, part, _station in _active_lines(db, product_code).all():
        unit = dec(line.quantity)
        req = by_part.get(part.part_code)
        if req is None:
            by_part[part.part_code] = BomRequirement(
                part_code=part.part_code,
                part_specification=part.specification,
                unit_quantity=unit,
                required_quantity=unit * qty,
                supplier=part.supplier,
                lead_time_days=part.lead_time_days or 0,
            )
        else:
            req.unit_quantity += unit
            req.required_quantity += unit * qty
    return [by_part[k] for k in sorted(by_part)]


def expand_by_station(db: Session, product_code: str, planned_quantity: int) -> list[StationRequirement]:
    """Un-aggregated rows: which station consumes which part, per unit and in total."""
    qty = dec(planned_quantity)
    rows = (_active_lines(db, product_code)
            .order_by(WorkStation.process_group.asc(), WorkStation.station_code.asc(), BOMItem.part_code.asc())
            .all())
    return [
        StationRequirement(
            station_code=station.station_code,
            process_group=station.process_group,
            part_code=part.part_code,
            unit_quantity=dec(line.quantity),
            required_quantity=dec(line.quantity) * qty,
        )
        for line, part, station in rows
    ]
