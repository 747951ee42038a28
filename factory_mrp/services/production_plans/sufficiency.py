"""
Material sufficiency for one production plan.

For every part of the plan's BOM (already folded to one entry per part):

    available = current_stock - reserved_by_other_plans + receipts_until_start
    shortage  = max(0, required - available)

The plan's own reservation is not subtracted from its own availability; it
is reported separately as ``plan_reserved_quantity``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from factory_mrp.core.errors import InvalidStatusError, PlanNotFoundError
from factory_mrp.db.models.inventory import ReceiptStatus, ScheduledReceipt
from factory_mrp.db.models.production import InventoryReservation, PlanStatus, ProductionPlan
from factory_mrp.services._quantities import dec, num, ZERO
from factory_mrp.services.bom.expander import expand, expand_by_station
from factory_mrp.services.inventory.ledger import stock_levels

logger = logging.getLogger(__name__)


def calculate_shortage(required, current, reserved, receipts) -> tuple[Decimal, Decimal]:
    """Return (available, shortage). ``reserved`` is what other plans hold."""
    available = dec(current) - dec(reserved) + dec(receipts)
    shortage = max(ZERO, dec(required) - available)
    return available, shortage


@dataclass
class PartRequirement:
    part_code: str
    part_specification: str | None
    required_quantity: Decimal
    current_stock: Decimal
    total_reserved_stock: Decimal
    plan_reserved_quantity: Decimal
    scheduled_receipts_until_start: Decimal
    available_stock: Decimal
    shortage_quantity: Decimal
    procurement_due_date: date | None
    supplier: str | None
    lead_time_days: int
    used_in_stations: list[dict] = field(default_factory=list)

    @property
    def is_sufficient(self) -> bool:
        return self.shortage_quantity <= 0

    @property
    def is_awaiting_receipt(self) -> bool:
        # covered only thanks to incoming supply; informational
        return self.current_stock < self.required_quantity and self.shortage_quantity <= 0

    def to_dict(self) -> dict:
        return {
            "part_code": self.part_code,
            "part_specification": self.part_specification,
            "required_quantity": num(self.required_quantity),
            "current_stock": num(self.current_stock),
            "total_reserved_stock": num(self.total_reserved_stock),
            "plan_reserved_quantity": num(self.plan_reserved_quantity),
            "scheduled_receipts_until_start": num(self.scheduled_receipts_until_start),
            "available_stock": num(self.available_stock),
            "shortage_quantity": num(self.shortage_quantity),
            "is_sufficient": self.is_sufficient,
            "is_awaiting_receipt": self.is_awaiting_receipt,
            "procurement_due_date": self.procurement_due_date.isoformat() if self.procurement_due_date else None,
            "supplier": self.supplier,
            "lead_time_days": self.lead_time_days,
            "used_in_stations": self.used_in_stations,
        }

    def shortage_dict(self) -> dict:
        return {
            "part_code": self.part_code,
            "shortage_quantity": num(self.shortage_quantity),
            "required_quantity": num(self.required_quantity),
            "available_stock": num(self.available_stock),
            "stations": self.used_in_stations,
            "procurement_due_date": self.procurement_due_date.isoformat() if self.procurement_due_date else None,
            "supplier": self.supplier,
            "lead_time_days": self.lead_time_days,
        }


@dataclass
class SufficiencyResult:
    plan_id: int
    product_code: str
    planned_quantity: int
    start_date: date
    status: str
    bom_configured: bool
    requirements: list[PartRequirement] = field(default_factory=list)
    calculation_date: datetime = field(default_factory=datetime.utcnow)

    @property
    def shortages(self) -> list[PartRequirement]:
        return [r for r in self.requirements if r.shortage_quantity > 0]

    @property
    def has_shortage(self) -> bool:
        return bool(self.shortages)

    def shortage_summary(self) -> dict:
        short = self.shortages
        return {
            "has_shortage": bool(short),
            "shortage_parts_count": len(short),
            "shortage_parts": [r.shortage_dict() for r in short],
            "total_shortage_amount": num(sum((r.shortage_quantity for r in short), ZERO)),
        }

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "product_code": self.product_code,
            "planned_quantity": self.planned_quantity,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "status": self.status,
            "bom_configured": self.bom_configured,
            "requirements": [r.to_dict() for r in self.requirements],
            "shortage_summary": self.shortage_summary(),
            "total_parts_count": len(self.requirements),
            "sufficient_parts_count": sum(1 for r in self.requirements if r.is_sufficient),
            "calculation_date": self.calculation_date.isoformat(),
        }


def _receipts_until(db: Session, part_codes: list[str], until: date) -> dict[str, Decimal]:
    qty = func.coalesce(ScheduledReceipt.scheduled_quantity, ScheduledReceipt.order_quantity)
    due = func.coalesce(ScheduledReceipt.scheduled_date, ScheduledReceipt.requested_date)
    rows = (db.query(ScheduledReceipt.part_code, func.sum(qty))
            .filter(ScheduledReceipt.part_code.in_(part_codes),
                    ScheduledReceipt.status.in_(ReceiptStatus.OUTSTANDING),
                    due.isnot(None),
                    due <= until)
            .group_by(ScheduledReceipt.part_code)
            .all())
    return {code: dec(total) for code, total in rows}


def _reserved_totals(db: Session, part_codes: list[str], plan_id: int | None = None) -> dict[str, Decimal]:
    q = (db.query(InventoryReservation.part_code, func.sum(InventoryReservation.reserved_quantity))
         .filter(InventoryReservation.part_code.in_(part_codes)))
    if plan_id is not None:
        q = q.filter(InventoryReservation.production_plan_id == plan_id)
    return {code: dec(total) for code, total in q.group_by(InventoryReservation.part_code).all()}


def calculate_for_plan(db: Session, plan: ProductionPlan) -> SufficiencyResult:
    if plan.status in PlanStatus.TERMINAL:
        raise InvalidStatusError(
            f"ステータス「{plan.status}」の生産計画は所要量計算できません",
            code="INVALID_STATUS_FOR_CALCULATION",
            current_status=plan.status,
        )

    logger.info("sufficiency check: plan=%s product=%s qty=%s", plan.id, plan.product_code, plan.planned_quantity)

    result = SufficiencyResult(
        plan_id=plan.id,
        product_code=plan.product_code,
        planned_quantity=plan.planned_quantity,
        start_date=plan.start_date,
        status=plan.status,
        bom_configured=False,
    )

    bom = expand(db, plan.product_code, plan.planned_quantity)
    if not bom:
        logger.warning("no active BOM for product %s (plan %s)", plan.product_code, plan.id)
        return result
    result.bom_configured = True

    codes = [b.part_code for b in bom]
    stock = stock_levels(db, codes)
    reserved_all = _reserved_totals(db, codes)
    reserved_own = _reserved_totals(db, codes, plan_id=plan.id)
    receipts = _receipts_until(db, codes, plan.start_date)

    stations: dict[str, list[dict]] = {}
    for row in expand_by_station(db, plan.product_code, plan.planned_quantity):
        stations.setdefault(row.part_code, []).append({
            "station_code": row.station_code,
            "process_group": row.process_group,
            "unit_quantity": num(row.unit_quantity),
            "required_quantity": num(row.required_quantity),
        })

    for b in bom:
        total_reserved = reserved_all.get(b.part_code, ZERO)
        own = reserved_own.get(b.part_code, ZERO)
        incoming = receipts.get(b.part_code, ZERO)
        available, shortage = calculate_shortage(
            b.required_quantity, stock[b.part_code], total_reserved - own, incoming
        )
        result.requirements.append(PartRequirement(
            part_code=b.part_code,
            part_specification=b.part_specification,
            required_quantity=b.required_quantity,
            current_stock=stock[b.part_code],
            total_reserved_stock=total_reserved,
            plan_reserved_quantity=own,
            scheduled_receipts_until_start=incoming,
            available_stock=available,
            shortage_quantity=shortage,
            procurement_due_date=plan.start_date - timedelta(days=b.lead_time_days) if plan.start_date else None,
            supplier=b.supplier,
            lead_time_days=b.lead_time_days,
            used_in_stations=stations.get(b.part_code, []),
        ))

    if result.has_shortage:
        logger.warning("plan %s is short on %d of %d parts",
                       plan.id, len(result.shortages), len(result.requirements))
    else:
        logger.info("plan %s: all %d parts sufficient", plan.id, len(result.requirements))
    return result


def calculate(db: Session, plan_id: int) -> SufficiencyResult:
    plan = db.get(ProductionPlan, plan_id)
    if plan is None:
        raise PlanNotFoundError(plan_id)
    return calculate_for_plan(db, plan)


def result_message(result: SufficiencyResult) -> str:
    if not result.bom_configured:
        return f"製品「{result.product_code}」のBOM（部品構成）が登録されていません"
    if result.has_shortage:
        return f"所要量計算完了 - {len(result.shortages)}種類の部品が不足しています"
    return "所要量計算完了 - すべての部品が充足しています"
