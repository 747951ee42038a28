"""
Inventory reservations owned by a production plan.

Reservations are never patched in place: every change deletes the plan's rows
and, when the plan is still active, recreates them from the current BOM
expansion. None of these functions commit; they run inside the transaction of
the plan write that triggered them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from factory_mrp.db.models.inventory import Inventory
from factory_mrp.db.models.master import Part
from factory_mrp.db.models.production import InventoryReservation, PlanStatus, ProductionPlan
from factory_mrp.services._quantities import dec, num, ZERO
from factory_mrp.services.bom.expander import expand
from factory_mrp.services.inventory.ledger import refresh_reserved_stock

logger = logging.getLogger(__name__)


def reservation_remarks(plan_id: int, product_code: str) -> str:
    return f"生産計画ID:{plan_id} 製品:{product_code} での自動予約"


def create_reservations(db: Session, plan_id: int, product_code: str, planned_quantity: int, actor: str) -> list[dict]:
    logger.info("creating reservations: plan=%s product=%s qty=%s", plan_id, product_code, planned_quantity)

    requirements = expand(db, product_code, planned_quantity)
    if not requirements:
        # BOM not configured: the plan is kept, it simply holds nothing
        logger.warning("no active BOM for product %s, plan %s gets no reservations", product_code, plan_id)
        return []

    now = datetime.utcnow()
    remarks = reservation_remarks(plan_id, product_code)
    rows: list[tuple[InventoryReservation, object]] = []
    for req in requirements:
        r = InventoryReservation(
            production_plan_id=plan_id,
            part_code=req.part_code,
            reserved_quantity=req.required_quantity,
            reservation_date=now,
            remarks=remarks,
            created_by=actor,
        )
        db.add(r)
        rows.append((r, req))
    db.flush()

    refresh_reserved_stock(db, [req.part_code for req in requirements])

    logger.info("created %d reservations for plan %s", len(rows), plan_id)
    return [
        {
            "reservation_id": r.id,
            "part_code": r.part_code,
            "part_specification": req.part_specification,
            "unit_quantity": num(req.unit_quantity),
            "reserved_quantity": num(r.reserved_quantity),
            "created_at": r.reservation_date.isoformat(),
        }
        for r, req in rows
    ]


def delete_reservations(db: Session, plan_id: int) -> dict:
    """Remove every reservation of the plan. Safe to call repeatedly."""
    existing = (db.query(InventoryReservation.id,
                         InventoryReservation.part_code,
                         InventoryReservation.reserved_quantity,
                         Part.specification)
                .outerjoin(Part, Part.part_code == InventoryReservation.part_code)
                .filter(InventoryReservation.production_plan_id == plan_id)
                .order_by(InventoryReservation.part_code.asc())
                .all())

    if not existing:
        logger.info("no reservations to delete for plan %s", plan_id)
        return {
            "deleted_count": 0,
            "deleted_reservations": [],
            "message": "削除対象の予約がありませんでした",
        }

    deleted = (db.query(InventoryReservation)
               .filter(InventoryReservation.production_plan_id == plan_id)
               .delete(synchronize_session="fetch"))

    refresh_reserved_stock(db, [row.part_code for row in existing])

    logger.info("deleted %d reservations for plan %s", deleted, plan_id)
    return {
        "deleted_count": deleted,
        "deleted_reservations": [
            {
                "id": row.id,
                "part_code": row.part_code,
                "reserved_quantity": num(row.reserved_quantity),
                "part_specification": row.specification,
            }
            for row in existing
        ],
        "message": f"{deleted}件の予約を削除しました",
    }


def update_reservations(
    db: Session,
    plan_id: int,
    product_code: str,
    planned_quantity: int,
    new_status: str,
    actor: str,
) -> dict:
    """Reconcile a plan's reservations with its current product, quantity and status."""
    logger.info("reconciling reservations: plan=%s product=%s qty=%s status=%s",
                plan_id, product_code, planned_quantity, new_status)

    deleted = delete_reservations(db, plan_id)

    if new_status in PlanStatus.ACTIVE:
        created = create_reservations(db, plan_id, product_code, planned_quantity, actor)
        return {
            "action": "update_with_new_reservations",
            "deleted": deleted,
            "created": created,
            "message": (
                f"生産計画が更新され、在庫予約も更新されました"
                f"（削除:{deleted['deleted_count']}件、作成:{len(created)}件）"
            ),
        }

    return {
        "action": "delete_only",
        "deleted": deleted,
        "created": [],
        "message": f"生産計画が更新され、在庫予約は解除されました（削除:{deleted['deleted_count']}件）",
    }


def reconcile_plan(db: Session, plan: ProductionPlan, actor: str) -> dict:
    return update_reservations(db, plan.id, plan.product_code, plan.planned_quantity, plan.status, actor)


def get_reservation_status(db: Session, plan_id: int) -> dict:
    rows = (db.query(InventoryReservation, Part.specification, Part.supplier, Inventory.current_stock)
            .outerjoin(Part, Part.part_code == InventoryReservation.part_code)
            .outerjoin(Inventory, Inventory.part_code == InventoryReservation.part_code)
            .filter(InventoryReservation.production_plan_id == plan_id)
            .order_by(InventoryReservation.part_code.asc())
            .all())

    reservations = [
        {
            "id": r.id,
            "part_code": r.part_code,
            "reserved_quantity": num(r.reserved_quantity),
            "reservation_date": r.reservation_date.isoformat() if r.reservation_date else None,
            "remarks": r.remarks,
            "created_by": r.created_by,
            "part_specification": spec,
            "supplier": supplier,
            "current_stock": num(stock),
        }
        for r, spec, supplier, stock in rows
    ]
    total: Decimal = sum((dec(r.reserved_quantity) for r, *_ in rows), ZERO)
    return {
        "plan_id": plan_id,
        "reservations": reservations,
        "summary": {
            "total_parts": len(reservations),
            "total_reserved_quantity": num(total),
            "check_date": datetime.utcnow().isoformat(),
        },
    }


def validate_reservation_integrity(db: Session) -> dict:
    """Cross-check reservations against plans, the BOM and the stock ledger."""
    logger.info("reservation integrity check started")

    orphaned = (db.query(InventoryReservation)
                .outerjoin(ProductionPlan, ProductionPlan.id == InventoryReservation.production_plan_id)
                .filter(ProductionPlan.id.is_(None))
                .all())

    status_mismatches = (db.query(ProductionPlan.id, ProductionPlan.status, func.count(InventoryReservation.id))
                         .join(InventoryReservation, InventoryReservation.production_plan_id == ProductionPlan.id)
                         .filter(ProductionPlan.status.in_(PlanStatus.TERMINAL))
                         .group_by(ProductionPlan.id, ProductionPlan.status)
                         .all())

    # Started plans have consumed their stock, so only 計画 plans must mirror the BOM.
    bom_mismatches = []
    for plan in db.query(ProductionPlan).filter(ProductionPlan.status == PlanStatus.PLANNED).all():
        expected = {req.part_code: req.required_quantity for req in expand(db, plan.product_code, plan.planned_quantity)}
        actual = {
            code: dec(qty)
            for code, qty in db.query(InventoryReservation.part_code, InventoryReservation.reserved_quantity)
            .filter(InventoryReservation.production_plan_id == plan.id)
            .all()
        }
        if expected != actual:
            bom_mismatches.append({
                "plan_id": plan.id,
                "product_code": plan.product_code,
                "expected": {k: num(v) for k, v in expected.items()},
                "actual": {k: num(v) for k, v in actual.items()},
            })

    totals = dict(
        db.query(InventoryReservation.part_code, func.sum(InventoryReservation.reserved_quantity))
        .group_by(InventoryReservation.part_code)
        .all()
    )
    stock_drift = []
    for inv in db.query(Inventory).all():
        expected_reserved = dec(totals.get(inv.part_code))
        if dec(inv.reserved_stock) != expected_reserved:
            stock_drift.append({
                "part_code": inv.part_code,
                "reserved_stock": num(inv.reserved_stock),
                "reservations_total": num(expected_reserved),
            })

    healthy = not (orphaned or status_mismatches or bom_mismatches or stock_drift)
    report = {
        "check_date": datetime.utcnow().isoformat(),
        "orphaned_reservations": {
            "count": len(orphaned),
            "reservations": [
                {"id": r.id, "production_plan_id": r.production_plan_id, "part_code": r.part_code,
                 "reserved_quantity": num(r.reserved_quantity)}
                for r in orphaned
            ],
        },
        "status_mismatches": {
            "count": len(status_mismatches),
            "mismatches": [
                {"plan_id": pid, "status": status, "reservation_count": count}
                for pid, status, count in status_mismatches
            ],
        },
        "bom_mismatches": {"count": len(bom_mismatches), "plans": bom_mismatches},
        "reserved_stock_drift": {"count": len(stock_drift), "parts": stock_drift},
        "overall_status": "HEALTHY" if healthy else "ISSUES_FOUND",
    }
    logger.info("reservation integrity check finished: %s", report["overall_status"])
    return report
