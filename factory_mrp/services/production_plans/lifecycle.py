"""
Production plan state machine.

    計画 --start--> 生産中 --complete--> 完了
     |
     +--cancel--> キャンセル

New plans start in 計画 (or キャンセル). Plans that are not terminal can be
edited; a 生産中 plan keeps its product and quantity. Any state can be
deleted. Every mutation is one transaction: the plan row, its reservations,
stock issues and the audit record commit or roll back together.
Input is validated before the first write.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from factory_mrp.core.audit import audit
from factory_mrp.core.errors import (
    InsufficientInventoryError,
    InvalidStatusError,
    NoBomDataError,
    PlanNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from factory_mrp.db.models.master import Product
from factory_mrp.db.models.production import PlanStatus, ProductionPlan
from factory_mrp.services._crud import atomic
from factory_mrp.services._quantities import num
from factory_mrp.services.bom.expander import expand
from factory_mrp.services.inventory.ledger import issue_stock, lock_parts
from factory_mrp.services.production_plans import reservation_manager
from factory_mrp.services.production_plans.sufficiency import calculate_for_plan

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
BUILDING_NO_MAX = 10

REFERENCE_TYPE = "production_plan"

_CREATABLE = (PlanStatus.PLANNED, PlanStatus.CANCELLED)

# current status -> statuses an update may set
_UPDATE_TARGETS = {
    PlanStatus.PLANNED: (PlanStatus.PLANNED, PlanStatus.CANCELLED),
    PlanStatus.IN_PRODUCTION: (PlanStatus.IN_PRODUCTION,),
}


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        n = int(value.strip())
        return n if n > 0 else None
    return None


def validate_status(status: Any) -> str:
    if status not in PlanStatus.ALL:
        raise ValidationError(
            "無効なステータスです",
            code="INVALID_STATUS",
            details={"valid_statuses": list(PlanStatus.ALL)},
        )
    return status


def validate_plan_data(data: dict[str, Any]) -> dict[str, Any]:
    """Check a create/update payload and return it normalised.

    Raises ValidationError on the first problem found; nothing is written.
    """
    product_code = data.get("product_code")
    planned_quantity = data.get("planned_quantity")
    start_date = data.get("start_date")

    if not product_code or planned_quantity in (None, "") or not start_date:
        raise ValidationError("必須項目が不足しています（製品コード、生産数量、開始日）")

    qty = _positive_int(planned_quantity)
    if qty is None:
        raise ValidationError("生産数量は正の整数で入力してください")

    if isinstance(start_date, date):
        start = start_date
    else:
        if not isinstance(start_date, str) or not _DATE_RE.match(start_date):
            raise ValidationError("開始日はYYYY-MM-DD形式で入力してください")
        try:
            start = date.fromisoformat(start_date)
        except ValueError:
            raise ValidationError("開始日はYYYY-MM-DD形式で入力してください")

    building_no = data.get("building_no") or None
    if building_no is not None:
        building_no = str(building_no).strip()
        if len(building_no) > BUILDING_NO_MAX:
            raise ValidationError(f"棟番号は{BUILDING_NO_MAX}文字以内で入力してください")

    status = data.get("status")
    if status:
        validate_status(status)

    return {
        "building_no": building_no,
        "product_code": str(product_code).strip(),
        "planned_quantity": qty,
        "start_date": start,
        "status": status or None,
        "remarks": data.get("remarks") or None,
    }


def _require_product(db: Session, product_code: str) -> Product:
    product = db.get(Product, product_code)
    if product is None or not product.is_active:
        raise ProductNotFoundError(product_code)
    return product


def _locked_plan(db: Session, plan_id: int) -> ProductionPlan:
    plan = db.query(ProductionPlan).filter(ProductionPlan.id == plan_id).with_for_update().first()
    if plan is None:
        raise PlanNotFoundError(plan_id)
    return plan


def plan_to_dict(plan: ProductionPlan, product_remarks: str | None = None) -> dict:
    return {
        "id": plan.id,
        "building_no": plan.building_no,
        "product_code": plan.product_code,
        "planned_quantity": plan.planned_quantity,
        "actual_quantity": plan.actual_quantity,
        "start_date": plan.start_date.isoformat() if plan.start_date else None,
        "status": plan.status,
        "remarks": plan.remarks,
        "created_by": plan.created_by,
        "created_at": plan.created_at.isoformat() if plan.created_at else None,
        "updated_at": plan.updated_at.isoformat() if plan.updated_at else None,
        "product_remarks": product_remarks,
    }


# Reads

def _with_product(db: Session):
    return (db.query(ProductionPlan, Product.remarks)
            .outerjoin(Product, Product.product_code == ProductionPlan.product_code))


def get_plan(db: Session, plan_id: int) -> dict:
    row = _with_product(db).filter(ProductionPlan.id == plan_id).first()
    if row is None:
        raise PlanNotFoundError(plan_id)
    plan, product_remarks = row
    return plan_to_dict(plan, product_remarks)


def list_plans(db: Session) -> list[dict]:
    rows = (_with_product(db)
            .filter(ProductionPlan.status != PlanStatus.CANCELLED)
            .order_by(ProductionPlan.start_date.desc(), ProductionPlan.created_at.desc(), ProductionPlan.id.desc())
            .all())
    return [plan_to_dict(p, remarks) for p, remarks in rows]


def list_plans_by_status(db: Session, status: str) -> list[dict]:
    validate_status(status)
    rows = (_with_product(db)
            .filter(ProductionPlan.status == status)
            .order_by(ProductionPlan.start_date.asc(), ProductionPlan.id.asc())
            .all())
    return [plan_to_dict(p, remarks) for p, remarks in rows]


# Mutations

def create_plan(db: Session, data: dict[str, Any], actor: str) -> dict:
    clean = validate_plan_data(data)
    status = clean["status"] or PlanStatus.PLANNED
    if status not in _CREATABLE:
        # 生産中 and 完了 are only reachable through start/complete
        raise InvalidStatusError(
            f"ステータス「{status}」で生産計画を登録することはできません",
            code="INVALID_STATUS_TRANSITION",
            current_status=status,
        )
    _require_product(db, clean["product_code"])

    with atomic(db):
        plan = ProductionPlan(
            building_no=clean["building_no"],
            product_code=clean["product_code"],
            planned_quantity=clean["planned_quantity"],
            start_date=clean["start_date"],
            status=status,
            remarks=clean["remarks"],
            created_by=actor,
        )
        db.add(plan)
        db.flush()

        reservations: list[dict] = []
        if status == PlanStatus.PLANNED:
            reservations = reservation_manager.create_reservations(
                db, plan.id, plan.product_code, plan.planned_quantity, actor
            )

        audit(db, actor=actor, action="production_plan.create", entity_type="production_plan",
              entity_id=plan.id, payload={**clean, "status": status, "reservations": len(reservations)})

    logger.info("plan %s created by %s (%d reservations)", plan.id, actor, len(reservations))
    return {
        "plan": plan_to_dict(plan),
        "reservations": reservations,
        "message": f"生産計画が正常に登録されました（予約: {len(reservations)}件）",
    }


def update_plan(db: Session, plan_id: int, data: dict[str, Any], actor: str) -> dict:
    clean = validate_plan_data(data)

    with atomic(db):
        plan = _locked_plan(db, plan_id)
        targets = _UPDATE_TARGETS.get(plan.status)
        if targets is None:
            raise InvalidStatusError(
                f"ステータス「{plan.status}」の生産計画は編集できません",
                code="INVALID_STATUS_FOR_UPDATE",
                current_status=plan.status,
            )
        new_status = clean["status"] or plan.status
        if new_status not in targets:
            raise InvalidStatusError(
                f"ステータス「{plan.status}」から「{new_status}」へは変更できません",
                code="INVALID_STATUS_TRANSITION",
                current_status=plan.status,
            )
        started = plan.status == PlanStatus.IN_PRODUCTION
        if started and (clean["product_code"] != plan.product_code
                        or clean["planned_quantity"] != plan.planned_quantity):
            # materials were issued at start for this product and quantity
            raise InvalidStatusError(
                "生産中の計画は製品コード・生産数量を変更できません",
                code="INVALID_STATUS_FOR_UPDATE",
                current_status=plan.status,
            )
        if not started:
            _require_product(db, clean["product_code"])

        before = plan_to_dict(plan)
        plan.building_no = clean["building_no"]
        plan.product_code = clean["product_code"]
        plan.planned_quantity = clean["planned_quantity"]
        plan.start_date = clean["start_date"]
        plan.status = new_status
        plan.remarks = clean["remarks"]
        db.flush()

        if started:
            deleted = reservation_manager.delete_reservations(db, plan.id)
            change = {
                "action": "delete_only",
                "deleted": deleted,
                "created": [],
                "message": "生産中の計画を更新しました（部材は生産開始時に消費済みのため予約は作成しません）",
            }
        else:
            change = reservation_manager.reconcile_plan(db, plan, actor)

        audit(db, actor=actor, action="production_plan.update", entity_type="production_plan",
              entity_id=plan.id, payload={"before": before, "after": clean, "reservations": change["action"]})

    logger.info("plan %s updated by %s: %s", plan.id, actor, change["action"])
    return {
        "plan": plan_to_dict(plan),
        "reservation_update": change,
        "message": change["message"],
    }


def start_production(db: Session, plan_id: int, actor: str) -> dict:
    """Consume the plan's materials from stock and move it to 生産中.

    All or nothing: one short part means no stock moves and the plan keeps
    its reservations.
    """
    with atomic(db):
        plan = _locked_plan(db, plan_id)
        if plan.status != PlanStatus.PLANNED:
            raise InvalidStatusError(
                f"ステータス「{plan.status}」の生産計画は開始できません。「計画」ステータスの計画のみ開始可能です。",
                code="INVALID_STATUS_FOR_START",
                current_status=plan.status,
            )

        bom = expand(db, plan.product_code, plan.planned_quantity)
        if not bom:
            raise NoBomDataError(plan.product_code)

        # lock before measuring so nobody can issue the stock we just counted
        lock_parts(db, [b.part_code for b in bom])

        result = calculate_for_plan(db, plan)
        if result.has_shortage:
            raise InsufficientInventoryError([
                {
                    "part_code": r.part_code,
                    "required_quantity": num(r.required_quantity),
                    "available_stock": num(r.available_stock),
                    "shortage_quantity": num(r.shortage_quantity),
                }
                for r in result.shortages
            ])

        consumed = []
        for r in result.requirements:
            txn = issue_stock(
                db,
                part_code=r.part_code,
                qty=r.required_quantity,
                reference_id=plan.id,
                reference_type=REFERENCE_TYPE,
                actor=actor,
                remarks=f"生産開始による部材消費 (計画ID: {plan.id}, 製品: {plan.product_code})",
            )
            consumed.append({
                "part_code": r.part_code,
                "consumed_quantity": num(r.required_quantity),
                "stock_before": num(txn.before_stock),
                "stock_after": num(txn.after_stock),
            })

        plan.status = PlanStatus.IN_PRODUCTION
        released = reservation_manager.delete_reservations(db, plan.id)

        audit(db, actor=actor, action="production_plan.start", entity_type="production_plan",
              entity_id=plan.id, payload={"consumed": consumed, "released": released["deleted_count"]})

    logger.info("plan %s started by %s, %d parts issued", plan.id, actor, len(consumed))
    return {
        "plan_id": plan.id,
        "product_code": plan.product_code,
        "planned_quantity": plan.planned_quantity,
        "status": plan.status,
        "status_changed": f"{PlanStatus.PLANNED} → {PlanStatus.IN_PRODUCTION}",
        "consumed_parts": consumed,
        "consumption_summary": {
            "consumed_parts_count": len(consumed),
            "total_consumed_items": sum(c["consumed_quantity"] for c in consumed),
        },
        "released_reservations": released["deleted_count"],
        "started_at": datetime.utcnow().isoformat(),
        "message": f"生産を開始しました。{len(consumed)}種類の部材を消費し、在庫から減算しました。",
    }


def complete_production(db: Session, plan_id: int, actor: str, actual_quantity: Any = None) -> dict:
    final_qty = None
    if actual_quantity not in (None, ""):
        final_qty = _positive_int(actual_quantity)
        if final_qty is None:
            raise ValidationError("実績数量は正の整数で入力してください")

    with atomic(db):
        plan = _locked_plan(db, plan_id)
        if plan.status != PlanStatus.IN_PRODUCTION:
            raise InvalidStatusError(
                f"ステータス「{plan.status}」の生産計画は完了処理できません",
                code="INVALID_STATUS_FOR_COMPLETE",
                current_status=plan.status,
            )

        plan.actual_quantity = final_qty or plan.planned_quantity
        plan.status = PlanStatus.COMPLETED
        released = reservation_manager.delete_reservations(db, plan.id)

        audit(db, actor=actor, action="production_plan.complete", entity_type="production_plan",
              entity_id=plan.id, payload={"actual_quantity": plan.actual_quantity})

    logger.info("plan %s completed by %s (actual %s)", plan.id, actor, plan.actual_quantity)
    return {
        "plan_id": plan.id,
        "product_code": plan.product_code,
        "planned_quantity": plan.planned_quantity,
        "actual_quantity": plan.actual_quantity,
        "status": plan.status,
        "status_changed": f"{PlanStatus.IN_PRODUCTION} → {PlanStatus.COMPLETED}",
        "released_reservations": released["deleted_count"],
        "completed_at": datetime.utcnow().isoformat(),
        "message": "生産が完了しました。",
    }


def cancel_plan(db: Session, plan_id: int, actor: str) -> dict:
    with atomic(db):
        plan = _locked_plan(db, plan_id)
        if plan.status != PlanStatus.PLANNED:
            raise InvalidStatusError(
                f"ステータス「{plan.status}」の生産計画はキャンセルできません",
                code="INVALID_STATUS_TRANSITION",
                current_status=plan.status,
            )
        plan.status = PlanStatus.CANCELLED
        released = reservation_manager.delete_reservations(db, plan.id)

        audit(db, actor=actor, action="production_plan.cancel", entity_type="production_plan",
              entity_id=plan.id, payload={"released": released["deleted_count"]})

    logger.info("plan %s cancelled by %s", plan.id, actor)
    return {
        "plan": plan_to_dict(plan),
        "released_reservations": released["deleted_count"],
        "message": f"生産計画をキャンセルし、{released['deleted_count']}件の在庫予約を解除しました",
    }


def delete_plan(db: Session, plan_id: int, actor: str) -> dict:
    with atomic(db):
        plan = _locked_plan(db, plan_id)
        snapshot = plan_to_dict(plan)
        released = reservation_manager.delete_reservations(db, plan.id)
        db.delete(plan)
        db.flush()

        audit(db, actor=actor, action="production_plan.delete", entity_type="production_plan",
              entity_id=plan_id, payload={"plan": snapshot, "released": released["deleted_count"]})

    logger.info("plan %s deleted by %s (%d reservations released)", plan_id, actor, released["deleted_count"])
    return {
        "plan_id": plan_id,
        "deleted_plan": snapshot,
        "released_reservations": released["deleted_count"],
        "message": (
            f"生産計画（ID: {plan_id}）が正常に削除され、"
            f"{released['deleted_count']}件の在庫予約も自動解除されました"
        ),
    }
