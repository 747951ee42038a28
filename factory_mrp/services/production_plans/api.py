from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel
from sqlalchemy.orm import Session

from factory_mrp.core.security import Principal, require_admin, require_production_access, require_read_access
from factory_mrp.db.session import get_db
from factory_mrp.services.production_plans import lifecycle, reservation_manager
from factory_mrp.services.production_plans.sufficiency import calculate, result_message

router = APIRouter(prefix="/api/plans", tags=["production-plans"])

PlanId = Path(..., gt=0, description="production plan id")


class PlanIn(BaseModel):
    # lifecycle.validate_plan_data owns the rules and the messages
    building_no: str | None = None
    product_code: str | None = None
    planned_quantity: Any = None
    start_date: Any = None
    status: str | None = None
    remarks: str | None = None


class CompleteIn(BaseModel):
    actual_quantity: Any = None


@router.get("")
def list_plans(db: Session = Depends(get_db), p: Principal = Depends(require_read_access)):
    plans = lifecycle.list_plans(db)
    return {
        "success": True,
        "data": plans,
        "count": len(plans),
        "message": f"生産計画一覧を{len(plans)}件取得しました",
    }


@router.get("/status/{status}")
def list_by_status(status: str, db: Session = Depends(get_db), p: Principal = Depends(require_read_access)):
    plans = lifecycle.list_plans_by_status(db, status)
    return {
        "success": True,
        "data": plans,
        "count": len(plans),
        "message": f"ステータス「{status}」の生産計画を{len(plans)}件取得しました",
    }


@router.get("/reservations/integrity")
def reservation_integrity(db: Session = Depends(get_db), p: Principal = Depends(require_admin)):
    report = reservation_manager.validate_reservation_integrity(db)
    return {
        "success": True,
        "data": report,
        "message": "在庫予約の整合性チェックが完了しました",
    }


@router.get("/{plan_id}")
def get_plan(plan_id: int = PlanId, db: Session = Depends(get_db), p: Principal = Depends(require_read_access)):
    return {
        "success": True,
        "data": lifecycle.get_plan(db, plan_id),
        "message": f"生産計画 {plan_id} の詳細情報を取得しました",
    }


@router.get("/{plan_id}/reservations")
def get_reservations(plan_id: int = PlanId, db: Session = Depends(get_db), p: Principal = Depends(require_read_access)):
    lifecycle.get_plan(db, plan_id)
    status = reservation_manager.get_reservation_status(db, plan_id)
    return {
        "success": True,
        "data": status,
        "message": f"生産計画 {plan_id} の在庫予約を{status['summary']['total_parts']}件取得しました",
    }


@router.post("", status_code=201)
def create_plan(payload: PlanIn, db: Session = Depends(get_db), p: Principal = Depends(require_production_access)):
    out = lifecycle.create_plan(db, payload.model_dump(), p.username)
    return {
        "success": True,
        "data": {**out["plan"], "reservations": out["reservations"]},
        "message": out["message"],
    }


@router.put("/{plan_id}")
def update_plan(payload: PlanIn, plan_id: int = PlanId, db: Session = Depends(get_db),
                p: Principal = Depends(require_production_access)):
    out = lifecycle.update_plan(db, plan_id, payload.model_dump(), p.username)
    return {
        "success": True,
        "data": {**out["plan"], "reservation_update": out["reservation_update"]},
        "message": out["message"],
    }


@router.delete("/{plan_id}")
def delete_plan(plan_id: int = PlanId, db: Session = Depends(get_db), p: Principal = Depends(require_production_access)):
    out = lifecycle.delete_plan(db, plan_id, p.username)
    return {
        "success": True,
        "data": {"plan_id": out["plan_id"], "released_reservations": out["released_reservations"]},
        "message": out["message"],
    }


@router.post("/{plan_id}/requirements")
def calculate_requirements(plan_id: int = PlanId, db: Session = Depends(get_db),
                           p: Principal = Depends(require_read_access)):
    result = calculate(db, plan_id)
    data = {**result.to_dict(), "calculated_by": p.username}
    if not result.bom_configured:
        # no BOM is never "nothing short"
        return {"success": False, "error": "NO_BOM_DATA", "data": data, "message": result_message(result)}
    return {"success": True, "data": data, "message": result_message(result)}


@router.post("/{plan_id}/start-production")
def start_production(plan_id: int = PlanId, db: Session = Depends(get_db),
                     p: Principal = Depends(require_production_access)):
    out = lifecycle.start_production(db, plan_id, p.username)
    message = out.pop("message")
    return {"success": True, "data": {**out, "started_by": p.username}, "message": message}


@router.post("/{plan_id}/complete-production")
def complete_production(payload: CompleteIn | None = None, plan_id: int = PlanId, db: Session = Depends(get_db),
                        p: Principal = Depends(require_production_access)):
    actual = payload.actual_quantity if payload else None
    out = lifecycle.complete_production(db, plan_id, p.username, actual_quantity=actual)
    message = out.pop("message")
    return {"success": True, "data": {**out, "completed_by": p.username}, "message": message}


@router.post("/{plan_id}/cancel")
def cancel_plan(plan_id: int = PlanId, db: Session = Depends(get_db), p: Principal = Depends(require_production_access)):
    out = lifecycle.cancel_plan(db, plan_id, p.username)
    return {
        "success": True,
        "data": {**out["plan"], "released_reservations": out["released_reservations"]},
        "message": out["message"],
    }
