"""
Typed errors raised by the requirements engine.

Every error carries a machine-readable ``code`` (returned to the caller as
``error``), the HTTP status the API layer should answer with, and optional
structured ``details`` merged into the response body. Catch by type, never
by message text.

    PlanningError
    |
    +-- ValidationError              VALIDATION_ERROR / INVALID_PLAN_ID / INVALID_STATUS
    +-- NotFoundError
    |   +-- PlanNotFoundError        PLAN_NOT_FOUND
    +-- ProductNotFoundError         PRODUCT_NOT_FOUND
    +-- InvalidStatusError           INVALID_STATUS_FOR_START / _COMPLETE / ...
    +-- NoBomDataError               NO_BOM_DATA
    +-- InsufficientInventoryError   INSUFFICIENT_INVENTORY
    +-- AuthenticationError          NOT_AUTHENTICATED / INVALID_TOKEN
    +-- PermissionDeniedError        INSUFFICIENT_PERMISSION
"""

from __future__ import annotations

from typing import Any


class PlanningError(Exception):
    code: str = "PLANNING_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message, "error": self.code}
        body.update(self.details)
        return body


class ValidationError(PlanningError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PlanningError):
    status_code = 404


class PlanNotFoundError(NotFoundError):
    code = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: int):
        super().__init__("指定された生産計画が見つかりません", details={"plan_id": plan_id})
        self.plan_id = plan_id


class ProductNotFoundError(PlanningError):
    # Referenced from a request body, so a 400 rather than a 404
    code = "PRODUCT_NOT_FOUND"
    status_code = 400

    def __init__(self, product_code: str):
        super().__init__("指定された製品コードが見つかりません", details={"product_code": product_code})
        self.product_code = product_code


class InvalidStatusError(PlanningError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 400

    def __init__(self, message: str, *, code: str, current_status: str):
        super().__init__(message, code=code, details={"current_status": current_status})
        self.current_status = current_status


class NoBomDataError(PlanningError):
    code = "NO_BOM_DATA"
    status_code = 400

    def __init__(self, product_code: str):
        super().__init__(
            f"製品「{product_code}」のBOM（部品構成）が登録されていません",
            details={"product_code": product_code},
        )
        self.product_code = product_code


class InsufficientInventoryError(PlanningError):
    code = "INSUFFICIENT_INVENTORY"
    status_code = 400

    def __init__(self, shortages: list[dict[str, Any]]):
        summary = ", ".join(f"{s['part_code']}: 不足{s['shortage_quantity']}個" for s in shortages)
        super().__init__(
            f"部材不足のため生産を開始できません。不足部材: {summary}",
            details={"shortage_details": shortages},
        )
        self.shortages = shortages


class AuthenticationError(PlanningError):
    code = "NOT_AUTHENTICATED"
    status_code = 401


class PermissionDeniedError(PlanningError):
    code = "INSUFFICIENT_PERMISSION"
    status_code = 403
