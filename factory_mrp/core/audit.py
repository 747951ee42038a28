from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from factory_mrp.core.context import get_request_id
from factory_mrp.db.models.audit import AuditLog


def audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str | int | None = None,
    payload: dict | None = None,
    success: bool = True,
) -> AuditLog:
    """Stage an append-only audit record in the caller's transaction.

    Keep payload JSON-serializable. Nothing is committed here: the row lands
    or rolls back together with the change it describes.
    """
    safe_payload: dict[str, Any] = payload or {}
    try:
        # Ensure it can roundtrip to JSON (avoids runtime errors on flush)
        safe_payload = json.loads(json.dumps(safe_payload, default=str))
    except (TypeError, ValueError):
        safe_payload = {"_payload_error": "non_json", "_payload_repr": repr(payload)}

    row = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        request_id=get_request_id(),
        success=success,
        payload=safe_payload,
    )
    db.add(row)
    return row
