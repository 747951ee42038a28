from __future__ import annotations
from sqlalchemy import String, JSON, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column
from factory_mrp.db.base import Base
from factory_mrp.db.models.common import HasId, HasCreatedAt

class AuditLog(Base, HasId, HasCreatedAt):
    __tablename__ = "sys_audit_log"
    actor: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

Index("ix_audit_entity_time", AuditLog.entity_type, AuditLog.entity_id, AuditLog.created_at)
