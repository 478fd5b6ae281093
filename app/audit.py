from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import AuditActorType, AuditLog

logger = logging.getLogger("app.audit")

PUNCH_IN_ACTION = "ATTENDANCE_PUNCH_IN"
PUNCH_OUT_ACTION = "ATTENDANCE_PUNCH_OUT"


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=ip,
        user_agent=user_agent,
        success=success,
        details=details or {},
    )
    db.add(audit)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_type": actor_type.value,
                "actor_id": actor_id,
                "success": success,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
        },
    )


def log_punch_audit(
    db: Session,
    *,
    action: str,
    employee_id: int,
    success: bool,
    attendance_id: int | None,
    ip: str | None,
    user_agent: str | None,
    details: dict[str, Any],
    request_id: str | None,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(employee_id),
        action=action,
        success=success,
        entity_type="attendance",
        entity_id=str(attendance_id) if attendance_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        details=details,
        request_id=request_id,
    )
