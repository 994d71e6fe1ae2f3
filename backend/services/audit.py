from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from models.audit_log import AuditLog


logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def log_audit_event(
    db: Session,
    *,
    action: str,
    category: str,
    entity_type: str,
    entity_id: Any | None = None,
    details: dict[str, Any] | None = None,
    commit: bool = True,
) -> AuditLog:
    row = AuditLog(
        action=action,
        category=category,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_jsonable(details or {}),
    )
    db.add(row)
    if commit:
        db.commit()
    logger.debug("audit %s/%s %s %s", category, action, entity_type, entity_id)
    return row
