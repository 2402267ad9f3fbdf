"""
Audit trail for attendance changes
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.utils.datetime_utils import now_utc
from app.utils.json_serializer import sanitize_for_json

logger = logging.getLogger(__name__)


def log_audit(
    db: Session,
    actor_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an audit row in the caller's transaction.

    Only flushed: the row commits with the change it records and is rolled
    back with it.

    Args:
        db: Session of the surrounding unit of work
        actor_id: Employee acting, None for device pushes and scheduled jobs
        action: Upper-case verb, e.g. "REGULARIZATION_DECIDE" or "MACHINE_SYNC"
        entity_type: Table of the affected row
        entity_id: Affected row, if there is a single one
        meta: Before/after values and counts; made JSON-safe here
    """
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=sanitize_for_json(meta) if meta is not None else None,
        created_at=now_utc(),
    )
    db.add(entry)
    db.flush()
    logger.debug("Audit staged: action=%s entity=%s:%s actor_id=%s", action, entity_type, entity_id, actor_id)
    return entry
