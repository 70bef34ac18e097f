# backend/utils/audit.py
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from models.log import Log

logger = logging.getLogger(__name__)


def event_reference(meta: Optional[Dict[str, Any]]) -> Optional[str]:
    if not meta:
        return None
    for key in ("return_id", "order_id", "code"):
        if meta.get(key):
            return str(meta[key])
    return None


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None or request.client is None:
        return None
    return request.client.host


# Runs after the business commit; a failed audit write only rolls back itself.
def write_log(
    db: Session,
    *,
    user_id: Optional[int],
    action: str,
    resource: str,
    status: str = "SUCCESS",
    request: Optional[Request] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    entry = Log(user_id=user_id, action=action, resource=resource, status=status,
                reference=event_reference(meta), ip=client_ip(request), meta=meta or {})
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to write audit log %s/%s", resource, action)
