"""Audit log for critical actions."""

from datetime import datetime
from typing import Any

from app.models.audit_log import AuditLog
from app.stores.base import Stores


async def log_event(
    stores: Stores,
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    at: datetime | None = None,
) -> AuditLog:
    """Append to the audit log, inside the caller's transaction if there is one."""
    event = AuditLog(
        user_id=user_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata or {},
    )
    if at is not None:
        event.created_at = at
    return await stores.audit.append(event)
