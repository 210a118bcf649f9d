"""Audit log for admin data operations."""

from typing import Any

from storeops.backend.base import BackendClient, BackendError
from storeops.core.logging import get_logger
from storeops.models.audit_log import TABLE, AuditLog

log = get_logger(__name__)


async def log_event(
    backend: BackendClient,
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    operation_source: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs. Never fails the operation being audited."""
    entry = AuditLog(
        user_id=user_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        operation_source=operation_source,
        metadata=metadata or {},
    )
    try:
        await backend.insert(TABLE, entry.model_dump(mode="json", exclude_none=True))
    except BackendError as exc:
        log.warning("audit_write_failed", entity_type=entity_type, entity_id=entity_id, code=exc.code)
