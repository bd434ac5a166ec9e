"""
Audit Logger

DESIGN DECISION: Every mutation of the ledger is logged.
This provides:
1. Complete traceability of money movements
2. Debugging capability
3. The activity feed the dashboard shows

The audit logger:
- Writes every entry to the structured local log
- Persists entries through the audit storage, surfacing failures
- Never edits or reorders an existing entry
"""

from typing import Optional

import structlog

from fundledger.errors import StorageUnavailable
from fundledger.models.audit import AuditAction, AuditEvent, AuditEventBuilder, AuditSeverity
from fundledger.services.storage import AuditStorageInterface, DuplicateError, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and the activity page)

    The ledger engine commits its entry inside the ledger transaction and
    only calls `emit` afterwards; everything else goes through `append`.
    """

    def __init__(self, storage: AuditStorageInterface):
        self._storage = storage
        self._logger = structlog.get_logger("fundledger.audit")

    def emit(self, event: AuditEvent) -> None:
        """Write an already-persisted event to the local log."""
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def append(self, event: AuditEvent) -> AuditEvent:
        """
        Persist an audit event and log it locally.

        Raises:
            StorageUnavailable: The audit store could not be written
            DuplicateError: An event with this id is already stored
        """
        try:
            await self._storage.append_event(event)
        except DuplicateError:
            raise
        except StorageError as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            raise StorageUnavailable(str(e)) from e

        self.emit(event)
        return event

    async def list_recent(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent entries first."""
        try:
            return await self._storage.get_recent_events(limit=limit)
        except StorageError as e:
            raise StorageUnavailable(str(e)) from e

    async def log_external_change(
        self,
        action: AuditAction,
        target_kind: str,
        target_id: str,
        summary: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        """Record a change made outside the ledger (a project edit, a deleted note)."""
        event = AuditEventBuilder.external_change(
            action=action,
            target_kind=target_kind,
            target_id=target_id,
            summary=summary,
            details=details,
        )
        return await self.append(event)
