"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of stored and cleared expenses
2. Debugging capability when a chat reply looks wrong
3. Visibility into messages that looked like expenses but did not parse

The audit logger:
- Is async so flows can await it like any other collaborator
- Gracefully handles failures (doesn't crash the bot if logging fails)
- Supports correlation IDs to trace every event caused by one chat message
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


def configure_logging(level: str = "INFO") -> None:
    """
    Configure stdlib logging and structlog for JSON output.

    Safe to call more than once; the last call wins.
    """
    logging.basicConfig(format="%(message)s", level=level.upper(), force=True)
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

    Events go to the structured local log only. Expenses themselves
    are the durable record; the audit trail explains how they got there.
    """

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written. Never raises.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:  # noqa: BLE001 - audit must never break a flow
            return False

        return True

    async def log_expenses_parsed(
        self,
        parsed: int,
        failed: int,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> None:
        """Log the outcome of parsing one message."""
        event = AuditEventBuilder.expenses_parsed(
            parsed=parsed,
            failed=failed,
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
        )
        await self.log(event)

    async def log_parse_failed(
        self,
        block_count: int,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> None:
        event = AuditEventBuilder.parse_failed(
            block_count=block_count,
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
        )
        await self.log(event)

    async def log_expense_saved(
        self,
        expense_id: Optional[int],
        category: str,
        amount: str,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> None:
        """Log expense save."""
        event = AuditEventBuilder.expense_saved(
            expense_id=expense_id,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
        )
        await self.log(event)

    async def log_expenses_cleared(
        self,
        scope: str,
        count: int,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        event = AuditEventBuilder.expenses_cleared(
            scope=scope,
            count=count,
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
            details=details,
        )
        await self.log(event)

    async def log_category_created(
        self,
        category_id: Optional[int],
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.category_created(
            category_id=category_id,
            name=name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_updated(
        self,
        category_id: int,
        changes: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.category_updated(
            category_id=category_id,
            changes=changes,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_deleted(
        self,
        category_id: int,
        deleted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.category_deleted(
            category_id=category_id,
            deleted=deleted,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_summary_generated(
        self,
        scope: str,
        expense_count: int,
        total: str,
        correlation_id: UUID,
        chat_id: Optional[int] = None,
    ) -> None:
        """Log a daily or range summary."""
        event = AuditEventBuilder.summary_generated(
            scope=scope,
            expense_count=expense_count,
            total=total,
            correlation_id=correlation_id,
            chat_id=chat_id,
        )
        await self.log(event)

    async def log_stats_generated(
        self,
        entry_count: int,
        correlation_id: UUID,
        chat_id: Optional[int] = None,
    ) -> None:
        event = AuditEventBuilder.stats_generated(
            entry_count=entry_count,
            correlation_id=correlation_id,
            chat_id=chat_id,
        )
        await self.log(event)

    async def log_confirmation_requested(
        self,
        action: str,
        user_id: int,
        correlation_id: UUID,
        payload: Optional[dict] = None,
    ) -> None:
        event = AuditEventBuilder.confirmation_requested(
            action=action,
            user_id=user_id,
            correlation_id=correlation_id,
            payload=payload,
        )
        await self.log(event)

    async def log_confirmation_resolved(
        self,
        action: str,
        user_id: int,
        confirmed: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.confirmation_resolved(
            action=action,
            user_id=user_id,
            confirmed=confirmed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ai_response(
        self,
        user_id: int,
        used_fallback: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.ai_response_generated(
            user_id=user_id,
            used_fallback=used_fallback,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a chat message arrives and pass it through every
    operation that message triggers.
    """
    return uuid4()
