"""
Audit Models for Expense Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of stored and cleared expenses
2. Debugging information when things go wrong
3. Visibility into parse failures the user never sees

DESIGN DECISION: Audit events go to the structured log only.
They are not persisted next to the expenses.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Parsing
    EXPENSES_PARSED = "expenses_parsed"
    PARSE_FAILED = "parse_failed"

    # Persistence
    EXPENSE_SAVED = "expense_saved"
    EXPENSES_CLEARED = "expenses_cleared"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # Reports
    SUMMARY_GENERATED = "summary_generated"
    STATS_GENERATED = "stats_generated"

    # Confirmations
    CONFIRMATION_REQUESTED = "confirmation_requested"
    CONFIRMATION_RESOLVED = "confirmation_resolved"

    # AI assistant
    AI_RESPONSE_GENERATED = "ai_response_generated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'category', 'chat')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events caused by one inbound chat message
    correlation_id: Optional[UUID] = None

    # Who triggered it (opaque transport ids)
    user_id: Optional[int] = None
    chat_id: Optional[int] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_saved(expense_id, "coffee", "25.50", correlation_id)
        event = AuditEventBuilder.expenses_cleared("date", 3, correlation_id)
    """

    @staticmethod
    def expenses_parsed(
        parsed: int,
        failed: int,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSES_PARSED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="message",
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
            description=f"Parsed {parsed} expense(s), {failed} block(s) failed",
            details={
                "parsed": parsed,
                "failed": failed,
            },
        )

    @staticmethod
    def parse_failed(
        block_count: int,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="message",
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
            description="Message looked like an expense but nothing parsed",
            details={"block_count": block_count},
        )

    @staticmethod
    def expense_saved(
        expense_id: Optional[int],
        category: str,
        amount: str,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            entity_type="expense",
            entity_id=str(expense_id) if expense_id is not None else None,
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
            description=f"Expense saved: {category} - {amount}",
            details={
                "category": category,
                "amount": amount,
            },
        )

    @staticmethod
    def expenses_cleared(
        scope: str,
        count: int,
        correlation_id: UUID,
        user_id: Optional[int] = None,
        chat_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSES_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            correlation_id=correlation_id,
            user_id=user_id,
            chat_id=chat_id,
            description=f"Cleared {count} expense(s) ({scope})",
            details={"scope": scope, "count": count, **(details or {})},
        )

    @staticmethod
    def category_created(
        category_id: Optional[int],
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=str(category_id) if category_id is not None else None,
            correlation_id=correlation_id,
            description=f"Category created: {name}",
            details={"name": name},
        )

    @staticmethod
    def category_updated(
        category_id: int,
        changes: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_UPDATED,
            entity_type="category",
            entity_id=str(category_id),
            correlation_id=correlation_id,
            description="Category updated",
            details={"changes": changes},
        )

    @staticmethod
    def category_deleted(
        category_id: int,
        deleted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            severity=AuditSeverity.INFO if deleted else AuditSeverity.WARNING,
            entity_type="category",
            entity_id=str(category_id),
            correlation_id=correlation_id,
            description=(
                "Category deleted" if deleted
                else "Category delete refused (default or in use)"
            ),
            details={"deleted": deleted},
        )

    @staticmethod
    def summary_generated(
        scope: str,
        expense_count: int,
        total: str,
        correlation_id: UUID,
        chat_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_GENERATED,
            entity_type="report",
            correlation_id=correlation_id,
            chat_id=chat_id,
            description=f"Summary for {scope}: {expense_count} expense(s), total {total}",
            details={
                "scope": scope,
                "expense_count": expense_count,
                "total": total,
            },
        )

    @staticmethod
    def stats_generated(
        entry_count: int,
        correlation_id: UUID,
        chat_id: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATS_GENERATED,
            entity_type="report",
            correlation_id=correlation_id,
            chat_id=chat_id,
            description=f"Overall statistics over {entry_count} expense(s)",
            details={"entry_count": entry_count},
        )

    @staticmethod
    def confirmation_requested(
        action: str,
        user_id: int,
        correlation_id: UUID,
        payload: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_REQUESTED,
            entity_type="confirmation",
            correlation_id=correlation_id,
            user_id=user_id,
            description=f"Awaiting confirmation for {action}",
            details={"action": action, "payload": payload or {}},
        )

    @staticmethod
    def confirmation_resolved(
        action: str,
        user_id: int,
        confirmed: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_RESOLVED,
            entity_type="confirmation",
            correlation_id=correlation_id,
            user_id=user_id,
            description=f"{action} {'confirmed' if confirmed else 'cancelled'}",
            details={"action": action, "confirmed": confirmed},
        )

    @staticmethod
    def ai_response_generated(
        user_id: int,
        used_fallback: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_RESPONSE_GENERATED,
            severity=AuditSeverity.WARNING if used_fallback else AuditSeverity.INFO,
            entity_type="chat",
            correlation_id=correlation_id,
            user_id=user_id,
            description=(
                "AI assistant unavailable, fallback sent" if used_fallback
                else "AI assistant response generated"
            ),
            details={"used_fallback": used_fallback},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
