"""
Audit Models for Buddy

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every record added, changed or removed
2. Debugging information when an AI provider or a file upload fails
3. A way to see which provider produced which categorization

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the statement import pipeline has its own event type.
    """
    # Statement upload
    STATEMENT_UPLOADED = "statement_uploaded"
    TEXT_EXTRACTED = "text_extracted"
    EXTRACTION_FAILED = "extraction_failed"

    # AI categorization
    AI_REQUEST_STARTED = "ai_request_started"
    AI_PROVIDER_FAILED = "ai_provider_failed"
    AI_FALLBACK_USED = "ai_fallback_used"
    AI_REQUEST_FAILED = "ai_request_failed"
    EXPENSES_PROPOSED = "expenses_proposed"

    # Validation
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"
    SEMANTIC_VALIDATION_FAILED = "semantic_validation_failed"

    # Persistence
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    SAVE_FAILED = "save_failed"

    # Backup
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"


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

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expenses', 'statement', 'ai_request')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one upload)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

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
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.statement_uploaded(upload_id, filename, size, cid)
        event = AuditEventBuilder.record_created("expenses", record_id, cid)
    """

    @staticmethod
    def statement_uploaded(
        upload_id: UUID,
        filename: str,
        file_size: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_UPLOADED,
            entity_type="statement",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description=f"Statement uploaded: {filename}",
            details={
                "filename": filename,
                "file_size_bytes": file_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def text_extracted(
        upload_id: UUID,
        kind: str,
        text_length: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEXT_EXTRACTED,
            entity_type="statement",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description=f"Extracted {text_length} characters from {kind.upper()}",
            details={
                "kind": kind,
                "text_length": text_length,
            },
        )

    @staticmethod
    def extraction_failed(
        upload_id: UUID,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="statement",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description="Statement text could not be extracted",
            error_message=reason,
        )

    @staticmethod
    def ai_request_started(
        request_id: UUID,
        provider: str,
        prompt_length: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_REQUEST_STARTED,
            entity_type="ai_request",
            entity_id=request_id,
            correlation_id=correlation_id,
            description=f"AI categorization started with {provider}",
            details={
                "provider": provider,
                "prompt_length": prompt_length,
            },
        )

    @staticmethod
    def ai_provider_failed(
        request_id: UUID,
        provider: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_PROVIDER_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="ai_request",
            entity_id=request_id,
            correlation_id=correlation_id,
            description=f"AI provider failed: {provider}",
            error_message=error_message,
            details={
                "provider": provider,
            },
        )

    @staticmethod
    def ai_fallback_used(
        request_id: UUID,
        failed_provider: str,
        fallback_provider: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="ai_request",
            entity_id=request_id,
            correlation_id=correlation_id,
            description=f"Fell back from {failed_provider} to {fallback_provider}",
            details={
                "failed_provider": failed_provider,
                "fallback_provider": fallback_provider,
            },
        )

    @staticmethod
    def ai_request_failed(
        request_id: UUID,
        errors: dict[str, str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_REQUEST_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ai_request",
            entity_id=request_id,
            correlation_id=correlation_id,
            description="AI categorization failed with all providers",
            details={
                "errors": errors,
            },
        )

    @staticmethod
    def expenses_proposed(
        request_id: UUID,
        count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSES_PROPOSED,
            entity_type="ai_request",
            entity_id=request_id,
            correlation_id=correlation_id,
            description=f"{count} expenses proposed for review",
            details={
                "count": count,
            },
        )

    @staticmethod
    def validation_failed(
        batch_id: UUID,
        stage: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        event_type = (
            AuditEventType.SCHEMA_VALIDATION_FAILED
            if stage == "schema"
            else AuditEventType.SEMANTIC_VALIDATION_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            entity_type="batch",
            entity_id=batch_id,
            correlation_id=correlation_id,
            description=f"{stage.capitalize()} validation failed with {len(issues)} issues",
            details={
                "stage": stage,
                "issues": issues,
            },
        )

    @staticmethod
    def record_created(
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record added to {collection}",
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        collection: str,
        record_id: UUID,
        fields: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record updated in {collection}",
            details={
                "fields": fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record removed from {collection}",
            is_user_action=True,
        )

    @staticmethod
    def backup_restored(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            severity=AuditSeverity.WARNING,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Ledger replaced from backup",
            details={
                "counts": counts,
            },
            is_user_action=True,
        )

    @staticmethod
    def backup_created(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CREATED,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup created",
            details={
                "counts": counts,
            },
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        collection: str,
        count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=collection,
            correlation_id=correlation_id,
            description=f"Saving {count} records to {collection} failed",
            error_message=error_message,
            details={
                "count": count,
            },
        )
