"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of every ledger mutation
2. Debugging capability when an AI provider or an upload fails
3. User can see history of their changes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from buddy.models.audit import AuditEvent, AuditEventBuilder
from buddy.services.storage import AuditStorageInterface


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for JSON lines on the standard logging stream."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    logging.getLogger().setLevel(level.upper())
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


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store such as the AuditLog worksheet (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("buddy.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_statement_uploaded(
        self,
        upload_id: UUID,
        filename: str,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.statement_uploaded(
            upload_id=upload_id,
            filename=filename,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_text_extracted(
        self,
        upload_id: UUID,
        kind: str,
        text_length: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.text_extracted(
            upload_id=upload_id,
            kind=kind,
            text_length=text_length,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        upload_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            upload_id=upload_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_ai_request_started(
        self,
        request_id: UUID,
        provider: str,
        prompt_length: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ai_request_started(
            request_id=request_id,
            provider=provider,
            prompt_length=prompt_length,
            correlation_id=correlation_id,
        ))

    async def log_ai_provider_failed(
        self,
        request_id: UUID,
        provider: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ai_provider_failed(
            request_id=request_id,
            provider=provider,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_ai_fallback_used(
        self,
        request_id: UUID,
        failed_provider: str,
        fallback_provider: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ai_fallback_used(
            request_id=request_id,
            failed_provider=failed_provider,
            fallback_provider=fallback_provider,
            correlation_id=correlation_id,
        ))

    async def log_ai_request_failed(
        self,
        request_id: UUID,
        errors: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ai_request_failed(
            request_id=request_id,
            errors=errors,
            correlation_id=correlation_id,
        ))

    async def log_expenses_proposed(
        self,
        request_id: UUID,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expenses_proposed(
            request_id=request_id,
            count=count,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        batch_id: UUID,
        stage: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            batch_id=batch_id,
            stage=stage,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_record_created(
        self,
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_created(
            collection=collection,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    async def log_record_updated(
        self,
        collection: str,
        record_id: UUID,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_updated(
            collection=collection,
            record_id=record_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_record_deleted(
        self,
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            collection=collection,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    async def log_backup_created(self, counts: dict[str, int]) -> None:
        await self.log(AuditEventBuilder.backup_created(counts=counts))

    async def log_backup_restored(self, counts: dict[str, int]) -> None:
        await self.log(AuditEventBuilder.backup_restored(counts=counts))

    async def log_save_failed(
        self,
        collection: str,
        count: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            collection=collection,
            count=count,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., statement upload).
    Pass it through all subsequent operations.
    """
    return uuid4()
