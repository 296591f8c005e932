"""
Tests for the audit logger.
"""

import logging
from uuid import uuid4

from buddy.audit import AuditLogger, configure_logging, create_correlation_id
from buddy.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from buddy.services.storage import AuditStorageInterface


class FailingAuditStorage(AuditStorageInterface):
    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    """Tests for persisting audit events."""

    async def test_persists_events(self, audit_logger, audit_storage):
        correlation_id = create_correlation_id()

        await audit_logger.log_statement_uploaded(
            upload_id=uuid4(),
            filename="march.csv",
            file_size=120,
            correlation_id=correlation_id,
        )
        await audit_logger.log_text_extracted(
            upload_id=uuid4(),
            kind="csv",
            text_length=100,
            correlation_id=correlation_id,
        )

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.STATEMENT_UPLOADED,
            AuditEventType.TEXT_EXTRACTED,
        ]

    async def test_validation_failure(self, audit_logger, audit_storage):
        await audit_logger.log_validation_failed(
            batch_id=uuid4(),
            stage="schema",
            issues=[{"row": 0, "message": "Invalid amount"}],
            correlation_id=None,
        )
        event = audit_storage.events[0]
        assert event.event_type == AuditEventType.SCHEMA_VALIDATION_FAILED
        assert event.severity == AuditSeverity.WARNING

    async def test_save_failed_event(self, audit_logger, audit_storage):
        await audit_logger.log_save_failed("expenses", 3, "quota exceeded")

        event = audit_storage.events[0]
        assert event.event_type == AuditEventType.SAVE_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "quota exceeded"
        assert event.details == {"count": 3}

    async def test_storage_failure_is_not_raised(self):
        logger = AuditLogger(FailingAuditStorage())

        await logger.log_save_failed("expenses", 2, "boom")

        assert await logger.log(AuditEventBuilder.backup_created({})) is False

    async def test_local_only(self):
        assert await AuditLogger().log(AuditEventBuilder.backup_created({})) is True


class TestConfigureLogging:

    def test_level_applies_after_first_configuration(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging("WARNING")
            assert root.level == logging.WARNING
            configure_logging("debug")
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)
