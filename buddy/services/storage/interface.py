"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against a local JSON file or a hosted Google spreadsheet
2. Use a temporary file store in tests
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every entity lives in a named collection; records are plain JSON dicts
produced by LedgerModel.to_record().
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from buddy.models.audit import AuditEvent
from buddy.models.ledger import Collection


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def add_record(self, collection: Collection, record: dict) -> dict:
        """
        Append a record to a collection.

        Args:
            collection: Target collection
            record: JSON-compatible record with an "id" key

        Returns:
            The stored record

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_record(self, collection: Collection, record_id: UUID) -> Optional[dict]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict,
    ) -> dict:
        """
        Merge changes into an existing record.

        Returns:
            The updated record

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def delete_record(self, collection: Collection, record_id: UUID) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted, False if none matched
        """
        pass

    @abstractmethod
    async def list_records(self, collection: Collection) -> list[dict]:
        """
        List every record of a collection in insertion order.
        """
        pass

    @abstractmethod
    async def replace_records(self, collection: Collection, records: list[dict]) -> None:
        """
        Replace the whole content of a collection (used by restore).
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one statement upload).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
