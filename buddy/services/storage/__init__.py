"""Storage services package."""

from buddy.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from buddy.services.storage.local_json import LocalJSONStorage
from buddy.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
    "LocalJSONStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
