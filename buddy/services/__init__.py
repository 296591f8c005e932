"""Services package."""

from buddy.services.backup import BackupRestoreError, BackupService, backup_filename
from buddy.services.ledger import LedgerService, LedgerSnapshot
from buddy.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    LedgerStorageInterface,
    LocalJSONStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Ledger services
    "BackupRestoreError",
    "BackupService",
    "backup_filename",
    "LedgerService",
    "LedgerSnapshot",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "LedgerStorageInterface",
    "LocalJSONStorage",
    "NotFoundError",
    "StorageError",
]
