"""
Backup and Restore

A backup is one JSON document keyed by collection name, each holding the
list of records in their stored (camelCase) form:

    {"accountBalances": [...], "expenseCategories": [...],
     "incomeCategories": [...], "expenses": [...], "incomes": [...],
     "investments": [...], "investmentContributions": [...],
     "investmentValues": [...]}

CRITICAL: Restore REPLACES the ledger. Every collection in the file is
validated before any of them is written, so a bad file changes nothing.
"""

import json
from datetime import date
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from buddy.models.ledger import COLLECTION_MODELS, Collection
from buddy.services.ledger import LedgerService, record_to_model

logger = structlog.get_logger(__name__)

# Collections every backup must contain
REQUIRED_COLLECTIONS = (
    Collection.ACCOUNT_BALANCES,
    Collection.EXPENSE_CATEGORIES,
    Collection.INCOME_CATEGORIES,
    Collection.EXPENSES,
    Collection.INCOMES,
)

# Collections restored only when present in the file
OPTIONAL_COLLECTIONS = (
    Collection.INVESTMENTS,
    Collection.INVESTMENT_CONTRIBUTIONS,
    Collection.INVESTMENT_VALUES,
)


class BackupRestoreError(Exception):
    """The backup file cannot be restored."""
    pass


def backup_filename(today: Optional[date] = None) -> str:
    """'buddy-app-backup-2025-03-31.json'."""
    today = today or date.today()
    return f"buddy-app-backup-{today.isoformat()}.json"


class BackupService:
    """Creates and restores whole-ledger backups."""

    def __init__(self, ledger: LedgerService, audit_logger=None):
        self._ledger = ledger
        self._audit = audit_logger

    async def create_backup(self) -> dict[str, list[dict]]:
        """Every collection in stored form."""
        storage = self._ledger.storage
        backup = {}
        for collection in REQUIRED_COLLECTIONS + OPTIONAL_COLLECTIONS:
            backup[collection.value] = await storage.list_records(collection)

        counts = {name: len(records) for name, records in backup.items()}
        logger.info("backup_created", counts=counts)
        if self._audit:
            await self._audit.log_backup_created(counts)
        return backup

    async def create_backup_json(self) -> str:
        return json.dumps(await self.create_backup(), indent=2, ensure_ascii=False)

    def _parse(self, data: Union[str, bytes, dict]) -> dict:
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise BackupRestoreError(f"Backup file is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise BackupRestoreError("Backup file must contain a JSON object")
        return data

    def _validate_collection(self, collection: Collection, records) -> list[dict]:
        if not isinstance(records, list):
            raise BackupRestoreError(f"'{collection.value}' must be a list")

        model_cls = COLLECTION_MODELS[collection]
        validated = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise BackupRestoreError(f"'{collection.value}' item {index} is not an object")
            try:
                validated.append(record_to_model(model_cls, record).to_record())
            except ValidationError as e:
                raise BackupRestoreError(
                    f"'{collection.value}' item {index} is invalid: {e.error_count()} errors"
                )
        return validated

    async def restore_backup(self, data: Union[str, bytes, dict]) -> dict[str, int]:
        """
        Replace the ledger with the content of a backup.

        Returns:
            Number of records restored per collection

        Raises:
            BackupRestoreError: invalid file; nothing was changed
        """
        payload = self._parse(data)

        missing = [c.value for c in REQUIRED_COLLECTIONS if c.value not in payload]
        if missing:
            raise BackupRestoreError(f"Backup file is missing: {', '.join(missing)}")

        validated: dict[Collection, list[dict]] = {}
        for collection in REQUIRED_COLLECTIONS + OPTIONAL_COLLECTIONS:
            if collection.value in payload:
                validated[collection] = self._validate_collection(
                    collection, payload[collection.value]
                )

        storage = self._ledger.storage
        for collection, records in validated.items():
            await storage.replace_records(collection, records)

        counts = {c.value: len(records) for c, records in validated.items()}
        logger.info("backup_restored", counts=counts)
        if self._audit:
            await self._audit.log_backup_restored(counts)
        return counts
