"""
Tests for whole-ledger backup and restore.
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from buddy.models.ledger import Collection, Expense, ExpenseCategory, Investment
from buddy.services import BackupRestoreError, BackupService, backup_filename


@pytest.fixture
def backup(ledger, audit_logger):
    return BackupService(ledger, audit_logger)


def empty_backup() -> dict:
    return {
        "accountBalances": [],
        "expenseCategories": [],
        "incomeCategories": [],
        "expenses": [],
        "incomes": [],
    }


class TestBackup:
    """Tests for creating backups."""

    def test_filename(self):
        assert backup_filename(date(2025, 3, 31)) == "buddy-app-backup-2025-03-31.json"

    async def test_contains_every_collection(self, ledger, backup, audit_storage):
        await ledger.add_expense(Expense(date=date(2025, 3, 1), amount=Decimal("2")))

        data = await backup.create_backup()

        assert set(data) == {c.value for c in Collection}
        assert data["expenses"][0]["amount"] == "2.00"
        assert audit_storage.types()[-1] == "backup_created"

    async def test_json_round_trip(self, ledger, backup):
        category = await ledger.add_expense_category(ExpenseCategory(name="Food"))
        text = await backup.create_backup_json()

        await ledger.remove_expense_category(category.id)
        counts = await backup.restore_backup(text)

        assert counts["expenseCategories"] == 1
        assert await ledger.list_expense_categories() == [category]


class TestRestore:
    """Tests for replacing the ledger from a file."""

    async def test_replaces_existing_data(self, ledger, backup, audit_storage):
        await ledger.add_expense(Expense(date=date(2025, 3, 1), amount=Decimal("2")))

        counts = await backup.restore_backup(empty_backup())

        assert counts["expenses"] == 0
        assert await ledger.list_expenses() == []
        assert audit_storage.types()[-1] == "backup_restored"

    async def test_investment_collections_are_optional(self, ledger, backup):
        investment = await ledger.add_investment(Investment(name="ETF"))

        counts = await backup.restore_backup(empty_backup())

        assert "investments" not in counts
        assert await ledger.list_investments() == [investment]

    async def test_missing_collection_is_rejected(self, backup):
        data = empty_backup()
        del data["incomes"]
        with pytest.raises(BackupRestoreError, match="incomes"):
            await backup.restore_backup(data)

    async def test_invalid_json(self, backup):
        with pytest.raises(BackupRestoreError):
            await backup.restore_backup(b"{oops")

    async def test_not_an_object(self, backup):
        with pytest.raises(BackupRestoreError):
            await backup.restore_backup("[]")

    async def test_invalid_record_changes_nothing(self, ledger, backup):
        await ledger.add_expense(Expense(date=date(2025, 3, 1), amount=Decimal("2")))
        data = empty_backup()
        data["expenseCategories"] = [{"name": "Food"}]
        data["expenses"] = [{"date": "not a date", "amount": "1"}]

        with pytest.raises(BackupRestoreError, match="expenses"):
            await backup.restore_backup(json.dumps(data))

        assert len(await ledger.list_expenses()) == 1
        assert await ledger.list_expense_categories() == []

    async def test_records_get_defaults(self, ledger, backup):
        data = empty_backup()
        data["expenseCategories"] = [{"name": "Food"}]

        await backup.restore_backup(data)

        categories = await ledger.list_expense_categories()
        assert categories[0].name == "Food"
        assert categories[0].is_archived is False
