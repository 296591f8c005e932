"""
Tests for the Google Sheets stores against an in-memory worksheet.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from buddy.models.audit import AuditEventBuilder
from buddy.models.ledger import Collection, ExpenseCategory, Expense
from buddy.services.ledger import LedgerService
from buddy.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    NotFoundError,
)
from buddy.services.storage.google_sheets import AUDIT_COLUMNS, collection_columns


class FakeWorksheet:
    """The subset of gspread.Worksheet the stores use."""

    def __init__(self, header: list[str]):
        self.values: list[list[str]] = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.values]

    def row_values(self, index):
        return list(self.values[index - 1]) if len(self.values) >= index else []

    def append_row(self, row, value_input_option=None):
        self.values.append([str(cell) for cell in row])

    def update(self, range_name, values, value_input_option=None):
        start = int(range_name[1:]) - 1
        for offset, row in enumerate(values):
            index = start + offset
            while len(self.values) <= index:
                self.values.append([])
            self.values[index] = [str(cell) for cell in row]

    def delete_rows(self, index):
        del self.values[index - 1]

    def clear(self):
        self.values = []


class FakeSheetsClient:
    def __init__(self):
        self.sheets: dict[str, FakeWorksheet] = {}

    def get_collection_sheet(self, collection: Collection) -> FakeWorksheet:
        if collection.value not in self.sheets:
            self.sheets[collection.value] = FakeWorksheet(collection_columns(collection))
        return self.sheets[collection.value]

    def get_audit_sheet(self) -> FakeWorksheet:
        if "AuditLog" not in self.sheets:
            self.sheets["AuditLog"] = FakeWorksheet(AUDIT_COLUMNS)
        return self.sheets["AuditLog"]


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


@pytest.fixture
def sheets_ledger(sheets_client):
    return LedgerService(GoogleSheetsLedgerStorage(sheets_client))


class TestGoogleSheetsLedgerStorage:
    """Tests for rows in, records out."""

    def test_columns_are_camel_case(self):
        columns = collection_columns(Collection.EXPENSE_CATEGORIES)
        assert columns == ["id", "name", "maxBudget", "maxAnnualBudget", "isArchived"]

    async def test_round_trip_through_rows(self, sheets_ledger, sheets_client):
        category = await sheets_ledger.add_expense_category(ExpenseCategory(name="Food"))

        row = sheets_client.sheets["expenseCategories"].values[1]
        assert row == [str(category.id), "Food", "", "", "false"]

        categories = await sheets_ledger.list_expense_categories()
        assert categories == [category]

    async def test_update_rewrites_row(self, sheets_ledger, sheets_client):
        expense = await sheets_ledger.add_expense(
            Expense(date=date(2025, 3, 1), amount=Decimal("4"), description="Bus")
        )
        await sheets_ledger.update_expense(expense.id, description="Train")

        expenses = await sheets_ledger.list_expenses()
        assert expenses[0].description == "Train"
        assert len(sheets_client.sheets["expenses"].values) == 2

    async def test_older_header_stays_aligned(self, sheets_client):
        sheets_client.sheets["expenseCategories"] = FakeWorksheet(["id", "isArchived", "name", "maxBudget"])
        ledger = LedgerService(GoogleSheetsLedgerStorage(sheets_client))

        category = await ledger.add_expense_category(
            ExpenseCategory(name="Travel", max_budget=Decimal("50"), max_annual_budget=Decimal("900"))
        )

        sheet = sheets_client.sheets["expenseCategories"]
        assert sheet.values[0] == ["id", "isArchived", "name", "maxBudget", "maxAnnualBudget"]
        assert sheet.values[1] == [str(category.id), "false", "Travel", "50.00", "900.00"]
        assert await ledger.list_expense_categories() == [category]

    async def test_update_missing_raises(self, sheets_client):
        storage = GoogleSheetsLedgerStorage(sheets_client)
        with pytest.raises(NotFoundError):
            await storage.update_record(Collection.EXPENSES, uuid4(), {})

    async def test_delete(self, sheets_ledger):
        expense = await sheets_ledger.add_expense(Expense(date=date(2025, 3, 1), amount=Decimal("4")))
        assert await sheets_ledger.remove_expense(expense.id) is True
        assert await sheets_ledger.list_expenses() == []
        assert await sheets_ledger.remove_expense(expense.id) is False

    async def test_replace_keeps_header(self, sheets_client):
        storage = GoogleSheetsLedgerStorage(sheets_client)
        record = ExpenseCategory(name="Rent").to_record()

        await storage.replace_records(Collection.EXPENSE_CATEGORIES, [record])

        values = sheets_client.sheets["expenseCategories"].values
        assert values[0] == collection_columns(Collection.EXPENSE_CATEGORIES)
        assert len(values) == 2


class TestGoogleSheetsAuditStorage:
    """Tests for the append-only audit sheet."""

    async def test_events_round_trip(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        correlation_id = uuid4()
        event = AuditEventBuilder.expenses_proposed(uuid4(), 3, correlation_id)

        await storage.append_event(event)
        await storage.append_event(AuditEventBuilder.backup_created({"expenses": 1}))

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_id for e in related] == [event.event_id]
        assert related[0].details == {"count": 3}

        recent = await storage.get_recent_events(limit=1)
        assert len(recent) == 1

    async def test_bad_rows_are_skipped(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        sheets_client.get_audit_sheet().values.append(["not-a-uuid", "yesterday"])
        await storage.append_event(AuditEventBuilder.backup_created({}))

        assert len(await storage.get_recent_events()) == 1
