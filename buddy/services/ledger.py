"""
Ledger Service

Typed access to every collection on top of a LedgerStorageInterface.

DESIGN DECISION: The stores only know JSON dicts. This layer:
1. Turns records into models (and back) so callers never touch dicts
2. Audits every mutation
3. Answers the handful of lookups the pages need (balances of a month,
   contributions and latest value of an investment)

Records are re-validated on every read. A store that keeps blank cells
(Google Sheets) returns None for them; those keys are dropped so model
defaults apply.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field

from buddy.models.ledger import (
    COLLECTION_MODELS,
    AccountBalance,
    Collection,
    Expense,
    ExpenseCategory,
    Income,
    IncomeCategory,
    Investment,
    InvestmentContribution,
    InvestmentValue,
    LedgerModel,
    Period,
)
from buddy.services.storage import LedgerStorageInterface, NotFoundError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=LedgerModel)


class LedgerSnapshot(BaseModel):
    """Every collection loaded at once, for reports and backups."""

    model_config = ConfigDict(frozen=True)

    account_balances: list[AccountBalance] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    expense_categories: list[ExpenseCategory] = Field(default_factory=list)
    incomes: list[Income] = Field(default_factory=list)
    income_categories: list[IncomeCategory] = Field(default_factory=list)
    investments: list[Investment] = Field(default_factory=list)
    investment_contributions: list[InvestmentContribution] = Field(default_factory=list)
    investment_values: list[InvestmentValue] = Field(default_factory=list)


# Snapshot attribute holding each collection
SNAPSHOT_FIELDS: dict[Collection, str] = {
    Collection.ACCOUNT_BALANCES: "account_balances",
    Collection.EXPENSES: "expenses",
    Collection.EXPENSE_CATEGORIES: "expense_categories",
    Collection.INCOMES: "incomes",
    Collection.INCOME_CATEGORIES: "income_categories",
    Collection.INVESTMENTS: "investments",
    Collection.INVESTMENT_CONTRIBUTIONS: "investment_contributions",
    Collection.INVESTMENT_VALUES: "investment_values",
}


def record_to_model(model_cls: type[ModelT], record: dict) -> ModelT:
    """Validate a stored record, ignoring blank values."""
    return model_cls.model_validate({k: v for k, v in record.items() if v is not None})


class LedgerService:
    """
    CRUD over the ledger with auditing.

    Mutations are audited with the collection name as entity type.
    Reads never are.
    """

    def __init__(self, storage: LedgerStorageInterface, audit_logger=None):
        self._storage = storage
        self._audit = audit_logger

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    # -------------------------------------------------------------------------
    # Generic operations
    # -------------------------------------------------------------------------

    async def _add(
        self,
        collection: Collection,
        model: ModelT,
        correlation_id: Optional[UUID] = None,
    ) -> ModelT:
        await self._storage.add_record(collection, model.to_record())
        logger.info("record_added", collection=collection.value, id=str(model.id))
        if self._audit:
            await self._audit.log_record_created(
                collection=collection.value,
                record_id=model.id,
                correlation_id=correlation_id,
            )
        return model

    async def _update(self, collection: Collection, record_id: UUID, changes: dict):
        model_cls = COLLECTION_MODELS[collection]
        current = await self._storage.get_record(collection, record_id)
        if current is None:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")

        merged = record_to_model(model_cls, current).model_dump()
        merged.update(changes)
        updated = model_cls.model_validate(merged)

        await self._storage.update_record(collection, record_id, updated.to_record())
        if self._audit:
            await self._audit.log_record_updated(
                collection=collection.value,
                record_id=record_id,
                fields=sorted(changes),
            )
        return updated

    async def _remove(self, collection: Collection, record_id: UUID) -> bool:
        removed = await self._storage.delete_record(collection, record_id)
        if removed and self._audit:
            await self._audit.log_record_deleted(
                collection=collection.value,
                record_id=record_id,
            )
        return removed

    async def _list(self, collection: Collection) -> list:
        model_cls = COLLECTION_MODELS[collection]
        records = await self._storage.list_records(collection)
        return [record_to_model(model_cls, record) for record in records]

    async def snapshot(self) -> LedgerSnapshot:
        """Load every collection."""
        data = {}
        for collection, attr in SNAPSHOT_FIELDS.items():
            data[attr] = await self._list(collection)
        return LedgerSnapshot(**data)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(self, expense: Expense, correlation_id: Optional[UUID] = None) -> Expense:
        return await self._add(Collection.EXPENSES, expense, correlation_id)

    async def add_expenses(
        self,
        expenses: Iterable[Expense],
        correlation_id: Optional[UUID] = None,
    ) -> list[Expense]:
        """Add a batch. Callers validate the whole batch first."""
        return [await self.add_expense(e, correlation_id) for e in expenses]

    async def update_expense(self, expense_id: UUID, **changes) -> Expense:
        return await self._update(Collection.EXPENSES, expense_id, changes)

    async def remove_expense(self, expense_id: UUID) -> bool:
        return await self._remove(Collection.EXPENSES, expense_id)

    async def list_expenses(self) -> list[Expense]:
        return await self._list(Collection.EXPENSES)

    async def expenses_in(self, period: Period) -> list[Expense]:
        return [e for e in await self.list_expenses() if period.contains(e.date)]

    # -------------------------------------------------------------------------
    # Incomes
    # -------------------------------------------------------------------------

    async def add_income(self, income: Income, correlation_id: Optional[UUID] = None) -> Income:
        return await self._add(Collection.INCOMES, income, correlation_id)

    async def add_incomes(
        self,
        incomes: Iterable[Income],
        correlation_id: Optional[UUID] = None,
    ) -> list[Income]:
        return [await self.add_income(i, correlation_id) for i in incomes]

    async def update_income(self, income_id: UUID, **changes) -> Income:
        return await self._update(Collection.INCOMES, income_id, changes)

    async def remove_income(self, income_id: UUID) -> bool:
        return await self._remove(Collection.INCOMES, income_id)

    async def list_incomes(self) -> list[Income]:
        return await self._list(Collection.INCOMES)

    async def incomes_in(self, period: Period) -> list[Income]:
        return [i for i in await self.list_incomes() if period.contains(i.date)]

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_expense_category(self, category: ExpenseCategory) -> ExpenseCategory:
        return await self._add(Collection.EXPENSE_CATEGORIES, category)

    async def update_expense_category(self, category_id: UUID, **changes) -> ExpenseCategory:
        return await self._update(Collection.EXPENSE_CATEGORIES, category_id, changes)

    async def archive_expense_category(self, category_id: UUID, archived: bool = True) -> ExpenseCategory:
        return await self.update_expense_category(category_id, is_archived=archived)

    async def remove_expense_category(self, category_id: UUID) -> bool:
        return await self._remove(Collection.EXPENSE_CATEGORIES, category_id)

    async def list_expense_categories(self, include_archived: bool = True) -> list[ExpenseCategory]:
        categories = await self._list(Collection.EXPENSE_CATEGORIES)
        if include_archived:
            return categories
        return [c for c in categories if not c.is_archived]

    async def add_income_category(self, category: IncomeCategory) -> IncomeCategory:
        return await self._add(Collection.INCOME_CATEGORIES, category)

    async def update_income_category(self, category_id: UUID, **changes) -> IncomeCategory:
        return await self._update(Collection.INCOME_CATEGORIES, category_id, changes)

    async def archive_income_category(self, category_id: UUID, archived: bool = True) -> IncomeCategory:
        return await self.update_income_category(category_id, is_archived=archived)

    async def remove_income_category(self, category_id: UUID) -> bool:
        return await self._remove(Collection.INCOME_CATEGORIES, category_id)

    async def list_income_categories(self, include_archived: bool = True) -> list[IncomeCategory]:
        categories = await self._list(Collection.INCOME_CATEGORIES)
        if include_archived:
            return categories
        return [c for c in categories if not c.is_archived]

    # -------------------------------------------------------------------------
    # Account balances
    # -------------------------------------------------------------------------

    async def add_account_balance(self, balance: AccountBalance) -> AccountBalance:
        return await self._add(Collection.ACCOUNT_BALANCES, balance)

    async def update_account_balance(self, balance_id: UUID, **changes) -> AccountBalance:
        return await self._update(Collection.ACCOUNT_BALANCES, balance_id, changes)

    async def remove_account_balance(self, balance_id: UUID) -> bool:
        return await self._remove(Collection.ACCOUNT_BALANCES, balance_id)

    async def list_account_balances(self) -> list[AccountBalance]:
        return await self._list(Collection.ACCOUNT_BALANCES)

    async def account_balances_for(self, period: Period) -> list[AccountBalance]:
        return [
            b for b in await self.list_account_balances()
            if b.year == period.year and b.month == period.month
        ]

    # -------------------------------------------------------------------------
    # Investments
    # -------------------------------------------------------------------------

    async def add_investment(self, investment: Investment) -> Investment:
        return await self._add(Collection.INVESTMENTS, investment)

    async def update_investment(self, investment_id: UUID, **changes) -> Investment:
        return await self._update(Collection.INVESTMENTS, investment_id, changes)

    async def remove_investment(self, investment_id: UUID) -> bool:
        """Remove an investment together with its contributions and values."""
        for contribution in await self.contributions_for(investment_id):
            await self._remove(Collection.INVESTMENT_CONTRIBUTIONS, contribution.id)
        for value in await self.values_for(investment_id):
            await self._remove(Collection.INVESTMENT_VALUES, value.id)
        return await self._remove(Collection.INVESTMENTS, investment_id)

    async def list_investments(self, active_only: bool = False) -> list[Investment]:
        investments = await self._list(Collection.INVESTMENTS)
        if active_only:
            return [i for i in investments if i.is_active]
        return investments

    async def get_investment(self, investment_id: UUID) -> Optional[Investment]:
        record = await self._storage.get_record(Collection.INVESTMENTS, investment_id)
        return record_to_model(Investment, record) if record else None

    async def add_contribution(self, contribution: InvestmentContribution) -> InvestmentContribution:
        return await self._add(Collection.INVESTMENT_CONTRIBUTIONS, contribution)

    async def remove_contribution(self, contribution_id: UUID) -> bool:
        return await self._remove(Collection.INVESTMENT_CONTRIBUTIONS, contribution_id)

    async def contributions_for(self, investment_id: UUID) -> list[InvestmentContribution]:
        """Contributions of one investment, oldest first."""
        contributions = [
            c for c in await self._list(Collection.INVESTMENT_CONTRIBUTIONS)
            if c.investment_id == investment_id
        ]
        return sorted(contributions, key=lambda c: c.date)

    async def total_contributions(self, investment_id: UUID) -> Decimal:
        return sum((c.amount for c in await self.contributions_for(investment_id)), Decimal("0"))

    async def add_value(self, value: InvestmentValue) -> InvestmentValue:
        return await self._add(Collection.INVESTMENT_VALUES, value)

    async def remove_value(self, value_id: UUID) -> bool:
        return await self._remove(Collection.INVESTMENT_VALUES, value_id)

    async def values_for(self, investment_id: UUID) -> list[InvestmentValue]:
        """Valuations of one investment, oldest first."""
        values = [
            v for v in await self._list(Collection.INVESTMENT_VALUES)
            if v.investment_id == investment_id
        ]
        return sorted(values, key=lambda v: v.date)

    async def latest_value(self, investment_id: UUID) -> Optional[Decimal]:
        """Value with the most recent date, None if never valued."""
        latest = latest_value_of(await self.values_for(investment_id))
        return latest.value if latest else None


def latest_value_of(values: Iterable[InvestmentValue], on_or_before: Optional[date] = None) -> Optional[InvestmentValue]:
    """The most recent valuation, optionally not after a given day."""
    candidates = [v for v in values if on_or_before is None or v.date <= on_or_before]
    if not candidates:
        return None
    return max(candidates, key=lambda v: v.date)
