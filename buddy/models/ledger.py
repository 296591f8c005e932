"""
Core Data Models for Buddy

These models define the schemas for every record the ledger persists.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Serialize to the camelCase JSON used by the stores and the API

DESIGN DECISION: Records are simple. There is no referential integrity
between entities; an expense points at its category by id, or by name for
records that predate category ids.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Two-decimal money amount
Money = Annotated[Decimal, AfterValidator(_quantize)]


class LedgerModel(BaseModel):
    """Base for all persisted records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_record(self) -> dict:
        """Serialize to the JSON-compatible dict the stores keep."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# COLLECTIONS
# =============================================================================

class Collection(str, Enum):
    """
    Named collections held by a store.

    The values double as the keys of the local JSON document, the worksheet
    titles of the hosted store and the keys of a backup file.
    """
    ACCOUNT_BALANCES = "accountBalances"
    EXPENSES = "expenses"
    EXPENSE_CATEGORIES = "expenseCategories"
    INCOMES = "incomes"
    INCOME_CATEGORIES = "incomeCategories"
    INVESTMENTS = "investments"
    INVESTMENT_CONTRIBUTIONS = "investmentContributions"
    INVESTMENT_VALUES = "investmentValues"


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(LedgerModel):
    """
    Shared shape of expenses and incomes.

    The amount is not constrained here: the validator reports non-positive
    amounts so the user sees which row is wrong.
    """

    id: UUID = Field(default_factory=uuid4)
    date: date
    amount: Money
    description: str = Field(default="", max_length=500)
    category_id: Optional[UUID] = Field(
        default=None,
        description="Id of the category this record belongs to"
    )
    category: Optional[str] = Field(
        default=None,
        description="Legacy category name, used when no category id is set"
    )
    created_at: datetime = Field(default_factory=_utcnow)

    def belongs_to(self, category_id: UUID, category_name: Optional[str] = None) -> bool:
        """True if this record references the category by id, or by name as a fallback."""
        if self.category_id is not None:
            return self.category_id == category_id
        return category_name is not None and self.category == category_name


class Expense(Transaction):
    """A single expense."""


class Income(Transaction):
    """A single income."""


# =============================================================================
# CATEGORIES
# =============================================================================

class ExpenseCategory(LedgerModel):
    """
    User-defined expense category.

    max_budget is the monthly budget. max_annual_budget overrides the
    annual budget; when absent the annual budget is 12 x the monthly one.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    max_budget: Optional[Money] = Field(default=None, ge=0)
    max_annual_budget: Optional[Money] = Field(default=None, ge=0)
    is_archived: bool = False


class IncomeCategory(LedgerModel):
    """User-defined income category with an optional target."""

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=100)
    target_amount: Optional[Money] = Field(default=None, ge=0)
    is_archived: bool = False


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountBalance(LedgerModel):
    """Balance of one account at the end of a month."""

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=100)
    amount: Money
    year: int = Field(..., ge=1900, le=9999)
    month: int = Field(..., ge=1, le=12)
    created_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# INVESTMENTS
# =============================================================================

class Investment(LedgerModel):
    """An investment tracked through contributions and valuations."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    created_date: date = Field(default_factory=date.today)
    is_active: bool = True


class InvestmentContribution(LedgerModel):
    """Money put into an investment. Append-only."""

    id: UUID = Field(default_factory=uuid4)
    investment_id: UUID
    amount: Money
    date: date
    description: Optional[str] = None


class InvestmentValue(LedgerModel):
    """A valuation of an investment on a date. Append-only."""

    id: UUID = Field(default_factory=uuid4)
    investment_id: UUID
    value: Money
    date: date
    description: Optional[str] = None


COLLECTION_MODELS: dict[Collection, type[LedgerModel]] = {
    Collection.ACCOUNT_BALANCES: AccountBalance,
    Collection.EXPENSES: Expense,
    Collection.EXPENSE_CATEGORIES: ExpenseCategory,
    Collection.INCOMES: Income,
    Collection.INCOME_CATEGORIES: IncomeCategory,
    Collection.INVESTMENTS: Investment,
    Collection.INVESTMENT_CONTRIBUTIONS: InvestmentContribution,
    Collection.INVESTMENT_VALUES: InvestmentValue,
}


# =============================================================================
# PERIOD
# =============================================================================

class Period(BaseModel):
    """
    The selected (year, month) that drives every filter in the app.

    Months are 1-based.
    """
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1900, le=9999)
    month: int = Field(..., ge=1, le=12)

    @classmethod
    def of(cls, day: date) -> "Period":
        return cls(year=day.year, month=day.month)

    @property
    def months_elapsed(self) -> int:
        """Months from January up to and including this one."""
        return self.month

    @property
    def label(self) -> str:
        """Short label such as 'Mar-2025'."""
        return date(self.year, self.month, 1).strftime("%b-%Y")

    def previous(self) -> "Period":
        if self.month == 1:
            return Period(year=self.year - 1, month=12)
        return Period(year=self.year, month=self.month - 1)

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    def contains_year_to_date(self, day: date) -> bool:
        return day.year == self.year and day.month <= self.month

    def contains_year(self, day: date) -> bool:
        return day.year == self.year

    def default_date(self, today: Optional[date] = None) -> date:
        """Today when it falls inside the period, else the 15th of the month."""
        today = today or date.today()
        if self.contains(today):
            return today
        return date(self.year, self.month, 15)
