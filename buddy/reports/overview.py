"""
Overview Reports

Pure functions over a LedgerSnapshot: filter by period, sum, compare with
budgets. Nothing here touches storage.

DELTA CONVENTION: delta = budget - actual.
Positive means under budget, negative means over budget.
"""

from decimal import Decimal
from typing import Iterable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from buddy.models.ledger import (
    AccountBalance,
    ExpenseCategory,
    IncomeCategory,
    Investment,
    InvestmentContribution,
    InvestmentValue,
    Period,
    Transaction,
)
from buddy.services.ledger import LedgerSnapshot, latest_value_of

ZERO = Decimal("0")

DatedT = TypeVar("DatedT")


# =============================================================================
# FILTERS AND SUMS
# =============================================================================

def in_month(records: Iterable[DatedT], period: Period) -> list[DatedT]:
    return [r for r in records if period.contains(r.date)]


def in_year_to_date(records: Iterable[DatedT], period: Period) -> list[DatedT]:
    return [r for r in records if period.contains_year_to_date(r.date)]


def in_year(records: Iterable[DatedT], period: Period) -> list[DatedT]:
    return [r for r in records if period.contains_year(r.date)]


def total_amount(records: Iterable) -> Decimal:
    return sum((r.amount for r in records), ZERO)


def for_category(
    records: Iterable[Transaction],
    category_id: UUID,
    category_name: Optional[str] = None,
) -> list[Transaction]:
    return [r for r in records if r.belongs_to(category_id, category_name)]


def _delta(budget: Optional[Decimal], actual: Decimal) -> Optional[Decimal]:
    return budget - actual if budget is not None else None


# =============================================================================
# CATEGORY OVERVIEWS
# =============================================================================

class ExpenseCategoryRow(BaseModel):
    """One expense category against its budgets."""

    category_id: UUID
    name: str
    current: Decimal
    monthly_budget: Optional[Decimal] = None
    monthly_delta: Optional[Decimal] = None
    year_to_date: Decimal
    year_to_date_budget: Optional[Decimal] = None
    ytd_delta: Optional[Decimal] = None
    annual: Decimal
    annual_budget: Optional[Decimal] = None
    annual_delta: Optional[Decimal] = None


def annual_budget_of(category: ExpenseCategory) -> Optional[Decimal]:
    """The explicit annual budget, else 12 x the monthly one."""
    if category.max_annual_budget is not None:
        return category.max_annual_budget
    if category.max_budget is not None:
        return category.max_budget * 12
    return None


def expense_category_rows(
    categories: Iterable[ExpenseCategory],
    expenses: Iterable[Transaction],
    period: Period,
) -> list[ExpenseCategoryRow]:
    """Rows for every non-archived category."""
    expenses = list(expenses)
    rows = []

    for category in categories:
        if category.is_archived:
            continue
        own = for_category(expenses, category.id, category.name)
        current = total_amount(in_month(own, period))
        year_to_date = total_amount(in_year_to_date(own, period))
        annual = total_amount(in_year(own, period))

        monthly_budget = category.max_budget
        ytd_budget = (
            monthly_budget * period.months_elapsed
            if monthly_budget is not None else None
        )
        annual_budget = annual_budget_of(category)

        rows.append(ExpenseCategoryRow(
            category_id=category.id,
            name=category.name,
            current=current,
            monthly_budget=monthly_budget,
            monthly_delta=_delta(monthly_budget, current),
            year_to_date=year_to_date,
            year_to_date_budget=ytd_budget,
            ytd_delta=_delta(ytd_budget, year_to_date),
            annual=annual,
            annual_budget=annual_budget,
            annual_delta=_delta(annual_budget, annual),
        ))

    return rows


def _sum_optional(values: Iterable[Optional[Decimal]]) -> Optional[Decimal]:
    present = [v for v in values if v is not None]
    return sum(present, ZERO) if present else None


def expense_totals_row(rows: list[ExpenseCategoryRow]) -> ExpenseCategoryRow:
    """Column totals; budgets only count categories that have one."""
    monthly_budget = _sum_optional(r.monthly_budget for r in rows)
    ytd_budget = _sum_optional(r.year_to_date_budget for r in rows)
    annual_budget = _sum_optional(r.annual_budget for r in rows)
    current = sum((r.current for r in rows), ZERO)
    year_to_date = sum((r.year_to_date for r in rows), ZERO)
    annual = sum((r.annual for r in rows), ZERO)

    return ExpenseCategoryRow(
        category_id=UUID(int=0),
        name="Total",
        current=current,
        monthly_budget=monthly_budget,
        monthly_delta=_delta(monthly_budget, current),
        year_to_date=year_to_date,
        year_to_date_budget=ytd_budget,
        ytd_delta=_delta(ytd_budget, year_to_date),
        annual=annual,
        annual_budget=annual_budget,
        annual_delta=_delta(annual_budget, annual),
    )


class IncomeCategoryRow(BaseModel):
    category_id: UUID
    name: str
    current: Decimal
    year_to_date: Decimal
    annual: Decimal
    target: Optional[Decimal] = None


def income_category_rows(
    categories: Iterable[IncomeCategory],
    incomes: Iterable[Transaction],
    period: Period,
) -> list[IncomeCategoryRow]:
    incomes = list(incomes)
    rows = []
    for category in categories:
        if category.is_archived:
            continue
        own = for_category(incomes, category.id, category.title)
        rows.append(IncomeCategoryRow(
            category_id=category.id,
            name=category.title,
            current=total_amount(in_month(own, period)),
            year_to_date=total_amount(in_year_to_date(own, period)),
            annual=total_amount(in_year(own, period)),
            target=category.target_amount,
        ))
    return rows


# =============================================================================
# INVESTMENTS
# =============================================================================

class InvestmentRow(BaseModel):
    investment_id: UUID
    name: str
    current_value: Optional[Decimal] = None
    total_contributions: Decimal
    profit: Decimal
    profit_percentage: Decimal


class InvestmentOverview(BaseModel):
    rows: list[InvestmentRow]
    total_value: Decimal
    total_invested: Decimal
    total_profit: Decimal
    total_profit_percentage: Decimal


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * 100 if whole > 0 else ZERO


def investment_row(
    investment: Investment,
    contributions: Iterable[InvestmentContribution],
    values: Iterable[InvestmentValue],
) -> InvestmentRow:
    """
    P&L of one investment: latest value minus total contributions.

    An investment that was never valued has no current value and a P&L of 0.
    """
    invested = total_amount(c for c in contributions if c.investment_id == investment.id)
    latest = latest_value_of(v for v in values if v.investment_id == investment.id)
    current_value = latest.value if latest else None
    profit = current_value - invested if current_value is not None else ZERO

    return InvestmentRow(
        investment_id=investment.id,
        name=investment.name,
        current_value=current_value,
        total_contributions=invested,
        profit=profit,
        profit_percentage=_percentage(profit, invested),
    )


def investment_overview(
    investments: Iterable[Investment],
    contributions: Iterable[InvestmentContribution],
    values: Iterable[InvestmentValue],
) -> InvestmentOverview:
    """Rows for active investments plus totals."""
    contributions = list(contributions)
    values = list(values)
    rows = [
        investment_row(i, contributions, values)
        for i in investments
        if i.is_active
    ]
    total_value = sum((r.current_value or ZERO for r in rows), ZERO)
    total_invested = sum((r.total_contributions for r in rows), ZERO)
    total_profit = total_value - total_invested

    return InvestmentOverview(
        rows=rows,
        total_value=total_value,
        total_invested=total_invested,
        total_profit=total_profit,
        total_profit_percentage=_percentage(total_profit, total_invested),
    )


# =============================================================================
# YEAR TO DATE
# =============================================================================

class YTDOverview(BaseModel):
    ytd_income: Decimal
    ytd_expenses: Decimal
    ytd_investment_contributions: Decimal
    ytd_spent: Decimal
    ytd_budget: Decimal
    total_invested: Decimal
    total_investment_value: Decimal
    ytd_savings: Decimal
    ytd_savings_rate: Decimal


def ytd_overview(snapshot: LedgerSnapshot, period: Period) -> YTDOverview:
    """
    Year-to-date figures up to and including the selected month.

    Spent excludes money moved into investments. The budget is the monthly
    budget of every non-archived category times the months elapsed.
    """
    ytd_income = total_amount(in_year_to_date(snapshot.incomes, period))
    ytd_expenses = total_amount(in_year_to_date(snapshot.expenses, period))
    ytd_contributions = total_amount(
        in_year_to_date(snapshot.investment_contributions, period)
    )
    ytd_spent = ytd_expenses - ytd_contributions

    monthly_budget = sum(
        (c.max_budget or ZERO for c in snapshot.expense_categories if not c.is_archived),
        ZERO,
    )
    ytd_budget = monthly_budget * period.months_elapsed

    total_invested = total_amount(snapshot.investment_contributions)
    total_value = ZERO
    for investment in snapshot.investments:
        if not investment.is_active:
            continue
        latest = latest_value_of(
            v for v in snapshot.investment_values if v.investment_id == investment.id
        )
        if latest:
            total_value += latest.value

    ytd_savings = ytd_income - ytd_spent
    savings_rate = ytd_savings / ytd_income if ytd_income > 0 else ZERO

    return YTDOverview(
        ytd_income=ytd_income,
        ytd_expenses=ytd_expenses,
        ytd_investment_contributions=ytd_contributions,
        ytd_spent=ytd_spent,
        ytd_budget=ytd_budget,
        total_invested=total_invested,
        total_investment_value=total_value,
        ytd_savings=ytd_savings,
        ytd_savings_rate=savings_rate,
    )


# =============================================================================
# MONTH
# =============================================================================

class MonthlySummary(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal
    savings_rate: Optional[Decimal] = None
    total_investment_value: Decimal


def monthly_summary(snapshot: LedgerSnapshot, period: Period) -> MonthlySummary:
    """Income and expenses of the month. The savings rate is a percentage, None without income."""
    income = total_amount(in_month(snapshot.incomes, period))
    expenses = total_amount(in_month(snapshot.expenses, period))
    net = income - expenses
    overview = investment_overview(
        snapshot.investments,
        snapshot.investment_contributions,
        snapshot.investment_values,
    )
    return MonthlySummary(
        total_income=income,
        total_expenses=expenses,
        net_income=net,
        savings_rate=net / income * 100 if income > 0 else None,
        total_investment_value=overview.total_value,
    )


class AccountReconciliation(BaseModel):
    """
    Do the account balances add up?

    expected = previous month balances + income - expenses of the month
    discrepancy = real - expected
    """

    total_balance: Decimal
    previous_balance: Decimal
    total_income: Decimal
    total_expenses: Decimal
    expected_total: Decimal
    discrepancy: Decimal


def _balances_of(balances: Iterable[AccountBalance], period: Period) -> Decimal:
    return total_amount(
        b for b in balances if b.year == period.year and b.month == period.month
    )


def account_reconciliation(snapshot: LedgerSnapshot, period: Period) -> AccountReconciliation:
    real = _balances_of(snapshot.account_balances, period)
    previous = _balances_of(snapshot.account_balances, period.previous())
    income = total_amount(in_month(snapshot.incomes, period))
    expenses = total_amount(in_month(snapshot.expenses, period))
    expected = previous + income - expenses

    return AccountReconciliation(
        total_balance=real,
        previous_balance=previous,
        total_income=income,
        total_expenses=expenses,
        expected_total=expected,
        discrepancy=real - expected,
    )
