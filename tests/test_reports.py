"""
Tests for overviews and the dashboard CSV export.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from buddy.models.ledger import (
    AccountBalance,
    Expense,
    ExpenseCategory,
    Income,
    IncomeCategory,
    Investment,
    InvestmentContribution,
    InvestmentValue,
    Period,
)
from buddy.reports import (
    account_reconciliation,
    annual_budget_of,
    build_dashboard_csv,
    expense_category_rows,
    expense_totals_row,
    export_dashboard,
    format_delta,
    format_number,
    format_percent,
    income_category_rows,
    investment_overview,
    monthly_summary,
    ytd_overview,
)
from buddy.services.ledger import LedgerSnapshot


MARCH = Period(year=2025, month=3)
D = Decimal


@pytest.fixture
def food():
    return ExpenseCategory(name="Food", max_budget=D("100"))


@pytest.fixture
def snapshot(food):
    travel = ExpenseCategory(name="Travel", max_budget=D("50"), max_annual_budget=D("1000"))
    old = ExpenseCategory(name="Old", max_budget=D("999"), is_archived=True)
    salary = IncomeCategory(title="Salary", target_amount=D("4000"))
    etf = Investment(name="ETF")

    return LedgerSnapshot(
        expense_categories=[food, travel, old],
        income_categories=[salary],
        expenses=[
            Expense(date=date(2025, 3, 5), amount=D("80"), category_id=food.id),
            Expense(date=date(2025, 1, 5), amount=D("60"), category_id=food.id),
            Expense(date=date(2025, 11, 5), amount=D("40"), category_id=food.id),
            Expense(date=date(2025, 3, 9), amount=D("70"), category="Travel"),
            Expense(date=date(2024, 3, 9), amount=D("500"), category_id=food.id),
        ],
        incomes=[
            Income(date=date(2025, 3, 25), amount=D("1000"), category_id=salary.id),
            Income(date=date(2025, 2, 25), amount=D("1000"), category_id=salary.id),
        ],
        investments=[etf, Investment(name="Closed", is_active=False)],
        investment_contributions=[
            InvestmentContribution(investment_id=etf.id, amount=D("100"), date=date(2025, 2, 1)),
        ],
        investment_values=[
            InvestmentValue(investment_id=etf.id, value=D("90"), date=date(2025, 2, 1)),
            InvestmentValue(investment_id=etf.id, value=D("130"), date=date(2025, 3, 1)),
        ],
        account_balances=[
            AccountBalance(title="Bank", amount=D("500"), year=2025, month=2),
            AccountBalance(title="Bank", amount=D("1300"), year=2025, month=3),
        ],
    )


class TestExpenseCategoryRows:
    """Tests for category overviews against budgets."""

    def test_annual_budget(self):
        assert annual_budget_of(ExpenseCategory(name="A", max_budget=D("10"))) == D("120")
        assert annual_budget_of(ExpenseCategory(name="A", max_budget=D("10"), max_annual_budget=D("50"))) == D("50")
        assert annual_budget_of(ExpenseCategory(name="A")) is None

    def test_rows_skip_archived(self, snapshot):
        rows = expense_category_rows(snapshot.expense_categories, snapshot.expenses, MARCH)
        assert [r.name for r in rows] == ["Food", "Travel"]

    def test_food_row(self, snapshot):
        food = expense_category_rows(snapshot.expense_categories, snapshot.expenses, MARCH)[0]

        assert food.current == D("80")
        assert food.monthly_delta == D("20")
        assert food.year_to_date == D("140")
        assert food.year_to_date_budget == D("300")
        assert food.ytd_delta == D("160")
        assert food.annual == D("180")
        assert food.annual_budget == D("1200")

    def test_legacy_name_counts(self, snapshot):
        travel = expense_category_rows(snapshot.expense_categories, snapshot.expenses, MARCH)[1]
        assert travel.current == D("70")
        assert travel.monthly_delta == D("-20")
        assert travel.annual_budget == D("1000")

    def test_no_budget_has_no_delta(self):
        category = ExpenseCategory(name="Misc")
        rows = expense_category_rows(
            [category], [Expense(date=date(2025, 3, 1), amount=D("5"), category_id=category.id)], MARCH
        )
        assert rows[0].monthly_budget is None
        assert rows[0].monthly_delta is None

    def test_totals_row(self, snapshot):
        rows = expense_category_rows(snapshot.expense_categories, snapshot.expenses, MARCH)
        total = expense_totals_row(rows)

        assert total.name == "Total"
        assert total.current == D("150")
        assert total.monthly_budget == D("150")
        assert total.monthly_delta == D("0")


class TestIncomeAndInvestments:

    def test_income_rows(self, snapshot):
        rows = income_category_rows(snapshot.income_categories, snapshot.incomes, MARCH)
        assert rows[0].current == D("1000")
        assert rows[0].year_to_date == D("2000")
        assert rows[0].target == D("4000")

    def test_investment_overview(self, snapshot):
        overview = investment_overview(
            snapshot.investments,
            snapshot.investment_contributions,
            snapshot.investment_values,
        )

        assert [r.name for r in overview.rows] == ["ETF"]
        row = overview.rows[0]
        assert row.current_value == D("130")
        assert row.profit == D("30")
        assert row.profit_percentage == D("30")
        assert overview.total_profit == D("30")

    def test_never_valued_investment(self):
        investment = Investment(name="New")
        overview = investment_overview(
            [investment],
            [InvestmentContribution(investment_id=investment.id, amount=D("50"), date=date(2025, 1, 1))],
            [],
        )
        assert overview.rows[0].current_value is None
        assert overview.rows[0].profit == D("0")
        assert overview.rows[0].profit_percentage == D("0")


class TestSummaries:

    def test_ytd_overview(self, snapshot):
        ytd = ytd_overview(snapshot, MARCH)

        assert ytd.ytd_income == D("2000")
        assert ytd.ytd_expenses == D("210")
        assert ytd.ytd_investment_contributions == D("100")
        assert ytd.ytd_spent == D("110")
        assert ytd.ytd_budget == D("450")
        assert ytd.total_investment_value == D("130")
        assert ytd.ytd_savings == D("1890")
        assert ytd.ytd_savings_rate == D("0.945")

    def test_ytd_without_income(self):
        ytd = ytd_overview(LedgerSnapshot(), MARCH)
        assert ytd.ytd_savings_rate == D("0")

    def test_monthly_summary(self, snapshot):
        month = monthly_summary(snapshot, MARCH)
        assert month.total_income == D("1000")
        assert month.total_expenses == D("150")
        assert month.net_income == D("850")
        assert month.savings_rate == D("85")

    def test_monthly_summary_without_income(self):
        assert monthly_summary(LedgerSnapshot(), MARCH).savings_rate is None

    def test_account_reconciliation(self, snapshot):
        check = account_reconciliation(snapshot, MARCH)
        assert check.previous_balance == D("500")
        assert check.expected_total == D("1350")
        assert check.discrepancy == D("-50")


class TestFormatting:

    def test_format_number(self):
        assert format_number(D("1234.5")) == "1234.50"
        assert format_number(None) == "N/A"

    def test_format_delta(self):
        assert format_delta(D("50")) == "(+50.00)"
        assert format_delta(D("-50")) == "(-50.00)"
        assert format_delta(D("0")) == "(+0.00)"
        assert format_delta(None) == ""

    def test_format_percent(self):
        assert format_percent(D("0.433")) == "43.3%"


class TestDashboardCSV:

    def test_sections(self, snapshot):
        content = build_dashboard_csv(snapshot, MARCH)
        sections = content.split("\n\n")

        assert [s.splitlines()[0] for s in sections] == [
            "SECTION: YTD Overview",
            "SECTION: Expense Categories",
            "SECTION: Income Categories",
            "SECTION: Investments",
        ]
        assert not content.endswith("\n")
        assert content.splitlines()[-1] == "TOTAL,130.00,100.00,30.00,30.00%"

    def test_expense_row(self, snapshot):
        content = build_dashboard_csv(snapshot, MARCH)
        assert "Food,80.00,100.00,(+20.00),140.00,300.00,(+160.00),1200.00,(+1020.00)" in content

    def test_ytd_rows(self, snapshot):
        content = build_dashboard_csv(snapshot, MARCH)
        assert "YTD Spent,110.00" in content
        assert "Savings Rate,94.5%" in content

    def test_names_are_quoted_when_needed(self):
        category = ExpenseCategory(name='Food, "fresh"')
        content = build_dashboard_csv(LedgerSnapshot(expense_categories=[category]), MARCH)
        assert '"Food, ""fresh""",0.00,N/A,,0.00,N/A,,N/A,' in content

    def test_export_filename(self):
        filename, _ = export_dashboard(LedgerSnapshot(), MARCH)
        assert filename == "Dashboard-Mar-2025.csv"

    def test_empty_ledger(self):
        content = build_dashboard_csv(LedgerSnapshot(), MARCH)
        assert content.endswith("TOTAL,0.00,0.00,0.00,0.00%")
