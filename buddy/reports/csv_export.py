"""
Dashboard CSV Export

Four sections separated by blank lines:

    SECTION: YTD Overview
    SECTION: Expense Categories
    SECTION: Income Categories
    SECTION: Investments   (ends with a TOTAL row)

Numbers have two decimals and no currency symbol. Missing values are "N/A",
missing deltas are empty.
"""

import csv
import io
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from buddy.models.ledger import Period
from buddy.reports.overview import (
    ExpenseCategoryRow,
    IncomeCategoryRow,
    InvestmentOverview,
    YTDOverview,
    expense_category_rows,
    income_category_rows,
    investment_overview,
    ytd_overview,
)
from buddy.services.ledger import LedgerSnapshot


def _two_places(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_number(value: Optional[Decimal]) -> str:
    """1234.5 -> '1234.50'; None -> 'N/A'."""
    if value is None:
        return "N/A"
    return f"{_two_places(value):.2f}"


def format_delta(delta: Optional[Decimal]) -> str:
    """Accounting style: 50 -> '(+50.00)', -50 -> '(-50.00)', None -> ''."""
    if delta is None:
        return ""
    sign = "+" if delta >= 0 else "-"
    return f"({sign}{_two_places(abs(delta)):.2f})"


def format_percent(ratio: Decimal) -> str:
    """A ratio as a percentage with one decimal: 0.433 -> '43.3%'."""
    scaled = (Decimal(ratio) * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{scaled:.1f}%"


def format_percent_value(value: Decimal) -> str:
    """A value already in percent: 43.3 -> '43.30%'."""
    return f"{_two_places(value):.2f}%"


def dashboard_filename(period: Period) -> str:
    """'Dashboard-Mar-2025.csv'."""
    return f"Dashboard-{period.label}.csv"


def _ytd_section(writer, ytd: YTDOverview) -> None:
    writer.writerow(["SECTION: YTD Overview"])
    writer.writerow(["Metric", "Value"])
    writer.writerow(["YTD Budget", format_number(ytd.ytd_budget)])
    writer.writerow(["YTD Spent", format_number(ytd.ytd_spent)])
    writer.writerow(["YTD Income", format_number(ytd.ytd_income)])
    writer.writerow(["Total Invested", format_number(ytd.total_invested)])
    writer.writerow(["Investment Value", format_number(ytd.total_investment_value)])
    writer.writerow(["YTD Savings", format_number(ytd.ytd_savings)])
    writer.writerow(["Savings Rate", format_percent(ytd.ytd_savings_rate)])


def _expense_section(writer, rows: list[ExpenseCategoryRow]) -> None:
    writer.writerow(["SECTION: Expense Categories"])
    writer.writerow([
        "Category",
        "Current",
        "Monthly Budget",
        "Monthly Delta",
        "Year-to-Date",
        "YTD Budget",
        "YTD Delta",
        "Annual Budget",
        "Annual Delta",
    ])
    for row in rows:
        writer.writerow([
            row.name,
            format_number(row.current),
            format_number(row.monthly_budget),
            format_delta(row.monthly_delta),
            format_number(row.year_to_date),
            format_number(row.year_to_date_budget),
            format_delta(row.ytd_delta),
            format_number(row.annual_budget),
            format_delta(row.annual_delta),
        ])


def _income_section(writer, rows: list[IncomeCategoryRow]) -> None:
    writer.writerow(["SECTION: Income Categories"])
    writer.writerow(["Category", "Current", "Year-to-Date", "Annual"])
    for row in rows:
        writer.writerow([
            row.name,
            format_number(row.current),
            format_number(row.year_to_date),
            format_number(row.annual),
        ])


def _investment_section(writer, overview: InvestmentOverview) -> None:
    writer.writerow(["SECTION: Investments"])
    writer.writerow(["Name", "Current Value", "Total Invested", "P&L", "P&L %"])
    for row in overview.rows:
        writer.writerow([
            row.name,
            format_number(row.current_value),
            format_number(row.total_contributions),
            format_number(row.profit),
            format_percent_value(row.profit_percentage),
        ])
    writer.writerow([
        "TOTAL",
        format_number(overview.total_value),
        format_number(overview.total_invested),
        format_number(overview.total_profit),
        format_percent_value(overview.total_profit_percentage),
    ])


def build_dashboard_csv(snapshot: LedgerSnapshot, period: Period) -> str:
    """The dashboard of the selected month as CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    _ytd_section(writer, ytd_overview(snapshot, period))
    writer.writerow([])
    _expense_section(
        writer,
        expense_category_rows(snapshot.expense_categories, snapshot.expenses, period),
    )
    writer.writerow([])
    _income_section(
        writer,
        income_category_rows(snapshot.income_categories, snapshot.incomes, period),
    )
    writer.writerow([])
    _investment_section(
        writer,
        investment_overview(
            snapshot.investments,
            snapshot.investment_contributions,
            snapshot.investment_values,
        ),
    )

    # No newline after the TOTAL row
    return buffer.getvalue().rstrip("\n")


def export_dashboard(snapshot: LedgerSnapshot, period: Period) -> tuple[str, str]:
    """(filename, content) of the dashboard export."""
    return dashboard_filename(period), build_dashboard_csv(snapshot, period)
