"""Reports package: overviews and the dashboard CSV export."""

from buddy.reports.csv_export import (
    build_dashboard_csv,
    dashboard_filename,
    export_dashboard,
    format_delta,
    format_number,
    format_percent,
    format_percent_value,
)
from buddy.reports.overview import (
    AccountReconciliation,
    ExpenseCategoryRow,
    IncomeCategoryRow,
    InvestmentOverview,
    InvestmentRow,
    MonthlySummary,
    YTDOverview,
    account_reconciliation,
    annual_budget_of,
    expense_category_rows,
    expense_totals_row,
    for_category,
    in_month,
    in_year,
    in_year_to_date,
    income_category_rows,
    investment_overview,
    investment_row,
    monthly_summary,
    total_amount,
    ytd_overview,
)

__all__ = [
    "build_dashboard_csv",
    "dashboard_filename",
    "export_dashboard",
    "format_delta",
    "format_number",
    "format_percent",
    "format_percent_value",
    "AccountReconciliation",
    "ExpenseCategoryRow",
    "IncomeCategoryRow",
    "InvestmentOverview",
    "InvestmentRow",
    "MonthlySummary",
    "YTDOverview",
    "account_reconciliation",
    "annual_budget_of",
    "expense_category_rows",
    "expense_totals_row",
    "for_category",
    "in_month",
    "in_year",
    "in_year_to_date",
    "income_category_rows",
    "investment_overview",
    "investment_row",
    "monthly_summary",
    "total_amount",
    "ytd_overview",
]
