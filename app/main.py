"""
Streamlit Frontend for Buddy

This is the user interface for tracking a household's money month by month.

DESIGN PRINCIPLES:
1. Everything follows the month selected in the sidebar
2. Explicit confirmation before anything the AI proposes is saved
3. Clear error messages in simple language
4. No hidden actions

The UI enforces the human-in-the-loop principle:
- User sees what the AI proposed
- User edits or removes rows
- Nothing is saved without explicit "Save" action
"""

import asyncio
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import streamlit as st

from buddy.agents import AIProviderError, ExpenseParseError
from buddy.audit import configure_logging, create_correlation_id
from buddy.config import get_settings, validate_all_settings
from buddy.extraction import StatementError, StatementFile
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
from buddy.orchestrator import AppComponents, create_app_components
from buddy.reports import (
    account_reconciliation,
    expense_category_rows,
    expense_totals_row,
    export_dashboard,
    format_delta,
    format_number,
    income_category_rows,
    investment_overview,
    monthly_summary,
    ytd_overview,
)
from buddy.services import BackupRestoreError, StorageError, backup_filename


# Page configuration
st.set_page_config(
    page_title="Buddy",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

MONTHS = [date(2000, m, 1).strftime("%B") for m in range(1, 13)]
UNCATEGORIZED = "(no category)"


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    configure_logging(get_settings().app.log_level)
    return create_app_components()


def to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def select_period() -> Period:
    """Month and year selector shared by every page."""
    today = date.today()
    year = st.sidebar.number_input("Year", min_value=1900, max_value=9999, value=today.year, step=1)
    month = st.sidebar.selectbox("Month", options=list(range(1, 13)), index=today.month - 1,
                                 format_func=lambda m: MONTHS[m - 1])
    return Period(year=int(year), month=int(month))


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("💰 Buddy")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Overview", "🧾 Expenses", "💵 Incomes", "🏦 Accounts", "📈 Investments", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    period = select_period()
    st.sidebar.caption(f"Storage: {components.backend}")

    if page == "📊 Overview":
        render_overview_page(components, period)
    elif page == "🧾 Expenses":
        render_expenses_page(components, period)
    elif page == "💵 Incomes":
        render_incomes_page(components, period)
    elif page == "🏦 Accounts":
        render_accounts_page(components, period)
    elif page == "📈 Investments":
        render_investments_page(components, period)
    elif page == "⚙️ Settings":
        render_settings_page(components)


# =============================================================================
# OVERVIEW
# =============================================================================

def render_overview_page(components: AppComponents, period: Period):
    st.title(f"📊 Overview {period.label}")

    snapshot = run_async(components.ledger.snapshot())
    month = monthly_summary(snapshot, period)
    ytd = ytd_overview(snapshot, period)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", format_number(month.total_income))
    col2.metric("Expenses", format_number(month.total_expenses))
    col3.metric("Net", format_number(month.net_income))
    col4.metric(
        "Savings rate",
        f"{month.savings_rate:.1f}%" if month.savings_rate is not None else "-",
    )

    st.markdown("### Year to date")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", format_number(ytd.ytd_income))
    col2.metric("Spent", format_number(ytd.ytd_spent))
    col3.metric("Budget", format_number(ytd.ytd_budget))
    col4.metric("Savings rate", f"{ytd.ytd_savings_rate * 100:.1f}%")

    st.markdown("### Expense categories")
    rows = expense_category_rows(snapshot.expense_categories, snapshot.expenses, period)
    if rows:
        table = rows + [expense_totals_row(rows)]
        st.dataframe(
            [
                {
                    "Category": r.name,
                    "Month": format_number(r.current),
                    "Budget": format_number(r.monthly_budget),
                    "Delta": format_delta(r.monthly_delta),
                    "YTD": format_number(r.year_to_date),
                    "YTD Budget": format_number(r.year_to_date_budget),
                    "YTD Delta": format_delta(r.ytd_delta),
                    "Year": format_number(r.annual),
                    "Annual Budget": format_number(r.annual_budget),
                    "Annual Delta": format_delta(r.annual_delta),
                }
                for r in table
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("Add expense categories in Settings to see your budgets here.")

    st.markdown("### Income categories")
    income_rows = income_category_rows(snapshot.income_categories, snapshot.incomes, period)
    if income_rows:
        st.dataframe(
            [
                {
                    "Category": r.name,
                    "Month": format_number(r.current),
                    "YTD": format_number(r.year_to_date),
                    "Year": format_number(r.annual),
                    "Target": format_number(r.target),
                }
                for r in income_rows
            ],
            use_container_width=True,
            hide_index=True,
        )

    filename, content = export_dashboard(snapshot, period)
    st.download_button(
        "⬇️ Download dashboard CSV",
        data=content.encode("utf-8"),
        file_name=filename,
        mime="text/csv",
    )


# =============================================================================
# EXPENSES
# =============================================================================

def _category_options(categories: list) -> dict[str, Optional[UUID]]:
    options = {UNCATEGORIZED: None}
    for c in categories:
        options[getattr(c, "name", None) or c.title] = c.id
    return options


def _editor_rows(expenses: list[Expense], categories: list[ExpenseCategory]) -> list[dict]:
    names = {c.id: c.name for c in categories}
    return [
        {
            "date": e.date,
            "amount": float(e.amount),
            "description": e.description,
            "category": names.get(e.category_id, UNCATEGORIZED),
        }
        for e in expenses
    ]


def _rows_to_expenses(rows: list[dict], options: dict[str, Optional[UUID]]) -> list[Expense]:
    expenses = []
    for row in rows:
        amount = to_decimal(row.get("amount"))
        if row.get("date") is None or amount is None:
            continue
        expenses.append(Expense(
            date=row["date"],
            amount=amount,
            description=row.get("description") or "",
            category_id=options.get(row.get("category") or UNCATEGORIZED),
        ))
    return expenses


def render_import_section(components: AppComponents, period: Period, categories: list[ExpenseCategory]):
    """Ask the AI for expenses, review them and save."""
    flow = components.import_flow

    if "proposed" not in st.session_state:
        st.session_state.proposed = None
    if "correlation_id" not in st.session_state:
        st.session_state.correlation_id = None

    source = st.radio("Import from", ["Pasted text", "Bank statement"], horizontal=True)

    if source == "Pasted text":
        text = st.text_area(
            "Paste your transactions",
            placeholder="12/03 SUPERMARKET 45.20\n13/03 FUEL STATION 60.00",
            height=150,
        )
        start = st.button("🤖 Categorize", type="primary", disabled=not text.strip())
    else:
        uploaded_file = st.file_uploader("Upload a statement", type=["pdf", "csv"])
        text = None
        start = st.button("🤖 Read statement", type="primary", disabled=uploaded_file is None)

    if start:
        st.session_state.correlation_id = create_correlation_id()
        with st.spinner("Asking the AI... Please wait."):
            try:
                if text is not None:
                    parsed = run_async(flow.categorize_text(text, st.session_state.correlation_id))
                else:
                    statement_file = StatementFile(
                        filename=uploaded_file.name,
                        content_type=uploaded_file.type,
                        data=uploaded_file.getvalue(),
                    )
                    statement, parsed = run_async(
                        flow.import_statement(statement_file, st.session_state.correlation_id)
                    )
                    with st.expander("📄 Extracted text"):
                        st.text(statement.text)
            except StatementError as e:
                st.error(str(e))
                st.stop()
            except (AIProviderError, ExpenseParseError) as e:
                st.error(f"The AI could not categorize your transactions: {e}")
                st.stop()

        expenses, issues = flow.to_expenses(parsed)
        for issue in issues:
            st.warning(issue.message)
        st.session_state.proposed = expenses

    if st.session_state.proposed is None:
        return

    st.markdown("---")
    st.subheader("📋 Review proposed expenses")
    st.markdown("*You can edit or delete any row before saving*")

    options = _category_options(categories)
    duplicates = run_async(flow.find_duplicates(st.session_state.proposed, period))
    if duplicates:
        st.warning(
            "These rows have the same date and amount as an expense already saved: "
            + ", ".join(str(i + 1) for i in duplicates)
        )

    edited = st.data_editor(
        _editor_rows(st.session_state.proposed, categories),
        num_rows="dynamic",
        use_container_width=True,
        column_config={
            "date": st.column_config.DateColumn("Date", required=True),
            "amount": st.column_config.NumberColumn("Amount", min_value=0.0, format="%.2f"),
            "description": st.column_config.TextColumn("Description"),
            "category": st.column_config.SelectboxColumn("Category", options=list(options)),
        },
        key="proposed_editor",
    )

    col1, col2 = st.columns(2)
    with col1:
        if st.button("✅ Confirm and Save", type="primary"):
            rows = _rows_to_expenses(edited, options)
            try:
                result, saved = run_async(flow.confirm_and_save(
                    rows, period, correlation_id=st.session_state.correlation_id,
                ))
            except StorageError as e:
                st.error(f"Could not save the expenses: {e}")
                return
            summary = flow.summary(result)
            if saved:
                st.session_state.proposed = None
                st.success(f"Added {len(saved)} expenses.")
                if result.warnings:
                    st.warning(summary)
            else:
                st.error(summary)
    with col2:
        if st.button("❌ Discard"):
            st.session_state.proposed = None
            st.rerun()


def render_expenses_page(components: AppComponents, period: Period):
    st.title(f"🧾 Expenses {period.label}")
    ledger = components.ledger
    categories = run_async(ledger.list_expense_categories(include_archived=False))
    options = _category_options(categories)

    with st.expander("🤖 Import with AI", expanded=True):
        render_import_section(components, period, categories)

    with st.expander("➕ Add an expense"):
        with st.form("add_expense", clear_on_submit=True):
            day = st.date_input("Date", value=period.default_date())
            amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
            description = st.text_input("Description")
            category = st.selectbox("Category", options=list(options))
            if st.form_submit_button("Save"):
                expense = Expense(
                    date=day,
                    amount=Decimal(str(amount)),
                    description=description,
                    category_id=options[category],
                )
                result, saved = run_async(components.import_flow.confirm_and_save([expense], period))
                if saved:
                    st.success("Expense added.")
                else:
                    st.error(components.import_flow.summary(result))

    expenses = sorted(run_async(ledger.expenses_in(period)), key=lambda e: e.date)
    names = {c.id: c.name for c in run_async(ledger.list_expense_categories())}
    if not expenses:
        st.info("No expenses this month yet.")
        return

    for expense in expenses:
        col1, col2, col3, col4, col5 = st.columns([2, 2, 4, 3, 1])
        col1.write(expense.date.isoformat())
        col2.write(format_number(expense.amount))
        col3.write(expense.description)
        col4.write(names.get(expense.category_id, expense.category or UNCATEGORIZED))
        if col5.button("🗑️", key=f"del_expense_{expense.id}"):
            run_async(ledger.remove_expense(expense.id))
            st.rerun()


# =============================================================================
# INCOMES
# =============================================================================

def render_incomes_page(components: AppComponents, period: Period):
    st.title(f"💵 Incomes {period.label}")
    ledger = components.ledger
    options = _category_options(run_async(ledger.list_income_categories(include_archived=False)))

    with st.form("add_income", clear_on_submit=True):
        day = st.date_input("Date", value=period.default_date())
        amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
        description = st.text_input("Description")
        category = st.selectbox("Category", options=list(options))
        if st.form_submit_button("Add income"):
            income = Income(
                date=day,
                amount=Decimal(str(amount)),
                description=description,
                category_id=options[category],
            )
            result, saved = run_async(
                components.import_flow.confirm_and_save([income], period, kind="income")
            )
            if saved:
                st.success("Income added.")
            else:
                st.error(components.import_flow.summary(result, kind="income"))

    incomes = sorted(run_async(ledger.incomes_in(period)), key=lambda i: i.date)
    titles = {c.id: c.title for c in run_async(ledger.list_income_categories())}
    for income in incomes:
        col1, col2, col3, col4, col5 = st.columns([2, 2, 4, 3, 1])
        col1.write(income.date.isoformat())
        col2.write(format_number(income.amount))
        col3.write(income.description)
        col4.write(titles.get(income.category_id, income.category or UNCATEGORIZED))
        if col5.button("🗑️", key=f"del_income_{income.id}"):
            run_async(ledger.remove_income(income.id))
            st.rerun()


# =============================================================================
# ACCOUNTS
# =============================================================================

def render_accounts_page(components: AppComponents, period: Period):
    st.title(f"🏦 Accounts {period.label}")
    ledger = components.ledger

    with st.form("add_balance", clear_on_submit=True):
        title = st.text_input("Account")
        amount = st.number_input("Balance", step=0.01, format="%.2f")
        if st.form_submit_button("Add balance") and title:
            run_async(ledger.add_account_balance(AccountBalance(
                title=title,
                amount=Decimal(str(amount)),
                year=period.year,
                month=period.month,
            )))
            st.success("Balance added.")

    for balance in run_async(ledger.account_balances_for(period)):
        col1, col2, col3 = st.columns([5, 3, 1])
        col1.write(balance.title)
        col2.write(format_number(balance.amount))
        if col3.button("🗑️", key=f"del_balance_{balance.id}"):
            run_async(ledger.remove_account_balance(balance.id))
            st.rerun()

    st.markdown("### Reconciliation")
    check = account_reconciliation(run_async(ledger.snapshot()), period)
    col1, col2, col3 = st.columns(3)
    col1.metric("Real total", format_number(check.total_balance))
    col2.metric("Expected total", format_number(check.expected_total))
    col3.metric("Discrepancy", format_delta(check.discrepancy))
    st.caption(
        f"Expected = last month {format_number(check.previous_balance)} "
        f"+ income {format_number(check.total_income)} "
        f"- expenses {format_number(check.total_expenses)}"
    )


# =============================================================================
# INVESTMENTS
# =============================================================================

def render_investments_page(components: AppComponents, period: Period):
    st.title("📈 Investments")
    ledger = components.ledger

    with st.expander("➕ New investment"):
        with st.form("add_investment", clear_on_submit=True):
            name = st.text_input("Name")
            description = st.text_input("Description")
            if st.form_submit_button("Create") and name:
                run_async(ledger.add_investment(Investment(name=name, description=description or None)))
                st.success("Investment created.")

    snapshot = run_async(ledger.snapshot())
    overview = investment_overview(
        snapshot.investments,
        snapshot.investment_contributions,
        snapshot.investment_values,
    )

    col1, col2, col3 = st.columns(3)
    col1.metric("Value", format_number(overview.total_value))
    col2.metric("Invested", format_number(overview.total_invested))
    col3.metric("P&L", format_delta(overview.total_profit),
                f"{overview.total_profit_percentage:.1f}%")

    for row in overview.rows:
        with st.expander(f"{row.name}: {format_number(row.current_value)}"):
            st.write(
                f"Invested {format_number(row.total_contributions)}, "
                f"P&L {format_delta(row.profit)} ({row.profit_percentage:.1f}%)"
            )
            with st.form(f"contribution_{row.investment_id}", clear_on_submit=True):
                day = st.date_input("Date", value=period.default_date())
                amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
                kind = st.radio("Record", ["Contribution", "Current value"], horizontal=True)
                if st.form_submit_button("Save"):
                    if kind == "Contribution":
                        run_async(ledger.add_contribution(InvestmentContribution(
                            investment_id=row.investment_id, amount=Decimal(str(amount)), date=day,
                        )))
                    else:
                        run_async(ledger.add_value(InvestmentValue(
                            investment_id=row.investment_id, value=Decimal(str(amount)), date=day,
                        )))
                    st.rerun()
            if st.button("Close investment", key=f"close_{row.investment_id}"):
                run_async(ledger.update_investment(row.investment_id, is_active=False))
                st.rerun()


# =============================================================================
# SETTINGS
# =============================================================================

def render_categories(components: AppComponents):
    ledger = components.ledger

    st.markdown("### Expense categories")
    with st.form("add_expense_category", clear_on_submit=True):
        name = st.text_input("Name")
        budget = st.text_input("Monthly budget")
        annual = st.text_input("Annual budget (optional)")
        if st.form_submit_button("Add") and name:
            run_async(ledger.add_expense_category(ExpenseCategory(
                name=name,
                max_budget=to_decimal(budget),
                max_annual_budget=to_decimal(annual),
            )))
            st.rerun()

    for category in run_async(ledger.list_expense_categories()):
        col1, col2, col3 = st.columns([5, 3, 2])
        col1.write(category.name + (" (archived)" if category.is_archived else ""))
        col2.write(format_number(category.max_budget))
        label = "Restore" if category.is_archived else "Archive"
        if col3.button(label, key=f"archive_expense_cat_{category.id}"):
            run_async(ledger.archive_expense_category(category.id, not category.is_archived))
            st.rerun()

    st.markdown("### Income categories")
    with st.form("add_income_category", clear_on_submit=True):
        title = st.text_input("Title")
        target = st.text_input("Target (optional)")
        if st.form_submit_button("Add") and title:
            run_async(ledger.add_income_category(IncomeCategory(
                title=title, target_amount=to_decimal(target),
            )))
            st.rerun()

    for category in run_async(ledger.list_income_categories()):
        col1, col2, col3 = st.columns([5, 3, 2])
        col1.write(category.title + (" (archived)" if category.is_archived else ""))
        col2.write(format_number(category.target_amount))
        label = "Restore" if category.is_archived else "Archive"
        if col3.button(label, key=f"archive_income_cat_{category.id}"):
            run_async(ledger.archive_income_category(category.id, not category.is_archived))
            st.rerun()


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    render_categories(components)

    st.markdown("---")
    st.markdown("### Backup")
    st.download_button(
        "⬇️ Download backup",
        data=run_async(components.backup.create_backup_json()).encode("utf-8"),
        file_name=backup_filename(),
        mime="application/json",
    )

    uploaded = st.file_uploader("Restore from backup", type=["json"])
    if uploaded and st.button("♻️ Restore (replaces all data)"):
        try:
            counts = run_async(components.backup.restore_backup(uploaded.getvalue()))
            st.success("Restored: " + ", ".join(f"{k} {v}" for k, v in counts.items()))
        except BackupRestoreError as e:
            st.error(str(e))

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Gemini (AI)", "gemini"),
        ("OpenAI (AI)", "openai"),
        ("Google Sheets (Storage)", "google_sheets"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
