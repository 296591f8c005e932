"""
Two-Stage Validation Pipeline

DESIGN DECISION: Rows about to be added for the selected month are validated
in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Amount present and greater than zero
- Date inside the selected month and year
- This catches typos and rows the model dated wrongly

STAGE 2 - SEMANTIC VALIDATION:
- Category must be one of the active categories
- Same date and amount as a record already in the month (possible duplicate)
- This catches rows that are well-formed but wrong for this ledger

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review. A batch with any error is not saved at
all; warnings do not block saving.
"""

from typing import Iterable, Literal, Optional
from uuid import UUID

from buddy.models.expense_ai import ParsedExpense
from buddy.models.ledger import Expense, Period, Transaction
from buddy.models.validation import ValidationIssue, ValidationResult


def find_duplicates(rows: Iterable[Transaction], existing: Iterable[Transaction]) -> list[int]:
    """Indexes of rows whose date and amount match an existing record."""
    seen = {(e.date, e.amount) for e in existing}
    return [i for i, row in enumerate(rows) if (row.date, row.amount) in seen]


class TransactionValidator:
    """
    Validates a batch of expenses or incomes through a two-stage pipeline.

    Stage 1: Schema validation (no storage needed)
    Stage 2: Semantic validation (needs the ledger for categories and
             duplicates; skipped when no ledger is given)
    """

    def __init__(
        self,
        ledger=None,
        kind: Literal["expense", "income"] = "expense",
    ):
        """
        Initialize validator.

        Args:
            ledger: LedgerService used for category and duplicate checks.
                    If None, only stage 1 runs.
            kind: Which records are validated; selects categories and messages.
        """
        self._ledger = ledger
        self._kind = kind

    def _amount_message(self, index: int, row: Transaction) -> str:
        if self._kind == "income":
            return f"Invalid amount in row {index + 1}"
        return f"Invalid amount for expense: {row.description}"

    def _period_message(self, index: int, row: Transaction) -> str:
        if self._kind == "income":
            return f"Income in row {index + 1} is not for the selected month and year"
        return f"Expense {row.description} is not for the selected month and year"

    def _validate_schema(
        self,
        rows: list[Transaction],
        period: Period,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        for index, row in enumerate(rows):
            if row.amount is None or row.amount <= 0:
                issues.append(ValidationIssue(
                    row=index,
                    field="amount",
                    issue_type="invalid_amount",
                    message=self._amount_message(index, row),
                    severity="error",
                    suggested_fix="Enter a positive amount",
                ))
                # One error per row is enough
                continue

            if not period.contains(row.date):
                issues.append(ValidationIssue(
                    row=index,
                    field="date",
                    issue_type="wrong_period",
                    message=self._period_message(index, row),
                    severity="error",
                    suggested_fix=f"Pick a date in {period.label} or change the selected month",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _active_category_ids(self) -> set[UUID]:
        if self._kind == "income":
            categories = await self._ledger.list_income_categories(include_archived=False)
        else:
            categories = await self._ledger.list_expense_categories(include_archived=False)
        return {c.id for c in categories}

    async def _validate_semantic(
        self,
        rows: list[Transaction],
        period: Period,
        check_duplicates: bool,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        active_ids = await self._active_category_ids()

        for index, row in enumerate(rows):
            if row.category_id is None:
                if not row.category:
                    issues.append(ValidationIssue(
                        row=index,
                        field="category_id",
                        issue_type="missing_category",
                        message=f"{row.description or f'Row {index + 1}'} has no category",
                        severity="warning",
                        suggested_fix="Pick a category so it shows up in the overview",
                    ))
            elif row.category_id not in active_ids:
                issues.append(ValidationIssue(
                    row=index,
                    field="category_id",
                    issue_type="unknown_category",
                    message=f"{row.description or f'Row {index + 1}'} has a category that is not active",
                    severity="error",
                    suggested_fix="Pick one of the active categories",
                ))

        if check_duplicates:
            if self._kind == "income":
                existing = await self._ledger.incomes_in(period)
            else:
                existing = await self._ledger.expenses_in(period)
            for index in find_duplicates(rows, existing):
                row = rows[index]
                issues.append(ValidationIssue(
                    row=index,
                    field="duplicate",
                    issue_type="possible_duplicate",
                    message=(
                        f"A record of {row.amount} dated {row.date.isoformat()} "
                        f"already exists this month"
                    ),
                    severity="warning",
                    suggested_fix="Please verify this isn't a duplicate entry",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def validate(
        self,
        rows: list[Transaction],
        period: Period,
        check_duplicates: bool = True,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            rows: The batch about to be added
            period: The selected month
            check_duplicates: Whether to look for possible duplicates

        Returns:
            ValidationResult with all issues found
        """
        schema_valid, issues = self._validate_schema(rows, period)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            if self._ledger is None:
                semantic_valid = True
            else:
                semantic_valid, semantic_issues = await self._validate_semantic(
                    rows, period, check_duplicates
                )
                issues.extend(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=issues,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show before saving.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            noun = "Incomes" if self._kind == "income" else "Expenses"
            lines.append(
                f"❌ {noun} have not been added, there was an error, please check them again:"
            )
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for issue in result.warnings:
                lines.append(f"   • {issue.message}")

        return "\n".join(lines)


def parsed_to_expenses(
    parsed: list[ParsedExpense],
) -> tuple[list[Expense], list[ValidationIssue]]:
    """
    Convert proposed rows into Expense records.

    Rows with an unparseable date are reported and left out. A category id
    that is not a UUID is reported and the row is kept without category,
    so the user can pick one.
    """
    expenses = []
    issues = []

    for index, row in enumerate(parsed):
        day = row.parsed_date()
        if day is None:
            issues.append(ValidationIssue(
                row=index,
                field="date",
                issue_type="invalid_date",
                message=f"Expense {row.description} has an invalid date: {row.date}",
                severity="error",
                suggested_fix="Dates must be yyyy-MM-dd",
            ))
            continue

        category_id: Optional[UUID] = None
        try:
            category_id = UUID(row.category_id)
        except ValueError:
            issues.append(ValidationIssue(
                row=index,
                field="category_id",
                issue_type="invalid_category_id",
                message=f"Expense {row.description} has an invalid category id",
                severity="warning",
                suggested_fix="Pick a category before saving",
            ))

        expenses.append(Expense(
            date=day,
            amount=row.amount,
            description=row.description,
            category_id=category_id,
        ))

    return expenses, issues

