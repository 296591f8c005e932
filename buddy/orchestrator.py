"""
Main Orchestrator for Buddy

This module ties together all the components and defines the end-to-end
flow for importing expenses:

    text or statement → prompt → model (primary, then fallback)
    → proposed rows → user review → validate → save

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing the model proposes is saved without the user confirming it
- A batch with any validation error is not saved at all
- Every step is audited

It also builds the application components for the UI.
"""

from datetime import date
from typing import Literal, NamedTuple, Optional
from uuid import UUID

import structlog

from buddy.agents import (
    ExpenseCategorizationAgent,
    build_expense_prompt,
    build_statement_prompt,
    format_categories,
    format_historical_expenses,
    parse_expense_array,
    select_historical_expenses,
)
from buddy.audit import AuditLogger, create_correlation_id
from buddy.config import get_settings
from buddy.extraction import (
    ExtractedStatement,
    StatementError,
    StatementExtractor,
    StatementFile,
)
from buddy.models.expense_ai import CategoryRef, HistoricalExpense, ParsedExpense
from buddy.models.ledger import Collection, Expense, Period, Transaction
from buddy.models.validation import ValidationIssue, ValidationResult
from buddy.services.backup import BackupService
from buddy.services.ledger import LedgerService
from buddy.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    LedgerStorageInterface,
    LocalJSONStorage,
    StorageError,
)
from buddy.validation import TransactionValidator, find_duplicates, parsed_to_expenses

logger = structlog.get_logger(__name__)


class ExpenseImportFlow:
    """
    Orchestrates the expense import flow.

    Flow:
    1. Categorize → pasted text or an uploaded statement goes to the model
    2. Review → proposed rows are shown to the user (PAUSE)
    3. Validate → two-stage validation for the selected month
    4. Save → the whole batch, or nothing

    Human confirmation (step 2) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        ledger: LedgerService,
        agent: Optional[ExpenseCategorizationAgent] = None,
        extractor: Optional[StatementExtractor] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._agent = agent
        self._extractor = extractor
        self._validators = {
            "expense": TransactionValidator(ledger, kind="expense"),
            "income": TransactionValidator(ledger, kind="income"),
        }

    @property
    def agent(self) -> ExpenseCategorizationAgent:
        # Created on first use so the app runs without provider keys
        if self._agent is None:
            self._agent = ExpenseCategorizationAgent(audit_logger=self._audit_logger)
        return self._agent

    @property
    def extractor(self) -> StatementExtractor:
        if self._extractor is None:
            self._extractor = StatementExtractor()
        return self._extractor

    async def _context(
        self,
        today: Optional[date] = None,
    ) -> tuple[list[CategoryRef], list[HistoricalExpense]]:
        """Active categories and recent expenses sent along with every prompt."""
        categories = [
            CategoryRef(id=str(c.id), name=c.name)
            for c in await self._ledger.list_expense_categories(include_archived=False)
        ]
        history = select_historical_expenses(await self._ledger.list_expenses(), today)
        return categories, history

    async def _collect(self, prompt: str, correlation_id: UUID) -> list[ParsedExpense]:
        chunks = await self.agent.stream(prompt, correlation_id=correlation_id)
        text = "".join([chunk async for chunk in chunks])
        expenses = parse_expense_array(text)
        if self._audit_logger:
            await self._audit_logger.log_expenses_proposed(
                request_id=correlation_id,
                count=len(expenses),
                correlation_id=correlation_id,
            )
        return expenses

    async def categorize_text(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[ParsedExpense]:
        """
        Propose expenses for pasted transactions.

        Raises:
            AIProviderError: every provider failed
            ExpenseParseError: the response is not an array of expenses
        """
        correlation_id = correlation_id or create_correlation_id()
        categories, history = await self._context()
        prompt = build_expense_prompt(
            transactions=text,
            categories=format_categories(categories),
            historical_expenses=format_historical_expenses(history),
        )
        return await self._collect(prompt, correlation_id)

    async def import_statement(
        self,
        file: StatementFile,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ExtractedStatement, list[ParsedExpense]]:
        """
        Extract a statement's text and propose its expenses.

        Returns:
            (extracted_statement, proposed_expenses)

        Raises:
            StatementError: the file was refused or unreadable
            AIProviderError: every provider failed
            ExpenseParseError: the response is not an array of expenses
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            statement = self.extractor.extract(file)
        except StatementError as e:
            if self._audit_logger:
                await self._audit_logger.log_extraction_failed(
                    upload_id=correlation_id,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_statement_uploaded(
                upload_id=statement.upload_id,
                filename=statement.filename,
                file_size=file.size,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_text_extracted(
                upload_id=statement.upload_id,
                kind=statement.kind.value,
                text_length=len(statement.text),
                correlation_id=correlation_id,
            )

        categories, history = await self._context()
        prompt = build_statement_prompt(statement.text, categories, history)
        return statement, await self._collect(prompt, correlation_id)

    def to_expenses(
        self,
        parsed: list[ParsedExpense],
    ) -> tuple[list[Expense], list[ValidationIssue]]:
        """Turn proposed rows into editable Expense records."""
        return parsed_to_expenses(parsed)

    async def find_duplicates(self, rows: list[Transaction], period: Period) -> list[int]:
        """Indexes of rows with the same date and amount as an expense of the month."""
        return find_duplicates(rows, await self._ledger.expenses_in(period))

    async def confirm_and_save(
        self,
        rows: list[Transaction],
        period: Period,
        kind: Literal["expense", "income"] = "expense",
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, list[Transaction]]:
        """
        Validate a reviewed batch and save it.

        CRITICAL: This is called ONLY after explicit user confirmation.

        Returns:
            (validation_result, saved_rows). saved_rows is empty when the
            batch had errors.
        """
        correlation_id = correlation_id or create_correlation_id()
        validator = self._validators[kind]

        result = await validator.validate(rows, period)

        if not result.is_valid:
            if self._audit_logger:
                issues = [
                    {"row": i.row, "field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ]
                stage = "schema" if not result.schema_valid else "semantic"
                await self._audit_logger.log_validation_failed(
                    batch_id=result.batch_id,
                    stage=stage,
                    issues=issues,
                    correlation_id=correlation_id,
                )
            return result, []

        collection = Collection.INCOMES if kind == "income" else Collection.EXPENSES
        try:
            if kind == "income":
                saved = await self._ledger.add_incomes(rows, correlation_id)
            else:
                saved = await self._ledger.add_expenses(rows, correlation_id)
        except StorageError as e:
            logger.error("batch_save_failed", collection=collection.value, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    collection=collection.value,
                    count=len(rows),
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        return result, saved

    def summary(self, result: ValidationResult, kind: Literal["expense", "income"] = "expense") -> str:
        return self._validators[kind].get_user_friendly_summary(result)


class AppComponents(NamedTuple):
    ledger: LedgerService
    import_flow: ExpenseImportFlow
    backup: BackupService
    audit_logger: AuditLogger
    backend: str


def _local_storage() -> LedgerStorageInterface:
    return LocalJSONStorage(get_settings().storage.local_path)


def create_app_components(backend: Optional[str] = None) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: "local" or "sheets"; defaults to STORAGE_BACKEND.
                 If Google Sheets is not configured, falls back to the
                 local store.
    """
    backend = backend or get_settings().storage.backend

    if backend == "sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            logger.warning("sheets_storage_unavailable", error=str(e))
            backend = "local"
            storage = _local_storage()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        storage = _local_storage()
        audit_logger = AuditLogger()

    ledger = LedgerService(storage, audit_logger)

    return AppComponents(
        ledger=ledger,
        import_flow=ExpenseImportFlow(ledger, audit_logger=audit_logger),
        backup=BackupService(ledger, audit_logger),
        audit_logger=audit_logger,
        backend=backend,
    )
