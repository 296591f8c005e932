"""
Data Models Package

This package contains all Pydantic models used by Buddy.
All data flowing through the system must conform to these schemas.
"""

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
    Transaction,
)
from buddy.models.expense_ai import (
    CategorizationRequest,
    CategoryRef,
    HistoricalExpense,
    ParsedExpense,
)
from buddy.models.validation import ValidationIssue, ValidationResult
from buddy.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "COLLECTION_MODELS",
    "AccountBalance",
    "Collection",
    "Expense",
    "ExpenseCategory",
    "Income",
    "IncomeCategory",
    "Investment",
    "InvestmentContribution",
    "InvestmentValue",
    "LedgerModel",
    "Period",
    "Transaction",
    # AI wire models
    "CategorizationRequest",
    "CategoryRef",
    "HistoricalExpense",
    "ParsedExpense",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
