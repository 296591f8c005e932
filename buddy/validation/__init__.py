"""Validation package."""

from buddy.validation.validator import (
    TransactionValidator,
    find_duplicates,
    parsed_to_expenses,
)

__all__ = ["TransactionValidator", "find_duplicates", "parsed_to_expenses"]
