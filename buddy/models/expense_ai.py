"""
Wire models for AI expense categorization.

CRITICAL: A ParsedExpense is PROPOSED data, NOT verified.
Validation here is deliberately lenient (any non-empty category id, any
date-like string). Strict checks - known category, date inside the
selected month - happen in the validator before anything is saved.
"""

import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


# Decimal in Python, a plain number on the wire
JSONNumber = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WireModel(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class ParsedExpense(WireModel):
    """One expense as returned by the model."""

    amount: JSONNumber = Field(
        ...,
        ge=0,
        description="Amount of the expense as a decimal number"
    )
    category_id: str = Field(
        ...,
        min_length=1,
        description="CategoryId from the active categories list"
    )
    date: str = Field(
        ...,
        min_length=8,
        description="Date in yyyy-MM-dd format"
    )
    description: str = Field(
        default="",
        description="Cleaned up description preserving key information"
    )

    def parsed_date(self) -> Optional[datetime.date]:
        """The date as a calendar date, or None if it is not yyyy-MM-dd."""
        try:
            return datetime.date.fromisoformat(self.date[:10])
        except ValueError:
            return None


class CategoryRef(WireModel):
    """An active category as sent to the model: id and display name."""

    id: str = Field(..., min_length=1)
    name: str = ""


class HistoricalExpense(WireModel):
    """A past, already categorized expense used as context."""

    description: str = ""
    category_id: str = ""
    amount: JSONNumber = Decimal("0")
    date: Optional[str] = None


class CategorizationRequest(WireModel):
    """Body of the JSON categorization endpoints."""

    prompt: str = Field(..., min_length=1, description="Raw transaction text")
    expense_categories: list[CategoryRef] = Field(default_factory=list)
    historical_expenses: list[HistoricalExpense] = Field(default_factory=list)
