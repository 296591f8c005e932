"""AI Agents package."""

from buddy.agents.expense_ai import (
    SYSTEM_PROMPT,
    AIProviderError,
    ExpenseCategorizationAgent,
    ExpenseModelProvider,
    ExpenseParseError,
    GeminiProvider,
    OpenAIProvider,
    build_categorization_context,
    build_categorization_prompt,
    build_expense_prompt,
    build_statement_prompt,
    format_categories,
    format_historical_expenses,
    parse_expense_array,
    repair_json,
    select_historical_expenses,
)

__all__ = [
    "SYSTEM_PROMPT",
    "AIProviderError",
    "ExpenseCategorizationAgent",
    "ExpenseModelProvider",
    "ExpenseParseError",
    "GeminiProvider",
    "OpenAIProvider",
    "build_categorization_context",
    "build_categorization_prompt",
    "build_expense_prompt",
    "build_statement_prompt",
    "format_categories",
    "format_historical_expenses",
    "parse_expense_array",
    "repair_json",
    "select_historical_expenses",
]
