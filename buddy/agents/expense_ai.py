"""
AI Expense Categorization

DESIGN DECISION: Two hosted model providers behind one small interface:
1. Gemini is the primary provider for streamed responses
2. OpenAI is the fallback, and the primary for the JSON endpoint
3. Both are asked for a JSON array of {amount, categoryId, date, description}

CRITICAL BOUNDARIES:
- The model ONLY proposes expenses. Nothing here persists data.
- Category ids must come from the active categories we send.
- Output is validated into ParsedExpense before anyone sees it as data;
  strict checks (known category, selected month) happen in the validator.

The LLM is a TRANSLATOR from bank statement text to structured rows.
It NEVER decides what gets saved.
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncIterator, Callable, Iterable, Optional
from uuid import UUID, uuid4

import google.generativeai as genai
import structlog
from openai import AsyncOpenAI
from pydantic import TypeAdapter, ValidationError
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from buddy.config import get_settings
from buddy.models.expense_ai import CategoryRef, HistoricalExpense, ParsedExpense
from buddy.models.ledger import Expense

logger = structlog.get_logger(__name__)


class AIProviderError(Exception):
    """Raised when no provider produced a usable response."""

    def __init__(self, message: str, errors: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class ExpenseParseError(ValueError):
    """Model output is not a JSON array of expenses."""
    pass


# =============================================================================
# PROMPTS
# =============================================================================

def build_expense_prompt(
    transactions: str,
    categories: str,
    historical_expenses: str,
    default_year: Optional[int] = None,
) -> str:
    """
    Prompt for free-text transactions pasted by the user.

    `categories` and `historical_expenses` are already formatted, see
    format_categories() and format_historical_expenses().
    """
    year = default_year or get_settings().app.default_transaction_year
    return f"""You are an intelligent assistant tasked with categorizing a list of bank transactions for an expense tracker.

## Your Task

Analyze new bank transactions and categorize them based on:
1. Historical expense patterns (how similar transactions were categorized before)
2. The list of active expense categories available

## Input Data

### Historical Expenses (past categorizations for reference):
{historical_expenses}

### Active Categories (id: name format):
{categories}

### New Transactions to Categorize:
{transactions}

## Categorization Rules

**Transaction Processing:**
- Skip/ignore any transaction containing: "Salary", "Bullish" (these are income, not expenses)
- Format amounts as decimal numbers (e.g., 45.50) without currency symbols
- If 2 amounts exist, use the one in SGD or S$ (the smaller amount is usually the transaction, larger is balance)
- Format dates as 'yyyy-MM-dd'. If no year is present, use {year}
- If 2 dates exist, use the later/more recent date
- Clean up descriptions minimally for readability while preserving key merchant/transaction info

**Category Matching Logic:**
1. First, check if a similar transaction exists in historical expenses
2. If found, use the same categoryId if it's still in the active categories list
3. If the historical categoryId is no longer active, find the closest matching active category by name
4. If no historical match, make your best guess based on the transaction description
5. ALWAYS use a categoryId from the active categories list - never invent new IDs

## Output Format

Return a JSON array of categorized expenses. For each transaction, provide:
- amount: number (decimal, no currency symbol)
- categoryId: string (must be from active categories)
- date: string (yyyy-MM-dd format)
- description: string (cleaned up, readable)
"""


def format_categories(categories: Iterable[CategoryRef]) -> str:
    """One "id: name" line per category."""
    return "\n".join(f"{c.id}: {c.name}" for c in categories)


def _history_entry(expense: HistoricalExpense, with_date: bool = False) -> dict:
    entry = {
        "description": expense.description,
        "categoryId": expense.category_id,
        "amount": float(expense.amount),
    }
    if with_date and expense.date:
        entry["date"] = expense.date
    return entry


def format_historical_expenses(history: Iterable[HistoricalExpense]) -> str:
    """Pretty-printed JSON of {description, categoryId, amount}."""
    return json.dumps([_history_entry(h) for h in history], indent=2, ensure_ascii=False)


def build_statement_prompt(
    extracted_text: str,
    categories: list[CategoryRef],
    historical_expenses: list[HistoricalExpense],
    history_limit: Optional[int] = None,
) -> str:
    """Prompt for the text of an uploaded bank statement."""
    if history_limit is None:
        history_limit = get_settings().app.statement_history_limit

    category_list = "\n".join(f"- {c.id}: {c.name}" for c in categories)

    history_context = ""
    if historical_expenses:
        recent = [_history_entry(h, with_date=True) for h in historical_expenses[:history_limit]]
        history_context = (
            "\n\nHere are recent expenses for context on categorization patterns:\n"
            + json.dumps(recent, indent=2, ensure_ascii=False)
        )

    return f"""You are processing a bank statement to extract EXPENSE transactions only.

IMPORTANT RULES:
1. Only extract EXPENSES (debits, purchases, payments, withdrawals)
2. IGNORE all income/credits (salary, refunds, transfers IN)
3. IGNORE internal transfers between accounts
4. IGNORE refunds (transactions with "REFUND" in description)
5. Include ATM/cash withdrawals
6. All amounts should be POSITIVE numbers
7. Dates must be in yyyy-MM-dd format
8. Match each expense to the most appropriate category from the list below

Available categories:
{category_list}
{history_context}

Bank statement content:
---
{extracted_text}
---

Extract all expense transactions as a JSON array. For each expense include: date, amount (positive), description, categoryId."""


SYSTEM_PROMPT = """You are an intelligent expense categorization assistant.

Your task is to categorize bank transactions based on historical expense patterns and active categories.

IMPORTANT RULES:
- Skip/ignore transactions containing: "Salary", "Bullish" (these are income, not expenses)
- Format amounts as decimal numbers (e.g., 45.50) without currency symbols
- If 2 amounts exist, always use the one in SGD OR S$.
- Format dates as 'yyyy-MM-dd'. If no year, default to 2025
- If 2 dates exist, use the later date
- Clean up descriptions for readability while preserving key information
- Only use categoryId from the provided active categories list
- Match historical patterns for consistent categorization
- If old category name differs from active name, map to closest active category

Context is provided as compact JSON with two keys:
historicalExpenses (description, categoryId, amount) and activeCategories (id, name).

Respond with a JSON array of objects with the keys amount, categoryId, date and description."""


def build_categorization_context(
    historical_expenses: Iterable[HistoricalExpense],
    categories: Iterable[CategoryRef],
) -> str:
    """Compact JSON context for the non-streaming categorization call."""
    context = {
        "historicalExpenses": [_history_entry(h) for h in historical_expenses],
        "activeCategories": [{"id": c.id, "name": c.name} for c in categories],
    }
    return json.dumps(context, separators=(",", ":"), ensure_ascii=False)


def build_categorization_prompt(
    transactions: str,
    context: str,
    context_format: str = "JSON format",
) -> str:
    return f"""Historical expense context ({context_format}):
{context}

New transactions to categorize:
{transactions}

Analyze the context above and categorize each transaction.
Return ONLY the categorized expenses without any additional text."""


# =============================================================================
# OUTPUT PARSING
# =============================================================================

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)

_expense_list = TypeAdapter(list[ParsedExpense])


def repair_json(text: str) -> str:
    """
    Fix the usual defects of model-written JSON.

    Strips markdown code fences, drops trailing commas before a closing
    brace or bracket and turns single quotes into double quotes.
    """
    text = _CODE_FENCE.sub("", text.strip())
    text = re.sub(r",\s*}", "}", text)
    text = re.sub(r",\s*]", "]", text)
    return text.replace("'", '"')


def parse_expense_array(text: str) -> list[ParsedExpense]:
    """
    Parse model output into proposed expenses.

    The text is parsed as-is first and repaired only if that fails.
    A top-level object with an "expenses" list is accepted too.

    Raises:
        ExpenseParseError: not JSON, or not a list of valid expenses
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = json.loads(repair_json(text))
        except json.JSONDecodeError as e:
            raise ExpenseParseError(f"Model output is not valid JSON: {e}")

    if isinstance(data, dict) and isinstance(data.get("expenses"), list):
        data = data["expenses"]

    if not isinstance(data, list):
        raise ExpenseParseError("Model output is not a JSON array")

    try:
        return _expense_list.validate_python(data)
    except ValidationError as e:
        raise ExpenseParseError(f"Model output failed validation: {e.error_count()} errors")


def _months_before(today: date, months: int) -> date:
    month_index = today.year * 12 + (today.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # Clamp the day for shorter months
    for day in (today.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return date(year, month, 28)


def select_historical_expenses(
    expenses: Iterable[Expense],
    today: Optional[date] = None,
    months: Optional[int] = None,
) -> list[HistoricalExpense]:
    """Expenses dated within the last `months` months, as model context."""
    today = today or date.today()
    if months is None:
        months = get_settings().app.history_months
    cutoff = _months_before(today, months)

    return [
        HistoricalExpense(
            description=e.description,
            category_id=str(e.category_id) if e.category_id else (e.category or ""),
            amount=e.amount,
            date=e.date.isoformat(),
        )
        for e in expenses
        if e.date >= cutoff
    ]


# =============================================================================
# PROVIDERS
# =============================================================================

class ExpenseModelProvider(ABC):
    """A hosted language model that returns JSON text."""

    name: str = "provider"

    @abstractmethod
    def stream_text(self, prompt: str, system: Optional[str] = None) -> AsyncIterator[str]:
        """Yield the response text chunk by chunk."""
        pass

    async def generate_text(self, prompt: str, system: Optional[str] = None) -> str:
        """The whole response as one string."""
        chunks = [chunk async for chunk in self.stream_text(prompt, system)]
        return "".join(chunks)


class GeminiProvider(ExpenseModelProvider):
    """Google Gemini through google-generativeai, in JSON response mode."""

    name = "gemini"

    def __init__(self, settings=None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
            "response_mime_type": "application/json",
        }

    def _model(self, system: Optional[str]) -> genai.GenerativeModel:
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=self._generation_config,
            system_instruction=system,
        )

    async def stream_text(self, prompt: str, system: Optional[str] = None) -> AsyncIterator[str]:
        response = await self._model(system).generate_content_async(prompt, stream=True)
        async for chunk in response:
            try:
                text = chunk.text
            except ValueError:
                # Chunk without text parts (e.g. the final one)
                continue
            if text:
                yield text

    async def generate_text(self, prompt: str, system: Optional[str] = None) -> str:
        response = await self._model(system).generate_content_async(prompt)
        return response.text


class OpenAIProvider(ExpenseModelProvider):
    """OpenAI chat completions through the async openai client."""

    name = "openai"

    def __init__(self, settings=None, client: Optional[AsyncOpenAI] = None):
        self._settings = settings or get_settings().openai
        self._client = client or AsyncOpenAI(api_key=self._settings.api_key)

    def _messages(self, prompt: str, system: Optional[str]) -> list[dict]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def stream_text(self, prompt: str, system: Optional[str] = None) -> AsyncIterator[str]:
        stream = await self._client.chat.completions.create(
            model=self._settings.model_name,
            messages=self._messages(prompt, system),
            temperature=self._settings.temperature,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                yield text

    async def generate_text(self, prompt: str, system: Optional[str] = None) -> str:
        response = await self._client.chat.completions.create(
            model=self._settings.model_name,
            messages=self._messages(prompt, system),
            temperature=self._settings.temperature,
        )
        return response.choices[0].message.content or ""


# =============================================================================
# AGENT
# =============================================================================

class ExpenseCategorizationAgent:
    """
    Multi-provider categorization with fallback.

    RESPONSIBILITIES:
    - Stream a JSON array of proposed expenses (primary, then fallback)
    - Return validated expenses for the non-streaming endpoint
      (fallback provider first, then primary)

    BOUNDARIES:
    - NEVER persists data
    - A provider counts as failed only if it fails before its first chunk;
      once text has been sent it is forwarded as-is
    """

    def __init__(
        self,
        primary: Optional[ExpenseModelProvider] = None,
        fallback: Optional[ExpenseModelProvider] = None,
        audit_logger=None,
        max_retries: Optional[int] = None,
    ):
        self._primary = primary
        self._fallback = fallback
        self._audit = audit_logger
        if max_retries is None:
            max_retries = get_settings().app.ai_max_retries
        self._max_retries = max_retries

    @property
    def primary(self) -> ExpenseModelProvider:
        if self._primary is None:
            self._primary = GeminiProvider()
        return self._primary

    @property
    def fallback(self) -> ExpenseModelProvider:
        if self._fallback is None:
            self._fallback = OpenAIProvider()
        return self._fallback

    def _slot(self, which: str) -> tuple[str, Callable[[], ExpenseModelProvider]]:
        """Provider name and a getter that builds it on first use."""
        injected = getattr(self, f"_{which}")
        if injected is not None:
            return injected.name, lambda: injected
        default = GeminiProvider if which == "primary" else OpenAIProvider
        return default.name, lambda: getattr(self, which)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        )

    async def _open_stream(
        self,
        provider: ExpenseModelProvider,
        prompt: str,
        system: Optional[str],
    ) -> tuple[Optional[str], AsyncIterator[str]]:
        """Start a provider stream and wait for its first chunk."""
        async for attempt in self._retrying():
            with attempt:
                iterator = provider.stream_text(prompt, system).__aiter__()
                try:
                    first = await iterator.__anext__()
                except StopAsyncIteration:
                    first = None
                return first, iterator

    async def _relay(
        self,
        provider: ExpenseModelProvider,
        first: Optional[str],
        iterator: AsyncIterator[str],
    ) -> AsyncIterator[str]:
        if first is not None:
            yield first
        try:
            async for chunk in iterator:
                yield chunk
        except Exception as e:
            logger.error("ai_stream_interrupted", provider=provider.name, error=str(e))
            raise

    async def _audit_call(self, method: str, **kwargs) -> None:
        if self._audit is not None:
            await getattr(self._audit, method)(**kwargs)

    async def _run(self, slots, call, prompt: str, correlation_id: Optional[UUID]):
        """
        Try each (name, getter) slot in order.

        The provider is built inside the attempt, so a provider whose
        configuration is missing counts as failed like any other.
        """
        request_id = uuid4()
        errors: dict[str, str] = {}

        for index, (name, build) in enumerate(slots):
            if index > 0:
                await self._audit_call(
                    "log_ai_fallback_used",
                    request_id=request_id,
                    failed_provider=slots[index - 1][0],
                    fallback_provider=name,
                    correlation_id=correlation_id,
                )
            logger.info("ai_provider_selected", provider=name, fallback=index > 0)
            await self._audit_call(
                "log_ai_request_started",
                request_id=request_id,
                provider=name,
                prompt_length=len(prompt),
                correlation_id=correlation_id,
            )
            try:
                return await call(build())
            except Exception as e:
                errors[name] = str(e)
                logger.warning("ai_provider_failed", provider=name, error=str(e))
                await self._audit_call(
                    "log_ai_provider_failed",
                    request_id=request_id,
                    provider=name,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )

        logger.error("ai_all_providers_failed", errors=errors)
        await self._audit_call(
            "log_ai_request_failed",
            request_id=request_id,
            errors=errors,
            correlation_id=correlation_id,
        )
        raise AIProviderError("AI categorization failed with all providers", errors)

    async def stream(
        self,
        prompt: str,
        system: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AsyncIterator[str]:
        """
        Stream the response to a categorization prompt.

        Returns once a provider has produced its first chunk, so provider
        failures surface here and not halfway through the response.

        Raises:
            AIProviderError: every provider failed
        """
        async def open_with(provider: ExpenseModelProvider):
            first, iterator = await self._open_stream(provider, prompt, system)
            return self._relay(provider, first, iterator)

        return await self._run(
            [self._slot("primary"), self._slot("fallback")], open_with, prompt, correlation_id
        )

    async def categorize(
        self,
        transactions: str,
        categories: list[CategoryRef],
        historical_expenses: list[HistoricalExpense],
        correlation_id: Optional[UUID] = None,
    ) -> list[ParsedExpense]:
        """
        Categorize transactions in one call and return validated rows.

        Output that cannot be parsed into expenses counts as a provider
        failure and triggers the next provider.

        Raises:
            AIProviderError: every provider failed
        """
        context = build_categorization_context(historical_expenses, categories)
        prompt = build_categorization_prompt(transactions, context)

        async def generate_with(provider: ExpenseModelProvider):
            async for attempt in self._retrying():
                with attempt:
                    text = await provider.generate_text(prompt, SYSTEM_PROMPT)
                    return parse_expense_array(text)

        expenses = await self._run(
            [self._slot("fallback"), self._slot("primary")], generate_with, prompt, correlation_id
        )
        await self._audit_call(
            "log_expenses_proposed",
            request_id=uuid4(),
            count=len(expenses),
            correlation_id=correlation_id,
        )
        return expenses
