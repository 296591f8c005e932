"""
Tests for AI expense categorization.

Providers are faked; the tests cover prompts, output parsing and the
primary/fallback behaviour of the agent.
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from buddy.agents import (
    ExpenseCategorizationAgent,
    AIProviderError,
    ExpenseParseError,
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
from buddy.models.expense_ai import CategoryRef, HistoricalExpense
from buddy.models.ledger import Expense

from conftest import FakeProvider, make_agent


CATEGORIES = [CategoryRef(id="c1", name="Groceries"), CategoryRef(id="c2", name="Transport")]
HISTORY = [
    HistoricalExpense(description="FairPrice", category_id="c1", amount=Decimal("12.5"), date="2025-02-01"),
]
VALID_OUTPUT = '[{"amount": 45.2, "categoryId": "c1", "date": "2025-03-12", "description": "Supermarket"}]'


async def collect(chunks) -> str:
    return "".join([chunk async for chunk in chunks])


class TestPrompts:
    """Tests for prompt construction."""

    def test_format_categories(self):
        assert format_categories(CATEGORIES) == "c1: Groceries\nc2: Transport"

    def test_format_historical_expenses(self):
        data = json.loads(format_historical_expenses(HISTORY))
        assert data == [{"description": "FairPrice", "categoryId": "c1", "amount": 12.5}]

    def test_expense_prompt_contains_inputs(self):
        prompt = build_expense_prompt(
            transactions="12/03 SHOP 4.00",
            categories=format_categories(CATEGORIES),
            historical_expenses=format_historical_expenses(HISTORY),
            default_year=2024,
        )
        assert "12/03 SHOP 4.00" in prompt
        assert "c2: Transport" in prompt
        assert "If no year is present, use 2024" in prompt

    def test_statement_prompt_lists_categories(self):
        prompt = build_statement_prompt("STATEMENT TEXT", CATEGORIES, [], history_limit=10)
        assert "- c1: Groceries" in prompt
        assert "STATEMENT TEXT" in prompt
        assert "recent expenses for context" not in prompt

    def test_statement_prompt_limits_history(self):
        history = [
            HistoricalExpense(description=f"Item {i}", category_id="c1", amount=Decimal("1"))
            for i in range(5)
        ]
        prompt = build_statement_prompt("TEXT", CATEGORIES, history, history_limit=2)
        assert "Item 1" in prompt
        assert "Item 2" not in prompt

    def test_categorization_context_is_compact(self):
        context = build_categorization_context(HISTORY, CATEGORIES)
        assert " " not in context.replace("FairPrice", "")
        data = json.loads(context)
        assert data["activeCategories"][1] == {"id": "c2", "name": "Transport"}
        assert data["historicalExpenses"][0]["categoryId"] == "c1"

    def test_categorization_prompt(self):
        prompt = build_categorization_prompt("TXN", "{}")
        assert "Historical expense context (JSON format):" in prompt
        assert "TXN" in prompt


class TestOutputParsing:
    """Tests for turning model output into proposed expenses."""

    def test_parses_valid_array(self):
        expenses = parse_expense_array(VALID_OUTPUT)
        assert len(expenses) == 1
        assert expenses[0].amount == Decimal("45.2")
        assert expenses[0].category_id == "c1"

    def test_accepts_expenses_object(self):
        expenses = parse_expense_array('{"expenses": %s}' % VALID_OUTPUT)
        assert len(expenses) == 1

    def test_repairs_code_fence_and_trailing_comma(self):
        text = "```json\n[{\"amount\": 1, \"categoryId\": \"c1\", \"date\": \"2025-03-01\",},]\n```"
        expenses = parse_expense_array(text)
        assert expenses[0].date == "2025-03-01"

    def test_repair_json_swaps_quotes(self):
        assert repair_json("{'a': 1,}") == '{"a": 1}'

    def test_rejects_non_json(self):
        with pytest.raises(ExpenseParseError):
            parse_expense_array("I could not find any transactions.")

    def test_rejects_non_array(self):
        with pytest.raises(ExpenseParseError):
            parse_expense_array('{"total": 3}')

    def test_rejects_invalid_rows(self):
        with pytest.raises(ExpenseParseError):
            parse_expense_array('[{"amount": 1}]')


class TestHistoricalSelection:
    """Tests for choosing context expenses."""

    def test_keeps_recent_months_only(self):
        category_id = uuid4()
        expenses = [
            Expense(date=date(2025, 3, 10), amount=Decimal("5"), description="New", category_id=category_id),
            Expense(date=date(2024, 12, 31), amount=Decimal("5"), description="Old", category_id=category_id),
            Expense(date=date(2025, 1, 15), amount=Decimal("5"), description="Edge", category="Legacy"),
        ]
        history = select_historical_expenses(expenses, today=date(2025, 4, 15), months=3)

        assert [h.description for h in history] == ["New", "Edge"]
        assert history[0].category_id == str(category_id)
        assert history[1].category_id == "Legacy"
        assert history[0].date == "2025-03-10"

    def test_clamps_short_months(self):
        expenses = [Expense(date=date(2025, 2, 28), amount=Decimal("1"))]
        history = select_historical_expenses(expenses, today=date(2025, 5, 31), months=3)
        assert len(history) == 1


class TestAgentStream:
    """Tests for the streamed categorization with fallback."""

    async def test_uses_primary_when_it_works(self, audit_logger, audit_storage):
        primary = FakeProvider("gemini", chunks=["[", "]"])
        fallback = FakeProvider("openai", chunks=["unused"])
        agent = make_agent(primary, fallback, audit_logger)

        text = await collect(await agent.stream("prompt"))

        assert text == "[]"
        assert fallback.calls == 0
        assert "ai_fallback_used" not in audit_storage.types()

    async def test_falls_back_before_first_chunk(self, audit_logger, audit_storage):
        primary = FakeProvider("gemini", error=RuntimeError("quota exceeded"))
        fallback = FakeProvider("openai", chunks=[VALID_OUTPUT])
        agent = make_agent(primary, fallback, audit_logger)

        text = await collect(await agent.stream("prompt"))

        assert text == VALID_OUTPUT
        assert primary.calls == 1
        assert fallback.calls == 1
        types = audit_storage.types()
        assert "ai_provider_failed" in types
        assert "ai_fallback_used" in types

    async def test_all_providers_fail(self, audit_logger, audit_storage):
        agent = make_agent(
            FakeProvider("gemini", error=RuntimeError("down")),
            FakeProvider("openai", error=RuntimeError("timeout")),
            audit_logger,
        )

        with pytest.raises(AIProviderError) as exc_info:
            await agent.stream("prompt")

        assert str(exc_info.value) == "AI categorization failed with all providers"
        assert exc_info.value.errors == {"gemini": "down", "openai": "timeout"}
        assert "ai_request_failed" in audit_storage.types()

    async def test_failure_after_first_chunk_is_not_retried(self):
        primary = FakeProvider("gemini", chunks=["[", "]"], error=RuntimeError("cut"), fail_after=1)
        fallback = FakeProvider("openai", chunks=["unused"])
        agent = make_agent(primary, fallback)

        chunks = await agent.stream("prompt")
        with pytest.raises(RuntimeError):
            await collect(chunks)
        assert fallback.calls == 0

    async def test_empty_stream_is_not_a_failure(self):
        primary = FakeProvider("gemini", chunks=[])
        fallback = FakeProvider("openai", chunks=["unused"])
        agent = make_agent(primary, fallback)

        assert await collect(await agent.stream("prompt")) == ""
        assert fallback.calls == 0

    async def test_retries_provider_before_falling_back(self):
        primary = FakeProvider("gemini", error=RuntimeError("flaky"))
        fallback = FakeProvider("openai", chunks=["[]"])
        agent = make_agent(primary, fallback)
        agent._max_retries = 1

        # Exponential wait is at least half a second per retry
        await collect(await agent.stream("prompt"))
        assert primary.calls == 2


class TestAgentCategorize:
    """Tests for the non-streaming categorization."""

    async def test_fallback_provider_goes_first(self, audit_logger, audit_storage):
        primary = FakeProvider("gemini", chunks=["[]"])
        fallback = FakeProvider("openai", chunks=[VALID_OUTPUT])
        agent = make_agent(primary, fallback, audit_logger)

        expenses = await agent.categorize("12/03 SHOP 45.20", CATEGORIES, HISTORY)

        assert [e.description for e in expenses] == ["Supermarket"]
        assert primary.calls == 0
        assert fallback.systems[0] is not None
        assert '"activeCategories"' in fallback.prompts[0]
        assert "expenses_proposed" in audit_storage.types()

    async def test_unparseable_output_moves_to_next_provider(self):
        primary = FakeProvider("gemini", chunks=[VALID_OUTPUT])
        fallback = FakeProvider("openai", chunks=["not json"])
        agent = make_agent(primary, fallback)

        expenses = await agent.categorize("txn", CATEGORIES, [])

        assert len(expenses) == 1
        assert primary.calls == 1

    async def test_all_providers_fail(self):
        agent = make_agent(
            FakeProvider("gemini", chunks=["nope"]),
            FakeProvider("openai", error=RuntimeError("auth")),
        )
        with pytest.raises(AIProviderError) as exc_info:
            await agent.categorize("txn", CATEGORIES, [])
        assert set(exc_info.value.errors) == {"gemini", "openai"}


@pytest.fixture
def no_provider_keys(monkeypatch, tmp_path):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)


class TestUnconfiguredProviders:
    """A provider whose key is missing counts as a failed provider."""

    async def test_stream_uses_primary_when_fallback_has_no_key(self, no_provider_keys, audit_storage, audit_logger):
        primary = FakeProvider("gemini", chunks=[VALID_OUTPUT])
        agent = ExpenseCategorizationAgent(primary=primary, audit_logger=audit_logger, max_retries=0)

        assert await collect(await agent.stream("prompt")) == VALID_OUTPUT
        assert "ai_provider_failed" not in audit_storage.types()

    async def test_stream_falls_back_when_primary_has_no_key(self, no_provider_keys, audit_storage, audit_logger):
        fallback = FakeProvider("openai", chunks=[VALID_OUTPUT])
        agent = ExpenseCategorizationAgent(fallback=fallback, audit_logger=audit_logger, max_retries=0)

        assert await collect(await agent.stream("prompt")) == VALID_OUTPUT
        assert "ai_fallback_used" in audit_storage.types()

    async def test_categorize_skips_unconfigured_openai(self, no_provider_keys):
        primary = FakeProvider("gemini", chunks=[VALID_OUTPUT])
        agent = ExpenseCategorizationAgent(primary=primary, max_retries=0)

        expenses = await agent.categorize("txn", CATEGORIES, [])

        assert [e.category_id for e in expenses] == ["c1"]
        assert primary.calls == 1

    async def test_no_keys_at_all(self, no_provider_keys):
        agent = ExpenseCategorizationAgent(max_retries=0)
        with pytest.raises(AIProviderError) as exc_info:
            await agent.stream("prompt")
        assert set(exc_info.value.errors) == {"gemini", "openai"}
