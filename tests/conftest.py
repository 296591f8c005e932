"""Shared fixtures and fakes. No test talks to a real AI provider or spreadsheet."""

from typing import Optional
from uuid import UUID

import pytest

from buddy.agents import ExpenseCategorizationAgent, ExpenseModelProvider
from buddy.audit import AuditLogger
from buddy.models.audit import AuditEvent
from buddy.services.ledger import LedgerService
from buddy.services.storage import AuditStorageInterface, LocalJSONStorage


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit store that keeps events in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


class FakeProvider(ExpenseModelProvider):
    """
    Scripted provider.

    Yields `chunks`, or raises `error` before the first chunk. With
    `fail_after`, raises after that many chunks.
    """

    def __init__(
        self,
        name: str,
        chunks: Optional[list[str]] = None,
        error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
    ):
        self.name = name
        self.chunks = chunks or []
        self.error = error
        self.fail_after = fail_after
        self.prompts: list[str] = []
        self.systems: list[Optional[str]] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def stream_text(self, prompt: str, system: Optional[str] = None):
        self.prompts.append(prompt)
        self.systems.append(system)
        if self.error is not None and self.fail_after is None:
            raise self.error
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise self.error
            yield chunk


EXPENSES_JSON = (
    '[{"amount": 45.2, "categoryId": "%s", "date": "2025-03-12", '
    '"description": "Supermarket"}]'
)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def store(tmp_path) -> LocalJSONStorage:
    return LocalJSONStorage(tmp_path / "buddy-data.json")


@pytest.fixture
def ledger(store, audit_logger) -> LedgerService:
    return LedgerService(store, audit_logger)


def make_agent(primary, fallback, audit_logger=None) -> ExpenseCategorizationAgent:
    return ExpenseCategorizationAgent(
        primary=primary,
        fallback=fallback,
        audit_logger=audit_logger,
        max_retries=0,
    )
