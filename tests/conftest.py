"""Shared fixtures: an in-memory ledger wired the way the app wires it."""

from datetime import date

import pytest

from fundledger.audit import AuditLogger
from fundledger.config import LedgerSettings
from fundledger.ledger import LedgerEngine
from fundledger.queries import LedgerQueries
from fundledger.services.storage import InMemoryLedgerStorage


ROSTER = "Firdaus,Faza,Rafah,Haikal"
PERIOD_DAY = date(2024, 3, 15)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        distribution_policy="remainder_split",
        roster=ROSTER,
        max_attempts=3,
        backoff_max_seconds=0.0,
        history_display_limit=10,
        lock_savings_until_target=True,
    )


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_logger(storage) -> AuditLogger:
    return AuditLogger(storage)


@pytest.fixture
def engine(storage, audit_logger, ledger_settings) -> LedgerEngine:
    return LedgerEngine(storage, audit_logger, settings=ledger_settings)


@pytest.fixture
def queries(storage, audit_logger, engine, ledger_settings) -> LedgerQueries:
    return LedgerQueries(storage, audit_logger, engine, settings=ledger_settings)


@pytest.fixture
async def funded_engine(engine) -> LedgerEngine:
    """Scenario A already applied: 200000 expense, 2000000 income in March 2024."""
    await engine.record_expense(200_000, "Hosting", PERIOD_DAY)
    await engine.record_income_with_distribution(2_000_000, "Client X", PERIOD_DAY)
    return engine
