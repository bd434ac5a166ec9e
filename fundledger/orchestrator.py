"""
Main Orchestrator for the Fund Ledger

This module ties together all the components: storage, audit logger,
ledger engine and query facade.

DESIGN DECISION: Wiring happens in exactly one place. The UI (or a
test) asks for the components and never builds a store itself, so the
engine and the queries always share the same store and audit logger.
"""

import asyncio
import threading
from typing import Awaitable, NamedTuple, Optional, TypeVar

import structlog

from fundledger.audit import AuditLogger
from fundledger.config import LedgerSettings, get_settings
from fundledger.ledger import LedgerEngine
from fundledger.queries import LedgerQueries
from fundledger.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
)


logger = structlog.get_logger("fundledger.orchestrator")

T = TypeVar("T")


class AsyncRunner:
    """
    Runs coroutines from synchronous code on one long-lived event loop.

    The loop lives in its own daemon thread. Any number of caller threads
    (Streamlit serves each session from its own) may submit work at the
    same time; each call blocks until its coroutine finishes. The engine's
    locks are bound to this loop, so every ledger call must go through
    the same runner.
    """

    def __init__(self):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="fundledger-loop",
            daemon=True,
        )
        self._thread.start()

    def run(self, coro: Awaitable[T]) -> T:
        """Run `coro` on the loop and return its result or raise its error."""
        if self._loop.is_closed():
            raise RuntimeError("AsyncRunner is closed")
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def close(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


class AppComponents(NamedTuple):
    engine: LedgerEngine
    queries: LedgerQueries
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: Optional[bool] = None,
    ledger_settings: Optional[LedgerSettings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to persist to Google Sheets. Defaults to the
                    USE_SHEETS_STORAGE setting. When Sheets cannot be
                    configured the ledger runs in memory instead.
        ledger_settings: Overrides the LEDGER_* environment settings.

    Returns:
        (engine, queries, audit_logger, sheets_client)
    """
    settings = get_settings()
    if use_storage is None:
        use_storage = settings.app.use_sheets_storage
    ledger_settings = ledger_settings or settings.ledger

    sheets_client = None
    storage = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("sheets_storage_not_configured", error=str(e))
            sheets_client = None
            storage = None

    if storage is None:
        storage = InMemoryLedgerStorage()

    audit_logger = AuditLogger(storage)
    engine = LedgerEngine(storage, audit_logger, settings=ledger_settings)
    queries = LedgerQueries(storage, audit_logger, engine, settings=ledger_settings)

    return AppComponents(
        engine=engine,
        queries=queries,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
