"""
Tests for component wiring and the shared background loop.

The dashboard serves every browser session from its own thread, so the
runner must accept calls from several threads at once.
"""

import threading
from datetime import date

import pytest

from fundledger.errors import InsufficientFunds, InvalidAmount
from fundledger.orchestrator import AsyncRunner, create_app_components
from fundledger.services.storage import InMemoryLedgerStorage


PERIOD_DAY = date(2024, 3, 15)


@pytest.fixture
def runner():
    runner = AsyncRunner()
    yield runner
    runner.close()


@pytest.fixture
def components(ledger_settings, runner):
    components = create_app_components(use_storage=False, ledger_settings=ledger_settings)
    runner.run(components.engine.record_expense(200_000, "Hosting", PERIOD_DAY))
    runner.run(components.engine.record_income_with_distribution(2_000_000, "Client X", PERIOD_DAY))
    return components


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_in_memory_wiring(self, ledger_settings):
        components = create_app_components(use_storage=False, ledger_settings=ledger_settings)
        assert components.sheets_client is None
        assert isinstance(components.engine._storage, InMemoryLedgerStorage)
        assert components.engine.roster == ["Firdaus", "Faza", "Rafah", "Haikal"]

    def test_engine_and_queries_share_the_store(self, components, runner):
        view = runner.run(components.queries.get_balance("firdaus"))
        assert view.amount == 180_000


class TestAsyncRunner:
    """Tests for running ledger calls from synchronous threads."""

    def test_returns_result_and_raises_errors(self, components, runner):
        assert runner.run(components.queries.period_expense_total(PERIOD_DAY)) == 200_000
        with pytest.raises(InvalidAmount):
            runner.run(components.engine.withdraw("firdaus", -1))

    def test_concurrent_sessions_share_one_loop(self, components, runner):
        """Two sessions withdraw 100000 from 180000 at once: one succeeds, one is refused."""
        barrier = threading.Barrier(2)
        outcomes = []

        def session():
            barrier.wait()
            try:
                runner.run(components.engine.withdraw("firdaus", 100_000))
                outcomes.append("ok")
            except InsufficientFunds:
                outcomes.append("insufficient")
            except RuntimeError as e:
                outcomes.append(f"runtime: {e}")

        threads = [threading.Thread(target=session) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert runner.run(components.queries.get_balance("firdaus")).amount == 80_000

    def test_many_threads(self, components, runner):
        """Eight sessions reading and writing at once all complete."""
        errors = []

        def session(i):
            try:
                runner.run(components.engine.withdraw("faza", 1_000))
                runner.run(components.queries.list_balances())
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=session, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert runner.run(components.queries.get_balance("faza")).amount == 172_000

    def test_closed_runner_refuses_work(self):
        runner = AsyncRunner()
        runner.close()
        runner.close()

        async def nothing():
            return None

        coro = nothing()
        with pytest.raises(RuntimeError):
            runner.run(coro)
        coro.close()
