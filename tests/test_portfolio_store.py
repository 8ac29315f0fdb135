"""
Tests for portfolio/holdings/manager.py — PortfolioStore.

The price feed client is a MagicMock; background fetches run on a real
single-worker executor and are gated with threading.Event where ordering
matters.
"""
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from portfolio.analytics.currency import AppCurrency
from portfolio.holdings.manager import PortfolioStore, SyncState
from portfolio.holdings.repository import HoldingsRepository
from portfolio.holdings.schema import SortOption, TransactionKind
from portfolio.sync.price_sync import PriceSyncService
from src.data.coingecko_client import RateLimitedError


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock(fixed_now):
    return _Clock(fixed_now)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def store(client, clock):
    service = PriceSyncService(client=client, clock=clock)
    s = PortfolioStore(service, repository=None, currency="USD", scheduler=MagicMock())
    yield s
    s.close()


def _drain_until(store, count, timeout=5.0):
    """Drain until `count` outcomes have been applied or the timeout passes."""
    applied = 0
    deadline = time.monotonic() + timeout
    while applied < count and time.monotonic() < deadline:
        applied += store.drain(timeout=0.05)
    return applied


class TestMutations:
    def test_add_position_recomputes_and_notifies(self, store):
        seen = []
        store.subscribe(seen.append)
        p = store.add_position("Bitcoin", "btc", 2, 100)
        assert p.ticker == "BTC"
        assert store.metrics.total_value == 200
        assert store.metrics.total_cost == 200
        assert len(seen) == 1
        assert seen[0].total_value == 200

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.add_position(None, "BTC", 1, 100)
        assert seen == []

    def test_subscriber_failure_is_contained(self, store):
        def broken(_metrics):
            raise RuntimeError("boom")

        seen = []
        store.subscribe(broken)
        store.subscribe(seen.append)
        store.add_position(None, "BTC", 1, 100)
        assert len(seen) == 1

    def test_record_transaction(self, store):
        p = store.add_position(None, "BTC", 1, 100)
        store.record_transaction(p.id, "buy", 1, 200)
        assert p.cost_basis == pytest.approx(150)
        store.record_transaction(p.id, TransactionKind.SELL, 0.5, 300)
        assert p.amount == pytest.approx(1.5)
        assert p.cost_basis == pytest.approx(150)
        assert store.metrics.total_value == pytest.approx(1.5 * 100)

    def test_oversell_rejected(self, store):
        p = store.add_position(None, "BTC", 1, 100)
        with pytest.raises(ValueError):
            store.record_transaction(p.id, "sell", 5, 100)
        assert p.amount == 1

    def test_update_price_appends_history(self, store):
        p = store.add_position(None, "BTC", 1, 100)
        store.update_price(p.id, 150)
        assert p.current_price == 150
        assert len(p.price_history) == 2
        assert store.metrics.total_profit_loss == 50

    def test_delete_position(self, store):
        p = store.add_position(None, "BTC", 1, 100)
        store.add_position(None, "ETH", 1, 10)
        store.delete_position(p.id)
        assert [q.ticker for q in store.positions] == ["ETH"]
        assert store.metrics.total_value == 10
        with pytest.raises(KeyError):
            store.get_position(p.id)

    def test_reset(self, store):
        store.add_position(None, "BTC", 1, 100)
        store.reset()
        assert store.positions == []
        assert store.metrics.total_value == 0


class TestQueries:
    def _seed(self, store):
        btc = store.add_position("Bitcoin", "BTC", 1, 100, tags=["core"])
        eth = store.add_position("Ethereum", "ETH", 10, 20, tags=["core", "defi"])
        doge = store.add_position("Dogecoin", "DOGE", 1000, 0.1, tags=["meme"])
        store.update_price(btc.id, 300)    # value 300, +200, +200%
        store.update_price(eth.id, 25)     # value 250, +50,  +25%
        store.update_price(doge.id, 0.05)  # value 50,  -50,  -50%
        return btc, eth, doge

    def test_sort_options(self, store):
        self._seed(store)
        store.set_sort_option(SortOption.VALUE)
        assert [p.ticker for p in store.filtered_positions()] == ["BTC", "ETH", "DOGE"]
        store.set_sort_option("name")
        assert [p.ticker for p in store.filtered_positions()] == ["BTC", "DOGE", "ETH"]
        store.set_sort_option(SortOption.PROFIT_LOSS)
        assert [p.ticker for p in store.filtered_positions()] == ["BTC", "ETH", "DOGE"]
        store.set_sort_option(SortOption.PERCENTAGE)
        assert [p.ticker for p in store.filtered_positions()] == ["BTC", "ETH", "DOGE"]

    def test_tag_filter_drives_metrics(self, store):
        self._seed(store)
        store.set_selected_tags(["meme"])
        assert [p.ticker for p in store.filtered_positions()] == ["DOGE"]
        assert store.metrics.total_value == pytest.approx(50)
        store.set_selected_tags(["core", "meme"])
        assert len(store.filtered_positions()) == 3
        store.set_selected_tags([])
        assert store.metrics.total_value == pytest.approx(600)

    def test_all_tags(self, store):
        self._seed(store)
        assert store.all_tags() == ["core", "defi", "meme"]

    def test_allocation(self, store):
        self._seed(store)
        allocation = store.allocation()
        assert allocation[0].name == "Bitcoin"
        assert sum(e.percentage for e in allocation) == pytest.approx(100)

    def test_search_transactions(self, store):
        btc, eth, _ = self._seed(store)
        store.record_transaction(btc.id, "sell", 0.5, 300, notes="took profit")
        assert len(store.all_transactions()) == 4
        sells = store.search_transactions(kind="sell")
        assert [t.position_id for t in sells] == [btc.id]
        assert len(store.search_transactions(text="ether")) == 1
        assert len(store.search_transactions(text="PROFIT")) == 1
        assert store.search_transactions(kind="buy", text="took") == []

    def test_find_by_ticker(self, store):
        self._seed(store)
        assert [p.name for p in store.find_by_ticker("eth")] == ["Ethereum"]


class TestFormatting:
    def test_currency_format(self, store):
        assert store.format_currency(1234.5) == "$1,234.50"
        assert store.format_currency(-1234.5) == "-$1,234.50"
        assert store.format_percentage(12.3) == "12.30%"
        assert store.format_percentage(-4) == "-4.00%"

    def test_privacy_mode_masks(self, store):
        assert store.toggle_privacy_mode() is True
        assert store.format_currency(1234.5) == "••••"
        assert store.format_percentage(12.3) == "•••"
        assert store.toggle_privacy_mode() is False

    def test_currency_symbol_follows_setting(self, client, clock):
        service = PriceSyncService(client=client, clock=clock)
        with PortfolioStore(service, currency="GBP", scheduler=MagicMock()) as s:
            assert s.format_currency(10) == "£10.00"


class TestSynchronousRefresh:
    def test_applies_prices(self, store, client, fixed_now):
        client.get_simple_prices.return_value = {"bitcoin": 150.0}
        p = store.add_position(None, "BTC", 2, 100)
        seen = []
        store.subscribe(seen.append)

        outcome = store.refresh_prices()
        assert outcome.ok
        assert p.current_price == 150
        assert len(p.price_history) == 2
        assert store.metrics.total_value == 300
        assert store.last_update_time == fixed_now
        assert store.state == SyncState.IDLE
        assert not store.has_network_error
        assert len(seen) == 1

    def test_unmapped_tickers_skip_network(self, store, client):
        store.add_position(None, "NOTACOIN", 1, 5)
        outcome = store.refresh_prices()
        assert outcome.ok
        client.get_simple_prices.assert_not_called()

    def test_no_positions_no_fetch(self, store, client):
        assert store.refresh_prices() is None
        assert store.request_refresh() is False
        client.get_simple_prices.assert_not_called()

    def test_failure_leaves_positions_untouched(self, store, client):
        client.get_simple_prices.side_effect = RateLimitedError("limited")
        p = store.add_position(None, "BTC", 1, 100)

        outcome = store.refresh_prices()
        assert outcome.error_kind == "rate_limited"
        assert p.current_price == 100
        assert len(p.price_history) == 1
        assert store.has_network_error
        assert store.state == SyncState.IDLE

    def test_failure_within_staleness_window_not_surfaced(self, store, client, clock, fixed_now):
        p = store.add_position(None, "BTC", 1, 100)
        client.get_simple_prices.return_value = {"bitcoin": 110.0}
        store.refresh_prices()

        client.get_simple_prices.side_effect = RateLimitedError("limited")
        clock.now = fixed_now + timedelta(seconds=60)
        store.refresh_prices()
        assert not store.has_network_error
        assert p.current_price == 110

        clock.now = fixed_now + timedelta(seconds=301)
        store.refresh_prices()
        assert store.has_network_error

    def test_success_clears_error_flag(self, store, client):
        store.add_position(None, "BTC", 1, 100)
        client.get_simple_prices.side_effect = RateLimitedError("limited")
        store.refresh_prices()
        assert store.has_network_error

        client.get_simple_prices.side_effect = None
        client.get_simple_prices.return_value = {"bitcoin": 120.0}
        store.refresh_prices()
        assert not store.has_network_error

    def test_clear_network_error(self, store, client):
        store.add_position(None, "BTC", 1, 100)
        client.get_simple_prices.side_effect = RateLimitedError("limited")
        store.refresh_prices()
        store.clear_network_error()
        assert not store.has_network_error


class TestBackgroundRefresh:
    def test_single_fetch_in_flight(self, store, client):
        gate = threading.Event()

        def slow_prices(ids, vs_currency):
            gate.wait(5)
            return {"bitcoin": 200.0}

        client.get_simple_prices.side_effect = slow_prices
        p = store.add_position(None, "BTC", 1, 100)

        assert store.request_refresh() is True
        assert store.is_loading_prices
        assert store.request_refresh() is False
        assert store.refresh_prices() is None

        gate.set()
        assert _drain_until(store, 1) == 1
        assert client.get_simple_prices.call_count == 1
        assert p.current_price == 200
        assert not store.is_loading_prices

    def test_results_wait_for_drain(self, store, client):
        done = threading.Event()

        def prices(ids, vs_currency):
            done.set()
            return {"bitcoin": 200.0}

        client.get_simple_prices.side_effect = prices
        p = store.add_position(None, "BTC", 1, 100)
        store.request_refresh()
        assert done.wait(5)
        assert p.current_price == 100
        assert _drain_until(store, 1) == 1
        assert p.current_price == 200

    def test_currency_change_discards_stale_result(self, store, client):
        gate = threading.Event()

        def prices(ids, vs_currency):
            if vs_currency == "usd":
                gate.wait(5)
                return {"bitcoin": 100.0}
            return {"bitcoin": 85.0}

        client.get_simple_prices.side_effect = prices
        p = store.add_position(None, "BTC", 1, 50)

        store.request_refresh()
        assert store.set_currency("EUR") is True
        gate.set()

        assert _drain_until(store, 1) == 1
        assert store.currency == AppCurrency.EUR
        assert p.current_price == 85
        assert [pp.price for pp in p.price_history] == [50, 85]
        assert store.last_outcome.currency == AppCurrency.EUR

    def test_same_currency_is_noop(self, store, client):
        store.add_position(None, "BTC", 1, 50)
        assert store.set_currency("usd") is False
        client.get_simple_prices.assert_not_called()

    def test_close_discards_pending_results(self, client, clock):
        gate = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1)

        def prices(ids, vs_currency):
            gate.wait(5)
            return {"bitcoin": 999.0}

        client.get_simple_prices.side_effect = prices
        service = PriceSyncService(client=client, clock=clock)
        store = PortfolioStore(service, scheduler=MagicMock(), executor=executor)
        p = store.add_position(None, "BTC", 1, 50)

        store.request_refresh()
        store.close()
        gate.set()
        executor.shutdown(wait=True)

        assert store.drain() == 0
        assert p.current_price == 50
        assert store.request_refresh() is False
        store.scheduler.cancel_all.assert_called_once()


class TestLifecycle:
    def test_start_schedules_startup_and_periodic(self, store):
        ticket = store.start(auto_refresh_interval=300, startup_delay=1.0)
        store.scheduler.schedule_once.assert_called_once()
        assert store.scheduler.schedule_once.call_args.args[0] == 1.0
        store.scheduler.start.assert_called_once()
        assert store.scheduler.start.call_args.args[0] == 300
        assert ticket is store.scheduler.start.return_value

    def test_start_twice_returns_same_ticket(self, store):
        store.scheduler.start.return_value.cancelled = False
        first = store.start()
        second = store.start()
        assert first is second
        assert store.scheduler.start.call_count == 1

    def test_new_position_triggers_sync_when_auto_refreshing(self, store):
        store.add_position(None, "BTC", 1, 50)
        store.scheduler.schedule_once.assert_not_called()
        store.start()
        store.add_position(None, "ETH", 1, 5)
        assert store.scheduler.schedule_once.call_count == 2

    def test_start_after_close(self, store):
        store.close()
        with pytest.raises(RuntimeError):
            store.start()


class TestPersistence:
    def test_mutations_persist(self, tmp_path, client, clock):
        repo = HoldingsRepository(tmp_path / "holdings.json")
        service = PriceSyncService(client=client, clock=clock)
        with PortfolioStore(service, repository=repo, scheduler=MagicMock()) as s:
            p = s.add_position("Bitcoin", "BTC", 1, 100)
            s.record_transaction(p.id, "buy", 1, 300, date=datetime(2025, 1, 2))

        with PortfolioStore(service, repository=repo, scheduler=MagicMock()) as reloaded:
            q = reloaded.get_position(p.id)
            assert q.amount == 2
            assert q.cost_basis == 200
            assert len(q.transactions) == 2

    def test_delete_persists(self, tmp_path, client, clock):
        repo = HoldingsRepository(tmp_path / "holdings.json")
        service = PriceSyncService(client=client, clock=clock)
        with PortfolioStore(service, repository=repo, scheduler=MagicMock()) as s:
            p = s.add_position(None, "BTC", 1, 100)
            s.delete_position(p.id)
        assert repo.load() == []
