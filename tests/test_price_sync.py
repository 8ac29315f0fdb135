"""Tests for portfolio/sync/price_sync.py"""
import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from portfolio.analytics.currency import AppCurrency
from portfolio.sync.price_sync import PriceSyncService, SyncOutcome
from src.data.coingecko_client import NetworkError, RateLimitedError
from src.data.ticker_map import resolve_feed_id, resolve_feed_ids


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
def service(client, clock):
    return PriceSyncService(client=client, clock=clock)


class TestTickerMap:
    def test_case_insensitive(self):
        assert resolve_feed_id("BTC") == "bitcoin"
        assert resolve_feed_id(" eth ") == "ethereum"

    def test_unmapped(self):
        assert resolve_feed_id("XYZ") is None
        assert resolve_feed_id("") is None

    def test_batch_drops_unmapped(self):
        assert resolve_feed_ids(["BTC", "XYZ", "sol"]) == {"btc": "bitcoin", "sol": "solana"}

    def test_custom_table(self):
        assert resolve_feed_ids(["abc"], {"abc": "alphabet-coin"}) == {"abc": "alphabet-coin"}


class TestFetch:
    def test_only_mapped_ids_requested(self, service, client):
        client.get_simple_prices.return_value = {"bitcoin": 50000.0}
        prices = service.fetch({"BTC", "XYZ"}, AppCurrency.USD)
        client.get_simple_prices.assert_called_once_with(["bitcoin"], "usd")
        assert prices == {"BTC": 50000.0}

    def test_no_mapped_tickers_no_call(self, service, client):
        assert service.fetch(["XYZ", "QQQ"], AppCurrency.USD) == {}
        client.get_simple_prices.assert_not_called()
        assert service.last_successful_sync is None

    def test_duplicate_tickers_single_id(self, service, client):
        client.get_simple_prices.return_value = {"ethereum": 2000.0}
        service.fetch(["ETH", "eth", "ETH"], AppCurrency.EUR)
        client.get_simple_prices.assert_called_once_with(["ethereum"], "eur")

    def test_unpriced_id_absent(self, service, client):
        client.get_simple_prices.return_value = {"bitcoin": 1.0}
        prices = service.fetch(["BTC", "ETH"], AppCurrency.GBP)
        assert prices == {"BTC": 1.0}

    def test_success_records_time(self, service, client, fixed_now):
        client.get_simple_prices.return_value = {"bitcoin": 1.0}
        service.fetch(["BTC"], AppCurrency.USD)
        assert service.last_successful_sync == fixed_now

    def test_failure_propagates(self, service, client):
        client.get_simple_prices.side_effect = RateLimitedError("limited")
        with pytest.raises(RateLimitedError):
            service.fetch(["BTC"], AppCurrency.USD)
        assert service.last_successful_sync is None


class TestSync:
    def test_success_outcome(self, service, client):
        client.get_simple_prices.return_value = {"bitcoin": 1.0, "solana": 2.0}
        outcome = service.sync(["BTC", "SOL"], AppCurrency.USD)
        assert isinstance(outcome, SyncOutcome)
        assert outcome.ok
        assert outcome.error_kind is None
        assert outcome.prices == {"BTC": 1.0, "SOL": 2.0}
        assert outcome.requested_ids == ["bitcoin", "solana"]
        assert outcome.currency == AppCurrency.USD

    def test_failure_outcome(self, service, client):
        client.get_simple_prices.side_effect = NetworkError(ConnectionError("offline"))
        outcome = service.sync(["BTC"], AppCurrency.USD)
        assert not outcome.ok
        assert outcome.error_kind == "network_error"
        assert outcome.prices == {}


class TestStaleness:
    def test_never_synced_is_stale(self, service):
        assert service.is_stale()
        assert service.should_surface_error()

    def test_recent_success_not_stale(self, service, client, clock, fixed_now):
        client.get_simple_prices.return_value = {"bitcoin": 1.0}
        service.fetch(["BTC"], AppCurrency.USD)
        clock.now = fixed_now + timedelta(seconds=120)
        assert not service.is_stale()
        assert not service.should_surface_error()

    def test_old_success_is_stale(self, service, client, clock, fixed_now):
        client.get_simple_prices.return_value = {"bitcoin": 1.0}
        service.fetch(["BTC"], AppCurrency.USD)
        clock.now = fixed_now + timedelta(seconds=301)
        assert service.is_stale()

    def test_explicit_now(self, service):
        service.last_successful_sync = datetime(2025, 1, 1, 0, 0, 0)
        assert not service.is_stale(now=datetime(2025, 1, 1, 0, 4, 59))
        assert service.is_stale(now=datetime(2025, 1, 1, 0, 5, 1))
