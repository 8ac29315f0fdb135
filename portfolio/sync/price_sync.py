"""
Price sync — resolve held tickers to feed ids, fetch prices, track staleness.

sync()  → one fetch cycle, returns a SyncOutcome (never raises PriceFeedError)
fetch() → same cycle, raises PriceFeedError on failure

Staleness: a failed cycle is only worth surfacing to the user when the last
successful sync is older than the staleness window (or there never was one).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from config.settings import STALENESS_WINDOW
from portfolio.analytics.currency import AppCurrency
from src.data.coingecko_client import CoinGeckoClient, PriceFeedError
from src.data.ticker_map import TICKER_TO_FEED_ID, resolve_feed_ids

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """Result of one sync cycle."""
    currency: AppCurrency
    prices: Dict[str, float] = field(default_factory=dict)   # TICKER -> price
    requested_ids: List[str] = field(default_factory=list)
    error: Optional[Exception] = None
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "kind", type(self.error).__name__)


class PriceSyncService:
    """Fetch current prices for a set of tickers from the price feed."""

    def __init__(
        self,
        client: Optional[CoinGeckoClient] = None,
        ticker_map: Optional[Dict[str, str]] = None,
        staleness_window: float = STALENESS_WINDOW,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client or CoinGeckoClient()
        self.ticker_map = TICKER_TO_FEED_ID if ticker_map is None else ticker_map
        self.staleness_window = timedelta(seconds=staleness_window)
        self._clock = clock
        self.last_successful_sync: Optional[datetime] = None

    def resolve(self, tickers: Iterable[str]) -> Dict[str, str]:
        """{normalized ticker: feed id} for mapped tickers; unmapped ones are dropped."""
        tickers = list(tickers)
        resolved = resolve_feed_ids(tickers, self.ticker_map)
        dropped = {t.strip().lower() for t in tickers if t and t.strip()} - set(resolved)
        if dropped:
            logger.debug(f"No feed mapping for {sorted(dropped)}, skipping")
        return resolved

    def fetch(self, tickers: Iterable[str], currency: AppCurrency) -> Dict[str, float]:
        """
        Fetch prices for the distinct tickers given.

        Returns:
            {TICKER: price} for tickers the feed priced. Empty, without any
            network call, when no ticker has a feed mapping.

        Raises:
            PriceFeedError: the cycle failed
        """
        resolved = self.resolve(tickers)
        if not resolved:
            return {}

        feed_ids = sorted(set(resolved.values()))
        logger.info(f"Syncing {len(feed_ids)} prices in {currency.value}")
        by_id = self.client.get_simple_prices(feed_ids, currency.feed_code)

        prices = {}
        for ticker, feed_id in resolved.items():
            if feed_id in by_id:
                prices[ticker.upper()] = by_id[feed_id]
        self.last_successful_sync = self._clock()
        return prices

    def sync(self, tickers: Iterable[str], currency: AppCurrency) -> SyncOutcome:
        """Run one cycle; failures are returned on the outcome, not raised."""
        tickers = list(tickers)
        resolved = self.resolve(tickers)
        outcome = SyncOutcome(currency=currency, requested_ids=sorted(set(resolved.values())))
        try:
            outcome.prices = self.fetch(tickers, currency)
        except PriceFeedError as e:
            logger.warning(f"Price sync failed ({e.kind}): {e}")
            outcome.error = e
        outcome.finished_at = self._clock()
        return outcome

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True when there is no successful sync inside the staleness window."""
        if self.last_successful_sync is None:
            return True
        now = now or self._clock()
        return now - self.last_successful_sync > self.staleness_window

    def should_surface_error(self, now: Optional[datetime] = None) -> bool:
        return self.is_stale(now)
