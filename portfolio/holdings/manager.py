"""
Holdings manager — PortfolioStore, the in-memory owner of all positions.

Every mutation (add position, record transaction, price edit, synced price)
goes through the store, is persisted through the repository, and triggers a
recompute of portfolio aggregates followed by subscriber notification.

Price sync cycle: IDLE → FETCHING → (APPLYING | FAILED) → IDLE.
Fetches run on a background executor and post their outcome to an inbox;
drain() applies outcomes on the owning thread, one at a time, under the
store lock. Only one fetch is in flight at a time.
"""
import logging
import queue
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set, Tuple

from config.settings import (
    AUTO_REFRESH_INTERVAL,
    DEFAULT_CURRENCY,
    NEW_POSITION_SYNC_DELAY,
    STARTUP_SYNC_DELAY,
)
from portfolio.analytics.currency import AppCurrency, parse_currency
from portfolio.analytics.valuation import (
    AllocationEntry,
    PortfolioMetrics,
    portfolio_allocation,
    portfolio_metrics,
    profit_loss,
    profit_loss_percent,
    total_value,
)
from portfolio.holdings.repository import HoldingsRepository
from portfolio.holdings.schema import (
    Position,
    SortOption,
    Transaction,
    TransactionKind,
    apply_synced_price,
    apply_transaction,
    open_position,
)
from portfolio.sync.price_sync import PriceSyncService, SyncOutcome
from portfolio.sync.scheduler import RefreshScheduler, RefreshTicket

logger = logging.getLogger(__name__)

PRIVACY_MASK_CURRENCY = "••••"
PRIVACY_MASK_PERCENT = "•••"


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    FAILED = "failed"


Subscriber = Callable[[PortfolioMetrics], None]


class PortfolioStore:
    """In-memory aggregate of positions with price sync orchestration."""

    def __init__(
        self,
        sync_service: PriceSyncService,
        repository: Optional[HoldingsRepository] = None,
        currency=DEFAULT_CURRENCY,
        scheduler: Optional[RefreshScheduler] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.sync_service = sync_service
        self.repository = repository
        self.scheduler = scheduler or RefreshScheduler()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="price-sync")
        self._clock = clock

        self._lock = threading.RLock()
        self._inbox: "queue.Queue[SyncOutcome]" = queue.Queue()
        self._subscribers: List[Subscriber] = []
        self._refresh_ticket: Optional[RefreshTicket] = None
        self._auto_sync = False
        self._closed = False

        self._positions: List[Position] = repository.load() if repository is not None else []
        self._currency = parse_currency(currency)
        self.sort_option = SortOption.VALUE
        self.selected_tags: Set[str] = set()
        self.privacy_mode = False

        self.state = SyncState.IDLE
        self.has_network_error = False
        self.last_update_time: Optional[datetime] = None
        self.last_outcome: Optional[SyncOutcome] = None
        self._metrics = portfolio_metrics(self.filtered_positions())

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(
        self,
        auto_refresh_interval: float = AUTO_REFRESH_INTERVAL,
        startup_delay: float = STARTUP_SYNC_DELAY,
    ) -> RefreshTicket:
        """Schedule a start-up sync and the periodic refresh. Returns the periodic ticket."""
        with self._lock:
            if self._closed:
                raise RuntimeError("PortfolioStore is closed")
            if self._refresh_ticket is not None and not self._refresh_ticket.cancelled:
                return self._refresh_ticket
            self._auto_sync = True
            self.scheduler.schedule_once(startup_delay, self.request_refresh, name="startup-sync")
            self._refresh_ticket = self.scheduler.start(auto_refresh_interval, self.request_refresh)
            logger.info(f"Auto refresh every {auto_refresh_interval}s")
            return self._refresh_ticket

    def close(self) -> None:
        """Stop timers and drop pending results. An in-flight fetch may finish but is ignored."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._auto_sync = False
            self._refresh_ticket = None
        self.scheduler.cancel_all()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        discarded = 0
        while True:
            try:
                self._inbox.get_nowait()
                discarded += 1
            except queue.Empty:
                break
        logger.info(f"PortfolioStore closed ({discarded} pending sync results discarded)")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # -----------------------------------------------------------------------
    # Read side
    # -----------------------------------------------------------------------

    @property
    def positions(self) -> List[Position]:
        """All positions, newest first."""
        with self._lock:
            return sorted(self._positions, key=lambda p: p.created_at, reverse=True)

    @property
    def currency(self) -> AppCurrency:
        return self._currency

    @property
    def is_loading_prices(self) -> bool:
        return self.state == SyncState.FETCHING

    @property
    def metrics(self) -> PortfolioMetrics:
        """Aggregates as of the last recompute."""
        return self._metrics

    def get_position(self, position_id: str) -> Position:
        with self._lock:
            for p in self._positions:
                if p.id == position_id:
                    return p
        raise KeyError(f"Position {position_id} not found")

    def find_by_ticker(self, ticker: str) -> List[Position]:
        ticker = (ticker or "").strip().upper()
        with self._lock:
            return [p for p in self._positions if p.ticker == ticker]

    def filtered_positions(self) -> List[Position]:
        """Positions matching any selected tag (all when none selected), in sort order."""
        with self._lock:
            filtered = self.positions
            if self.selected_tags:
                filtered = [p for p in filtered if p.tags & self.selected_tags]

            if self.sort_option == SortOption.NAME:
                return sorted(filtered, key=lambda p: p.display_name)
            if self.sort_option == SortOption.PROFIT_LOSS:
                return sorted(filtered, key=lambda p: -profit_loss(p))
            if self.sort_option == SortOption.PERCENTAGE:
                return sorted(filtered, key=lambda p: -profit_loss_percent(p))
            return sorted(filtered, key=lambda p: -total_value(p))

    def recompute(self) -> PortfolioMetrics:
        """Recompute aggregates over the filtered positions and return them."""
        with self._lock:
            self._metrics = portfolio_metrics(self.filtered_positions())
            return self._metrics

    def allocation(self) -> List[AllocationEntry]:
        return portfolio_allocation(self.filtered_positions())

    def all_tags(self) -> List[str]:
        with self._lock:
            tags = set()
            for p in self._positions:
                tags |= p.tags
        return sorted(tags)

    def all_transactions(self) -> List[Transaction]:
        """Every transaction across positions, most recent first."""
        with self._lock:
            transactions = [t for p in self.positions for t in p.transactions]
        return sorted(transactions, key=lambda t: t.date or datetime.min, reverse=True)

    def search_transactions(self, kind=None, text: str = "") -> List[Transaction]:
        """
        Filter transactions by kind and by a case-insensitive match on the
        owning position's name or ticker, or the transaction notes.
        """
        kind = TransactionKind(kind) if kind else None
        needle = (text or "").strip().lower()
        with self._lock:
            owners = {p.id: p for p in self._positions}

        result = []
        for t in self.all_transactions():
            if kind is not None and t.kind != kind:
                continue
            if needle:
                owner = owners.get(t.position_id)
                haystack = [t.notes or ""]
                if owner is not None:
                    haystack += [owner.name or "", owner.ticker]
                if not any(needle in h.lower() for h in haystack):
                    continue
            result.append(t)
        return result

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def add_position(
        self,
        name: Optional[str],
        ticker: str,
        amount: float,
        price: float,
        tags: Iterable[str] = (),
        notes: str = "",
    ) -> Position:
        """Open a position from its first purchase, then sync shortly after."""
        with self._lock:
            position = open_position(
                ticker, amount, price,
                name=name, tags=tags, notes=notes, created_at=self._clock(),
            )
            self._positions.insert(0, position)
            logger.info(f"Opened {position.ticker}: {amount} @ {price}")
            self._commit()
            auto_sync = self._auto_sync

        if auto_sync:
            self.scheduler.schedule_once(NEW_POSITION_SYNC_DELAY, self.request_refresh, name="new-position-sync")
        return position

    def record_transaction(
        self,
        position_id: str,
        kind,
        amount: float,
        unit_price: float,
        date: Optional[datetime] = None,
        notes: str = "",
        tags: Iterable[str] = (),
    ) -> Transaction:
        with self._lock:
            position = self.get_position(position_id)
            transaction = apply_transaction(
                position, kind, amount, unit_price,
                date=date or self._clock(), notes=notes, tags=tags,
            )
            logger.info(f"{transaction.display_kind} {amount} {position.ticker} @ {unit_price}")
            self._commit()
            return transaction

    def update_price(self, position_id: str, price: float) -> None:
        """Manual price edit; recorded in price history like a synced price."""
        with self._lock:
            position = self.get_position(position_id)
            apply_synced_price(position, price, self._clock())
            self._commit()

    def delete_position(self, position_id: str) -> Position:
        """Remove a position together with its transactions and price history."""
        with self._lock:
            position = self.get_position(position_id)
            self._positions = [p for p in self._positions if p.id != position_id]
            if self.repository is not None:
                self.repository.delete(position_id)
            logger.info(f"Deleted {position.ticker}")
            self._recompute_and_notify()
            return position

    def reset(self) -> None:
        """Delete every position."""
        with self._lock:
            self._positions = []
            if self.repository is not None:
                self.repository.clear()
            self._recompute_and_notify()

    def set_currency(self, currency) -> bool:
        """Switch display currency and request prices in it. Returns True if it changed."""
        currency = parse_currency(currency)
        with self._lock:
            if currency == self._currency:
                return False
            self._currency = currency
        self.request_refresh()
        return True

    def set_sort_option(self, option) -> None:
        with self._lock:
            self.sort_option = SortOption(option)
            self._recompute_and_notify()

    def set_selected_tags(self, tags: Iterable[str]) -> None:
        with self._lock:
            self.selected_tags = {t.strip() for t in tags if t and t.strip()}
            self._recompute_and_notify()

    def toggle_privacy_mode(self) -> bool:
        self.privacy_mode = not self.privacy_mode
        return self.privacy_mode

    def clear_network_error(self) -> None:
        self.has_network_error = False

    # -----------------------------------------------------------------------
    # Subscriptions
    # -----------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call `callback(metrics)` after each mutation. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # -----------------------------------------------------------------------
    # Price sync
    # -----------------------------------------------------------------------

    def request_refresh(self) -> bool:
        """
        Start a background fetch unless one is already in flight.

        Returns True if a fetch was started. Results are applied by drain().
        """
        cycle = self._begin_fetch()
        if cycle is None:
            return False
        try:
            self._executor.submit(self._fetch_in_background, *cycle)
        except RuntimeError as e:
            logger.warning(f"Cannot start price sync: {e}")
            with self._lock:
                self.state = SyncState.IDLE
            return False
        return True

    def refresh_prices(self) -> Optional[SyncOutcome]:
        """Fetch and apply on the calling thread. None if gated (in flight / nothing held)."""
        cycle = self._begin_fetch()
        if cycle is None:
            return None
        outcome = self._run_sync(*cycle)
        self._apply_outcome(outcome)
        return outcome

    def drain(self, timeout: Optional[float] = 0.0) -> int:
        """
        Apply sync outcomes posted by background fetches.

        Call from the owning thread. Waits up to `timeout` seconds for the
        first outcome (None waits indefinitely), then applies everything queued.

        Returns:
            number of outcomes applied
        """
        try:
            if timeout is not None and timeout <= 0:
                outcome = self._inbox.get_nowait()
            else:
                outcome = self._inbox.get(timeout=timeout)
        except queue.Empty:
            return 0

        applied = 0
        while True:
            if self._apply_outcome(outcome):
                applied += 1
            try:
                outcome = self._inbox.get_nowait()
            except queue.Empty:
                return applied

    def format_currency(self, value: float) -> str:
        if self.privacy_mode:
            return PRIVACY_MASK_CURRENCY
        sign = "-" if value < 0 else ""
        return f"{sign}{self._currency.symbol}{abs(value):,.2f}"

    def format_percentage(self, value: float) -> str:
        if self.privacy_mode:
            return PRIVACY_MASK_PERCENT
        return f"{value:.2f}%"

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _begin_fetch(self) -> Optional[Tuple[List[str], AppCurrency]]:
        """Enter FETCHING if allowed. Returns (tickers, currency) for the cycle."""
        with self._lock:
            if self._closed:
                return None
            if self.state == SyncState.FETCHING:
                logger.debug("Price sync already in flight, ignoring request")
                return None
            tickers = sorted({p.ticker for p in self._positions if p.ticker})
            if not tickers:
                return None
            self.state = SyncState.FETCHING
            return tickers, self._currency

    def _run_sync(self, tickers: List[str], currency: AppCurrency) -> SyncOutcome:
        try:
            return self.sync_service.sync(tickers, currency)
        except Exception as e:
            logger.exception(f"Unexpected price sync failure: {e}")
            return SyncOutcome(currency=currency, error=e, finished_at=self._clock())

    def _fetch_in_background(self, tickers: List[str], currency: AppCurrency) -> None:
        self._inbox.put(self._run_sync(tickers, currency))

    def _apply_outcome(self, outcome: SyncOutcome) -> bool:
        """Apply one outcome atomically. Returns False if it was discarded."""
        refetch = False
        with self._lock:
            if self._closed:
                logger.debug("Store closed, discarding sync result")
                return False

            self.last_outcome = outcome
            if outcome.currency != self._currency:
                logger.info(
                    f"Discarding {outcome.currency.value} prices, display currency is now {self._currency.value}"
                )
                self.state = SyncState.IDLE
                refetch = True
            elif outcome.ok:
                self.state = SyncState.APPLYING
                updated = 0
                for p in self._positions:
                    price = outcome.prices.get(p.ticker)
                    if price is None or price < 0:
                        continue
                    apply_synced_price(p, price, outcome.finished_at)
                    updated += 1
                self.has_network_error = False
                if self.sync_service.last_successful_sync is not None:
                    self.last_update_time = self.sync_service.last_successful_sync
                self.state = SyncState.IDLE
                logger.info(f"Applied {updated} synced prices")
                if updated:
                    self._commit()
            else:
                self.state = SyncState.FAILED
                if self.sync_service.should_surface_error():
                    self.has_network_error = True
                    logger.warning(f"Price sync failed with no recent success ({outcome.error_kind})")
                else:
                    logger.info(f"Price sync failed ({outcome.error_kind}), keeping recent prices")
                self.state = SyncState.IDLE

        if refetch:
            self.request_refresh()
            return False
        return True

    def _commit(self) -> None:
        """Persist, recompute aggregates and notify. Caller holds the lock."""
        if self.repository is not None:
            self.repository.save(self._positions)
        self._recompute_and_notify()

    def _recompute_and_notify(self) -> None:
        metrics = self.recompute()
        for callback in list(self._subscribers):
            try:
                callback(metrics)
            except Exception as e:
                logger.exception(f"Portfolio subscriber failed: {e}")
