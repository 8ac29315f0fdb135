"""
Refresh scheduler — cancellable periodic and one-shot timers.

Each timer runs on its own daemon thread and only invokes the callback it
was given; callbacks must hand real work back to the owning thread.
"""
import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class RefreshTicket:
    """Handle for a scheduled timer. cancel() stops any further runs."""

    def __init__(self, name: str):
        self.name = name
        self._cancelled = threading.Event()
        self._thread = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: float = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class RefreshScheduler:
    """Starts timers and keeps their tickets so they can all be cancelled at shutdown."""

    def __init__(self):
        self._tickets: List[RefreshTicket] = []
        self._lock = threading.Lock()

    def start(self, interval: float, callback: Callable[[], None], name: str = "price-refresh") -> RefreshTicket:
        """Run callback every `interval` seconds until the ticket is cancelled."""
        if interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got {interval}")
        return self._launch(name, self._run_periodic, interval, callback)

    def schedule_once(self, delay: float, callback: Callable[[], None], name: str = "price-refresh-once") -> RefreshTicket:
        """Run callback once after `delay` seconds unless cancelled first."""
        return self._launch(name, self._run_once, max(delay, 0.0), callback)

    def cancel_all(self) -> None:
        with self._lock:
            tickets, self._tickets = self._tickets, []
        for ticket in tickets:
            ticket.cancel()
        if tickets:
            logger.debug(f"Cancelled {len(tickets)} refresh timers")

    @property
    def active_tickets(self) -> List[RefreshTicket]:
        with self._lock:
            return [t for t in self._tickets if not t.cancelled and t.alive]

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _launch(self, name, target, seconds, callback) -> RefreshTicket:
        ticket = RefreshTicket(name)
        thread = threading.Thread(target=target, args=(ticket, seconds, callback), name=name, daemon=True)
        ticket._thread = thread
        with self._lock:
            self._tickets = [t for t in self._tickets if not t.cancelled and t.alive]
            self._tickets.append(ticket)
        thread.start()
        return ticket

    @staticmethod
    def _run_periodic(ticket: RefreshTicket, interval: float, callback) -> None:
        # Event.wait returns True once cancelled
        while not ticket._cancelled.wait(interval):
            try:
                callback()
            except Exception as e:
                logger.exception(f"Refresh timer '{ticket.name}' callback failed: {e}")

    @staticmethod
    def _run_once(ticket: RefreshTicket, delay: float, callback) -> None:
        if ticket._cancelled.wait(delay):
            return
        try:
            callback()
        except Exception as e:
            logger.exception(f"Refresh timer '{ticket.name}' callback failed: {e}")
