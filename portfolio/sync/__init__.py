"""
Sync — price feed synchronization and refresh timers
"""
from portfolio.sync.price_sync import PriceSyncService, SyncOutcome
from portfolio.sync.scheduler import RefreshScheduler, RefreshTicket

__all__ = ["PriceSyncService", "SyncOutcome", "RefreshScheduler", "RefreshTicket"]
