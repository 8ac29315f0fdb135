"""
Holdings — positions, transactions and price history

Core types: Position, Transaction, PricePoint, TransactionKind, SortOption
Mutation protocol: open_position / apply_transaction / apply_synced_price
Repository: JSON entity store
Store: portfolio.holdings.manager.PortfolioStore
"""
from portfolio.holdings.schema import (
    Position,
    Transaction,
    PricePoint,
    TransactionKind,
    SortOption,
    open_position,
    apply_transaction,
    apply_synced_price,
    recompute_cost_basis,
)
from portfolio.holdings.repository import HoldingsRepository

__all__ = [
    "Position",
    "Transaction",
    "PricePoint",
    "TransactionKind",
    "SortOption",
    "open_position",
    "apply_transaction",
    "apply_synced_price",
    "recompute_cost_basis",
    "HoldingsRepository",
]
