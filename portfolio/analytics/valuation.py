"""
Valuation engine — value, P&L, allocation, risk and gains for positions.

Pure functions over Position / Transaction data. No I/O, no state.
Degenerate inputs (zero cost basis, zero totals, short series) give 0
instead of raising, so every figure stays renderable.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, NamedTuple, Sequence

import numpy as np

from portfolio.analytics.currency import AppCurrency, convert_currency
from portfolio.holdings.schema import Position, Transaction, TransactionKind

logger = logging.getLogger(__name__)

DEFAULT_RISK_FREE_RATE = 0.02


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class AllocationEntry(NamedTuple):
    position_id: str
    name: str
    percentage: float


@dataclass
class PortfolioMetrics:
    total_value: float = 0.0
    total_cost: float = 0.0
    total_profit_loss: float = 0.0
    total_profit_loss_pct: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_value": self.total_value,
            "total_cost": self.total_cost,
            "total_profit_loss": self.total_profit_loss,
            "total_profit_loss_pct": self.total_profit_loss_pct,
        }


@dataclass
class DCAProjection:
    total_invested: float
    total_coins: float
    average_cost: float


@dataclass
class CapitalGainsResult:
    total_gains: float
    remaining_units: float
    average_cost: float


# ---------------------------------------------------------------------------
# Per-position
# ---------------------------------------------------------------------------

def total_value(position: Position) -> float:
    """amount x current price, or x cost basis while the price is still 0."""
    return position.amount * position.valuation_price


def cost_value(position: Position) -> float:
    return position.amount * position.cost_basis


def profit_loss(position: Position) -> float:
    return total_value(position) - cost_value(position)


def profit_loss_percent(position: Position) -> float:
    """Price move vs cost basis, in percent. 0 when cost basis <= 0."""
    if position.cost_basis <= 0:
        return 0.0
    return (position.current_price - position.cost_basis) / position.cost_basis * 100


# ---------------------------------------------------------------------------
# Portfolio
# ---------------------------------------------------------------------------

def portfolio_allocation(positions: Iterable[Position]) -> List[AllocationEntry]:
    """
    Share of total value per position, in percent, largest first.

    Percentages sum to 100 when the total is positive, and are all 0 otherwise.
    """
    values = [(p, total_value(p)) for p in positions]
    total = sum(v for _, v in values)

    entries = [
        AllocationEntry(
            position_id=p.id,
            name=p.display_name,
            percentage=(v / total * 100) if total > 0 else 0.0,
        )
        for p, v in values
    ]
    return sorted(entries, key=lambda e: -e.percentage)


def portfolio_metrics(positions: Iterable[Position]) -> PortfolioMetrics:
    """Aggregate value, cost and P&L across positions."""
    positions = list(positions)
    value = sum(total_value(p) for p in positions)
    cost = sum(cost_value(p) for p in positions)
    pnl = value - cost
    return PortfolioMetrics(
        total_value=value,
        total_cost=cost,
        total_profit_loss=pnl,
        total_profit_loss_pct=(pnl / cost * 100) if cost > 0 else 0.0,
    )


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------

def period_returns(prices: Sequence[float]) -> np.ndarray:
    """Simple returns (p[i] - p[i-1]) / p[i-1]. A zero previous price yields 0."""
    arr = np.asarray(prices, dtype=float)
    if arr.size < 2:
        return np.zeros(0)
    prev = arr[:-1]
    diff = np.diff(arr)
    return np.divide(diff, prev, out=np.zeros_like(diff), where=prev != 0)


def volatility(prices: Sequence[float]) -> float:
    """
    Population standard deviation of period returns, in percent.

    Args:
        prices: chronological price series

    Returns:
        100 * std(returns), 0 for fewer than 2 prices
    """
    returns = period_returns(prices)
    if returns.size == 0:
        return 0.0
    return float(np.std(returns) * 100)


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = DEFAULT_RISK_FREE_RATE) -> float:
    """
    (mean(returns) - risk_free_rate) / volatility.

    The denominator is volatility() over the returns shifted by +1, divided by 100.
    0 for fewer than 2 returns or a zero denominator.
    """
    arr = np.asarray(returns, dtype=float)
    if arr.size < 2:
        return 0.0

    excess_return = float(arr.mean()) - risk_free_rate
    denominator = volatility(arr + 1) / 100
    if denominator <= 0:
        return 0.0
    return excess_return / denominator


# ---------------------------------------------------------------------------
# DCA / gains / FX
# ---------------------------------------------------------------------------

def dca_projection(monthly_investment: float, months: int, average_price: float) -> DCAProjection:
    """Fixed monthly buys at a single average price."""
    invested = monthly_investment * months
    coins = invested / average_price if average_price > 0 else 0.0
    average_cost = invested / coins if coins > 0 else 0.0
    return DCAProjection(total_invested=invested, total_coins=coins, average_cost=average_cost)


def capital_gains_breakdown(transactions: Iterable[Transaction]) -> CapitalGainsResult:
    """
    Realized gains with average-cost lot accounting.

    Transactions are replayed by date (ascending, stable). Buys blend into a
    single running average cost; sells realize (price - average cost) x amount
    and leave the average unchanged. This is not FIFO lot matching.
    """
    ordered = sorted(transactions, key=lambda t: t.date if t.date is not None else datetime.min)

    total_gains = 0.0
    remaining = 0.0
    average_cost = 0.0
    for t in ordered:
        if t.kind == TransactionKind.BUY:
            new_total_cost = remaining * average_cost + t.amount * t.unit_price
            remaining += t.amount
            average_cost = new_total_cost / remaining if remaining > 0 else 0.0
        elif t.kind == TransactionKind.SELL:
            total_gains += (t.unit_price - average_cost) * t.amount
            remaining -= t.amount

    return CapitalGainsResult(total_gains=total_gains, remaining_units=remaining, average_cost=average_cost)


def capital_gains(transactions: Iterable[Transaction]) -> float:
    """Cumulative realized gains (average-cost method)."""
    return capital_gains_breakdown(transactions).total_gains


def currency_convert(amount: float, from_currency: AppCurrency, to_currency: AppCurrency) -> float:
    return convert_currency(amount, from_currency, to_currency)
