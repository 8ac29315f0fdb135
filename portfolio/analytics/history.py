"""
Price history frames — pandas views over a position's PricePoints.
"""
import logging
from typing import Iterable

import pandas as pd

from portfolio.analytics.valuation import capital_gains, volatility
from portfolio.holdings.schema import Position

logger = logging.getLogger(__name__)


def price_history_frame(position: Position) -> pd.DataFrame:
    """PricePoints as a DataFrame (date, price), oldest first. Ties keep insertion order."""
    df = pd.DataFrame(
        [{"date": p.date, "price": p.price} for p in position.price_history],
        columns=["date", "price"],
    )
    if df.empty:
        return df
    df["date"] = pd.to_datetime(df["date"])
    return df.sort_values("date", ascending=True, kind="stable").reset_index(drop=True)


def portfolio_price_frame(positions: Iterable[Position]) -> pd.DataFrame:
    """Wide frame of prices: one column per ticker, indexed by date."""
    series = {}
    for p in positions:
        df = price_history_frame(p)
        if df.empty:
            continue
        # Several points on one timestamp: keep the last recorded
        s = df.drop_duplicates("date", keep="last").set_index("date")["price"]
        series[p.ticker] = s
    if not series:
        return pd.DataFrame()
    return pd.DataFrame(series).sort_index()


def position_volatility(position: Position) -> float:
    """Volatility (%) of the position's own price history."""
    df = price_history_frame(position)
    if df.empty:
        return 0.0
    return volatility(df["price"].tolist())


def position_capital_gains(position: Position) -> float:
    return capital_gains(position.transactions)
