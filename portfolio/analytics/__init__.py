"""
Analytics — valuation, risk, currency and investment calculators

Valuation: pure functions over positions (value, P&L, allocation, volatility,
Sharpe, DCA projection, average-cost capital gains)
Currency: AppCurrency + fixed USD-pivot exchange table
History: pandas frames over price history
"""
from portfolio.analytics.currency import AppCurrency, EXCHANGE_RATES, convert_currency, parse_currency
from portfolio.analytics.valuation import (
    AllocationEntry,
    CapitalGainsResult,
    DCAProjection,
    PortfolioMetrics,
    capital_gains,
    capital_gains_breakdown,
    currency_convert,
    dca_projection,
    portfolio_allocation,
    portfolio_metrics,
    profit_loss,
    profit_loss_percent,
    sharpe_ratio,
    total_value,
    volatility,
)
from portfolio.analytics.calculators import DCACalculation, ProfitCalculation

__all__ = [
    "AppCurrency",
    "EXCHANGE_RATES",
    "convert_currency",
    "parse_currency",
    "AllocationEntry",
    "CapitalGainsResult",
    "DCAProjection",
    "PortfolioMetrics",
    "capital_gains",
    "capital_gains_breakdown",
    "currency_convert",
    "dca_projection",
    "portfolio_allocation",
    "portfolio_metrics",
    "profit_loss",
    "profit_loss_percent",
    "sharpe_ratio",
    "total_value",
    "volatility",
    "DCACalculation",
    "ProfitCalculation",
]
