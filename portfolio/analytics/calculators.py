"""
Investment calculators — profit/ROI with tax estimate, and DCA with compounding.
"""
from dataclasses import dataclass

# Long-term gains are taxed at this fraction of the nominal rate
LONG_TERM_TAX_FACTOR = 0.6

_DAYS_PER_YEAR = 365
_MONTHS_PER_YEAR = 12


@dataclass
class ProfitCalculation:
    """Profit, ROI and estimated tax for one investment."""

    initial_investment: float
    current_value: float
    holding_period: float = 0.0
    period_type: str = "days"      # days / months / years
    tax_rate_pct: float = 15.0
    is_long_term: bool = True

    @property
    def total_profit_loss(self) -> float:
        return self.current_value - self.initial_investment

    @property
    def roi(self) -> float:
        if self.initial_investment <= 0:
            return 0.0
        return self.total_profit_loss / self.initial_investment * 100

    @property
    def holding_years(self) -> float:
        if self.period_type == "years":
            return self.holding_period
        if self.period_type == "months":
            return self.holding_period / _MONTHS_PER_YEAR
        return self.holding_period / _DAYS_PER_YEAR

    @property
    def annualized_roi(self) -> float:
        """Compound annual growth rate, in percent."""
        if self.initial_investment <= 0 or self.holding_period <= 0:
            return 0.0
        years = self.holding_years
        if years <= 0:
            return self.roi
        total_return = self.current_value / self.initial_investment
        if total_return <= 0:
            return -100.0
        return (total_return ** (1 / years) - 1) * 100

    @property
    def taxes_owed(self) -> float:
        if self.total_profit_loss <= 0:
            return 0.0
        rate = self.tax_rate_pct * LONG_TERM_TAX_FACTOR if self.is_long_term else self.tax_rate_pct
        return self.total_profit_loss * rate / 100

    @property
    def net_profit(self) -> float:
        return self.total_profit_loss - self.taxes_owed


@dataclass
class DCACalculation:
    """
    Dollar-cost averaging with a constant expected return.

    Growth compounds monthly at expected_return_pct / 12; total_value is the
    future value of an ordinary annuity of monthly_investment.
    """

    monthly_investment: float
    investment_period: float
    period_type: str = "months"    # months / years
    expected_return_pct: float = 10.0

    @property
    def total_months(self) -> float:
        if self.period_type == "years":
            return self.investment_period * _MONTHS_PER_YEAR
        return self.investment_period

    @property
    def total_invested(self) -> float:
        return self.monthly_investment * self.total_months

    @property
    def monthly_rate(self) -> float:
        return self.expected_return_pct / 100 / _MONTHS_PER_YEAR

    @property
    def total_value(self) -> float:
        months = self.total_months
        rate = self.monthly_rate
        if months <= 0 or rate == 0:
            return self.total_invested
        return self.monthly_investment * (((1 + rate) ** months - 1) / rate)

    @property
    def total_profit(self) -> float:
        return self.total_value - self.total_invested

    @property
    def roi(self) -> float:
        if self.total_invested <= 0:
            return 0.0
        return self.total_profit / self.total_invested * 100

    @property
    def average_cost(self) -> float:
        """Average amount invested per month."""
        if self.total_months <= 0:
            return self.monthly_investment
        return self.total_invested / self.total_months
