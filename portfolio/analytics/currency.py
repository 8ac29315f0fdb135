"""
Display currencies and the fixed USD-pivot exchange table.
"""
from enum import Enum
from typing import Dict, Union


class AppCurrency(str, Enum):
    """Supported display currencies."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    @property
    def display_name(self) -> str:
        return _NAMES[self]

    @property
    def feed_code(self) -> str:
        """Currency code understood by the price feed (lower-case ISO)."""
        return self.value.lower()


_SYMBOLS = {AppCurrency.USD: "$", AppCurrency.EUR: "€", AppCurrency.GBP: "£"}
_NAMES = {
    AppCurrency.USD: "US Dollar",
    AppCurrency.EUR: "Euro",
    AppCurrency.GBP: "British Pound",
}

# Units of each currency per 1 USD. Static, not live rates.
EXCHANGE_RATES: Dict[AppCurrency, float] = {
    AppCurrency.USD: 1.0,
    AppCurrency.EUR: 0.85,
    AppCurrency.GBP: 0.73,
}


def parse_currency(code: Union[str, AppCurrency]) -> AppCurrency:
    """Accept 'usd', 'USD' or an AppCurrency. Raises ValueError on unknown codes."""
    if isinstance(code, AppCurrency):
        return code
    try:
        return AppCurrency((code or "").strip().upper())
    except ValueError:
        supported = ", ".join(c.value for c in AppCurrency)
        raise ValueError(f"Unsupported currency {code!r} (supported: {supported})") from None


def convert_currency(amount: float, from_currency: AppCurrency, to_currency: AppCurrency) -> float:
    """Convert through USD: amount / rate[from] * rate[to]. Unknown currencies pass through."""
    from_rate = EXCHANGE_RATES.get(from_currency)
    to_rate = EXCHANGE_RATES.get(to_currency)
    if not from_rate or to_rate is None:
        return amount
    return amount / from_rate * to_rate


def exchange_rate(from_currency: AppCurrency, to_currency: AppCurrency) -> float:
    """Rate for one unit of from_currency."""
    return convert_currency(1.0, from_currency, to_currency)
