"""
CoinGecko API client
- One batched /simple/price call per sync
- Single retry after HTTP 429
- Waits out short connectivity gaps instead of failing fast
- Failures raised as PriceFeedError subclasses
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests

from config.settings import (
    API_REQUEST_TIMEOUT,
    API_RESOURCE_TIMEOUT,
    API_WAIT_FOR_CONNECTIVITY,
    COINGECKO_API_KEY,
    COINGECKO_API_KEY_HEADER,
    COINGECKO_BASE_URL,
    CONNECTIVITY_RETRY_INTERVAL,
    RATE_LIMIT_BACKOFF,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class PriceFeedError(Exception):
    """Base class for price feed failures."""

    kind = "unknown"


class InvalidRequestError(PriceFeedError):
    """The request could not be built (e.g. no ids)."""

    kind = "invalid_request"


class RateLimitedError(PriceFeedError):
    """HTTP 429, still limited after the retry."""

    kind = "rate_limited"


class NotFoundError(PriceFeedError):
    kind = "not_found"


class ServerError(PriceFeedError):
    kind = "server_error"

    def __init__(self, status_code: int):
        super().__init__(f"Price feed server error {status_code}")
        self.status_code = status_code


class InvalidResponseError(PriceFeedError):
    """Unexpected status code or a payload that does not decode."""

    kind = "invalid_response"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(PriceFeedError):
    """Transport failure or timeout; wraps the underlying exception."""

    kind = "network_error"

    def __init__(self, cause: Exception):
        super().__init__(f"Network error: {cause}")
        self.cause = cause


@dataclass
class CoinInfo:
    id: str
    symbol: str
    name: str


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CoinGeckoClient:
    """CoinGecko API client"""

    def __init__(
        self,
        base_url: str = COINGECKO_BASE_URL,
        api_key: str = COINGECKO_API_KEY,
        session: Optional[requests.Session] = None,
        request_timeout: float = API_REQUEST_TIMEOUT,
        resource_timeout: float = API_RESOURCE_TIMEOUT,
        wait_for_connectivity: bool = API_WAIT_FOR_CONNECTIVITY,
        connectivity_retry_interval: float = CONNECTIVITY_RETRY_INTERVAL,
        rate_limit_backoff: float = RATE_LIMIT_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.request_timeout = request_timeout
        self.resource_timeout = resource_timeout
        self.wait_for_connectivity = wait_for_connectivity
        self.connectivity_retry_interval = connectivity_retry_interval
        self.rate_limit_backoff = rate_limit_backoff
        self._sleep = sleep
        self._clock = clock

    def get_simple_prices(self, feed_ids: List[str], vs_currency: str) -> Dict[str, float]:
        """
        Fetch current prices for a batch of coins.

        Args:
            feed_ids: CoinGecko ids, e.g. ["bitcoin", "ethereum"]
            vs_currency: feed currency code, e.g. "usd"

        Returns:
            {feed_id: price}; ids the feed did not price are absent

        Raises:
            PriceFeedError subclass, classified by status / transport failure
        """
        if not feed_ids or not vs_currency:
            raise InvalidRequestError("At least one feed id and a currency are required")

        params = {"ids": ",".join(feed_ids), "vs_currencies": vs_currency}
        resp = self._get("simple/price", params)

        if resp.status_code == 200:
            return self._decode_prices(resp, vs_currency)

        if resp.status_code == 429:
            logger.warning(f"Rate limited, retrying once in {self.rate_limit_backoff}s...")
            self._sleep(self.rate_limit_backoff)
            retry = self._get("simple/price", params)
            if retry.status_code != 200:
                logger.error(f"Still rate limited after retry (status {retry.status_code})")
                raise RateLimitedError(f"Rate limited (retry status {retry.status_code})")
            return self._decode_prices(retry, vs_currency)

        raise self._classify_status(resp.status_code)

    def search_coin(self, ticker: str) -> Optional[CoinInfo]:
        """Look up a coin by ticker symbol via /search. Returns the exact symbol match."""
        query = (ticker or "").strip()
        if not query:
            raise InvalidRequestError("Empty search query")

        resp = self._get("search", {"query": query})
        if resp.status_code != 200:
            raise self._classify_status(resp.status_code)

        data = self._json(resp)
        coins = data.get("coins") if isinstance(data, dict) else None
        if not isinstance(coins, list):
            raise InvalidResponseError("Search response missing 'coins' list", resp.status_code)

        for coin in coins:
            if not isinstance(coin, dict):
                continue
            if str(coin.get("symbol", "")).lower() == query.lower():
                return CoinInfo(
                    id=str(coin.get("id", "")),
                    symbol=str(coin.get("symbol", "")),
                    name=str(coin.get("name", "")),
                )
        return None

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _get(self, endpoint: str, params: Dict) -> requests.Response:
        """Send a GET, waiting for connectivity until the resource timeout runs out."""
        url = f"{self.base_url}/{endpoint}"
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers[COINGECKO_API_KEY_HEADER] = self.api_key

        deadline = self._clock() + self.resource_timeout
        while True:
            try:
                return self.session.get(url, params=params, headers=headers, timeout=self.request_timeout)
            except requests.exceptions.ConnectionError as e:
                remaining = deadline - self._clock()
                if self.wait_for_connectivity and remaining > self.connectivity_retry_interval:
                    logger.info(f"No connectivity, waiting {self.connectivity_retry_interval}s: {e}")
                    self._sleep(self.connectivity_retry_interval)
                    continue
                raise NetworkError(e) from e
            except requests.exceptions.RequestException as e:
                raise NetworkError(e) from e

    @staticmethod
    def _json(resp: requests.Response):
        try:
            return resp.json()
        except ValueError as e:
            raise InvalidResponseError(f"Undecodable JSON: {e}", resp.status_code) from e

    def _decode_prices(self, resp: requests.Response, vs_currency: str) -> Dict[str, float]:
        """Decode {id: {currency: price}} and keep the requested currency."""
        data = self._json(resp)
        if not isinstance(data, dict):
            raise InvalidResponseError("Expected a JSON object of prices", resp.status_code)

        prices = {}
        for feed_id, quote in data.items():
            if not isinstance(quote, dict):
                raise InvalidResponseError(f"Malformed quote for {feed_id}", resp.status_code)
            value = quote.get(vs_currency)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidResponseError(f"Non-numeric price for {feed_id}: {value!r}", resp.status_code)
            prices[feed_id] = float(value)
        return prices

    @staticmethod
    def _classify_status(status_code: int) -> PriceFeedError:
        if status_code == 404:
            return NotFoundError("Price feed endpoint not found")
        if 500 <= status_code <= 599:
            return ServerError(status_code)
        if status_code == 429:
            return RateLimitedError("Rate limited")
        return InvalidResponseError(f"Unexpected status {status_code}", status_code)
