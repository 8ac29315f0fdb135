# Data layer modules
from .coingecko_client import (
    CoinGeckoClient,
    CoinInfo,
    PriceFeedError,
    InvalidRequestError,
    RateLimitedError,
    NotFoundError,
    ServerError,
    InvalidResponseError,
    NetworkError,
)
from .ticker_map import (
    TICKER_TO_FEED_ID,
    normalize_ticker,
    resolve_feed_id,
    resolve_feed_ids,
)
