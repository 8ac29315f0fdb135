"""
Ticker -> CoinGecko id lookup table.

Static reference data. Lookups are case-insensitive; tickers missing from
the table are simply not priced.
"""
from typing import Dict, Iterable, Optional

TICKER_TO_FEED_ID: Dict[str, str] = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "usdt": "tether",
    "usdc": "usd-coin",
    "bnb": "binancecoin",
    "sol": "solana",
    "ada": "cardano",
    "xrp": "ripple",
    "avax": "avalanche-2",
    "dot": "polkadot",
    "doge": "dogecoin",
    "matic": "matic-network",
    "ltc": "litecoin",
    "bch": "bitcoin-cash",
    "link": "chainlink",
    "uni": "uniswap",
    "atom": "cosmos",
    "etc": "ethereum-classic",
    "xlm": "stellar",
    "vet": "vechain",
    "icp": "internet-computer",
    "fil": "filecoin",
    "near": "near",
    "algo": "algorand",
    "apt": "aptos",
    "arb": "arbitrum",
    "op": "optimism",
    "mkr": "maker",
    "aave": "aave",
    "sushi": "sushi",
    "comp": "compound-governance-token",
    "yfi": "yearn-finance",
    "crv": "curve-dao-token",
    "bal": "balancer",
    "1inch": "1inch",
    "grt": "the-graph",
    "enj": "enjincoin",
    "sand": "the-sandbox",
    "mana": "decentraland",
    "axs": "axie-infinity",
    "gala": "gala",
    "chz": "chiliz",
    "hot": "holochain",
    "bat": "basic-attention-token",
    "zil": "zilliqa",
    "hbar": "hedera-hashgraph",
    "xmr": "monero",
    "dash": "dash",
    "neo": "neo",
    "eos": "eos",
    "trx": "tron",
    "xem": "nem",
    "waves": "waves",
    "qtum": "qtum",
    "omg": "omisego",
    "zec": "zcash",
    "btt": "bittorrent",
    "icx": "icon",
    "nano": "nano",
    "sc": "siacoin",
    "dcr": "decred",
    "xvg": "verge",
    "bts": "bitshares",
    "steem": "steem",
    "bcn": "bytecoin",
    "pivx": "pivx",
    "btg": "bitcoin-gold",
    "bcd": "bitcoin-diamond",
    "bsv": "bitcoin-sv",
}


def normalize_ticker(ticker: Optional[str]) -> str:
    """Canonical lookup key: stripped, lower-case."""
    return (ticker or "").strip().lower()


def resolve_feed_id(ticker: Optional[str], table: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Return the feed id for a ticker, or None if it is not mapped."""
    table = TICKER_TO_FEED_ID if table is None else table
    return table.get(normalize_ticker(ticker))


def resolve_feed_ids(tickers: Iterable[str], table: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Map each distinct ticker to its feed id.

    Returns:
        {normalized_ticker: feed_id}, unmapped tickers omitted
    """
    resolved = {}
    for ticker in tickers:
        key = normalize_ticker(ticker)
        if not key or key in resolved:
            continue
        feed_id = resolve_feed_id(key, table)
        if feed_id:
            resolved[key] = feed_id
    return resolved
