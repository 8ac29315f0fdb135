"""
VaultCoin workspace configuration (Portfolio Desk + price feed)
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# API keys and overrides live in .env
load_dotenv(PROJECT_ROOT / ".env")

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
HOLDINGS_DIR = Path(os.environ.get("VAULTCOIN_HOLDINGS_DIR", str(DATA_DIR / "holdings")))
HOLDINGS_FILE = HOLDINGS_DIR / "holdings.json"

# CoinGecko price feed
COINGECKO_BASE_URL = os.environ.get("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3")
COINGECKO_API_KEY = os.environ.get("COINGECKO_API_KEY", "")
COINGECKO_API_KEY_HEADER = "x-cg-demo-api-key"

# Request policy (seconds). Background sync runs rarely, so timeouts are long.
API_REQUEST_TIMEOUT = 60
API_RESOURCE_TIMEOUT = 120
API_WAIT_FOR_CONNECTIVITY = True
CONNECTIVITY_RETRY_INTERVAL = 5
RATE_LIMIT_BACKOFF = 3  # single retry after HTTP 429

# Refresh cadence (seconds)
AUTO_REFRESH_INTERVAL = 300
STARTUP_SYNC_DELAY = 1.0
NEW_POSITION_SYNC_DELAY = 0.5

# A failed sync only raises the network-error flag once the last success is older than this
STALENESS_WINDOW = 300

# Display currency
DEFAULT_CURRENCY = os.environ.get("VAULTCOIN_CURRENCY", "USD")
