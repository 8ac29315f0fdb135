"""
Shared test fixtures.

Global guard: fail loudly (as a warning) if a test writes to the real
holdings file instead of a tmp_path copy.
"""
import logging
import sys
import warnings
from datetime import datetime
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import HOLDINGS_FILE

logger = logging.getLogger(__name__)


def _snapshot_holdings():
    """(exists, mtime, size) of the real holdings file."""
    if not HOLDINGS_FILE.exists():
        return (False, None, None)
    stat = HOLDINGS_FILE.stat()
    return (True, stat.st_mtime, stat.st_size)


@pytest.fixture(autouse=True, scope="session")
def guard_real_holdings():
    """Warn if the real holdings file changed during the test session."""
    before = _snapshot_holdings()
    yield
    after = _snapshot_holdings()
    if before != after:
        msg = f"Real holdings file changed during tests: {HOLDINGS_FILE}"
        logger.error(msg)
        warnings.warn(msg, UserWarning)


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 15, 12, 0, 0)
