"""
Holdings repository — JSON-backed entity store for positions.

Positions are persisted with their transactions and price points nested,
so deleting a position removes its history with it. Durability is
best-effort: write failures are logged, never raised.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from config.settings import HOLDINGS_FILE
from portfolio.holdings.schema import Position

logger = logging.getLogger(__name__)


class HoldingsRepository:
    """Load/save/delete positions in a single JSON document."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else HOLDINGS_FILE

    def load(self) -> List[Position]:
        """All stored positions, newest first (by created_at)."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("expected a list of positions")
            positions = [Position.from_dict(d) for d in data]
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to load holdings from {self.path}: {e}")
            return []
        return sorted(positions, key=lambda p: p.created_at, reverse=True)

    def save(self, positions: List[Position]) -> bool:
        """Persist the full position set. Returns False (and logs) on failure."""
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump([p.to_dict() for p in positions], f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save holdings to {self.path}: {e}")
            return False
        logger.debug(f"Saved {len(positions)} positions to {self.path}")
        return True

    def delete(self, position_id: str) -> bool:
        """Remove one position (and its history). Returns False if missing or on failure."""
        positions = self.load()
        remaining = [p for p in positions if p.id != position_id]
        if len(remaining) == len(positions):
            logger.warning(f"Position {position_id} not found for deletion")
            return False
        return self.save(remaining)

    def clear(self) -> bool:
        return self.save([])
