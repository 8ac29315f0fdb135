"""
Holdings data models — Position, Transaction, PricePoint

Uses dataclasses for zero-dependency type safety.

A Position owns its transactions and price points. amount, cost_basis and
current_price are written only by apply_transaction() / apply_synced_price()
(and open_position() at creation).
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Set


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_dt(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _clean_tags(tags: Iterable[str]) -> Set[str]:
    return {t.strip() for t in tags if t and t.strip()}


def _sort_key(date: Optional[datetime]) -> datetime:
    """Missing dates sort as the distant past."""
    return date if date is not None else datetime.min


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionKind(str, Enum):
    BUY = "buy"
    SELL = "sell"


class SortOption(str, Enum):
    """Position list orderings."""
    NAME = "name"                  # ascending
    VALUE = "value"                # descending
    PROFIT_LOSS = "profit_loss"    # descending
    PERCENTAGE = "percentage"      # descending


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

_TRANSACTION_MUTABLE_FIELDS = frozenset({"notes", "tags"})

# Float slack when selling an entire holding
_AMOUNT_TOLERANCE = 1e-9


@dataclass
class Transaction:
    """A buy or sell. Immutable after creation except for notes and tags."""

    kind: TransactionKind
    amount: float
    unit_price: float
    date: Optional[datetime] = None
    notes: str = ""
    tags: Set[str] = field(default_factory=set)
    position_id: str = ""          # owning Position (back-reference only)
    id: str = field(default_factory=_new_id)

    def __post_init__(self):
        object.__setattr__(self, "kind", TransactionKind(self.kind))
        if self.amount <= 0:
            raise ValueError(f"Transaction amount must be positive, got {self.amount}")
        if self.unit_price <= 0:
            raise ValueError(f"Transaction unit price must be positive, got {self.unit_price}")
        object.__setattr__(self, "tags", _clean_tags(self.tags))
        object.__setattr__(self, "_sealed", True)

    def __setattr__(self, name, value):
        if getattr(self, "_sealed", False) and name not in _TRANSACTION_MUTABLE_FIELDS:
            raise AttributeError(f"Transaction.{name} is read-only")
        object.__setattr__(self, name, value)

    @property
    def total_value(self) -> float:
        return self.amount * self.unit_price

    @property
    def is_buy(self) -> bool:
        return self.kind == TransactionKind.BUY

    @property
    def is_sell(self) -> bool:
        return self.kind == TransactionKind.SELL

    @property
    def display_kind(self) -> str:
        return self.kind.value.capitalize()

    def add_tag(self, tag: str) -> None:
        self.tags = self.tags | _clean_tags([tag])

    def remove_tag(self, tag: str) -> None:
        self.tags = self.tags - {tag.strip()}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "amount": self.amount,
            "unit_price": self.unit_price,
            "date": self.date.isoformat() if self.date else None,
            "notes": self.notes,
            "tags": sorted(self.tags),
            "position_id": self.position_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            kind=data.get("kind", TransactionKind.BUY.value),
            amount=data.get("amount", 0.0),
            unit_price=data.get("unit_price", 0.0),
            date=_parse_dt(data.get("date")),
            notes=data.get("notes", ""),
            tags=set(data.get("tags", [])),
            position_id=data.get("position_id", ""),
            id=data.get("id") or _new_id(),
        )


# ---------------------------------------------------------------------------
# PricePoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricePoint:
    """One observed price. Append-only history per Position."""

    price: float
    date: datetime
    position_id: str = ""
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "price": self.price,
            "date": self.date.isoformat(),
            "position_id": self.position_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PricePoint":
        return cls(
            price=data.get("price", 0.0),
            date=_parse_dt(data.get("date")) or datetime.min,
            position_id=data.get("position_id", ""),
            id=data.get("id") or _new_id(),
        )


# ---------------------------------------------------------------------------
# Position
# ---------------------------------------------------------------------------

@dataclass
class Position:
    """A single tracked coin with its holdings and history."""

    # Identity
    ticker: str                     # upper-case, join key to the price feed
    name: Optional[str] = None

    # Holdings
    amount: float = 0.0             # units held
    cost_basis: float = 0.0         # average buy price per unit
    current_price: float = 0.0      # last known market price, 0 = never synced

    # Metadata
    created_at: datetime = field(default_factory=datetime.now)
    tags: Set[str] = field(default_factory=set)
    notes: str = ""
    id: str = field(default_factory=_new_id)

    # Owned history
    transactions: List[Transaction] = field(default_factory=list)
    price_history: List[PricePoint] = field(default_factory=list)

    def __post_init__(self):
        self.ticker = (self.ticker or "").strip().upper()
        self.tags = _clean_tags(self.tags)

    @property
    def display_name(self) -> str:
        return self.name or self.ticker or "Unknown"

    @property
    def display_ticker(self) -> str:
        return self.ticker.upper()

    @property
    def valuation_price(self) -> float:
        """current_price, falling back to cost basis while un-synced."""
        return self.current_price if self.current_price > 0 else self.cost_basis

    @property
    def sorted_transactions(self) -> List[Transaction]:
        """Most recent first; ties keep insertion order."""
        indexed = list(enumerate(self.transactions))
        indexed.sort(key=lambda it: (_sort_key(it[1].date), -it[0]), reverse=True)
        return [t for _, t in indexed]

    @property
    def sorted_price_history(self) -> List[PricePoint]:
        indexed = list(enumerate(self.price_history))
        indexed.sort(key=lambda it: (_sort_key(it[1].date), -it[0]), reverse=True)
        return [p for _, p in indexed]

    def add_tag(self, tag: str) -> None:
        self.tags |= _clean_tags([tag])

    def remove_tag(self, tag: str) -> None:
        self.tags.discard(tag.strip())

    def to_dict(self) -> dict:
        """Serialize to JSON-friendly dict."""
        return {
            "id": self.id,
            "ticker": self.ticker,
            "name": self.name,
            "amount": self.amount,
            "cost_basis": self.cost_basis,
            "current_price": self.current_price,
            "created_at": self.created_at.isoformat(),
            "tags": sorted(self.tags),
            "notes": self.notes,
            "transactions": [t.to_dict() for t in self.transactions],
            "price_history": [p.to_dict() for p in self.price_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        """Deserialize from dict."""
        return cls(
            ticker=data.get("ticker", ""),
            name=data.get("name"),
            amount=data.get("amount", 0.0),
            cost_basis=data.get("cost_basis", 0.0),
            current_price=data.get("current_price", 0.0),
            created_at=_parse_dt(data.get("created_at")) or datetime.min,
            tags=set(data.get("tags", [])),
            notes=data.get("notes", ""),
            id=data.get("id") or _new_id(),
            transactions=[Transaction.from_dict(t) for t in data.get("transactions", [])],
            price_history=[PricePoint.from_dict(p) for p in data.get("price_history", [])],
        )


# ---------------------------------------------------------------------------
# Mutation protocol
# ---------------------------------------------------------------------------

def open_position(
    ticker: str,
    amount: float,
    price: float,
    name: Optional[str] = None,
    tags: Iterable[str] = (),
    notes: str = "",
    created_at: Optional[datetime] = None,
) -> Position:
    """
    Create a Position from its first purchase.

    Seeds one buy transaction and one price point at the purchase price.
    current_price starts at the purchase price until the first sync.
    """
    if not (ticker or "").strip():
        raise ValueError("Ticker is required")
    created_at = created_at or datetime.now()

    position = Position(
        ticker=ticker,
        name=name or None,
        amount=amount,
        cost_basis=price,
        current_price=price,
        created_at=created_at,
        tags=set(tags),
        notes=notes,
    )
    position.transactions.append(Transaction(
        kind=TransactionKind.BUY,
        amount=amount,
        unit_price=price,
        date=created_at,
        notes="Initial purchase",
        position_id=position.id,
    ))
    position.price_history.append(PricePoint(price=price, date=created_at, position_id=position.id))
    return position


def apply_transaction(
    position: Position,
    kind,
    amount: float,
    unit_price: float,
    date: Optional[datetime] = None,
    notes: str = "",
    tags: Iterable[str] = (),
) -> Transaction:
    """
    Record a buy or sell against a position.

    Sells reduce amount and leave cost_basis alone. Buys increase amount and
    recompute cost_basis from the full buy history.

    Raises:
        ValueError: non-positive amount/price, unknown kind, or a sell larger
            than the current holdings
    """
    kind = TransactionKind(kind)
    transaction = Transaction(
        kind=kind,
        amount=amount,
        unit_price=unit_price,
        date=date or datetime.now(),
        notes=notes,
        tags=set(tags),
        position_id=position.id,
    )
    if kind == TransactionKind.SELL and amount > position.amount + _AMOUNT_TOLERANCE:
        raise ValueError(
            f"Cannot sell {amount} {position.ticker}: only {position.amount} held"
        )

    position.transactions.append(transaction)
    if kind == TransactionKind.SELL:
        position.amount -= amount
        if abs(position.amount) < _AMOUNT_TOLERANCE:
            position.amount = 0.0
    else:
        position.amount += amount
        recompute_cost_basis(position)
    return transaction


def recompute_cost_basis(position: Position) -> float:
    """Amount-weighted mean unit price over every buy. Unchanged if there are no buys."""
    buys = [t for t in position.transactions if t.kind == TransactionKind.BUY]
    total_amount = sum(t.amount for t in buys)
    total_value = sum(t.amount * t.unit_price for t in buys)
    if total_amount > 0:
        position.cost_basis = total_value / total_amount
    return position.cost_basis


def apply_synced_price(position: Position, price: float, date: Optional[datetime] = None) -> PricePoint:
    """Set current_price and append a PricePoint (feed sync or manual edit)."""
    if price < 0:
        raise ValueError(f"Price cannot be negative, got {price}")
    point = PricePoint(price=price, date=date or datetime.now(), position_id=position.id)
    position.current_price = price
    position.price_history.append(point)
    return point
