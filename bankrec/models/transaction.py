"""Statement and ledger transaction models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple, Dict, Any, Union

from .enums import Direction


def to_cents(value: Union[int, float, str, Decimal]) -> int:
    """Convert a monetary amount in standard units to integer cents."""
    cents = (Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


@dataclass(frozen=True)
class BankLine:
    """
    One transaction from a bank statement extract.
    All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
    The sign carries the flow: positive = funds in, negative = funds out.
    """
    id: str
    posted_date: date
    amount_cents: int
    memo: str = ""
    type: Optional[str] = None  # Bank-side transaction type (e.g. OFX TRNTYPE)

    @property
    def amount(self) -> float:
        """Return amount in standard units."""
        return self.amount_cents / 100.0

    @property
    def inferred_direction(self) -> Direction:
        """Direction implied by the amount sign."""
        if self.amount_cents < 0:
            return Direction.PAY
        return Direction.RECEIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (matcher wire format)."""
        return {
            "id": self.id,
            "postedDate": self.posted_date.isoformat(),
            "amount": self.amount,
            "memo": self.memo,
            "type": self.type,
        }


@dataclass(frozen=True)
class Statement:
    """
    A parsed bank statement. Produced by an external parser and read-only here.
    """
    account_ref: str
    start_date: date
    end_date: date
    transactions: Tuple[BankLine, ...] = ()

    # Optional header data carried by OFX-style extracts
    bank_id: Optional[str] = None
    account_type: Optional[str] = None
    balance_cents: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return len(self.transactions) == 0

    def find_line(self, bank_line_id: str) -> Optional[BankLine]:
        for line in self.transactions:
            if line.id == bank_line_id:
                return line
        return None


@dataclass(frozen=True)
class LedgerEntry:
    """
    An internal financial transaction (receivable or payable) eligible for reconciliation.
    Amount is unsigned; the direction says which way the money flows.
    """
    id: str
    amount_cents: int
    direction: Direction
    due_date: Optional[date] = None
    description: str = ""
    paid_date: Optional[date] = None

    # Reconciliation state
    reconciled: bool = False
    reconciled_at: Optional[datetime] = None
    reconciliation_ref: Optional[str] = None  # Bank line id

    raw_data: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def amount(self) -> float:
        """Return amount in standard units."""
        return self.amount_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "amount": self.amount,
            "direction": self.direction.value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "reconciled": self.reconciled,
            "reconciled_at": self.reconciled_at.isoformat() if self.reconciled_at else None,
            "reconciliation_ref": self.reconciliation_ref,
        }
