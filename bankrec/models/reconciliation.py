"""Reconciliation session models."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any, FrozenSet

from .enums import Direction, MatchStatus
from .transaction import BankLine, LedgerEntry, Statement

MANUAL_MATCH_RATIONALE = "manual match"
NO_MATCH_RATIONALE = "No match found by the matcher"


@dataclass(frozen=True)
class MatchCandidate:
    """A proposed or confirmed pairing between one bank line and at most one ledger entry."""
    bank_line: BankLine
    ledger_entry: Optional[LedgerEntry] = None
    confidence: int = 0  # 0-100
    rationale: str = ""
    status: MatchStatus = MatchStatus.PENDING

    @property
    def bank_line_id(self) -> str:
        return self.bank_line.id

    @property
    def ledger_entry_id(self) -> Optional[str]:
        return self.ledger_entry.id if self.ledger_entry else None

    @property
    def is_bound(self) -> bool:
        return self.ledger_entry is not None

    @property
    def effective_direction(self) -> Direction:
        """Bound entry's direction, else inferred from the bank line amount sign."""
        if self.ledger_entry is not None:
            return self.ledger_entry.direction
        return self.bank_line.inferred_direction

    @property
    def is_committable(self) -> bool:
        """Approved and bound: the only candidates that reach the ledger."""
        return self.status == MatchStatus.APPROVED and self.is_bound

    def is_high_confidence(self, threshold: int) -> bool:
        return self.is_bound and self.confidence >= threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bank_line": self.bank_line.to_dict(),
            "ledger_entry": self.ledger_entry.to_dict() if self.ledger_entry else None,
            "confidence": self.confidence,
            "rationale": self.rationale,
            "status": self.status.value,
            "effective_direction": self.effective_direction.value,
        }


@dataclass(frozen=True)
class SessionState:
    """
    Snapshot of the reconciliation session.

    Every mutation produces a new snapshot; the unmatched pool is derived from
    the eligible ledger entries minus the ones bound to a candidate, so it can
    never drift from the candidate bindings.
    """
    statement: Optional[Statement] = None
    account_ref: Optional[str] = None
    candidates: Tuple[MatchCandidate, ...] = ()
    ledger_entries: Tuple[LedgerEntry, ...] = ()  # All eligible entries considered

    @property
    def is_empty(self) -> bool:
        return self.statement is None

    @property
    def bound_entry_ids(self) -> FrozenSet[str]:
        return frozenset(
            c.ledger_entry.id for c in self.candidates if c.ledger_entry is not None
        )

    @property
    def unmatched_pool(self) -> Tuple[LedgerEntry, ...]:
        bound = self.bound_entry_ids
        return tuple(e for e in self.ledger_entries if e.id not in bound)

    def find_candidate(self, bank_line_id: str) -> Optional[MatchCandidate]:
        for candidate in self.candidates:
            if candidate.bank_line.id == bank_line_id:
                return candidate
        return None

    def find_owner(self, ledger_entry_id: str) -> Optional[MatchCandidate]:
        """Candidate currently bound to the given ledger entry, if any."""
        for candidate in self.candidates:
            if candidate.ledger_entry is not None and candidate.ledger_entry.id == ledger_entry_id:
                return candidate
        return None

    def candidates_by_direction(self, direction: Optional[Direction] = None) -> List[MatchCandidate]:
        if direction is None:
            return list(self.candidates)
        return [c for c in self.candidates if c.effective_direction == direction]

    def unmatched_by_direction(self, direction: Optional[Direction] = None) -> List[LedgerEntry]:
        pool = self.unmatched_pool
        if direction is None:
            return list(pool)
        return [e for e in pool if e.direction == direction]

    def with_candidates(self, candidates: Tuple[MatchCandidate, ...]) -> "SessionState":
        return replace(self, candidates=candidates)


EMPTY_STATE = SessionState()


@dataclass
class GenerationSummary:
    """Counts reported after candidate generation."""
    total_lines: int = 0
    high_confidence: int = 0  # Bound and at or above the threshold
    needs_review: int = 0     # Bound with 0 < confidence < threshold
    no_match: int = 0         # Nothing proposed
    considered_entries: int = 0
    unmatched_entries: int = 0


@dataclass
class SessionSummary:
    """Counts describing the current session."""
    total_candidates: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_direction: Dict[str, int] = field(default_factory=dict)
    committable: int = 0
    unmatched_entries: int = 0


@dataclass
class MutationResult:
    """Outcome of a status change or reassignment."""
    success: bool
    message: str = ""
    candidate: Optional[MatchCandidate] = None
    displaced_entry: Optional[LedgerEntry] = None  # Entry returned to the pool
    unbound_candidate: Optional[MatchCandidate] = None  # Previous owner, now unbound


@dataclass
class CommitItemResult:
    """Result of persisting a single approved match."""
    bank_line_id: str
    ledger_entry_id: str
    success: bool
    ledger_entry: Optional[LedgerEntry] = None  # Reconciled entry on success
    error_message: Optional[str] = None
    conflict: bool = False  # Entry was reconciled elsewhere or vanished


@dataclass
class CommitResult:
    """Outcome of a commit operation."""
    items: List[CommitItemResult] = field(default_factory=list)
    nothing_to_commit: bool = False
    session_cleared: bool = False
    committed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def committed_count(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if not item.success)

    @property
    def failed_items(self) -> List[CommitItemResult]:
        return [item for item in self.items if not item.success]
