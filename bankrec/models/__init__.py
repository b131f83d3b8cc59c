"""Data models for the bank reconciliation session."""

from .enums import (
    Direction,
    MatchStatus,
)
from .transaction import (
    BankLine,
    Statement,
    LedgerEntry,
    to_cents,
)
from .reconciliation import (
    MANUAL_MATCH_RATIONALE,
    NO_MATCH_RATIONALE,
    EMPTY_STATE,
    MatchCandidate,
    SessionState,
    GenerationSummary,
    SessionSummary,
    MutationResult,
    CommitItemResult,
    CommitResult,
)

__all__ = [
    # Enums
    "Direction",
    "MatchStatus",
    # Transactions
    "BankLine",
    "Statement",
    "LedgerEntry",
    "to_cents",
    # Reconciliation
    "MANUAL_MATCH_RATIONALE",
    "NO_MATCH_RATIONALE",
    "EMPTY_STATE",
    "MatchCandidate",
    "SessionState",
    "GenerationSummary",
    "SessionSummary",
    "MutationResult",
    "CommitItemResult",
    "CommitResult",
]
