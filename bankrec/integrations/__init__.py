"""External integrations: remote matcher and ledger persistence."""

from .matcher import MatcherClient, MatcherError, MatcherResponse, RawSuggestion
from .ledger import LedgerClient, LedgerError, LedgerConflictError

__all__ = [
    "MatcherClient",
    "MatcherError",
    "MatcherResponse",
    "RawSuggestion",
    "LedgerClient",
    "LedgerError",
    "LedgerConflictError",
]
