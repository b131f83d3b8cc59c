"""Reconciliation session components."""

from .generator import CandidateGenerator, GenerationResult, IngestionError
from .committer import CommitEngine
from .session import ReconciliationSession, StaleGenerationError

__all__ = [
    "CandidateGenerator",
    "GenerationResult",
    "IngestionError",
    "CommitEngine",
    "ReconciliationSession",
    "StaleGenerationError",
]
