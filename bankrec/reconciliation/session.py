"""
Reconciliation Session - the operator's working state.

Holds the current SessionState snapshot and exposes the commands of a
reconciliation run:
1. ingest (candidate generation via the remote matcher)
2. set_status / reassign / approve_all / approve_all_by_direction
3. commit (persist approved matches, then clear)
4. reset

Only ingest and commit suspend. In-memory mutations are synchronous and
swap the snapshot in one assignment. A generation counter (bumped by every
ingest request and reset) makes sure an ingestion that finishes after being
superseded never installs its result. An epoch counter (bumped only when the
session is actually replaced or reset) makes sure a commit never clears a
newer session, while a failed ingest leaves a running commit free to clear.
"""

from typing import List, Optional

import structlog

from ..config import Settings, get_settings
from ..models import (
    EMPTY_STATE,
    CommitResult,
    Direction,
    GenerationSummary,
    LedgerEntry,
    MatchCandidate,
    MatchStatus,
    MutationResult,
    SessionState,
    SessionSummary,
    Statement,
)
from . import operations
from .committer import CommitEngine
from .generator import CandidateGenerator

logger = structlog.get_logger()


class StaleGenerationError(Exception):
    """An ingestion finished after a newer ingestion or a reset; its result was discarded."""


class ReconciliationSession:
    """
    Single-operator reconciliation session.

    Callers are expected to await each command before issuing the next one
    for the same bank line or ledger entry; there is no internal locking.
    """

    def __init__(
        self,
        generator: CandidateGenerator,
        committer: CommitEngine,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.generator = generator
        self.committer = committer
        self.threshold = self.settings.auto_approve_confidence
        self._state: SessionState = EMPTY_STATE
        self._generation = 0
        self._epoch = 0

    # Read-only views

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def statement(self) -> Optional[Statement]:
        return self._state.statement

    @property
    def candidates(self) -> List[MatchCandidate]:
        return list(self._state.candidates)

    @property
    def unmatched_pool(self) -> List[LedgerEntry]:
        return list(self._state.unmatched_pool)

    def candidate(self, bank_line_id: str) -> Optional[MatchCandidate]:
        return self._state.find_candidate(bank_line_id)

    def candidates_by_direction(self, direction: Optional[Direction] = None) -> List[MatchCandidate]:
        return self._state.candidates_by_direction(direction)

    def unmatched_by_direction(self, direction: Optional[Direction] = None) -> List[LedgerEntry]:
        return self._state.unmatched_by_direction(direction)

    def summary(self) -> SessionSummary:
        return operations.summarize(self._state)

    # Commands

    async def ingest(self, statement: Statement, account_ref: str) -> GenerationSummary:
        """
        Generate candidates for a statement and replace the session with them.

        Raises:
            IngestionError: the statement was empty or the matcher failed
            StaleGenerationError: a newer ingest or a reset happened meanwhile
        """
        self._generation += 1
        token = self._generation

        result = await self.generator.generate(statement, account_ref)

        if token != self._generation:
            logger.warning(
                "Discarding stale candidate generation",
                account_ref=account_ref,
                generation=token,
                current=self._generation,
            )
            raise StaleGenerationError(
                f"Generation {token} superseded by {self._generation}"
            )

        self._state = result.state
        self._epoch += 1
        logger.info(
            "Session populated",
            account_ref=account_ref,
            generation=token,
            candidates=len(result.state.candidates),
        )
        return result.summary

    def set_status(self, bank_line_id: str, status: MatchStatus) -> MutationResult:
        self._state, outcome = operations.set_status(self._state, bank_line_id, status)
        return outcome

    def reassign(self, bank_line_id: str, ledger_entry_id: str) -> MutationResult:
        self._state, outcome = operations.reassign(self._state, bank_line_id, ledger_entry_id)
        return outcome

    def approve_all(self) -> int:
        self._state, changed = operations.approve_all(self._state, self.threshold)
        return changed

    def approve_all_by_direction(self, direction: Direction) -> int:
        self._state, changed = operations.approve_all(
            self._state, self.threshold, direction=direction
        )
        return changed

    async def commit(self) -> CommitResult:
        """
        Persist every approved and bound candidate, then clear the session.

        With nothing to commit no persistence call is made and the session
        is kept. Otherwise the session is cleared whatever the per-item
        outcome, unless it was reset or replaced by another ingest while the
        commit ran.
        """
        selection = operations.committable(self._state)
        if not selection:
            logger.info("Commit requested with no approved matches")
            return CommitResult(nothing_to_commit=True)

        epoch = self._epoch
        result = await self.committer.commit(selection)

        if epoch == self._epoch:
            self._clear()
            result.session_cleared = True
        else:
            logger.warning(
                "Session replaced during commit, not clearing",
                epoch=epoch,
                current=self._epoch,
            )

        return result

    def reset(self) -> None:
        """Discard the session and invalidate any in-flight ingestion."""
        self._generation += 1
        self._epoch += 1
        self._clear()
        logger.info("Session reset", generation=self._generation)

    def _clear(self) -> None:
        self._state = EMPTY_STATE
