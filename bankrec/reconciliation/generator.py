"""
Candidate Generator - builds the initial session from a matcher run.

Ships the statement to the remote matcher, then turns its raw suggestions into
exactly one match candidate per bank line. Nothing here touches session state:
the caller installs the returned snapshot only once the whole run succeeded.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

import structlog

from ..config import Settings, get_settings
from ..integrations.matcher import MatcherError, MatcherResponse, RawSuggestion
from ..models import (
    NO_MATCH_RATIONALE,
    GenerationSummary,
    LedgerEntry,
    MatchCandidate,
    MatchStatus,
    SessionState,
    Statement,
)

logger = structlog.get_logger()


class IngestionError(Exception):
    """Candidate generation failed; the session was left untouched."""
    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class Matcher(Protocol):
    async def suggest(self, statement: Statement, account_ref: str) -> MatcherResponse:
        ...


@dataclass
class GenerationResult:
    """Snapshot built from a matcher run, ready to replace the session state."""
    state: SessionState
    summary: GenerationSummary


def clamp_confidence(value: float) -> int:
    return max(0, min(100, int(round(value))))


def initial_status(ledger_entry: Optional[LedgerEntry]) -> MatchStatus:
    """
    Starting status for a fresh candidate.

    High-confidence proposals still start as PENDING: approval is always an
    operator action (or an explicit bulk approval).
    """
    if ledger_entry is None:
        return MatchStatus.MANUAL
    return MatchStatus.PENDING


class CandidateGenerator:
    """
    Turns a statement into match candidates using the remote matcher.
    """

    def __init__(self, matcher: Matcher, settings: Optional[Settings] = None):
        self.matcher = matcher
        self.settings = settings or get_settings()
        self.threshold = self.settings.auto_approve_confidence

    async def generate(self, statement: Statement, account_ref: str) -> GenerationResult:
        """
        Run the matcher and build the session snapshot.

        Raises:
            IngestionError: empty or oversized statement, repeated bank line
                id, or matcher failure
        """
        if statement.is_empty:
            raise IngestionError("Statement contains no transactions", status_code=400)

        if len(statement.transactions) > self.settings.max_statement_lines:
            raise IngestionError(
                f"Statement has {len(statement.transactions)} lines, "
                f"limit is {self.settings.max_statement_lines}",
                status_code=400,
            )

        seen = set()
        for line in statement.transactions:
            if line.id in seen:
                raise IngestionError(
                    f"Duplicate bank line id {line.id} in statement",
                    status_code=400,
                )
            seen.add(line.id)

        logger.info(
            "Starting candidate generation",
            account_ref=account_ref,
            lines=len(statement.transactions),
        )

        try:
            response = await self.matcher.suggest(statement, account_ref)
        except MatcherError as e:
            logger.error(
                "Matcher call failed",
                account_ref=account_ref,
                status_code=e.status_code,
                error=str(e),
            )
            raise IngestionError(f"Matcher failed: {str(e)}", status_code=e.status_code) from e

        return self.build(statement, account_ref, response)

    def build(
        self,
        statement: Statement,
        account_ref: str,
        response: MatcherResponse,
    ) -> GenerationResult:
        """Build candidates and the eligible ledger set from a matcher response."""
        entries = self._eligible_entries(response.ledger_entries)
        entries_by_id = {entry.id: entry for entry in entries}
        suggestions = self._index_suggestions(statement, response.suggestions)

        proposals: Dict[str, Tuple[Optional[LedgerEntry], int, str]] = {}
        for line in statement.transactions:
            suggestion = suggestions.get(line.id)
            if suggestion is None:
                proposals[line.id] = (None, 0, NO_MATCH_RATIONALE)
                continue

            entry = None
            if suggestion.ledger_entry_id is not None:
                entry = entries_by_id.get(suggestion.ledger_entry_id)
                if entry is None:
                    logger.warning(
                        "Suggested ledger entry not eligible",
                        bank_line_id=line.id,
                        ledger_entry_id=suggestion.ledger_entry_id,
                    )

            rationale = suggestion.rationale or (NO_MATCH_RATIONALE if entry is None else "")
            proposals[line.id] = (entry, clamp_confidence(suggestion.confidence), rationale)

        owners = self._resolve_claims(statement, proposals)

        candidates: List[MatchCandidate] = []
        for line in statement.transactions:
            entry, confidence, rationale = proposals[line.id]
            if entry is not None and owners[entry.id] != line.id:
                logger.warning(
                    "Duplicate proposal dropped",
                    bank_line_id=line.id,
                    ledger_entry_id=entry.id,
                    kept_for=owners[entry.id],
                )
                rationale = f"Entry {entry.id} proposed for bank line {owners[entry.id]}"
                entry, confidence = None, 0

            candidates.append(MatchCandidate(
                bank_line=line,
                ledger_entry=entry,
                confidence=confidence,
                rationale=rationale,
                status=initial_status(entry),
            ))

        state = SessionState(
            statement=statement,
            account_ref=account_ref,
            candidates=tuple(candidates),
            ledger_entries=tuple(entries),
        )
        summary = self._summarize(state)

        logger.info(
            "Candidate generation complete",
            account_ref=account_ref,
            high_confidence=summary.high_confidence,
            needs_review=summary.needs_review,
            no_match=summary.no_match,
            unmatched_entries=summary.unmatched_entries,
        )

        return GenerationResult(state=state, summary=summary)

    def _eligible_entries(self, entries: List[LedgerEntry]) -> List[LedgerEntry]:
        """Drop already-reconciled entries and duplicate ids (first wins)."""
        eligible = []
        seen = set()
        for entry in entries:
            if entry.reconciled:
                logger.debug("Skipping reconciled ledger entry", ledger_entry_id=entry.id)
                continue
            if entry.id in seen:
                continue
            seen.add(entry.id)
            eligible.append(entry)
        return eligible

    def _index_suggestions(
        self,
        statement: Statement,
        suggestions: List[RawSuggestion],
    ) -> Dict[str, RawSuggestion]:
        line_ids = {line.id for line in statement.transactions}
        indexed: Dict[str, RawSuggestion] = {}

        for suggestion in suggestions:
            if suggestion.bank_line_id not in line_ids:
                logger.warning("Suggestion for unknown bank line", bank_line_id=suggestion.bank_line_id)
                continue
            if suggestion.bank_line_id in indexed:
                continue
            indexed[suggestion.bank_line_id] = suggestion

        return indexed

    def _resolve_claims(
        self,
        statement: Statement,
        proposals: Dict[str, Tuple[Optional[LedgerEntry], int, str]],
    ) -> Dict[str, str]:
        """Map each proposed entry id to the single bank line allowed to keep it."""
        owners: Dict[str, str] = {}
        best: Dict[str, int] = {}

        for line in statement.transactions:
            entry, confidence, _ = proposals[line.id]
            if entry is None:
                continue
            # Strictly greater: the first line wins ties
            if entry.id not in owners or confidence > best[entry.id]:
                owners[entry.id] = line.id
                best[entry.id] = confidence

        return owners

    def _summarize(self, state: SessionState) -> GenerationSummary:
        high = 0
        review = 0
        no_match = 0

        for candidate in state.candidates:
            if not candidate.is_bound:
                no_match += 1
            elif candidate.confidence >= self.threshold:
                high += 1
            else:
                review += 1

        return GenerationSummary(
            total_lines=len(state.candidates),
            high_confidence=high,
            needs_review=review,
            no_match=no_match,
            considered_entries=len(state.ledger_entries),
            unmatched_entries=len(state.unmatched_pool),
        )
