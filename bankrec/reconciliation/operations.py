"""
Mutation operations on a session snapshot.

Each operation takes a SessionState and returns a new one; the input is never
modified. Reassignment rebinds and unbinds two candidates in one step, so no
snapshot ever shows a ledger entry bound twice or missing from both the
candidates and the unmatched pool.
"""

from dataclasses import replace
from typing import List, Optional, Tuple

import structlog

from ..config import get_settings
from ..models import (
    MANUAL_MATCH_RATIONALE,
    Direction,
    MatchCandidate,
    MatchStatus,
    MutationResult,
    SessionState,
    SessionSummary,
)

logger = structlog.get_logger()


def set_status(
    state: SessionState,
    bank_line_id: str,
    status: MatchStatus,
) -> Tuple[SessionState, MutationResult]:
    """Update the status of exactly one candidate."""
    target = state.find_candidate(bank_line_id)
    if target is None:
        return state, MutationResult(
            success=False,
            message=f"No candidate for bank line {bank_line_id}",
        )

    updated = replace(target, status=status)
    candidates = tuple(
        updated if c.bank_line.id == bank_line_id else c
        for c in state.candidates
    )

    logger.info(
        "Candidate status changed",
        bank_line_id=bank_line_id,
        previous=target.status.value,
        status=status.value,
        bound=updated.is_bound,
    )
    return state.with_candidates(candidates), MutationResult(success=True, candidate=updated)


def reassign(
    state: SessionState,
    bank_line_id: str,
    ledger_entry_id: str,
) -> Tuple[SessionState, MutationResult]:
    """
    Bind a ledger entry to a bank line chosen by the operator.

    The entry is looked up in the unmatched pool first, then among the
    candidates. If another candidate owned it, that candidate is unbound
    (confidence 0, status MANUAL). The entry previously bound to the target,
    if any, returns to the unmatched pool.
    """
    target = state.find_candidate(bank_line_id)
    if target is None:
        return state, MutationResult(
            success=False,
            message=f"No candidate for bank line {bank_line_id}",
        )

    entry = next((e for e in state.unmatched_pool if e.id == ledger_entry_id), None)
    owner: Optional[MatchCandidate] = None
    if entry is None:
        owner = state.find_owner(ledger_entry_id)
        if owner is not None:
            entry = owner.ledger_entry

    if entry is None:
        logger.warning(
            "Reassignment target not found",
            bank_line_id=bank_line_id,
            ledger_entry_id=ledger_entry_id,
        )
        return state, MutationResult(
            success=False,
            message=f"Ledger entry {ledger_entry_id} not found",
        )

    if owner is not None and owner.bank_line.id == bank_line_id:
        owner = None

    displaced = target.ledger_entry
    if displaced is not None and displaced.id == entry.id:
        displaced = None

    rebound = replace(
        target,
        ledger_entry=entry,
        confidence=100,
        rationale=MANUAL_MATCH_RATIONALE,
        status=MatchStatus.PENDING,
    )
    unbound = None
    if owner is not None:
        unbound = replace(
            owner,
            ledger_entry=None,
            confidence=0,
            rationale=f"Entry {entry.id} reassigned to bank line {bank_line_id}",
            status=MatchStatus.MANUAL,
        )

    candidates = []
    for candidate in state.candidates:
        if candidate.bank_line.id == bank_line_id:
            candidates.append(rebound)
        elif unbound is not None and candidate.bank_line.id == unbound.bank_line.id:
            candidates.append(unbound)
        else:
            candidates.append(candidate)

    new_state = state.with_candidates(tuple(candidates))

    logger.info(
        "Candidate reassigned",
        bank_line_id=bank_line_id,
        ledger_entry_id=entry.id,
        unbound_bank_line_id=unbound.bank_line.id if unbound else None,
        displaced_entry_id=displaced.id if displaced else None,
    )
    return new_state, MutationResult(
        success=True,
        candidate=rebound,
        displaced_entry=displaced,
        unbound_candidate=unbound,
    )


def approve_all(
    state: SessionState,
    threshold: Optional[int] = None,
    direction: Optional[Direction] = None,
) -> Tuple[SessionState, int]:
    """
    Approve every bound candidate at or above the confidence threshold.

    When a direction is given, only candidates with that effective direction
    are considered. Bindings are never touched. The threshold defaults to
    the configured auto_approve_confidence.

    Returns:
        The new state and the number of candidates whose status changed
    """
    if threshold is None:
        threshold = get_settings().auto_approve_confidence

    changed = 0
    candidates = []

    for candidate in state.candidates:
        eligible = (
            candidate.is_high_confidence(threshold)
            and (direction is None or candidate.effective_direction == direction)
        )
        if eligible and candidate.status != MatchStatus.APPROVED:
            candidates.append(replace(candidate, status=MatchStatus.APPROVED))
            changed += 1
        else:
            candidates.append(candidate)

    logger.info(
        "Bulk approval",
        direction=direction.value if direction else None,
        threshold=threshold,
        approved=changed,
    )
    return state.with_candidates(tuple(candidates)), changed


def committable(state: SessionState) -> List[MatchCandidate]:
    """Candidates that a commit would persist: approved and bound."""
    return [c for c in state.candidates if c.is_committable]


def summarize(state: SessionState) -> SessionSummary:
    by_status = {status.value: 0 for status in MatchStatus}
    by_direction = {direction.value: 0 for direction in Direction}

    for candidate in state.candidates:
        by_status[candidate.status.value] += 1
        by_direction[candidate.effective_direction.value] += 1

    return SessionSummary(
        total_candidates=len(state.candidates),
        by_status=by_status,
        by_direction=by_direction,
        committable=len(committable(state)),
        unmatched_entries=len(state.unmatched_pool),
    )
