"""
Builders and fakes shared by the tests.
"""

from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional

from bankrec.integrations import LedgerConflictError
from bankrec.integrations.matcher import MatcherResponse
from bankrec.models import BankLine, Direction, LedgerEntry, SessionState, Statement


def make_line(line_id: str, amount_cents: int, day: int = 1, memo: str = "") -> BankLine:
    return BankLine(
        id=line_id,
        posted_date=date(2024, 3, day),
        amount_cents=amount_cents,
        memo=memo or f"Movement {line_id}",
    )


def make_entry(
    entry_id: str,
    amount_cents: int,
    direction: Direction,
    day: int = 1,
    reconciled: bool = False,
) -> LedgerEntry:
    return LedgerEntry(
        id=entry_id,
        description=f"Entry {entry_id}",
        amount_cents=amount_cents,
        direction=direction,
        due_date=date(2024, 3, day),
        paid_date=date(2024, 3, day),
        reconciled=reconciled,
    )


def make_statement(*lines: BankLine) -> Statement:
    return Statement(
        account_ref="acc-1",
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        transactions=tuple(lines),
    )


class FakeMatcher:
    """Matcher returning a canned response and recording its calls."""

    def __init__(self, response: MatcherResponse):
        self.response = response
        self.calls = []

    async def suggest(self, statement: Statement, account_ref: str) -> MatcherResponse:
        self.calls.append((statement, account_ref))
        return self.response


class FakeLedger:
    """Ledger writer that records updates and can fail chosen entries."""

    def __init__(self, failing: Optional[Dict[str, Exception]] = None):
        self.failing = failing or {}
        self.reconciled: Dict[str, str] = {}
        self.calls: List[str] = []

    async def mark_reconciled(
        self,
        entry: LedgerEntry,
        reference: str,
        reconciled_at: Optional[datetime] = None,
    ) -> LedgerEntry:
        self.calls.append(entry.id)
        if entry.id in self.failing:
            raise self.failing[entry.id]
        if entry.id in self.reconciled:
            raise LedgerConflictError(f"Ledger entry {entry.id} already reconciled")
        self.reconciled[entry.id] = reference
        return replace(
            entry,
            reconciled=True,
            reconciled_at=reconciled_at,
            reconciliation_ref=reference,
        )


def check_invariants(state: SessionState) -> List[str]:
    """
    Return a description of every invariant violation in the snapshot.
    An empty list means the snapshot is consistent.
    """
    violations = []
    eligible_ids = [e.id for e in state.ledger_entries]

    if len(eligible_ids) != len(set(eligible_ids)):
        violations.append("duplicate ledger entry ids in the eligible set")

    seen = {}
    for candidate in state.candidates:
        entry_id = candidate.ledger_entry_id
        if entry_id is None:
            continue
        if entry_id in seen:
            violations.append(
                f"ledger entry {entry_id} bound to bank lines "
                f"{seen[entry_id]} and {candidate.bank_line.id}"
            )
        seen[entry_id] = candidate.bank_line.id
        if entry_id not in eligible_ids:
            violations.append(f"ledger entry {entry_id} bound but not eligible")

    line_ids = [c.bank_line.id for c in state.candidates]
    if len(line_ids) != len(set(line_ids)):
        violations.append("more than one candidate for a bank line")

    pool_ids = [e.id for e in state.unmatched_pool]
    if sorted(pool_ids + list(seen)) != sorted(eligible_ids):
        violations.append("unmatched pool and bound entries do not partition the eligible set")

    return violations
