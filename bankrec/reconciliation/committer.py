"""
Commit Engine - persists approved matches to the ledger.

Best effort per item: each approved match is an independent update, a failure
is recorded against its item and never rolls back the others.
"""

from datetime import datetime
from typing import List, Optional, Protocol

import structlog

from ..integrations.ledger import LedgerConflictError, LedgerError
from ..models import CommitItemResult, CommitResult, LedgerEntry, MatchCandidate

logger = structlog.get_logger()


class LedgerWriter(Protocol):
    async def mark_reconciled(
        self,
        entry: LedgerEntry,
        reference: str,
        reconciled_at: Optional[datetime] = None,
    ) -> LedgerEntry:
        ...


class CommitEngine:
    """Writes approved matches to the ledger, one update per match."""

    def __init__(self, ledger: LedgerWriter):
        self.ledger = ledger

    async def commit(
        self,
        candidates: List[MatchCandidate],
        reconciled_at: Optional[datetime] = None,
    ) -> CommitResult:
        """
        Persist each committable candidate.

        Args:
            candidates: Candidates to persist; anything not approved and bound is skipped
            reconciled_at: Timestamp stored on every entry (defaults to now)

        Returns:
            CommitResult with one item per persisted candidate
        """
        reconciled_at = reconciled_at or datetime.utcnow()
        result = CommitResult(committed_at=reconciled_at)

        selection = [c for c in candidates if c.is_committable]
        if not selection:
            result.nothing_to_commit = True
            logger.info("Nothing to commit")
            return result

        logger.info("Committing approved matches", count=len(selection))

        for candidate in selection:
            entry = candidate.ledger_entry
            try:
                persisted = await self.ledger.mark_reconciled(
                    entry,
                    reference=candidate.bank_line.id,
                    reconciled_at=reconciled_at,
                )
            except LedgerConflictError as e:
                logger.warning(
                    "Commit conflict",
                    bank_line_id=candidate.bank_line.id,
                    ledger_entry_id=entry.id,
                    error=str(e),
                )
                result.items.append(CommitItemResult(
                    bank_line_id=candidate.bank_line.id,
                    ledger_entry_id=entry.id,
                    success=False,
                    error_message=str(e),
                    conflict=True,
                ))
                continue
            except LedgerError as e:
                logger.error(
                    "Commit failed",
                    bank_line_id=candidate.bank_line.id,
                    ledger_entry_id=entry.id,
                    status_code=e.status_code,
                    error=str(e),
                )
                result.items.append(CommitItemResult(
                    bank_line_id=candidate.bank_line.id,
                    ledger_entry_id=entry.id,
                    success=False,
                    error_message=str(e),
                ))
                continue
            except Exception as e:
                logger.exception(
                    "Unexpected commit failure",
                    bank_line_id=candidate.bank_line.id,
                    ledger_entry_id=entry.id,
                    error=str(e),
                )
                result.items.append(CommitItemResult(
                    bank_line_id=candidate.bank_line.id,
                    ledger_entry_id=entry.id,
                    success=False,
                    error_message=str(e),
                ))
                continue

            result.items.append(CommitItemResult(
                bank_line_id=candidate.bank_line.id,
                ledger_entry_id=entry.id,
                success=True,
                ledger_entry=persisted,
            ))

        logger.info(
            "Commit complete",
            committed=result.committed_count,
            failed=result.failed_count,
        )
        return result
