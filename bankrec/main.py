"""
FastAPI application exposing the operator's reconciliation session.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field
import structlog

from .config import get_settings
from .integrations import LedgerClient, MatcherClient
from .logging_config import setup_logging
from .models import (
    BankLine,
    Direction,
    MatchStatus,
    MutationResult,
    Statement,
    to_cents,
)
from .reconciliation import (
    CandidateGenerator,
    CommitEngine,
    IngestionError,
    ReconciliationSession,
    StaleGenerationError,
)

settings = get_settings()
setup_logging(settings.app_log_level, settings.log_dir)
logger = structlog.get_logger()

# Single operator session, created on first use
_session: Optional[ReconciliationSession] = None
_clients: list = []


def get_session() -> ReconciliationSession:
    global _session
    if _session is None:
        matcher = MatcherClient(settings)
        ledger = LedgerClient(settings)
        _clients.extend([matcher, ledger])
        _session = ReconciliationSession(
            generator=CandidateGenerator(matcher, settings),
            committer=CommitEngine(ledger),
            settings=settings,
        )
    return _session


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting bank reconciliation API", env=settings.app_env)
    yield
    for client in _clients:
        await client.close()
    logger.info("Shutting down bank reconciliation API")


app = FastAPI(
    title="Bank Reconciliation",
    description="Match bank statement lines to ledger entries and commit reconciliations",
    version="1.0.0",
    lifespan=lifespan,
)


# Request/Response models
class BankLineIn(BaseModel):
    id: str
    posted_date: date
    amount: Decimal
    memo: str = ""
    type: Optional[str] = None


class StatementIn(BaseModel):
    account_ref: Optional[str] = None
    start_date: date
    end_date: date
    transactions: List[BankLineIn] = Field(default_factory=list)
    bank_id: Optional[str] = None
    account_type: Optional[str] = None
    balance: Optional[Decimal] = None


class IngestRequest(BaseModel):
    account_ref: Optional[str] = None
    statement: StatementIn


class StatusRequest(BaseModel):
    status: MatchStatus


class ReassignRequest(BaseModel):
    ledger_entry_id: str


def _to_statement(payload: StatementIn, account_ref: str) -> Statement:
    return Statement(
        account_ref=payload.account_ref or account_ref,
        start_date=payload.start_date,
        end_date=payload.end_date,
        transactions=tuple(
            BankLine(
                id=line.id,
                posted_date=line.posted_date,
                amount_cents=to_cents(line.amount),
                memo=line.memo,
                type=line.type,
            )
            for line in payload.transactions
        ),
        bank_id=payload.bank_id,
        account_type=payload.account_type,
        balance_cents=to_cents(payload.balance) if payload.balance is not None else None,
    )


def _mutation_response(outcome: MutationResult) -> dict:
    return {
        "success": outcome.success,
        "message": outcome.message,
        "candidate": outcome.candidate.to_dict() if outcome.candidate else None,
        "displaced_entry": outcome.displaced_entry.to_dict() if outcome.displaced_entry else None,
        "unbound_bank_line_id": (
            outcome.unbound_candidate.bank_line.id if outcome.unbound_candidate else None
        ),
    }


# API Endpoints
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


@app.post("/api/session/ingest")
async def ingest_statement(
    request: IngestRequest,
    session: ReconciliationSession = Depends(get_session),
):
    """Run the matcher on a parsed statement and start a new session."""
    account_ref = request.account_ref or request.statement.account_ref
    if not account_ref:
        raise HTTPException(400, "account_ref is required")

    statement = _to_statement(request.statement, account_ref)

    try:
        summary = await session.ingest(statement, account_ref)
    except StaleGenerationError as e:
        raise HTTPException(409, str(e))
    except IngestionError as e:
        status = 400 if e.status_code == 400 else 502
        raise HTTPException(status, str(e))

    return {
        "total_lines": summary.total_lines,
        "high_confidence": summary.high_confidence,
        "needs_review": summary.needs_review,
        "no_match": summary.no_match,
        "considered_entries": summary.considered_entries,
        "unmatched_entries": summary.unmatched_entries,
    }


@app.get("/api/session")
async def get_session_state(
    direction: Optional[Direction] = None,
    session: ReconciliationSession = Depends(get_session),
):
    """Current candidates and unmatched entries, optionally filtered by direction."""
    summary = session.summary()
    statement = session.statement
    return {
        "account_ref": session.state.account_ref,
        "start_date": statement.start_date.isoformat() if statement else None,
        "end_date": statement.end_date.isoformat() if statement else None,
        "candidates": [c.to_dict() for c in session.candidates_by_direction(direction)],
        "unmatched_entries": [e.to_dict() for e in session.unmatched_by_direction(direction)],
        "summary": {
            "total_candidates": summary.total_candidates,
            "by_status": summary.by_status,
            "by_direction": summary.by_direction,
            "committable": summary.committable,
            "unmatched_entries": summary.unmatched_entries,
        },
    }


@app.post("/api/session/candidates/{bank_line_id}/status")
async def update_candidate_status(
    bank_line_id: str,
    request: StatusRequest,
    session: ReconciliationSession = Depends(get_session),
):
    """Set the status of one candidate."""
    outcome = session.set_status(bank_line_id, request.status)
    if not outcome.success:
        raise HTTPException(404, outcome.message)
    return _mutation_response(outcome)


@app.post("/api/session/candidates/{bank_line_id}/reassign")
async def reassign_candidate(
    bank_line_id: str,
    request: ReassignRequest,
    session: ReconciliationSession = Depends(get_session),
):
    """Bind a ledger entry to a bank line; an unknown entry is reported, not raised."""
    outcome = session.reassign(bank_line_id, request.ledger_entry_id)
    return _mutation_response(outcome)


@app.post("/api/session/approve-all")
async def approve_all(
    direction: Optional[Direction] = None,
    session: ReconciliationSession = Depends(get_session),
):
    """Approve every high-confidence bound candidate, optionally for one direction."""
    if direction is None:
        approved = session.approve_all()
    else:
        approved = session.approve_all_by_direction(direction)
    return {"approved": approved, "direction": direction.value if direction else None}


@app.post("/api/session/commit")
async def commit_session(session: ReconciliationSession = Depends(get_session)):
    """Persist approved matches and clear the session."""
    result = await session.commit()

    if result.nothing_to_commit:
        return {
            "status": "nothing_to_commit",
            "message": "No approved matches to save",
            "committed": 0,
            "failed": 0,
            "items": [],
        }

    return {
        "status": "completed" if result.failed_count == 0 else "partial",
        "message": f"{result.committed_count} reconciled, {result.failed_count} failed",
        "committed": result.committed_count,
        "failed": result.failed_count,
        "session_cleared": result.session_cleared,
        "items": [
            {
                "bank_line_id": item.bank_line_id,
                "ledger_entry_id": item.ledger_entry_id,
                "success": item.success,
                "conflict": item.conflict,
                "error": item.error_message,
            }
            for item in result.items
        ],
    }


@app.post("/api/session/reset")
async def reset_session(session: ReconciliationSession = Depends(get_session)):
    """Discard the current session."""
    session.reset()
    return {"status": "reset"}
