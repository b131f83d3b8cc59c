"""
Shared fixtures for the reconciliation session tests.
"""

import pytest

from bankrec.config import Settings
from bankrec.integrations.matcher import MatcherResponse, RawSuggestion
from bankrec.models import Direction
from bankrec.reconciliation import CandidateGenerator, CommitEngine, ReconciliationSession

from tests.factories import FakeLedger, FakeMatcher, make_entry, make_line, make_statement


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def statement():
    """Three bank lines: one receipt, two payments."""
    return make_statement(
        make_line("L1", 15000, day=2),
        make_line("L2", -4210, day=5),
        make_line("L3", -30000, day=9),
    )


@pytest.fixture
def ledger_entries():
    return [
        make_entry("E1", 15000, Direction.RECEIVE, day=2),
        make_entry("E2", 30000, Direction.PAY, day=8),
        make_entry("E3", 4210, Direction.PAY, day=4),
        make_entry("E4", 9900, Direction.RECEIVE, day=20),
    ]


@pytest.fixture
def matcher_response(ledger_entries):
    """E1 -> L1 at 90, nothing for L2, E2 -> L3 at 40."""
    return MatcherResponse(
        suggestions=[
            RawSuggestion("L1", "E1", 90, "Same amount and date"),
            RawSuggestion("L2", None, 0, "No candidate"),
            RawSuggestion("L3", "E2", 40, "Amount close, date off"),
        ],
        ledger_entries=list(ledger_entries),
    )


@pytest.fixture
def fake_matcher(matcher_response):
    return FakeMatcher(matcher_response)


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def session(fake_matcher, fake_ledger, settings):
    return ReconciliationSession(
        generator=CandidateGenerator(fake_matcher, settings),
        committer=CommitEngine(fake_ledger),
        settings=settings,
    )
