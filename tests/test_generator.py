"""
Tests for the Candidate Generator.
"""

import pytest
from unittest.mock import AsyncMock

from bankrec.integrations import MatcherError
from bankrec.integrations.matcher import MatcherResponse, RawSuggestion
from bankrec.models import Direction, MatchStatus, NO_MATCH_RATIONALE
from bankrec.reconciliation import CandidateGenerator, IngestionError

from tests.factories import FakeMatcher, check_invariants, make_entry, make_line, make_statement


class TestCandidateGenerator:
    """Test suite for candidate generation."""

    @pytest.mark.asyncio
    async def test_three_line_scenario(self, statement, fake_matcher, settings):
        """Test generation for a receipt, an unmatched fee and a weak payment match."""
        generator = CandidateGenerator(fake_matcher, settings)

        result = await generator.generate(statement, "acc-1")
        state = result.state

        l1 = state.find_candidate("L1")
        l2 = state.find_candidate("L2")
        l3 = state.find_candidate("L3")

        assert l1.status == MatchStatus.PENDING and l1.ledger_entry.id == "E1"
        assert l2.status == MatchStatus.MANUAL and l2.ledger_entry is None
        assert l3.status == MatchStatus.PENDING and l3.ledger_entry.id == "E2"
        assert sorted(e.id for e in state.unmatched_pool) == ["E3", "E4"]
        assert check_invariants(state) == []

        assert result.summary.total_lines == 3
        assert result.summary.high_confidence == 1
        assert result.summary.needs_review == 1
        assert result.summary.no_match == 1
        assert result.summary.considered_entries == 4
        assert result.summary.unmatched_entries == 2

    @pytest.mark.asyncio
    async def test_matcher_receives_statement_and_account(self, statement, fake_matcher, settings):
        """Test that the matcher gets the statement and account reference."""
        generator = CandidateGenerator(fake_matcher, settings)

        await generator.generate(statement, "acc-1")

        assert fake_matcher.calls == [(statement, "acc-1")]

    @pytest.mark.asyncio
    async def test_empty_statement_rejected_without_calling_matcher(self, settings):
        """Test that an empty statement fails before the matcher is called."""
        matcher = AsyncMock()
        generator = CandidateGenerator(matcher, settings)

        with pytest.raises(IngestionError) as exc_info:
            await generator.generate(make_statement(), "acc-1")

        assert exc_info.value.status_code == 400
        matcher.suggest.assert_not_called()

    @pytest.mark.asyncio
    async def test_oversized_statement_rejected(self, settings):
        """Test the limit on statement lines."""
        settings.max_statement_lines = 2
        generator = CandidateGenerator(AsyncMock(), settings)
        statement = make_statement(
            make_line("A", 100), make_line("B", 200), make_line("C", 300)
        )

        with pytest.raises(IngestionError):
            await generator.generate(statement, "acc-1")

    @pytest.mark.asyncio
    async def test_duplicate_bank_line_ids_rejected(self, settings):
        """Test that a statement repeating a bank line id never reaches the matcher."""
        matcher = AsyncMock()
        generator = CandidateGenerator(matcher, settings)
        statement = make_statement(
            make_line("L1", 15000), make_line("L1", 15000), make_line("L2", -4210)
        )

        with pytest.raises(IngestionError, match="L1") as exc_info:
            await generator.generate(statement, "acc-1")

        assert exc_info.value.status_code == 400
        matcher.suggest.assert_not_called()

    @pytest.mark.asyncio
    async def test_matcher_error_becomes_ingestion_error(self, statement, settings):
        """Test that matcher failures surface as ingestion errors with the same status."""
        matcher = AsyncMock()
        matcher.suggest.side_effect = MatcherError("Rate limit exceeded", status_code=429)
        generator = CandidateGenerator(matcher, settings)

        with pytest.raises(IngestionError) as exc_info:
            await generator.generate(statement, "acc-1")

        assert exc_info.value.status_code == 429
        assert isinstance(exc_info.value.__cause__, MatcherError)

    def test_missing_suggestion_yields_manual_candidate(self, statement, ledger_entries, settings):
        """Test that a line the matcher skipped still gets a candidate."""
        response = MatcherResponse(
            suggestions=[RawSuggestion("L1", "E1", 90, "match")],
            ledger_entries=ledger_entries,
        )
        state = CandidateGenerator(FakeMatcher(response), settings).build(
            statement, "acc-1", response
        ).state

        assert len(state.candidates) == 3
        l3 = state.find_candidate("L3")
        assert l3.status == MatchStatus.MANUAL
        assert l3.confidence == 0
        assert l3.rationale == NO_MATCH_RATIONALE

    def test_unknown_suggested_entry_treated_as_no_proposal(self, statement, ledger_entries, settings):
        """Test that a suggested entry outside the eligible set is dropped."""
        response = MatcherResponse(
            suggestions=[RawSuggestion("L1", "E-ghost", 95, "hallucinated")],
            ledger_entries=ledger_entries,
        )
        state = CandidateGenerator(FakeMatcher(response), settings).build(
            statement, "acc-1", response
        ).state

        l1 = state.find_candidate("L1")
        assert l1.ledger_entry is None
        assert l1.status == MatchStatus.MANUAL
        assert len(state.unmatched_pool) == 4

    def test_reconciled_entries_are_not_eligible(self, statement, settings):
        """Test that already reconciled entries stay out of the pool."""
        entries = [
            make_entry("E1", 15000, Direction.RECEIVE),
            make_entry("E9", 500, Direction.PAY, reconciled=True),
        ]
        response = MatcherResponse(
            suggestions=[RawSuggestion("L2", "E9", 99, "already done")],
            ledger_entries=entries,
        )
        state = CandidateGenerator(FakeMatcher(response), settings).build(
            statement, "acc-1", response
        ).state

        assert [e.id for e in state.ledger_entries] == ["E1"]
        assert state.find_candidate("L2").ledger_entry is None

    def test_duplicate_proposal_keeps_highest_confidence(self, statement, ledger_entries, settings):
        """Test that one entry proposed for several lines stays with the strongest claim."""
        response = MatcherResponse(
            suggestions=[
                RawSuggestion("L1", "E2", 50, "weak"),
                RawSuggestion("L2", "E2", 70, "better"),
                RawSuggestion("L3", "E2", 70, "tie, later line"),
            ],
            ledger_entries=ledger_entries,
        )
        state = CandidateGenerator(FakeMatcher(response), settings).build(
            statement, "acc-1", response
        ).state

        assert state.find_candidate("L2").ledger_entry.id == "E2"
        for line_id in ("L1", "L3"):
            candidate = state.find_candidate(line_id)
            assert candidate.ledger_entry is None
            assert candidate.status == MatchStatus.MANUAL
            assert candidate.confidence == 0
        assert check_invariants(state) == []

    def test_confidence_is_clamped(self, statement, ledger_entries, settings):
        """Test that confidences are clamped to 0..100."""
        response = MatcherResponse(
            suggestions=[
                RawSuggestion("L1", "E1", 140.0, "over"),
                RawSuggestion("L3", "E2", -5, "under"),
            ],
            ledger_entries=ledger_entries,
        )
        state = CandidateGenerator(FakeMatcher(response), settings).build(
            statement, "acc-1", response
        ).state

        assert state.find_candidate("L1").confidence == 100
        assert state.find_candidate("L3").confidence == 0

    def test_suggestions_for_unknown_lines_ignored(self, statement, ledger_entries, settings):
        """Test that suggestions for lines outside the statement are ignored."""
        response = MatcherResponse(
            suggestions=[RawSuggestion("L99", "E1", 90, "stray")],
            ledger_entries=ledger_entries,
        )
        state = CandidateGenerator(FakeMatcher(response), settings).build(
            statement, "acc-1", response
        ).state

        assert [c.bank_line.id for c in state.candidates] == ["L1", "L2", "L3"]
        assert state.bound_entry_ids == frozenset()
