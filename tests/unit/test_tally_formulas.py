"""
Electoral formula tests.

Pure functions over per-candidate counts; no database involved.
"""

import pytest

from ballotproof.analysis.tally import (
    AT_LARGE_SEATS,
    CandidateCount,
    at_large_result,
    compute_result,
    district_result,
    percent_threshold,
    presidential_result,
    rank_candidates,
)
from ballotproof.data.models import ElectionType


def counts(*votes):
    return [
        CandidateCount(candidate_id=f"c{i}", name=f"Candidate {i}", vote_count=v, order=i)
        for i, v in enumerate(votes)
    ]


@pytest.mark.unit
class TestThresholds:
    @pytest.mark.parametrize(
        "eligible,percent,expected",
        [(100, 10, 10), (101, 10, 11), (99, 10, 10), (1000, 1, 10), (1001, 1, 11), (0, 10, 0)],
    )
    def test_percent_threshold_rounds_up(self, eligible, percent, expected):
        assert percent_threshold(eligible, percent) == expected

    def test_ranking_breaks_ties_by_order(self):
        ranked = rank_candidates(counts(5, 9, 9, 1))
        assert [c.candidate_id for c in ranked] == ["c1", "c2", "c0", "c3"]


@pytest.mark.unit
class TestPresidential:
    def test_uncontested_below_threshold(self):
        result = presidential_result(counts(9), total_eligible_voters=100)
        assert result.type == "PRESIDENTIAL_UNCONTESTED"
        assert result.threshold == 10
        assert result.is_elected is False
        assert result.winner is None

    def test_uncontested_at_threshold(self):
        result = presidential_result(counts(10), total_eligible_voters=100)
        assert result.is_elected is True
        assert result.winner.candidate_id == "c0"

    def test_contested_winner(self):
        result = presidential_result(counts(30, 45, 10), total_eligible_voters=100)
        assert result.type == "PRESIDENTIAL_CONTESTED"
        assert result.winner.candidate_id == "c1"
        assert result.tie is False

    def test_contested_tie(self):
        result = presidential_result(counts(50, 50), total_eligible_voters=100)
        assert result.tie is True
        assert result.winner is None
        assert "Re-election" in result.note

    def test_tie_below_the_top_is_not_a_tie(self):
        result = presidential_result(counts(60, 20, 20), total_eligible_voters=100)
        assert result.tie is False
        assert result.winner.candidate_id == "c0"


@pytest.mark.unit
class TestDistrict:
    def test_no_candidates(self):
        result = district_result([], total_eligible_voters=10)
        assert result.type == "DISTRICT"
        assert result.note == "No candidates"
        assert result.winner is None

    def test_single_candidate_wins_without_threshold(self):
        result = district_result(counts(1), total_eligible_voters=1000)
        assert result.winner.candidate_id == "c0"

    def test_tie(self):
        result = district_result(counts(7, 7, 3), total_eligible_voters=100)
        assert result.tie is True
        assert "Draw lots" in result.note


@pytest.mark.unit
@pytest.mark.invariant
class TestAtLarge:
    def test_threshold_and_seats(self):
        # 20 qualifying candidates; positions 16 and 17 tie at 50 votes
        votes = [200 - i * 5 for i in range(15)] + [50, 50, 40, 30, 20] + [9, 3]
        result = at_large_result(counts(*votes), total_eligible_voters=1000)

        assert result.type == "AT_LARGE_SNTV"
        assert result.threshold == 10
        assert result.total_qualified == 20
        assert len(result.winners) == AT_LARGE_SEATS
        winner_ids = [c.candidate_id for c in result.winners]
        assert "c15" in winner_ids
        assert "c16" not in winner_ids
        assert "c20" not in winner_ids

    def test_fewer_qualifiers_than_seats(self):
        result = at_large_result(counts(10, 5, 30), total_eligible_voters=1000)
        assert [c.candidate_id for c in result.winners] == ["c2", "c0"]
        assert result.total_qualified == 2
        assert result.note == "Top 2 elected (passed 1% threshold)"


@pytest.mark.unit
def test_compute_result_dispatches_by_type():
    assert compute_result(ElectionType.PRESIDENTIAL, counts(3), 10).type == "PRESIDENTIAL_UNCONTESTED"
    assert compute_result(ElectionType.DISTRICT_COUNCILOR, counts(3), 10).type == "DISTRICT"
    assert compute_result("AT_LARGE_COUNCILOR", counts(3), 10).type == "AT_LARGE_SNTV"
