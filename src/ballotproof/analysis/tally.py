import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from ..data.database import ElectionDatabase
from ..data.models import ElectionType
from ..errors import ResultsNotAvailable

logger = logging.getLogger(__name__)

UNCONTESTED_THRESHOLD_PERCENT = 10
AT_LARGE_THRESHOLD_PERCENT = 1
AT_LARGE_SEATS = 16


@dataclass
class CandidateCount:
    """Vote count for one candidate. `order` is the candidate's creation order."""

    candidate_id: str
    name: str
    vote_count: int
    order: int


@dataclass
class TallyResult:
    type: str
    note: str
    winner: Optional[CandidateCount] = None
    winners: List[CandidateCount] = field(default_factory=list)
    tie: bool = False
    threshold: Optional[int] = None
    is_elected: Optional[bool] = None
    total_qualified: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def percent_threshold(total_eligible_voters: int, percent: int) -> int:
    """ceil(total * percent / 100) in integer arithmetic."""
    return -(-total_eligible_voters * percent // 100)


def rank_candidates(candidates: List[CandidateCount]) -> List[CandidateCount]:
    """Descending by votes; equal counts keep creation order."""
    return sorted(candidates, key=lambda c: (-c.vote_count, c.order))


def _top_of_field(candidates: List[CandidateCount], result_type: str, tie_note: str,
                  win_note: str) -> TallyResult:
    ranked = rank_candidates(candidates)
    if not ranked:
        return TallyResult(type=result_type, note="No candidates")

    leader = ranked[0]
    runner_up = ranked[1] if len(ranked) > 1 else None
    if runner_up is not None and runner_up.vote_count == leader.vote_count:
        return TallyResult(type=result_type, note=tie_note, tie=True)
    return TallyResult(type=result_type, note=win_note, winner=leader)


def presidential_result(candidates: List[CandidateCount], total_eligible_voters: int) -> TallyResult:
    if len(candidates) == 1:
        candidate = candidates[0]
        threshold = percent_threshold(total_eligible_voters, UNCONTESTED_THRESHOLD_PERCENT)
        elected = candidate.vote_count >= threshold
        return TallyResult(
            type="PRESIDENTIAL_UNCONTESTED",
            threshold=threshold,
            winner=candidate if elected else None,
            is_elected=elected,
            note=(
                "Elected (passed 10% threshold)"
                if elected
                else "Not elected (failed 10% threshold)"
            ),
        )

    return _top_of_field(
        candidates,
        "PRESIDENTIAL_CONTESTED",
        tie_note="Tie detected. Re-election required.",
        win_note="Elected by simple majority",
    )


def district_result(candidates: List[CandidateCount], total_eligible_voters: int) -> TallyResult:
    return _top_of_field(
        candidates,
        "DISTRICT",
        tie_note="Tie detected. Draw lots required.",
        win_note="Elected",
    )


def at_large_result(candidates: List[CandidateCount], total_eligible_voters: int) -> TallyResult:
    threshold = percent_threshold(total_eligible_voters, AT_LARGE_THRESHOLD_PERCENT)
    qualified = rank_candidates([c for c in candidates if c.vote_count >= threshold])
    winners = qualified[:AT_LARGE_SEATS]
    return TallyResult(
        type="AT_LARGE_SNTV",
        threshold=threshold,
        winners=winners,
        total_qualified=len(qualified),
        note=f"Top {len(winners)} elected (passed 1% threshold)",
    )


RESULT_FORMULAS: Dict[ElectionType, Callable[[List[CandidateCount], int], TallyResult]] = {
    ElectionType.PRESIDENTIAL: presidential_result,
    ElectionType.DISTRICT_COUNCILOR: district_result,
    ElectionType.AT_LARGE_COUNCILOR: at_large_result,
}


def compute_result(
    election_type: ElectionType, candidates: List[CandidateCount], total_eligible_voters: int
) -> TallyResult:
    return RESULT_FORMULAS[ElectionType(election_type)](candidates, total_eligible_voters)


def _native(value: Any) -> Any:
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


class TallyEngine:
    """
    Results, audit export and nullifier lookup over admitted votes.
    """

    def __init__(self, db: ElectionDatabase):
        self.db = db

    def _require_closed(self, election_id: str) -> Dict[str, Any]:
        election = self.db.require_election(election_id)
        if not election["status"].results_available:
            raise ResultsNotAvailable()
        return election

    def count_votes(self, election_id: str) -> List[CandidateCount]:
        """Per-candidate counts, candidates in creation order, zero-vote candidates included."""
        candidates = self.db.list_candidates(election_id)
        votes = self.db.get_vote_candidates(election_id)
        counts = votes["candidate_id"].value_counts() if not votes.empty else pd.Series(dtype="int64")

        return [
            CandidateCount(
                candidate_id=row["candidate_id"],
                name=row["name"],
                vote_count=int(counts.get(row["candidate_id"], 0)),
                order=int(row["display_order"]),
            )
            for _, row in candidates.iterrows()
        ]

    def get_tally(self, election_id: str) -> Dict[str, Any]:
        election = self._require_closed(election_id)

        candidates = self.count_votes(election_id)
        total_votes = sum(c.vote_count for c in candidates)
        total_eligible = self.db.count_eligible_voters(election_id)

        result = compute_result(election["election_type"], candidates, total_eligible)
        logger.info(
            f"Tallied election {election_id}: {total_votes} votes, "
            f"{total_eligible} eligible, result {result.type}"
        )

        return {
            "tally": {c.candidate_id: c.vote_count for c in candidates if c.vote_count},
            "total_votes": total_votes,
            "total_eligible_voters": total_eligible,
            "candidates": [asdict(c) for c in candidates],
            "result": result.to_dict(),
        }

    def get_audit_logs(self, election_id: str) -> List[Dict[str, Any]]:
        """Every admitted vote's nullifier, proof and public signals, verbatim."""
        self._require_closed(election_id)
        records = self.db.get_audit_records(election_id)

        return [
            {
                "id": row["id"],
                "nullifier_hash": row["nullifier_hash"],
                "proof": json.loads(row["proof"]),
                "public_signals": json.loads(row["public_signals"]),
                "created_at": _native(row["created_at"]),
            }
            for row in records.to_dict("records")
        ]

    def check_nullifier(self, election_id: str, nullifier_hash: str) -> Dict[str, Any]:
        """Whether a vote with this nullifier exists. Never reveals the candidate."""
        vote = self.db.find_vote_by_nullifier(election_id, nullifier_hash)
        return {"exists": vote is not None, "vote": vote}
