"""
Vote admission pipeline.

A submission carries a Groth16 proof and its public signals in the circuit's
fixed order:

    [root, electionId, vote, nullifierHash]

Checks run cheapest first and short-circuit; proof verification, the
expensive step, runs on a dedicated worker pool.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from ..crypto.codec import field_to_uuid, normalize_uuid
from ..crypto.groth16 import ProofVerifier
from ..crypto.hashing import is_field_element
from ..data.database import ElectionDatabase
from ..data.models import ElectionStatus
from ..errors import (
    DuplicateVote,
    ElectionMismatch,
    EligibilityRootMismatch,
    InvalidCandidate,
    InvalidFieldElement,
    InvalidProof,
    MalformedPublicSignals,
    VerificationKeyUnavailable,
    VotingNotOpen,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("ballotproof.security")

PUBLIC_SIGNAL_COUNT = 4


@dataclass(frozen=True)
class PublicSignals:
    root: str
    election_id_field: str
    candidate_field: str
    nullifier_hash: str

    @classmethod
    def parse(cls, signals: Sequence[Any]) -> "PublicSignals":
        if not isinstance(signals, (list, tuple)) or len(signals) != PUBLIC_SIGNAL_COUNT:
            raise MalformedPublicSignals()
        if not all(isinstance(s, str) and is_field_element(s) for s in signals):
            raise MalformedPublicSignals("Public signals must be decimal field elements")
        return cls(*signals)

    def as_list(self):
        return [self.root, self.election_id_field, self.candidate_field, self.nullifier_hash]


def _short(value: str) -> str:
    return value if len(value) <= 12 else f"{value[:12]}..."


class VoteAdmission:
    """
    Validates and persists anonymous votes.

    Args:
        db: Election storage
        verifier: Bound Groth16 verifier; None until a key is configured
        executor: Pool used for proof verification
        allow_presnapshot_voting: Accept votes outside VOTING_OPEN while the
            election has no root yet (test setups only)
    """

    def __init__(
        self,
        db: ElectionDatabase,
        verifier: Optional[ProofVerifier] = None,
        executor: Optional[Executor] = None,
        verify_workers: int = 2,
        allow_presnapshot_voting: bool = False,
    ):
        self.db = db
        self.verifier = verifier
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=verify_workers, thread_name_prefix="proof-verify"
        )
        self.allow_presnapshot_voting = allow_presnapshot_voting

    def submit_vote(
        self,
        election_id: str,
        candidate_id: Optional[str],
        proof: Dict[str, Any],
        public_signals: Sequence[Any],
    ) -> Dict[str, Any]:
        signals = PublicSignals.parse(public_signals)

        # 1. Election binding
        try:
            election_id = normalize_uuid(election_id)
            proof_election_id = field_to_uuid(signals.election_id_field)
        except (ValueError, InvalidFieldElement):
            raise ElectionMismatch() from None
        if proof_election_id != election_id:
            raise ElectionMismatch()

        # 2. Election exists and accepts votes
        election = self.db.require_election(election_id)
        if election["status"] != ElectionStatus.VOTING_OPEN and not (
            self.allow_presnapshot_voting and election["merkle_root"] is None
        ):
            raise VotingNotOpen()

        # 3. Advisory double-vote check; the insert re-checks atomically
        if self.db.find_vote_by_nullifier(election_id, signals.nullifier_hash):
            security_logger.warning(
                f"Rejected replayed nullifier {_short(signals.nullifier_hash)} "
                f"for election {election_id}"
            )
            raise DuplicateVote()

        # 4. Proof verification
        if not self._verify(signals, proof):
            raise InvalidProof()

        # 5. Eligibility root
        stored_root = election["merkle_root"]
        if stored_root is not None and stored_root != signals.root:
            security_logger.warning(
                f"Proof root {_short(signals.root)} does not match election "
                f"{election_id} root {_short(stored_root)}"
            )
            raise EligibilityRootMismatch()

        # 6. Candidate
        try:
            proof_candidate_id = field_to_uuid(signals.candidate_field)
        except InvalidFieldElement:
            raise InvalidCandidate() from None
        if candidate_id is not None and not _same_uuid(candidate_id, proof_candidate_id):
            raise InvalidCandidate("Candidate does not match the proven vote")
        candidate = self.db.get_candidate(proof_candidate_id)
        if candidate is None or candidate["election_id"] != election_id:
            raise InvalidCandidate()

        # 7. Persist
        try:
            record = self.db.insert_vote(
                election_id,
                proof_candidate_id,
                signals.nullifier_hash,
                proof,
                signals.as_list(),
            )
        except DuplicateVote:
            security_logger.warning(
                f"Concurrent submission lost nullifier race {_short(signals.nullifier_hash)} "
                f"for election {election_id}"
            )
            raise

        logger.info(f"Admitted vote {record['id']} in election {election_id}")
        return {
            "id": record["id"],
            "election_id": election_id,
            "nullifier_hash": signals.nullifier_hash,
            "created_at": record["created_at"],
        }

    def _verify(self, signals: PublicSignals, proof: Dict[str, Any]) -> bool:
        if self.verifier is None:
            raise VerificationKeyUnavailable()
        future = self.executor.submit(self.verifier.verify, signals.as_list(), proof)
        return bool(future.result())

    def shutdown(self):
        if self._owns_executor:
            self.executor.shutdown(wait=True)


def _same_uuid(a: str, b: str) -> bool:
    try:
        return normalize_uuid(a) == normalize_uuid(b)
    except ValueError:
        return False
