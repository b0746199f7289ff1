"""
Identity registration and eligibility snapshots.

A voter on the eligible list binds their opaque identity hash to a one-time
identity commitment. Committed voters become tree leaves in registration
order; a snapshot fixes the tree root on the election.
"""

import logging
from typing import Any, Dict, Optional

from ..crypto.accumulator import ZERO_LEAF, CommitmentTree, MerkleProof
from ..crypto.hashing import to_field_element
from ..data.database import ElectionDatabase
from ..data.models import ElectionStatus
from ..errors import (
    CommitmentAlreadyRegistered,
    CommitmentInUse,
    ElectionLocked,
    InvalidFieldElement,
    RegistrationClosed,
    VoterNotEligible,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("ballotproof.security")


class RegistrationService:
    """Registers identity commitments and computes eligibility roots."""

    def __init__(self, db: ElectionDatabase, tree: Optional[CommitmentTree] = None):
        self.db = db
        self.tree = tree or CommitmentTree()

    def register_identity_commitment(
        self, election_id: str, voter_identity_hash: str, commitment: str
    ) -> Dict[str, Any]:
        """
        Bind a commitment to an eligible voter.

        The status check, the uniqueness checks and the conditional write run
        under the election lock, so concurrent attempts for the same voter
        cannot both succeed.
        """
        logger.info(f"Registering identity commitment for election {election_id}")

        with self.db.election_lock(election_id):
            election = self.db.require_election(election_id)
            if election["status"] != ElectionStatus.REGISTRATION_OPEN:
                raise RegistrationClosed()

            voter = self.db.find_voter(election_id, voter_identity_hash)
            if voter is None:
                raise VoterNotEligible()
            if voter["identity_commitment"] is not None:
                raise CommitmentAlreadyRegistered()

            commitment = to_field_element(commitment)
            if commitment == ZERO_LEAF:
                raise InvalidFieldElement("Commitment 0 is reserved for empty leaves")
            if self.db.commitment_exists(election_id, commitment):
                raise CommitmentInUse()

            if not self.db.set_identity_commitment(voter["id"], commitment):
                raise CommitmentAlreadyRegistered()

        return {"success": True}

    def snapshot_election(self, election_id: str) -> str:
        """
        Recompute the root over all committed leaves and store it.
        Status is left unchanged.
        """
        logger.info(f"Snapshotting election {election_id} (generating Merkle root)")

        with self.db.election_lock(election_id):
            election = self.db.require_election(election_id)
            if election["status"].is_locked:
                raise ElectionLocked("Root is frozen once voting has opened")

            leaves = self.db.get_leaves(election_id)
            root = self.tree.get_root(leaves)
            self.db.set_merkle_root(election_id, root)

        logger.info(f"Election {election_id} root set over {len(leaves)} leaves")
        return root

    def get_merkle_proof(self, election_id: str, commitment: str) -> MerkleProof:
        """Inclusion proof for a registered commitment."""
        commitment = to_field_element(commitment)
        self.db.require_election(election_id)
        leaves = self.db.get_leaves(election_id)
        return self.tree.get_proof_for_leaf(leaves, commitment)

    def check_eligibility(
        self, election_id: str, voter_identity_hash: str
    ) -> Dict[str, Any]:
        election = self.db.require_election(election_id)
        voter = self.db.find_voter(election_id, voter_identity_hash)

        result = {
            "eligible": voter is not None,
            "is_registered": False,
            "merkle_root": election["merkle_root"],
            "leaf_index": None,
        }
        if voter is None:
            result["reason"] = "NOT_ELIGIBLE"
            return result

        commitment = voter["identity_commitment"]
        if commitment is not None:
            result["is_registered"] = True
            result["leaf_index"] = self.db.get_leaves(election_id).index(commitment)
        return result

    def verify_published_root(self, election_id: str) -> Dict[str, Any]:
        """Recompute the root and compare it with the stored one."""
        election = self.db.require_election(election_id)
        leaves = self.db.get_leaves(election_id)
        computed = self.tree.get_root(leaves)
        stored = election["merkle_root"]

        if stored is not None and stored != computed:
            security_logger.warning(
                f"Stored root for election {election_id} does not match its "
                f"{len(leaves)} registered leaves"
            )

        return {
            "matches": stored == computed,
            "stored_root": stored,
            "computed_root": computed,
            "leaf_count": len(leaves),
        }
