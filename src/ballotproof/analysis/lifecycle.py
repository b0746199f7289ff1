"""
Election lifecycle: DRAFT -> REGISTRATION_OPEN -> VOTING_OPEN -> VOTING_CLOSED -> TALLIED.
"""

import logging
from typing import Any, Dict, Optional, Union

from ..crypto.accumulator import CommitmentTree
from ..data.database import ElectionDatabase
from ..data.models import ElectionStatus
from ..errors import InvalidTransition, NoEligibleVoters, SnapshotRequired

logger = logging.getLogger(__name__)


class ElectionLifecycle:
    """Moves elections forward one status at a time."""

    def __init__(self, db: ElectionDatabase, tree: Optional[CommitmentTree] = None):
        self.db = db
        self.tree = tree or CommitmentTree()

    def advance(
        self, election_id: str, target: Union[str, ElectionStatus]
    ) -> Dict[str, Any]:
        target = ElectionStatus(target)

        with self.db.election_lock(election_id):
            election = self.db.require_election(election_id)
            current = election["status"]

            if current.next_status() != target:
                raise InvalidTransition(
                    f"Cannot move election from {current.value} to {target.value}"
                )

            if target == ElectionStatus.VOTING_OPEN:
                # Finalizing the voter list
                if self.db.count_eligible_voters(election_id) == 0:
                    raise NoEligibleVoters()
                if not election["merkle_root"]:
                    raise SnapshotRequired()
                # The frozen root must cover every registered commitment
                current_root = self.tree.get_root(self.db.get_leaves(election_id))
                if current_root != election["merkle_root"]:
                    raise SnapshotRequired(
                        "Stored root is stale; snapshot again before opening voting"
                    )

            self.db.set_status(election_id, target)

        if target == ElectionStatus.TALLIED:
            self.db.discard_election_lock(election_id)

        logger.info(f"Election {election_id}: {current.value} -> {target.value}")
        return {"id": election_id, "previous": current.value, "status": target.value}

    def open_registration(self, election_id: str) -> Dict[str, Any]:
        return self.advance(election_id, ElectionStatus.REGISTRATION_OPEN)

    def open_voting(self, election_id: str) -> Dict[str, Any]:
        return self.advance(election_id, ElectionStatus.VOTING_OPEN)

    def close_voting(self, election_id: str) -> Dict[str, Any]:
        return self.advance(election_id, ElectionStatus.VOTING_CLOSED)

    def mark_tallied(self, election_id: str) -> Dict[str, Any]:
        return self.advance(election_id, ElectionStatus.TALLIED)
