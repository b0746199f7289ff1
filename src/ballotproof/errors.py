"""
Error kinds raised by the ballotproof core.

Every validation step maps to exactly one subclass of BallotProofError so
callers can assert on the cause of a rejection. Each kind carries:

- code: stable machine-readable identifier returned by the HTTP layer
- category: client_input, state_precondition or integrity
- retryable: True when the same request may succeed later ("try later"),
  False when it can never be valid
- status_code: HTTP status used by the web layer
"""

CLIENT_INPUT = "client_input"
STATE_PRECONDITION = "state_precondition"
INTEGRITY = "integrity"


class BallotProofError(Exception):
    """Base class for all core errors."""

    code = "BALLOTPROOF_ERROR"
    category = CLIENT_INPUT
    retryable = False
    status_code = 400
    default_message = "Request rejected"

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.code, "detail": self.message}


# --- client input errors ---------------------------------------------------


class ElectionNotFound(BallotProofError):
    code = "ELECTION_NOT_FOUND"
    status_code = 404
    default_message = "Election not found"


class VoterNotEligible(BallotProofError):
    code = "VOTER_NOT_ELIGIBLE"
    status_code = 404
    default_message = "Voter is not on the eligible voter list"


class InvalidFieldElement(BallotProofError):
    code = "INVALID_FIELD_ELEMENT"
    default_message = "Value is not a canonical field element"


class LeafNotFound(BallotProofError):
    code = "LEAF_NOT_FOUND"
    status_code = 404
    default_message = "Leaf not found in tree"


class InvalidMerklePath(BallotProofError):
    code = "INVALID_MERKLE_PATH"
    default_message = "Merkle path is malformed"


class ElectionMismatch(BallotProofError):
    code = "ELECTION_MISMATCH"
    default_message = "Election ID in proof does not match target election"


class MalformedPublicSignals(BallotProofError):
    code = "MALFORMED_PUBLIC_SIGNALS"
    default_message = "Public signals must be [root, electionId, vote, nullifierHash]"


class InvalidProof(BallotProofError):
    code = "INVALID_PROOF"
    default_message = "Invalid ZK proof"


class InvalidCandidate(BallotProofError):
    code = "INVALID_CANDIDATE"
    default_message = "Invalid candidate for this election"


# --- state precondition errors ---------------------------------------------


class RegistrationClosed(BallotProofError):
    code = "REGISTRATION_CLOSED"
    category = STATE_PRECONDITION
    status_code = 409
    default_message = "Election is not accepting identity commitments"


class CommitmentAlreadyRegistered(BallotProofError):
    code = "COMMITMENT_ALREADY_REGISTERED"
    category = STATE_PRECONDITION
    status_code = 409
    default_message = "Voter already registered an identity commitment"


class CommitmentInUse(BallotProofError):
    code = "COMMITMENT_IN_USE"
    category = STATE_PRECONDITION
    status_code = 409
    default_message = "Identity commitment already registered in this election"


class VotingNotOpen(BallotProofError):
    code = "VOTING_NOT_OPEN"
    category = STATE_PRECONDITION
    retryable = True
    status_code = 409
    default_message = "Election is not accepting votes"


class ResultsNotAvailable(BallotProofError):
    code = "RESULTS_NOT_AVAILABLE"
    category = STATE_PRECONDITION
    retryable = True
    status_code = 409
    default_message = "Results not available yet - election must be closed"


class ElectionLocked(BallotProofError):
    code = "ELECTION_LOCKED"
    category = STATE_PRECONDITION
    status_code = 409
    default_message = "Election can no longer be modified"


class InvalidTransition(BallotProofError):
    code = "INVALID_TRANSITION"
    category = STATE_PRECONDITION
    status_code = 409
    default_message = "Election status can only move one step forward"


class NoEligibleVoters(BallotProofError):
    code = "NO_ELIGIBLE_VOTERS"
    category = STATE_PRECONDITION
    retryable = True
    status_code = 409
    default_message = "No eligible voters to finalize"


class SnapshotRequired(BallotProofError):
    code = "SNAPSHOT_REQUIRED"
    category = STATE_PRECONDITION
    retryable = True
    status_code = 409
    default_message = "Merkle root must be snapshotted before voting opens"


class TreeCapacityExceeded(BallotProofError):
    code = "TREE_CAPACITY_EXCEEDED"
    category = STATE_PRECONDITION
    status_code = 409
    default_message = "Commitment tree is full"


class VerificationKeyUnavailable(BallotProofError):
    code = "VERIFICATION_KEY_UNAVAILABLE"
    category = STATE_PRECONDITION
    retryable = True
    status_code = 503
    default_message = "Verification key not configured"


# --- integrity violations --------------------------------------------------


class DuplicateVote(BallotProofError):
    code = "DUPLICATE_VOTE"
    category = INTEGRITY
    status_code = 409
    default_message = "Vote already cast (nullifier collision)"


class EligibilityRootMismatch(BallotProofError):
    code = "ELIGIBILITY_ROOT_MISMATCH"
    category = INTEGRITY
    default_message = "Invalid Merkle root (eligibility verification failed)"
