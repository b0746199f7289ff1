"""
Election services for anonymous voting.

- RegistrationService: identity commitments, eligibility snapshots and proofs
- ElectionLifecycle: forward-only status transitions
- VoteAdmission: proof-checked vote admission with nullifier uniqueness
- TallyEngine: electoral-type results, audit export and nullifier lookup
- AuditLogVerifier: offline re-verification of an exported audit log
"""

from .admission import PublicSignals, VoteAdmission
from .lifecycle import ElectionLifecycle
from .registration import RegistrationService
from .tally import CandidateCount, TallyEngine, TallyResult, compute_result
from .verification import AuditLogVerifier

__all__ = [
    "PublicSignals",
    "VoteAdmission",
    "ElectionLifecycle",
    "RegistrationService",
    "CandidateCount",
    "TallyEngine",
    "TallyResult",
    "compute_result",
    "AuditLogVerifier",
]
