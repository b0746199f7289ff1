"""
Vote admission pipeline tests.

Proof verification is mocked; the Groth16 verifier itself is covered in
tests/unit/test_groth16.py.
"""

import threading
import time
import uuid
from unittest.mock import Mock

import pytest

from ballotproof.analysis.admission import PublicSignals, VoteAdmission
from ballotproof.data.models import ElectionType
from ballotproof.errors import (
    DuplicateVote,
    ElectionMismatch,
    ElectionNotFound,
    EligibilityRootMismatch,
    InvalidCandidate,
    InvalidProof,
    MalformedPublicSignals,
    VerificationKeyUnavailable,
    VotingNotOpen,
)


@pytest.fixture
def admission(temp_db, accepting_verifier):
    service = VoteAdmission(temp_db, verifier=accepting_verifier)
    yield service
    service.shutdown()


@pytest.fixture
def vote(open_election, signals_for, nullifier_factory, sample_proof):
    """Builds (election_id, candidate_id, proof, signals) for the open election."""

    def build(candidate_index=0, nullifier=None, root=None, election_field_id=None,
              candidate_field_id=None):
        election_id = open_election["election_id"]
        candidate_id = open_election["candidate_ids"][candidate_index]
        signals = signals_for(
            root or open_election["root"],
            election_field_id or election_id,
            candidate_field_id or candidate_id,
            nullifier or nullifier_factory(),
        )
        return election_id, candidate_id, sample_proof, signals

    return build


@pytest.mark.unit
class TestPublicSignals:
    def test_parse(self):
        signals = PublicSignals.parse(["1", "2", "3", "4"])
        assert signals.nullifier_hash == "4"
        assert signals.as_list() == ["1", "2", "3", "4"]

    @pytest.mark.parametrize(
        "raw", [["1", "2", "3"], ["1", "2", "3", "4", "5"], ["1", "2", "x", "4"], [1, 2, 3, 4], "1234", None]
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedPublicSignals):
            PublicSignals.parse(raw)


@pytest.mark.integration
class TestSubmitVote:
    def test_admits_vote(self, temp_db, admission, vote):
        election_id, candidate_id, proof, signals = vote()
        result = admission.submit_vote(election_id, candidate_id, proof, signals)

        assert result["election_id"] == election_id
        assert result["nullifier_hash"] == signals[3]
        stored = temp_db.get_audit_records(election_id)
        assert len(stored) == 1
        assert stored["nullifier_hash"].iloc[0] == signals[3]

    def test_candidate_id_optional(self, admission, vote):
        election_id, _, proof, signals = vote(candidate_index=1)
        assert admission.submit_vote(election_id, None, proof, signals)["id"]

    def test_verifier_sees_signals_in_circuit_order(self, admission, accepting_verifier, vote):
        election_id, candidate_id, proof, signals = vote()
        admission.submit_vote(election_id, candidate_id, proof, signals)
        accepting_verifier.verify.assert_called_once_with(signals, proof)

    def test_duplicate_nullifier(self, admission, accepting_verifier, vote):
        election_id, candidate_id, proof, signals = vote(nullifier="123456")
        admission.submit_vote(election_id, candidate_id, proof, signals)

        # A different, individually valid proof reusing the nullifier
        other_proof = dict(proof, pi_c=["3", "4", "1"])
        _, other_candidate, _, other_signals = vote(candidate_index=1, nullifier="123456")
        with pytest.raises(DuplicateVote):
            admission.submit_vote(election_id, other_candidate, other_proof, other_signals)
        assert accepting_verifier.verify.call_count == 1

    def test_root_mismatch_even_with_valid_proof(self, admission, vote):
        election_id, candidate_id, proof, signals = vote(root="987654321")
        with pytest.raises(EligibilityRootMismatch):
            admission.submit_vote(election_id, candidate_id, proof, signals)

    def test_invalid_proof(self, temp_db, rejecting_verifier, vote):
        service = VoteAdmission(temp_db, verifier=rejecting_verifier)
        election_id, candidate_id, proof, signals = vote()
        try:
            with pytest.raises(InvalidProof):
                service.submit_vote(election_id, candidate_id, proof, signals)
        finally:
            service.shutdown()

    def test_no_verification_key(self, temp_db, vote):
        service = VoteAdmission(temp_db, verifier=None)
        election_id, candidate_id, proof, signals = vote()
        try:
            with pytest.raises(VerificationKeyUnavailable):
                service.submit_vote(election_id, candidate_id, proof, signals)
        finally:
            service.shutdown()

    def test_malformed_signals(self, admission, vote):
        election_id, candidate_id, proof, signals = vote()
        with pytest.raises(MalformedPublicSignals):
            admission.submit_vote(election_id, candidate_id, proof, signals[:3])


@pytest.mark.integration
class TestElectionBinding:
    def test_other_election_in_proof(self, admission, vote):
        election_id, candidate_id, proof, signals = vote(election_field_id=str(uuid.uuid4()))
        with pytest.raises(ElectionMismatch):
            admission.submit_vote(election_id, candidate_id, proof, signals)

    def test_target_not_a_uuid(self, admission, vote):
        _, candidate_id, proof, signals = vote()
        with pytest.raises(ElectionMismatch):
            admission.submit_vote("election-1", candidate_id, proof, signals)

    def test_election_field_too_wide(self, admission, vote):
        election_id, candidate_id, proof, signals = vote()
        signals[1] = str(1 << 200)
        with pytest.raises(ElectionMismatch):
            admission.submit_vote(election_id, candidate_id, proof, signals)

    def test_uppercase_target_accepted(self, admission, vote):
        election_id, candidate_id, proof, signals = vote()
        assert admission.submit_vote(election_id.upper(), candidate_id, proof, signals)

    def test_unknown_election(self, admission, signals_for, sample_proof):
        missing = str(uuid.uuid4())
        signals = signals_for("1", missing, str(uuid.uuid4()), "77")
        with pytest.raises(ElectionNotFound):
            admission.submit_vote(missing, None, sample_proof, signals)


@pytest.mark.integration
class TestCandidateBinding:
    def test_candidate_from_other_election(self, builder, admission, vote):
        _, (foreign_candidate, _) = builder.create(candidates=("Mallory", "Trent"))
        election_id, _, proof, signals = vote(candidate_field_id=foreign_candidate)
        with pytest.raises(InvalidCandidate):
            admission.submit_vote(election_id, None, proof, signals)

    def test_unknown_candidate(self, admission, vote):
        election_id, _, proof, signals = vote(candidate_field_id=str(uuid.uuid4()))
        with pytest.raises(InvalidCandidate):
            admission.submit_vote(election_id, None, proof, signals)

    def test_candidate_field_too_wide(self, admission, vote):
        election_id, candidate_id, proof, signals = vote()
        signals[2] = str(1 << 129)
        with pytest.raises(InvalidCandidate):
            admission.submit_vote(election_id, candidate_id, proof, signals)

    def test_supplied_candidate_must_match_proof(self, admission, open_election, vote):
        election_id, _, proof, signals = vote(candidate_index=0)
        other = open_election["candidate_ids"][1]
        with pytest.raises(InvalidCandidate):
            admission.submit_vote(election_id, other, proof, signals)


@pytest.mark.integration
class TestCheckOrder:
    def test_binding_checked_before_verification(self, admission, accepting_verifier, vote):
        election_id, candidate_id, proof, signals = vote(election_field_id=str(uuid.uuid4()))
        with pytest.raises(ElectionMismatch):
            admission.submit_vote(election_id, candidate_id, proof, signals)
        accepting_verifier.verify.assert_not_called()

    def test_duplicate_checked_before_verification(self, temp_db, rejecting_verifier, vote):
        election_id, candidate_id, proof, signals = vote(nullifier="555")
        temp_db.insert_vote(election_id, candidate_id, "555", proof, signals)

        service = VoteAdmission(temp_db, verifier=rejecting_verifier)
        try:
            with pytest.raises(DuplicateVote):
                service.submit_vote(election_id, candidate_id, proof, signals)
            rejecting_verifier.verify.assert_not_called()
        finally:
            service.shutdown()

    def test_proof_checked_before_root(self, temp_db, rejecting_verifier, vote):
        election_id, candidate_id, proof, signals = vote(root="42")
        service = VoteAdmission(temp_db, verifier=rejecting_verifier)
        try:
            with pytest.raises(InvalidProof):
                service.submit_vote(election_id, candidate_id, proof, signals)
        finally:
            service.shutdown()

    def test_root_checked_before_candidate(self, admission, vote):
        election_id, _, proof, signals = vote(root="42", candidate_field_id=str(uuid.uuid4()))
        with pytest.raises(EligibilityRootMismatch):
            admission.submit_vote(election_id, None, proof, signals)


@pytest.mark.integration
class TestVotingWindow:
    def test_voting_not_open(self, temp_db, builder, admission, signals_for, sample_proof,
                             sample_voters):
        election_id, (candidate_id, _) = builder.create(voters=sample_voters)
        builder.lifecycle.open_registration(election_id)
        signals = signals_for("1", election_id, candidate_id, "77")
        with pytest.raises(VotingNotOpen):
            admission.submit_vote(election_id, candidate_id, sample_proof, signals)

    def test_voting_closed(self, builder, admission, open_election, vote):
        builder.lifecycle.close_voting(open_election["election_id"])
        election_id, candidate_id, proof, signals = vote()
        with pytest.raises(VotingNotOpen):
            admission.submit_vote(election_id, candidate_id, proof, signals)

    def test_presnapshot_voting_flag(self, temp_db, builder, accepting_verifier, signals_for,
                                     sample_proof):
        election_id, (candidate_id, _) = builder.create(election_type=ElectionType.DISTRICT_COUNCILOR)
        service = VoteAdmission(temp_db, verifier=accepting_verifier, allow_presnapshot_voting=True)
        try:
            # No root yet, so any root in the proof is accepted
            signals = signals_for("31337", election_id, candidate_id, "77")
            assert service.submit_vote(election_id, candidate_id, sample_proof, signals)["id"]
        finally:
            service.shutdown()


@pytest.mark.integration
@pytest.mark.invariant
class TestConcurrentSubmissions:
    def test_racing_nullifier_admits_one(self, temp_db, vote):
        def slow_verify(signals, proof):
            time.sleep(0.05)
            return True

        verifier = Mock()
        verifier.verify.side_effect = slow_verify
        service = VoteAdmission(temp_db, verifier=verifier, verify_workers=4)

        outcomes = []
        barrier = threading.Barrier(4)

        def submit(candidate_index):
            election_id, candidate_id, proof, signals = vote(
                candidate_index=candidate_index, nullifier="8080"
            )
            barrier.wait()
            try:
                service.submit_vote(election_id, candidate_id, proof, signals)
                outcomes.append("ok")
            except DuplicateVote:
                outcomes.append("duplicate")

        threads = [threading.Thread(target=submit, args=(i % 2,)) for i in range(4)]
        try:
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        finally:
            service.shutdown()

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 3
