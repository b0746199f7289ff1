import uuid
from unittest.mock import Mock

import pytest

from ballotproof.analysis.verification import AuditLogVerifier
from ballotproof.crypto.codec import uuid_to_field

ROOT = "424242"
ALICE = str(uuid.UUID(int=1))
BOB = str(uuid.UUID(int=2))
ELECTION_FIELD = uuid_to_field(uuid.UUID(int=99))


def entry(entry_id, candidate, nullifier, root=ROOT, proof=None):
    return {
        "id": entry_id,
        "nullifier_hash": nullifier,
        "proof": proof or {"pi_a": ["1", "2", "1"]},
        "public_signals": [root, ELECTION_FIELD, uuid_to_field(candidate), nullifier],
    }


@pytest.fixture
def verifier():
    mock = Mock()
    mock.verify.return_value = True
    return mock


@pytest.mark.unit
class TestAuditLogVerifier:
    def test_clean_log_passes(self, verifier):
        entries = [entry("v1", ALICE, "1"), entry("v2", BOB, "2"), entry("v3", ALICE, "3")]
        results = AuditLogVerifier(verifier, expected_root=ROOT).verify_log(
            entries, published_tally={ALICE: 2, BOB: 1}
        )

        assert results["verification_passed"] is True
        assert results["valid_entries"] == 3
        assert results["recounted_tally"] == {ALICE: 2, BOB: 1}
        assert results["tally_differences"] == {}

    def test_failed_proof_is_flagged(self, verifier):
        verifier.verify.side_effect = lambda signals, proof: proof.get("ok", True)
        entries = [entry("v1", ALICE, "1"), entry("v2", BOB, "2", proof={"ok": False})]
        results = AuditLogVerifier(verifier).verify_log(entries)

        assert results["verification_passed"] is False
        assert results["invalid_entries"] == ["v2"]
        assert results["recounted_tally"] == {ALICE: 1}

    def test_duplicate_nullifier(self, verifier):
        entries = [entry("v1", ALICE, "7"), entry("v2", BOB, "7")]
        results = AuditLogVerifier(verifier).verify_log(entries)
        assert results["duplicate_nullifiers"] == ["7"]
        assert results["invalid_entries"] == ["v2"]

    def test_foreign_root(self, verifier):
        entries = [entry("v1", ALICE, "1", root="1")]
        results = AuditLogVerifier(verifier, expected_root=ROOT).verify_log(entries)
        assert results["valid_entries"] == 0

    def test_nullifier_must_match_signal(self, verifier):
        bad = entry("v1", ALICE, "1")
        bad["nullifier_hash"] = "2"
        checks = AuditLogVerifier(verifier).verify_entries([bad])
        assert not checks["nullifier_matches"].iloc[0]
        assert not checks["valid"].iloc[0]

    def test_malformed_signals_never_verified(self, verifier):
        bad = entry("v1", ALICE, "1")
        bad["public_signals"] = bad["public_signals"][:3]
        checks = AuditLogVerifier(verifier).verify_entries([bad])
        assert not checks["valid"].iloc[0]
        verifier.verify.assert_not_called()

    def test_tally_differences(self, verifier):
        entries = [entry("v1", ALICE, "1")]
        results = AuditLogVerifier(verifier).verify_log(entries, published_tally={ALICE: 2})
        assert results["tally_differences"] == {ALICE: {"published": 2, "recounted": 1}}
        assert results["verification_passed"] is False

    def test_empty_log(self, verifier):
        results = AuditLogVerifier(verifier).verify_log([])
        assert results["total_entries"] == 0
        assert results["verification_passed"] is True

    def test_report(self, verifier):
        auditor = AuditLogVerifier(verifier)
        report = auditor.generate_verification_report(
            auditor.verify_log([entry("v1", ALICE, "1")], published_tally={ALICE: 3})
        )
        assert "VERIFICATION FAILED" in report
        assert "Published=3, Recounted=1" in report
