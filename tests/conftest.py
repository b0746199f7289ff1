"""
Shared pytest configuration and fixtures for ballotproof.

This module provides common test fixtures and utilities used across
all test modules.
"""

import os
import sys
import tempfile
import uuid
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ballotproof.analysis.lifecycle import ElectionLifecycle  # noqa: E402
from ballotproof.analysis.registration import RegistrationService  # noqa: E402
from ballotproof.crypto.accumulator import CommitmentTree  # noqa: E402
from ballotproof.crypto.codec import uuid_to_field  # noqa: E402
from ballotproof.data.database import ElectionDatabase  # noqa: E402
from ballotproof.data.models import ElectionType  # noqa: E402


@pytest.fixture
def temp_db():
    """Provide a temporary in-memory database for testing."""
    db = ElectionDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def temp_db_file():
    """Provide a temporary database file path for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    os.unlink(db_path)  # DuckDB refuses to open an empty file

    try:
        yield db_path
    finally:
        for path in (db_path, db_path + ".wal"):
            if os.path.exists(path):
                os.unlink(path)


@pytest.fixture
def tree():
    return CommitmentTree()


@pytest.fixture
def sample_voters():
    """Opaque identity hashes for five eligible voters."""
    return [f"voter-hash-{i}" for i in range(1, 6)]


@pytest.fixture
def sample_commitments():
    """Identity commitments, one per sample voter."""
    return ["1111", "2222", "3333", "4444", "5555"]


@pytest.fixture
def accepting_verifier():
    """Proof verifier that accepts every proof."""
    verifier = Mock()
    verifier.verify.return_value = True
    return verifier


@pytest.fixture
def rejecting_verifier():
    verifier = Mock()
    verifier.verify.return_value = False
    return verifier


@pytest.fixture
def sample_proof():
    """A proof-shaped payload; only a mocked verifier ever looks at it."""
    return {
        "pi_a": ["1", "2", "1"],
        "pi_b": [["1", "0"], ["1", "0"], ["1", "0"]],
        "pi_c": ["1", "2", "1"],
        "protocol": "groth16",
    }


def make_signals(root, election_id, candidate_id, nullifier):
    """Public signals in circuit order for the given election and candidate."""
    return [root, uuid_to_field(election_id), uuid_to_field(candidate_id), nullifier]


@pytest.fixture
def signals_for():
    return make_signals


class ElectionBuilder:
    """Drives an election through setup in tests."""

    def __init__(self, db, tree=None):
        self.db = db
        self.registration = RegistrationService(db, tree)
        self.lifecycle = ElectionLifecycle(db, self.registration.tree)

    def create(self, election_type=ElectionType.PRESIDENTIAL, candidates=("Alice", "Bob"),
               voters=()):
        election_id = self.db.create_election("Test Election", election_type)
        candidate_ids = [self.db.add_candidate(election_id, name) for name in candidates]
        if voters:
            self.db.add_eligible_voters(election_id, voters)
        return election_id, candidate_ids

    def register_all(self, election_id, voters, commitments):
        for voter, commitment in zip(voters, commitments):
            self.registration.register_identity_commitment(election_id, voter, commitment)

    def open_voting(self, election_id, voters, commitments):
        """REGISTRATION_OPEN, register everyone, snapshot, VOTING_OPEN. Returns the root."""
        self.lifecycle.open_registration(election_id)
        self.register_all(election_id, voters, commitments)
        root = self.registration.snapshot_election(election_id)
        self.lifecycle.open_voting(election_id)
        return root


@pytest.fixture
def builder(temp_db):
    return ElectionBuilder(temp_db)


@pytest.fixture
def open_election(builder, sample_voters, sample_commitments):
    """Presidential election with two candidates, five registered voters, voting open."""
    election_id, candidate_ids = builder.create(voters=sample_voters)
    root = builder.open_voting(election_id, sample_voters, sample_commitments)
    return {"election_id": election_id, "candidate_ids": candidate_ids, "root": root}


@pytest.fixture
def nullifier_factory():
    """Fresh nullifier field elements."""
    return lambda: str(uuid.uuid4().int)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (medium speed, database required)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as tree and tally invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests that run real pairing computations"
    )
