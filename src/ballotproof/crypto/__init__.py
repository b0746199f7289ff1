"""
Cryptographic building blocks: field hashing, the identifier codec, the
commitment tree and Groth16 verification.
"""

from .accumulator import TREE_DEPTH, CommitmentTree, MerkleProof, ZeroCache
from .codec import field_to_uuid, uuid_to_field
from .groth16 import Groth16Verifier, ProofVerifier
from .hashing import (
    FIELD_MODULUS,
    FieldHasher,
    Sha256FieldHasher,
    default_hasher,
    get_hasher,
)
from .poseidon import PoseidonFieldHasher

__all__ = [
    "TREE_DEPTH",
    "CommitmentTree",
    "MerkleProof",
    "ZeroCache",
    "field_to_uuid",
    "uuid_to_field",
    "Groth16Verifier",
    "ProofVerifier",
    "FIELD_MODULUS",
    "FieldHasher",
    "PoseidonFieldHasher",
    "Sha256FieldHasher",
    "default_hasher",
    "get_hasher",
]
