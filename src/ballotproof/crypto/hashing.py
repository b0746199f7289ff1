"""
Two-to-one hashing over the BN254 scalar field.

Field elements travel through the system as canonical decimal strings, the
same representation the proof circuit uses for its public signals.
"""

import hashlib
import re
from typing import Protocol, Union

from py_ecc.optimized_bn128 import curve_order

from ..errors import InvalidFieldElement
from .poseidon import PoseidonFieldHasher

# Scalar field of BN254, the field the Groth16 circuit computes over.
FIELD_MODULUS = curve_order

_DECIMAL_RE = re.compile(r"^(0|[1-9][0-9]*)$")

FieldLike = Union[str, int]


def is_field_element(value: FieldLike) -> bool:
    """Return True when value is a canonical field element (str or int)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return 0 <= value < FIELD_MODULUS
    if not isinstance(value, str) or not _DECIMAL_RE.match(value):
        return False
    return int(value) < FIELD_MODULUS


def to_field_element(value: FieldLike) -> str:
    """Normalize value to its canonical decimal string, rejecting non-members."""
    if not is_field_element(value):
        raise InvalidFieldElement(f"Not a canonical field element: {value!r}")
    return str(int(value))


class FieldHasher(Protocol):
    """H(a, b) -> c over field elements encoded as decimal strings."""

    name: str

    def hash_pair(self, left: str, right: str) -> str:
        ...


class Sha256FieldHasher:
    """
    SHA-256 of "left|right", reduced into the scalar field.

    Not circuit friendly; roots built with it only verify against a circuit
    that hashes the same way.
    """

    name = "sha256-bn254"

    def hash_pair(self, left: str, right: str) -> str:
        digest = hashlib.sha256(f"{left}|{right}".encode("ascii")).digest()
        return str(int.from_bytes(digest, "big") % FIELD_MODULUS)


HASHERS = {
    "poseidon": PoseidonFieldHasher,
    "sha256": Sha256FieldHasher,
}


def get_hasher(name: str) -> FieldHasher:
    """Hasher registered under name (case-insensitive)."""
    try:
        return HASHERS[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown hasher {name!r}; expected one of {sorted(HASHERS)}"
        ) from None


default_hasher = PoseidonFieldHasher()
