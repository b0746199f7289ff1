"""
Identifier codec between UUIDs and public-signal field elements.

The contract shared with proof generation: a UUID is encoded as the decimal
string of its 128-bit integer value (hyphens dropped, hex read big-endian).
Every 128-bit value is below the BN254 scalar field, so the mapping is a
bijection between UUIDs and field elements in [0, 2**128).
"""

import uuid
from typing import Union

from ..errors import InvalidFieldElement
from .hashing import is_field_element

UUID_BITS = 128


def uuid_to_field(value: Union[str, uuid.UUID]) -> str:
    """Encode a UUID (object or string form) as a field element string."""
    if not isinstance(value, uuid.UUID):
        try:
            value = uuid.UUID(str(value))
        except ValueError as e:
            raise InvalidFieldElement(f"Not a UUID: {value!r}") from e
    return str(value.int)


def field_to_uuid(value: Union[str, int]) -> str:
    """Decode a field element string back to the canonical hyphenated UUID."""
    if not is_field_element(value):
        raise InvalidFieldElement(f"Not a canonical field element: {value!r}")
    number = int(value)
    if number >> UUID_BITS:
        raise InvalidFieldElement(f"Field element exceeds {UUID_BITS} bits")
    return str(uuid.UUID(int=number))


def normalize_uuid(value: Union[str, uuid.UUID]) -> str:
    """Canonical lowercase hyphenated form, as stored in the database.

    Raises ValueError for anything that is not a UUID.
    """
    return str(uuid.UUID(str(value)))
