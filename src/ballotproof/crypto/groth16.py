"""
Groth16 proof verification over BN254 using py_ecc.

Verification keys and proofs use the snarkjs JSON layout:

    vk:    {"protocol": "groth16", "curve": "bn128", "nPublic": 4,
            "vk_alpha_1": [x, y, z], "vk_beta_2": [[x0, x1], [y0, y1], [z0, z1]],
            "vk_gamma_2": ..., "vk_delta_2": ..., "IC": [[x, y, z], ...]}
    proof: {"pi_a": [x, y, z], "pi_b": [[..], [..], [..]], "pi_c": [x, y, z]}

All coordinates are decimal strings.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Sequence, Union

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    is_on_curve,
    multiply,
    pairing,
)

from ..errors import VerificationKeyUnavailable

logger = logging.getLogger(__name__)


class ProofVerifier(Protocol):
    """verify(public_signals, proof) -> bool, with parameters bound in advance."""

    def verify(self, public_signals: Sequence[str], proof: Dict[str, Any]) -> bool:
        ...


class MalformedPoint(ValueError):
    pass


def _coordinate(value: Any) -> int:
    number = int(str(value))
    if not 0 <= number < field_modulus:
        raise MalformedPoint(f"Coordinate outside base field: {value!r}")
    return number


def parse_g1(raw: Sequence[Any]):
    """snarkjs [x, y, z] -> projective G1 point, checked on curve."""
    if len(raw) != 3:
        raise MalformedPoint("G1 point needs 3 coordinates")
    point = tuple(FQ(_coordinate(c)) for c in raw)
    if not is_on_curve(point, b):
        raise MalformedPoint("G1 point not on curve")
    return point


def parse_g2(raw: Sequence[Sequence[Any]]):
    """snarkjs [[x0, x1], [y0, y1], [z0, z1]] -> projective G2 point."""
    if len(raw) != 3 or any(len(pair) != 2 for pair in raw):
        raise MalformedPoint("G2 point needs 3 coordinate pairs")
    point = tuple(FQ2([_coordinate(c0), _coordinate(c1)]) for c0, c1 in raw)
    if not is_on_curve(point, b2):
        raise MalformedPoint("G2 point not on twist curve")
    return point


class Groth16Verifier:
    """Verifier bound to one verification key."""

    def __init__(self, verification_key: Dict[str, Any]):
        protocol = verification_key.get("protocol", "groth16")
        if protocol != "groth16":
            raise ValueError(f"Unsupported proof protocol: {protocol}")

        self.alpha = parse_g1(verification_key["vk_alpha_1"])
        self.beta = parse_g2(verification_key["vk_beta_2"])
        self.gamma = parse_g2(verification_key["vk_gamma_2"])
        self.delta = parse_g2(verification_key["vk_delta_2"])
        self.ic = [parse_g1(point) for point in verification_key["IC"]]
        self.n_public = int(verification_key.get("nPublic", len(self.ic) - 1))

        if self.n_public != len(self.ic) - 1:
            raise ValueError(
                f"Verification key declares {self.n_public} public inputs "
                f"but has {len(self.ic)} IC points"
            )

        self._alpha_beta = None

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Groth16Verifier":
        path = Path(path)
        if not path.exists():
            raise VerificationKeyUnavailable(f"Verification key not found: {path}")
        with open(path, "r") as f:
            key = json.load(f)
        logger.info(f"Loaded verification key from {path}")
        return cls(key)

    @property
    def alpha_beta(self):
        # e(alpha, beta) is fixed per key
        if self._alpha_beta is None:
            self._alpha_beta = pairing(self.beta, self.alpha)
        return self._alpha_beta

    def verify(self, public_signals: Sequence[str], proof: Dict[str, Any]) -> bool:
        """
        Check e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta).

        Returns False for any malformed proof or out-of-range signal.
        """
        if len(public_signals) != self.n_public:
            logger.debug(
                f"Expected {self.n_public} public signals, got {len(public_signals)}"
            )
            return False

        try:
            signals = [int(str(s)) for s in public_signals]
            a = parse_g1(proof["pi_a"])
            b_point = parse_g2(proof["pi_b"])
            c = parse_g1(proof["pi_c"])
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Rejecting malformed proof: {e}")
            return False

        if any(not 0 <= s < curve_order for s in signals):
            logger.debug("Public signal outside scalar field")
            return False

        vk_x = self.ic[0]
        for signal, point in zip(signals, self.ic[1:]):
            vk_x = add(vk_x, multiply(point, signal))

        lhs = pairing(b_point, a)
        rhs = (
            self.alpha_beta
            * pairing(self.gamma, vk_x)
            * pairing(self.delta, c)
        )
        return lhs == rhs


def verify(
    params: Dict[str, Any], public_signals: Sequence[str], proof: Dict[str, Any]
) -> bool:
    """Stateless form: verify(params, publicSignals, proof) -> bool."""
    return Groth16Verifier(params).verify(public_signals, proof)


def load_verifier(path: Optional[str]) -> Optional[Groth16Verifier]:
    """Load a verifier from path, or None when no path is configured."""
    if not path:
        return None
    return Groth16Verifier.from_file(path)
