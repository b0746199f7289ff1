"""
Fixed-depth commitment tree over eligible-voter identity commitments.

Leaves are filled left to right in registration order; every position past
the last leaf holds the level's zero value, so a tree of depth 20 is
evaluated without materialising its 2**20 slots. Recomputation is O(N) in
the number of leaves per call.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence, Tuple

from ..errors import InvalidMerklePath, LeafNotFound, TreeCapacityExceeded
from .hashing import FieldHasher, default_hasher

logger = logging.getLogger(__name__)

TREE_DEPTH = 20
ZERO_LEAF = "0"


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one leaf. Bit 0 of path_indices is the leaf level."""

    root: str
    path_indices: List[int]
    siblings: List[str]
    leaf_index: int

    def to_dict(self) -> dict:
        return asdict(self)


class ZeroCache:
    """
    Hash of an empty subtree at each level, zero[0] .. zero[depth].

    Built on first access and immutable afterwards; readers never lock once
    the tuple is published.
    """

    def __init__(self, hasher: FieldHasher, depth: int = TREE_DEPTH):
        self.hasher = hasher
        self.depth = depth
        self._values: Optional[Tuple[str, ...]] = None
        self._lock = threading.Lock()

    @property
    def values(self) -> Tuple[str, ...]:
        values = self._values
        if values is None:
            with self._lock:
                if self._values is None:
                    self._values = self._build()
                values = self._values
        return values

    def _build(self) -> Tuple[str, ...]:
        zeros = [ZERO_LEAF]
        for _ in range(self.depth):
            zeros.append(self.hasher.hash_pair(zeros[-1], zeros[-1]))
        logger.debug(f"Built zero cache for depth {self.depth} ({self.hasher.name})")
        return tuple(zeros)

    def __getitem__(self, level: int) -> str:
        return self.values[level]


class CommitmentTree:
    """
    Root and inclusion-proof computation for an ordered leaf list.

    The instance is stateless apart from its zero cache and is safe to share
    between threads.
    """

    def __init__(self, hasher: Optional[FieldHasher] = None, depth: int = TREE_DEPTH):
        self.hasher = hasher or default_hasher
        self.depth = depth
        self.zeros = ZeroCache(self.hasher, depth)

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    def empty_root(self) -> str:
        return self.zeros[self.depth]

    def get_root(self, leaves: Sequence[str]) -> str:
        """Root over leaves; zero[depth] when there are none."""
        root, _, _ = self._reduce(leaves)
        return root

    def get_proof(self, leaves: Sequence[str], index: int) -> MerkleProof:
        """Inclusion proof for leaves[index]."""
        if not 0 <= index < len(leaves):
            raise LeafNotFound(f"Leaf index {index} outside 0..{len(leaves) - 1}")
        root, path_indices, siblings = self._reduce(leaves, index)
        return MerkleProof(
            root=root, path_indices=path_indices, siblings=siblings, leaf_index=index
        )

    def get_proof_for_leaf(self, leaves: Sequence[str], leaf: str) -> MerkleProof:
        """Inclusion proof for the first occurrence of leaf."""
        try:
            index = list(leaves).index(leaf)
        except ValueError:
            raise LeafNotFound() from None
        return self.get_proof(leaves, index)

    def compute_root_from_path(
        self, leaf: str, path_indices: Sequence[int], siblings: Sequence[str]
    ) -> str:
        """Fold a proof path from the leaf upward."""
        if len(path_indices) != self.depth or len(siblings) != self.depth:
            raise InvalidMerklePath(
                f"Proof path must have exactly {self.depth} levels"
            )
        node = leaf
        for bit, sibling in zip(path_indices, siblings):
            if bit == 0:
                node = self.hasher.hash_pair(node, sibling)
            elif bit == 1:
                node = self.hasher.hash_pair(sibling, node)
            else:
                raise InvalidMerklePath(f"Path index must be 0 or 1, got {bit!r}")
        return node

    def verify_proof(self, leaf: str, proof: MerkleProof) -> bool:
        return (
            self.compute_root_from_path(leaf, proof.path_indices, proof.siblings)
            == proof.root
        )

    def _reduce(
        self, leaves: Sequence[str], index: Optional[int] = None
    ) -> Tuple[str, List[int], List[str]]:
        """
        Level-by-level pairwise reduction shared by get_root and get_proof.

        When index is given, the path bit and sibling of the tracked node are
        recorded at every level before that level is hashed.
        """
        if len(leaves) > self.capacity:
            raise TreeCapacityExceeded(
                f"{len(leaves)} leaves exceed capacity {self.capacity}"
            )

        zeros = self.zeros.values
        level = list(leaves)
        path_indices: List[int] = []
        siblings: List[str] = []

        for depth in range(self.depth):
            zero = zeros[depth]

            if index is not None:
                sibling_index = index ^ 1
                path_indices.append(index & 1)
                siblings.append(
                    level[sibling_index] if sibling_index < len(level) else zero
                )
                index >>= 1

            parents = []
            for i in range(0, len(level), 2):
                right = level[i + 1] if i + 1 < len(level) else zero
                parents.append(self.hasher.hash_pair(level[i], right))
            level = parents

        root = level[0] if level else zeros[self.depth]
        return root, path_indices, siblings
