"""
SHA-256 Merkle tree over eligible voter public keys.

Leaves and internal nodes carry distinct prefixes so an internal node can
never be presented as a leaf. A proof is a bottom-up list of
``(sibling, sibling_is_right)`` pairs. An odd node at any level is paired
with itself.
"""

import hashlib
from typing import List, Sequence, Tuple

LEAF_PREFIX = b"stellot:leaf"
NODE_PREFIX = b"stellot:node"

MerkleProof = List[Tuple[bytes, bool]]


def leaf_hash(leaf: bytes) -> bytes:
    return hashlib.sha256(LEAF_PREFIX + bytes(leaf)).digest()


def node_hash(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(NODE_PREFIX + left + right).digest()


def verify_inclusion(root: bytes, leaf: bytes, proof: Sequence[Tuple[bytes, bool]]) -> bool:
    current = leaf_hash(leaf)
    for sibling, sibling_is_right in proof:
        if len(sibling) != 32:
            return False
        if sibling_is_right:
            current = node_hash(current, sibling)
        else:
            current = node_hash(sibling, current)
    return current == root


class EligibilityTree:
    """Eligibility root and inclusion proofs for a fixed voter set"""

    def __init__(self, leaves: Sequence[bytes]):
        if not leaves:
            raise ValueError("Eligibility tree needs at least one leaf")
        self.leaves = [bytes(leaf) for leaf in leaves]
        if len(set(self.leaves)) != len(self.leaves):
            raise ValueError("Duplicate leaves in eligibility set")

        self._levels = [[leaf_hash(leaf) for leaf in self.leaves]]
        while len(self._levels[-1]) > 1:
            level = self._levels[-1]
            parents = []
            for i in range(0, len(level), 2):
                left = level[i]
                right = level[i + 1] if i + 1 < len(level) else left
                parents.append(node_hash(left, right))
            self._levels.append(parents)

    @property
    def root(self) -> bytes:
        return self._levels[-1][0]

    def __contains__(self, leaf: bytes) -> bool:
        return bytes(leaf) in self.leaves

    def proof(self, leaf: bytes) -> MerkleProof:
        try:
            position = self.leaves.index(bytes(leaf))
        except ValueError:
            raise KeyError("Leaf is not part of the eligibility set") from None

        proof = []
        for level in self._levels[:-1]:
            if position % 2 == 0:
                sibling = level[position + 1] if position + 1 < len(level) else level[position]
                proof.append((sibling, True))
            else:
                proof.append((level[position - 1], False))
            position //= 2
        return proof
