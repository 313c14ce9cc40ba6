"""
Poseidon2 Merkle tree over quad leaves.

Odd levels duplicate their last node, so depth = ceil(log2(n)) and a single
leaf is its own root. Direction bits follow the circuit's convention:
0 = sibling on the right (parent = H(running, sibling)),
1 = sibling on the left  (parent = H(sibling, running)).
"""

from dataclasses import dataclass, field
from typing import List, Optional

from zksparql.field import Const, hash2


@dataclass
class MerkleProof:
    leaf_index: int
    leaf: int
    siblings: List[int] = field(default_factory=list)
    directions: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            "leaf_index": self.leaf_index,
            "leaf": str(self.leaf),
            "path": [str(s) for s in self.siblings],
            "directions": list(self.directions),
        }


def _parents(level: List[int], evaluator) -> List[int]:
    return evaluator.evaluate_many(
        [hash2(Const(level[i]), Const(level[i + 1])) for i in range(0, len(level), 2)]
    )


class MerkleTree:
    """
    Build a binary Merkle tree from leaves.

    Args:
        leaves: leaf hashes as field integers, in dataset order
        evaluator: field evaluator used for the Poseidon2 compression
        depth: optional fixed depth; the root is then re-hashed with itself
               until the requested depth is reached
    """

    def __init__(self, leaves: List[int], evaluator, depth: Optional[int] = None):
        if not leaves:
            raise ValueError("cannot build tree from empty leaves")
        self.evaluator = evaluator
        self.size = len(leaves)
        self.levels: List[List[int]] = [list(leaves)]

        current = self.levels[0]
        while len(current) > 1 or (depth is not None and len(self.levels) - 1 < depth):
            if len(current) % 2 == 1:
                current = current + [current[-1]]
                self.levels[-1] = current
            current = _parents(current, evaluator)
            self.levels.append(current)

        if depth is not None and self.depth > depth:
            raise ValueError(f"{len(leaves)} leaves need depth {self.depth}, more than {depth}")

    @property
    def root(self) -> int:
        return self.levels[-1][0]

    @property
    def depth(self) -> int:
        return len(self.levels) - 1

    def proof(self, leaf_index: int) -> MerkleProof:
        """authentication path from leaf_index up to the root"""
        if not 0 <= leaf_index < self.size:
            raise IndexError(f"leaf index {leaf_index} out of range")
        proof = MerkleProof(leaf_index=leaf_index, leaf=self.levels[0][leaf_index])
        index = leaf_index
        for level in self.levels[:-1]:
            if index % 2 == 0:
                #we're left child, sibling is right
                proof.siblings.append(level[index + 1])
                proof.directions.append(0)
            else:
                #we're right child, sibling is left
                proof.siblings.append(level[index - 1])
                proof.directions.append(1)
            index //= 2
        return proof


def verify_proof(proof: MerkleProof, root: int, evaluator) -> bool:
    """verify a merkle authentication path"""
    current = proof.leaf
    for sibling, direction in zip(proof.siblings, proof.directions):
        if direction == 0:
            # sibling is on the right
            current = evaluator.evaluate(hash2(Const(current), Const(sibling)))
        else:
            # sibling is on the left
            current = evaluator.evaluate(hash2(Const(sibling), Const(current)))
    return current == root
