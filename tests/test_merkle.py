"""Tests for the Poseidon2 Merkle tree and its authentication paths."""
from __future__ import annotations

import pytest

from zksparql.merkle import MerkleTree, verify_proof


def _leaves(n):
    return [1000 + i for i in range(n)]


class TestMerkleTree:
    """Tests for tree shape and proofs."""

    @pytest.mark.parametrize("n", range(1, 10))
    def test_every_proof_verifies(self, evaluator, n):
        """Every leaf's path leads back to the root."""
        tree = MerkleTree(_leaves(n), evaluator)

        for i in range(n):
            proof = tree.proof(i)
            assert len(proof.siblings) == tree.depth
            assert verify_proof(proof, tree.root, evaluator)

    @pytest.mark.parametrize("n,depth", [(1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4)])
    def test_minimal_depth(self, evaluator, n, depth):
        """Depth is ceil(log2(n)); a single leaf is its own root."""
        tree = MerkleTree(_leaves(n), evaluator)

        assert tree.depth == depth
        if n == 1:
            assert tree.root == _leaves(1)[0]

    def test_directions(self, evaluator):
        """Leftmost leaf always has right siblings, rightmost always left ones."""
        tree = MerkleTree(_leaves(4), evaluator)

        assert tree.proof(0).directions == [0, 0]
        assert tree.proof(3).directions == [1, 1]
        assert tree.proof(2).directions == [0, 1]

    def test_odd_level_duplicates_last(self, evaluator):
        """The last node of an odd level is paired with itself."""
        tree = MerkleTree(_leaves(3), evaluator)

        proof = tree.proof(2)
        assert proof.siblings[0] == _leaves(3)[2]
        assert proof.directions[0] == 0

    def test_fixed_depth_padding(self, evaluator):
        """A tree can be padded to a larger depth and still proves every leaf."""
        tree = MerkleTree(_leaves(3), evaluator, depth=5)

        assert tree.depth == 5
        assert tree.size == 3
        for i in range(3):
            assert verify_proof(tree.proof(i), tree.root, evaluator)

    def test_depth_too_small(self, evaluator):
        """Requesting a depth below the natural one fails."""
        with pytest.raises(ValueError):
            MerkleTree(_leaves(5), evaluator, depth=2)

    def test_empty_leaves(self, evaluator):
        """An empty tree cannot be built."""
        with pytest.raises(ValueError):
            MerkleTree([], evaluator)

    def test_proof_index_range(self, evaluator):
        """Padding leaves are not provable."""
        tree = MerkleTree(_leaves(3), evaluator)

        with pytest.raises(IndexError):
            tree.proof(3)

    def test_tampered_leaf(self, evaluator):
        """A changed leaf no longer verifies."""
        tree = MerkleTree(_leaves(6), evaluator)
        proof = tree.proof(4)
        proof.leaf += 1

        assert not verify_proof(proof, tree.root, evaluator)

    def test_proof_dict(self, evaluator):
        """Proofs serialise field elements as decimal strings."""
        tree = MerkleTree(_leaves(2), evaluator)
        d = tree.proof(1).to_dict()

        assert d["leaf"] == "1001"
        assert d["path"] == ["1000"]
        assert d["directions"] == [1]
