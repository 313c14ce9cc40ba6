"""
Authenticated leaf store: encode every quad of a dataset, build the Merkle
tree over the leaves and sign its root.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd
from rdflib import Dataset

from zksparql.codec import TermCodec, is_default_graph
from zksparql.errors import LeafStoreError, OracleError
from zksparql.merkle import MerkleProof, MerkleTree
from zksparql.signing import public_key_coordinates, public_key_from_coordinates, sign_root, verify_root


def nquad_line(quad) -> str:
    s, p, o, g = quad
    terms = [s.n3(), p.n3(), o.n3()]
    if g is not None:
        terms.append(g.n3())
    return " ".join(terms) + " ."


def load_quads(path, format: Optional[str] = None) -> List[Tuple]:
    """
    Load a dataset file into quads (s, p, o, g), g is None for the default graph.

    Quads are ordered by their N-Quads line so the leaf order never depends on
    the store's iteration order.
    """
    ds = Dataset()
    ds.parse(str(path), format=format or "nquads")
    return sort_quads(ds.quads((None, None, None, None)))


def sort_quads(quads) -> List[Tuple]:
    """order quads by N-Quads line, the default graph always reads as None"""
    normalised = []
    for s, p, o, *rest in quads:
        g = rest[0] if rest else None
        normalised.append((s, p, o, None if is_default_graph(g) else g))
    return sorted(normalised, key=nquad_line)


@dataclass
class SignedDataset:
    quads: List[Tuple]
    encodings: List[Tuple[int, int, int, int]]
    tree: MerkleTree
    signature: bytes
    public_key_x: bytes
    public_key_y: bytes
    _index: Dict[Tuple, int] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for i, quad in enumerate(self.quads):
            self._index.setdefault(tuple(quad[:3]), i)

    @property
    def root(self) -> int:
        return self.tree.root

    @property
    def depth(self) -> int:
        return self.tree.depth

    @property
    def leaves(self) -> List[int]:
        return self.tree.levels[0][:self.tree.size]

    def index_of(self, triple) -> Optional[int]:
        """first leaf (in dataset order) whose subject, predicate and object match"""
        return self._index.get(tuple(triple[:3]))

    def proof(self, leaf_index: int) -> MerkleProof:
        return self.tree.proof(leaf_index)

    def to_dataset(self) -> Dataset:
        ds = Dataset(default_union=True)
        for s, p, o, g in self.quads:
            if g is None:
                ds.add((s, p, o))
            else:
                ds.add((s, p, o, g))
        return ds

    def leaf_table(self) -> pd.DataFrame:
        rows = []
        for i, quad in enumerate(self.quads):
            proof = self.tree.proof(i)
            rows.append({
                "leaf_index": i,
                "nquad": nquad_line(quad),
                "leaf": str(proof.leaf),
                "terms": json.dumps([str(x) for x in self.encodings[i]]),
                "auth_path": json.dumps(proof.to_dict()),
            })
        return pd.DataFrame(rows)

    def root_metadata(self) -> dict:
        return {
            "root": str(self.root),
            "n_quads": len(self.quads),
            "tree_depth": self.depth,
            "hash_algorithm": "Poseidon2 (BN254)",
            "signature_algorithm": "ECDSA secp256k1",
            "public_key_x": self.public_key_x.hex(),
            "public_key_y": self.public_key_y.hex(),
            "signature": self.signature.hex(),
        }


class LeafStore:
    """builds SignedDataset objects; nothing partial is returned on failure"""

    def __init__(self, codec: TermCodec, tree_depth: Optional[int] = None, verbose: bool = False):
        self.codec = codec
        self.tree_depth = tree_depth
        self.verbose = verbose

    def build(self, quads, private_key) -> SignedDataset:
        quads = [tuple(q) for q in quads]
        if not quads:
            raise LeafStoreError("cannot build an authenticated store from an empty dataset")
        try:
            if self.verbose:
                print(f"[leaf-store] encoding {len(quads)} quads...")
            encodings = self.codec.encode_quads(quads)
            leaves = self.codec.leaves(encodings)
            if self.verbose:
                print("[leaf-store] building Merkle tree...")
            tree = MerkleTree(leaves, self.codec.evaluator, depth=self.tree_depth)
            signature = sign_root(private_key, tree.root)
            x, y = public_key_coordinates(private_key.public_key())
        except (OracleError, ValueError, TypeError) as e:
            raise LeafStoreError(f"authenticated store build failed: {e}") from e

        if self.verbose:
            print(f"[leaf-store] root {tree.root} (depth {tree.depth}) signed")
        return SignedDataset(
            quads=quads,
            encodings=encodings,
            tree=tree,
            signature=signature,
            public_key_x=x,
            public_key_y=y,
        )

    def restore(self, quads, root_metadata: dict) -> SignedDataset:
        """
        Rebuild a SignedDataset from its quads and the published root record.

        The recomputed root must equal the published one and the published
        signature must verify against it.
        """
        quads = [tuple(q) for q in quads]
        try:
            encodings = self.codec.encode_quads(quads)
            tree = MerkleTree(self.codec.leaves(encodings), self.codec.evaluator,
                              depth=root_metadata.get("tree_depth"))
        except (OracleError, ValueError, TypeError) as e:
            raise LeafStoreError(f"authenticated store rebuild failed: {e}") from e
        if str(tree.root) != root_metadata["root"]:
            raise LeafStoreError(f"rebuilt root {tree.root} does not match the signed root {root_metadata['root']}")

        x = bytes.fromhex(root_metadata["public_key_x"])
        y = bytes.fromhex(root_metadata["public_key_y"])
        signature = bytes.fromhex(root_metadata["signature"])
        if not verify_root(public_key_from_coordinates(x, y), tree.root, signature):
            raise LeafStoreError("signature over the root does not verify")
        return SignedDataset(
            quads=quads,
            encodings=encodings,
            tree=tree,
            signature=signature,
            public_key_x=x,
            public_key_y=y,
        )
