"""
Step 1: Build the authenticated leaf store for a dataset.

This script:
1. Loads the (already canonicalized) quads of an N-Quads file
2. Encodes every term and quad into field elements
3. Builds the Poseidon2 Merkle tree over the quad leaves
4. Generates (or loads) the secp256k1 signing key and signs the root
5. Outputs:
   - artifacts/signed_root.json (root, depth, public key, signature)
   - artifacts/signer_key.pem / artifacts/signer_public_key.pem
   - artifacts/leaf_paths.parquet (term encodings and Merkle path for each quad)
"""

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
import sys
sys.path.append(str(Path(__file__).parent))

from zksparql.codec import TermCodec
from zksparql.config import Settings, make_evaluator
from zksparql.signing import generate_keypair, load_private_key, save_keypair
from zksparql.store import LeafStore, load_quads


def main(dataset_path, artifacts_dir="artifacts", key_path=None, tree_depth=None, settings=None):
    """
    Build, sign and export the authenticated store.

    Args:
        dataset_path: N-Quads file
        artifacts_dir: output directory
        key_path: existing PEM private key; a fresh keypair is generated if None
        tree_depth: pad the tree to this depth (None = minimal depth)
    """
    settings = settings or Settings.from_env()
    artifacts = Path(artifacts_dir)
    artifacts.mkdir(parents=True, exist_ok=True)

    print(f"Reading quads from {dataset_path}...")
    quads = load_quads(dataset_path)
    print(f"Loaded {len(quads)} quads")

    if key_path:
        private_key = load_private_key(key_path)
        print(f"Using signing key {key_path}")
    else:
        print("\nGenerating signing key...")
        private_key, public_key = generate_keypair()
        save_keypair(private_key, public_key,
                     private_path=str(artifacts / "signer_key.pem"),
                     public_path=str(artifacts / "signer_public_key.pem"))

    store = LeafStore(TermCodec(make_evaluator(settings)), tree_depth=tree_depth, verbose=settings.verbose)
    signed = store.build(quads, private_key)

    paths_file = artifacts / "leaf_paths.parquet"
    signed.leaf_table().to_parquet(paths_file, index=False)
    print(f"Leaf paths saved to {paths_file}")

    root_metadata = signed.root_metadata()
    root_metadata["dataset"] = str(dataset_path)
    root_metadata["created_utc"] = datetime.now(timezone.utc).isoformat()
    root_file = artifacts / "signed_root.json"
    with open(root_file, "w") as f:
        json.dump(root_metadata, f, indent=2)
    print(f"Signed root saved to {root_file}")

    #Summary
    print("\n" + "=" * 60)
    print("LEAF STORE BUILD COMPLETE")
    print("=" * 60)
    print(f"Root:        {signed.root}")
    print(f"Quads:       {len(quads)}")
    print(f"Tree depth:  {signed.depth}")
    print(f"Signature:   {signed.signature.hex()[:32]}...")
    print("=" * 60)
    return signed


def cli():
    parser = argparse.ArgumentParser(description="Encode, Merkle-ize and sign an RDF dataset")
    parser.add_argument("dataset", help="N-Quads file")
    parser.add_argument("--artifacts", default=None, help="Output directory (default: $ZKSPARQL_ARTIFACTS or artifacts)")
    parser.add_argument("--key", default=None, help="Existing secp256k1 private key (PEM)")
    parser.add_argument("--tree-depth", type=int, default=None, help="Pad the Merkle tree to this depth")
    parser.add_argument("--backend", choices=["nargo", "bridge"], default=None, help="Hash backend")
    args = parser.parse_args()

    settings = Settings.from_env(backend=args.backend, tree_depth=args.tree_depth)
    main(args.dataset,
         artifacts_dir=args.artifacts or settings.artifacts_dir,
         key_path=args.key,
         tree_depth=settings.tree_depth,
         settings=settings)


if __name__ == "__main__":
    cli()
