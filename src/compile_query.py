"""
Step 2: Compile a SPARQL SELECT query into a Noir proof package.

This script:
1. Parses the query with rdflib and translates its algebra
2. Simplifies the constraint tree (fails on unsatisfiable queries)
3. Emits src/sparql.nr (checkBinding) and src/main.nr (Merkle + signature checks)
4. Writes metadata.json, the slot/hidden-input contract used in step 3
"""

import argparse
import json
from pathlib import Path
import sys
sys.path.append(str(Path(__file__).parent))

from zksparql.compiler import compile_query, write_project
from zksparql.config import Settings, make_evaluator


def main(query_path, out_dir="artifacts/circuit", tree_depth=None,
         signed_root_path="artifacts/signed_root.json", settings=None):
    """
    Compile one query.

    Args:
        query_path: file holding the query text
        out_dir: Noir package directory to write
        tree_depth: Merkle depth; read from the signed root record when None
    """
    settings = settings or Settings.from_env()
    query_text = Path(query_path).read_text()

    if tree_depth is None:
        with open(signed_root_path) as f:
            tree_depth = json.load(f)["tree_depth"]
        print(f"Using tree depth {tree_depth} from {signed_root_path}")

    compiled = compile_query(query_text, make_evaluator(settings), tree_depth, verbose=settings.verbose)
    project = write_project(out_dir, compiled)
    metadata = compiled.metadata

    print("\n" + "=" * 60)
    print("QUERY COMPILED")
    print("=" * 60)
    print(f"Package:          {project}")
    print(f"Variables:        {', '.join(metadata.variables) or '-'}")
    print(f"Required inputs:  {len(metadata.requiredInputs)}")
    print(f"Optional inputs:  {len(metadata.optionalInputs)}")
    print(f"Hidden inputs:    {len(metadata.hiddenInputs)}")
    print("=" * 60)
    return compiled


def cli():
    parser = argparse.ArgumentParser(description="Compile a SPARQL query to a Noir circuit")
    parser.add_argument("query", help="File containing the SELECT query")
    parser.add_argument("--out", default="artifacts/circuit", help="Output Noir package directory")
    parser.add_argument("--tree-depth", type=int, default=None, help="Merkle tree depth")
    parser.add_argument("--signed-root", default="artifacts/signed_root.json",
                        help="Signed root record to read the tree depth from")
    parser.add_argument("--backend", choices=["nargo", "bridge"], default=None, help="Hash backend")
    args = parser.parse_args()

    settings = Settings.from_env(backend=args.backend, tree_depth=args.tree_depth)
    main(args.query, out_dir=args.out, tree_depth=settings.tree_depth,
         signed_root_path=args.signed_root, settings=settings)


if __name__ == "__main__":
    cli()
