"""
Step 3: Bind witnesses and produce one Prover.toml per query solution.

This script:
1. Rebuilds the signed store from the dataset and checks it against signed_root.json
2. Re-runs the query over the dataset and aligns every solution with the compiled slots
3. Computes the hidden inputs and Merkle paths of each solution
4. Writes <circuit>/Prover_<n>.toml (and <n>.json records), optionally running nargo execute
"""

import argparse
import json
from pathlib import Path
import sys
sys.path.append(str(Path(__file__).parent))

from zksparql.codec import TermCodec
from zksparql.compiler import load_metadata
from zksparql.config import Settings, make_evaluator
from zksparql.errors import OracleError, WitnessBindingError
from zksparql.nargo import NargoProver
from zksparql.prover_inputs import build_prover_inputs
from zksparql.store import LeafStore, load_quads
from zksparql.witness import WitnessBinder


def main(dataset_path, query_path, circuit_dir="artifacts/circuit",
         signed_root_path="artifacts/signed_root.json", execute=False, settings=None):
    """
    Generate prover inputs for every solution of the query.

    Returns:
        list of written Prover.toml paths
    """
    settings = settings or Settings.from_env()
    circuit = Path(circuit_dir)
    metadata = load_metadata(circuit)
    codec = TermCodec(make_evaluator(settings))

    print(f"Rebuilding signed store from {dataset_path}...")
    with open(signed_root_path) as f:
        root_metadata = json.load(f)
    signed = LeafStore(codec, verbose=settings.verbose).restore(load_quads(dataset_path), root_metadata)
    print(f"Root {signed.root} verified")

    binder = WitnessBinder(Path(query_path).read_text(), signed, metadata, verbose=settings.verbose)
    prover = NargoProver(nargo_bin=settings.nargo_bin, timeout=settings.timeout, verbose=settings.verbose)
    written = []
    failed_proofs = 0
    for n, witness in enumerate(binder.witnesses()):
        try:
            inputs = build_prover_inputs(witness, metadata, signed, codec)
        except WitnessBindingError as e:
            print(f"Solution {n}: failed to build inputs: {e}")
            continue
        toml_path = circuit / f"Prover_{n}.toml"
        toml_path.write_text(inputs.to_prover_toml())
        with open(circuit / f"inputs_{n}.json", "w") as f:
            json.dump(inputs.to_record(), f, indent=2)
        written.append(toml_path)
        print(f"Solution {n}: {', '.join(f'?{k}={v.n3()}' for k, v in witness.bindings.items())}")

        if execute:
            try:
                prover.execute(circuit, inputs.to_prover_toml(), witness_name=f"witness_{n}")
                print(f"  nargo execute OK -> target/witness_{n}.gz")
            except OracleError as e:
                failed_proofs += 1
                print(f"  nargo execute failed: {e}")

    print("\n" + "=" * 60)
    print("PROVER INPUTS GENERATED")
    print("=" * 60)
    print(f"Solutions written:   {len(written)}")
    print(f"Solutions skipped:   {len(binder.failures)}")
    if execute:
        print(f"Failed executions:   {failed_proofs}")
    print("=" * 60)
    return written


def cli():
    parser = argparse.ArgumentParser(description="Bind query solutions to circuit inputs")
    parser.add_argument("dataset", help="N-Quads file the root was signed over")
    parser.add_argument("query", help="File containing the compiled SELECT query")
    parser.add_argument("--circuit", default="artifacts/circuit", help="Compiled Noir package")
    parser.add_argument("--signed-root", default="artifacts/signed_root.json", help="Signed root record")
    parser.add_argument("--execute", action="store_true", help="Run nargo execute for each solution")
    parser.add_argument("--backend", choices=["nargo", "bridge"], default=None, help="Hash backend")
    args = parser.parse_args()

    main(args.dataset, args.query, circuit_dir=args.circuit, signed_root_path=args.signed_root,
         execute=args.execute, settings=Settings.from_env(backend=args.backend))


if __name__ == "__main__":
    cli()
