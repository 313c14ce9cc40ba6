"""
query text -> Noir package + metadata

    translate (rdflib algebra) -> optimize -> emit
"""

import json
from dataclasses import dataclass
from pathlib import Path

from zksparql.codec import TermCodec
from zksparql.emit import CircuitEmitter
from zksparql.errors import UnsatisfiableQueryError
from zksparql.ir import Boolean
from zksparql.metadata import HiddenInputRecord, Metadata, PatternRecord
from zksparql.nargo import write_package
from zksparql.optimize import optimize
from zksparql.translate import translate_query


@dataclass
class CompiledQuery:
    sparql_nr: str
    main_nr: str
    metadata: Metadata


def compile_query(query_text: str, evaluator, tree_depth: int, verbose: bool = False) -> CompiledQuery:
    """
    Compile a SELECT query into a Noir program.

    Args:
        query_text: SPARQL SELECT query
        evaluator: field evaluator for the constants baked into the circuit
        tree_depth: depth of the signed Merkle tree the circuit checks against
        verbose: print progress

    Returns:
        CompiledQuery with both Noir sources and the metadata contract

    Raises:
        UnsupportedQueryError: grammar outside the supported subset
        UnsatisfiableQueryError: the filter can never hold
    """
    translation = translate_query(query_text)
    info = translation.info
    if verbose:
        print(f"[compile] {len(info.required)} required and {len(info.optional)} optional input triples, "
              f"{len(info.binds)} bindings")

    constraint = optimize(info.constraint)
    if isinstance(constraint, Boolean):
        if not constraint.value:
            raise UnsatisfiableQueryError("query is unsatisfiable: its constraints simplify to false")
        print("[compile] warning: no filtering constraints, the proof only shows dataset membership and bindings")

    emission = CircuitEmitter(translation, constraint, TermCodec(evaluator), tree_depth).emit()
    metadata = Metadata(
        variables=emission.variables,
        requiredInputs=[PatternRecord.from_pattern(p) for p in info.required],
        optionalInputs=[PatternRecord.from_pattern(p) for p in info.optional],
        hiddenInputs=[HiddenInputRecord.from_entry(h) for h in emission.hidden],
        treeDepth=tree_depth,
    )
    if verbose:
        print(f"[compile] {len(emission.hidden)} hidden inputs")
    return CompiledQuery(sparql_nr=emission.sparql_nr, main_nr=emission.main_nr, metadata=metadata)


def write_project(out_dir, compiled: CompiledQuery, name: str = "sparql_proof") -> Path:
    """write Nargo.toml, src/main.nr, src/sparql.nr and metadata.json"""
    root = write_package(out_dir, name, {
        "main.nr": compiled.main_nr,
        "sparql.nr": compiled.sparql_nr,
    })
    (root / "metadata.json").write_text(compiled.metadata.to_json())
    return root


def load_metadata(project_dir) -> Metadata:
    with open(Path(project_dir) / "metadata.json") as f:
        return Metadata.model_validate(json.load(f))
