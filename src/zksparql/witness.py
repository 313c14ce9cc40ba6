"""
Witness binder: re-run the query over the signed dataset and line every
solution up with the compiled input slots.

Every triple pattern of the parsed query is rewritten into
Extend(BGP([pattern]), TriplePattern, ?_zkq_match_n), so each solution also
carries the concrete triple each pattern matched. Those matches are then
mapped onto the compiled slot order and onto leaf indices of the signed
dataset.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple

from rdflib import Variable
from rdflib.paths import Path
from rdflib.plugins.sparql.evaluate import evalQuery
from rdflib.plugins.sparql.parserutils import CompValue, Expr
from rdflib.term import Identifier

from zksparql.errors import WitnessBindingError
from zksparql.metadata import Metadata
from zksparql.store import SignedDataset
from zksparql.translate import parse_query

MATCH_PREFIX = "_zkq_match_"


@dataclass
class Witness:
    quads: List[Tuple]                  # required slots first, then optional ones
    leaf_indices: List[int]
    bindings: Dict[str, Identifier]


@dataclass
class Solution:
    row: object                         # rdflib FrozenBindings
    provenance: Dict[Variable, Tuple]   # match variable -> triple pattern


def _matched(pattern):
    def evalfn(expr, ctx):
        return tuple(ctx[term] for term in pattern)
    return evalfn


def _value(row, term):
    if isinstance(term, Variable):
        return row.get(term)
    return term


def _wildcard_match(a, b) -> bool:
    return all(isinstance(x, Variable) or isinstance(y, Variable) or x == y for x, y in zip(a, b))


class WitnessBinder:
    """
    Args:
        query_text: the same query text the circuit was compiled from
        signed: signed dataset the proofs are made against
        metadata: compiled metadata (slot order, projected variables)
    """

    def __init__(self, query_text: str, signed: SignedDataset, metadata: Metadata, verbose: bool = False):
        self.query_text = query_text
        self.signed = signed
        self.metadata = metadata
        self.verbose = verbose
        self.required = metadata.required_patterns()
        self.optional = metadata.optional_patterns()
        self.failures: List[WitnessBindingError] = []

    # -- query rewrite ----------------------------------------------------------

    def _expose(self, triples, provenance, variables) -> CompValue:
        parts = []
        paths = []
        for triple in triples:
            triple = tuple(triple)
            variables.update(t for t in (triple[0], triple[2]) if isinstance(t, Variable))
            if isinstance(triple[1], Path):
                paths.append(triple)
                continue
            if isinstance(triple[1], Variable):
                variables.add(triple[1])
            var = Variable(f"{MATCH_PREFIX}{len(provenance)}")
            provenance[var] = triple
            parts.append(CompValue(
                "Extend",
                p=CompValue("BGP", triples=[triple]),
                expr=Expr("TriplePattern", _matched(triple)),
                var=var,
                _vars={t for t in triple if isinstance(t, Variable)},
            ))
        if paths:
            parts.append(CompValue("BGP", triples=paths))
        if not parts:
            return CompValue("BGP", triples=[])
        node = parts[0]
        for part in parts[1:]:
            node = CompValue("Join", p1=node, p2=part, lazy=True)
        return node

    def _rewrite(self, node, provenance, variables):
        if not isinstance(node, CompValue):
            return node
        if node.name == "BGP":
            return self._expose(node.triples, provenance, variables)
        for key in ("p", "p1", "p2"):
            if key in node:
                node[key] = self._rewrite(node[key], provenance, variables)
        return node

    def solutions(self) -> Iterator[Solution]:
        """lazily evaluate the rewritten query; every call starts from scratch"""
        query = parse_query(self.query_text)
        project = query.algebra.p
        provenance: Dict[Variable, Tuple] = {}
        variables = set(project.PV)
        project["p"] = self._rewrite(project.p, provenance, variables)
        project["PV"] = list(project.PV) + sorted(variables - set(project.PV)) + list(provenance)

        result = evalQuery(self.signed.to_dataset(), query)
        for row in result["bindings"]:
            yield Solution(row=row, provenance=provenance)

    # -- per solution -----------------------------------------------------------

    def _leaf(self, triple) -> int:
        index = self.signed.index_of(triple)
        if index is None:
            raise WitnessBindingError(f"matched triple is not in the signed dataset: {triple}")
        return index

    def bind(self, solution: Solution) -> Witness:
        """align one solution with the compiled slots; raises WitnessBindingError"""
        row = solution.row
        used = set()
        indices = []
        for slot, pattern in enumerate(self.required):
            free = [(var, candidate) for var, candidate in solution.provenance.items() if var not in used]
            match = next((var for var, candidate in free if candidate == pattern), None)
            if match is None:
                match = next((var for var, candidate in free if _wildcard_match(pattern, candidate)), None)
            if match is None:
                raise WitnessBindingError(f"no matched triple for input slot {slot}: {pattern}")
            used.add(match)
            triple = row.get(match)
            if triple is None:
                raise WitnessBindingError(f"input slot {slot} is unbound in this solution")
            indices.append(self._leaf(triple))

        for slot, (s, p, o) in enumerate(self.optional, start=len(self.required)):
            subject, obj = _value(row, s), _value(row, o)
            if subject is None or obj is None:
                raise WitnessBindingError(f"optional slot {slot} has an unbound end")
            index = self.signed.index_of((subject, p, obj))
            if index is None:
                if subject != obj:
                    raise WitnessBindingError(f"neither branch of optional slot {slot} holds")
                # zero-length branch, any signed quad can fill the slot
                index = 0
            indices.append(index)

        bindings = {}
        for name in self.metadata.variables:
            value = row.get(Variable(name))
            if value is None:
                raise WitnessBindingError(f"variable ?{name} is absent from the solution")
            bindings[name] = value

        return Witness(
            quads=[self.signed.quads[i] for i in indices],
            leaf_indices=indices,
            bindings=bindings,
        )

    def witnesses(self) -> Iterator[Witness]:
        """
        One Witness per query solution.

        A solution that cannot be aligned is reported, kept in `failures`,
        and skipped; the remaining solutions are still produced.
        """
        self.failures = []
        for n, solution in enumerate(self.solutions()):
            try:
                witness = self.bind(solution)
            except WitnessBindingError as e:
                print(f"[witness] warning: solution {n} skipped: {e}")
                self.failures.append(e)
                continue
            if self.verbose:
                print(f"[witness] solution {n}: leaves {witness.leaf_indices}")
            yield witness
