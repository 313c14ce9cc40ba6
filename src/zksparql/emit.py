"""
Circuit emitter: optimized IR -> Noir.

The emitter lowers the translated binds and the optimized constraint into
the `sparql` module (types plus checkBinding) and the `main` wrapper that
authenticates every input triple. Values the circuit cannot see directly,
such as the components of a literal behind its hash, are requested from the
prover through the hidden-input plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Set

from rdflib import Literal
from rdflib.namespace import XSD

from zksparql.codec import (
    LITERAL_LANG, LITERAL_VALUE, RDF_LANGSTRING, SPECIAL_HANDLING, TERM_TYPE_TAGS, XSD_INTEGER,
    XSD_STRING, TermCodec, literal_hash,
)
from zksparql.errors import InvariantViolation, UnsatisfiableQueryError, UnsupportedQueryError
from zksparql.field import POSEIDON2_IMPORT, Const, FieldExpr, Ref, StrField, hash2, render
from zksparql.ir import (
    EQUAL, GEQ, IS_BLANK, IS_IRI, IS_LITERAL, LANG, All, Binary, Bind, Boolean, CircomTerm,
    Computed, ComputedBinary, Constraint, CustomComputed, Equal, HiddenInput, Input, Not, Some,
    Static, Unary, Var, static_kind, term_key,
)
from zksparql.noir import Block, NoirDocument
from zksparql.translate import Translation

HEADER = "generated by zksparql, do not edit"
U64_LIMIT = 2 ** 64

_TAGS = {
    IS_IRI: TERM_TYPE_TAGS["NamedNode"],
    IS_BLANK: TERM_TYPE_TAGS["BlankNode"],
    IS_LITERAL: TERM_TYPE_TAGS["Literal"],
}


class HiddenInputPlan:
    """ordered, deduplicated list of values the prover supplies as `hidden`"""

    def __init__(self):
        self.entries: List[HiddenInput] = []
        self._index: Dict[str, int] = {}

    def allocate(self, entry: HiddenInput) -> int:
        key = term_key(entry)
        if key not in self._index:
            self._index[key] = len(self.entries)
            self.entries.append(entry)
        return self._index[key]

    def ref(self, entry: HiddenInput) -> Ref:
        return Ref(f"hidden[{self.allocate(entry)}]")

    def __len__(self):
        return len(self.entries)


@dataclass
class Emission:
    sparql_nr: str
    main_nr: str
    variables: List[str]
    hidden: List[HiddenInput]


class CircuitEmitter:
    """
    Lower one translated, optimized query.

    Args:
        translation: translator output (projected variables, slots, binds)
        constraint: optimized constraint; must not be FALSE
        codec: term codec used to precompute every static encoding
        tree_depth: Merkle depth the circuit verifies against
    """

    def __init__(self, translation: Translation, constraint: Constraint, codec: TermCodec,
                 tree_depth: int):
        self.translation = translation
        self.info = translation.info
        self.constraint = constraint
        self.codec = codec
        self.tree_depth = tree_depth
        self.projected: Set[str] = set(translation.variables)

        self.plan = HiddenInputPlan()
        self.inline: Dict[str, CircomTerm] = {}
        self.definitions: Dict[str, CircomTerm] = {}
        self.assertions: List[str] = []
        self._asserted: Set[str] = set()
        self._expanding: Set[str] = set()

    # -- constants ------------------------------------------------------------

    def _prefetch(self):
        """evaluate every constant the emission needs in one batch"""
        statics = []

        def visit_term(term):
            if isinstance(term, Static):
                statics.append(term.term)
            elif isinstance(term, (Computed, CustomComputed)):
                visit_term(term.input)
            elif isinstance(term, ComputedBinary):
                visit_term(term.left)
                visit_term(term.right)

        def visit(c):
            if isinstance(c, (All, Some)):
                for x in c.constraints:
                    visit(x)
            elif isinstance(c, Not):
                visit(c.constraint)
            elif isinstance(c, (Equal, Binary)):
                visit_term(c.left)
                visit_term(c.right)
            elif isinstance(c, Unary):
                visit_term(c.term)

        for bind in self.info.binds:
            visit_term(bind.value)
        visit(self.constraint)

        exprs = [StrField(str(XSD_STRING)), StrField(str(XSD_INTEGER)), StrField(str(RDF_LANGSTRING))]
        exprs += [StrField(str(t)) for t in statics if isinstance(t, Literal)]
        self.codec.encode_many(statics + [Literal(True), Literal(False)])
        self.codec.evaluator.evaluate_many(exprs)

    def _string(self, text: str) -> Const:
        return Const(self.codec.string(text))

    def _static(self, term) -> Const:
        return Const(self.codec.encode(term))

    # -- assertions -----------------------------------------------------------

    def _assert(self, expr: str):
        if expr not in self._asserted:
            self._asserted.add(expr)
            self.assertions.append(expr)

    # -- values ---------------------------------------------------------------

    def _definition(self, var: Var) -> CircomTerm:
        if var.name not in self.definitions:
            raise UnsupportedQueryError(f"variable ?{var.name} is never bound")
        return self.definitions[var.name]

    def _source(self, term: CircomTerm) -> CircomTerm:
        """committed term (input slot or constant) behind a value"""
        resolved = self._resolved(term)
        if isinstance(resolved, (Input, Static)):
            return resolved
        raise UnsupportedQueryError(f"cannot open a computed value: {term_key(term)}")

    def _resolved(self, term: CircomTerm) -> CircomTerm:
        seen = set()
        while isinstance(term, Var):
            if term.name in seen:
                raise UnsupportedQueryError(f"cyclic binding of ?{term.name}")
            seen.add(term.name)
            term = self._definition(term)
        return term

    def _field(self, term: CircomTerm) -> FieldExpr:
        if isinstance(term, Static):
            return self._static(term.term)
        if isinstance(term, Input):
            return Ref(f"bgp[{term.slot}].terms[{term.position}]")
        if isinstance(term, Var):
            if term.name in self.projected:
                return Ref(f"variables.{term.name}")
            if term.name in self.inline:
                if term.name in self._expanding:
                    raise UnsupportedQueryError(f"cyclic binding of ?{term.name}")
                self._expanding.add(term.name)
                try:
                    return self._field(self.inline[term.name])
                finally:
                    self._expanding.discard(term.name)
            raise UnsupportedQueryError(f"variable ?{term.name} is never bound")
        if isinstance(term, Computed):
            if term.kind == LANG:
                return self._lang_value(term.input)
            return self._choice(self._predicate(term.kind, term.input))
        if isinstance(term, ComputedBinary):
            if term.kind != EQUAL:
                raise InvariantViolation(f"unknown binary computed value: {term.kind}")
            return self._choice(self._equal(term.left, term.right, positive=True))
        if isinstance(term, CustomComputed):
            raise InvariantViolation("custom computed values only appear in the hidden-input plan")
        raise InvariantViolation(f"unknown term: {term!r}")

    def _choice(self, condition: str) -> Ref:
        true_value = render(self._static(Literal(True)))
        false_value = render(self._static(Literal(False)))
        return Ref(f"(if {condition} {{ {true_value} }} else {{ {false_value} }})")

    def _open(self, term: CircomTerm) -> Ref:
        """
        Allocate the inner encoding of a committed term as a hidden value.

        The opening is pinned down once by an unconditional assertion that
        the term hashes from it under one of the three node tags, so a
        predicate over it cannot be faked inside a negation.
        """
        hidden = self.plan.ref(self._source(term))
        value = render(self._field(term))
        options = " | ".join(
            f"({value} == {render(hash2(Const(tag), hidden))})" for tag in sorted(_TAGS.values())
        )
        self._assert(options)
        return hidden

    def _predicate(self, kind: str, term: CircomTerm) -> str:
        resolved = self._resolved(term)
        if isinstance(resolved, Static):
            return "true" if static_kind(resolved.term) == kind else "false"
        if isinstance(resolved, (Computed, ComputedBinary)):
            return "true" if kind == IS_LITERAL else "false"
        hidden = self._open(term)
        return f"{render(self._field(term))} == {render(hash2(Const(_TAGS[kind]), hidden))}"

    # -- LANG -----------------------------------------------------------------

    def _literal_components(self, term: CircomTerm, *kinds: str) -> List[Ref]:
        source = self._source(term)
        return [self.plan.ref(CustomComputed(kind, source)) for kind in kinds]

    def _lang_value(self, term: CircomTerm) -> FieldExpr:
        """LANG(term) as a value: the language tag re-encoded as a simple literal"""
        value, lang = self._literal_components(term, LITERAL_VALUE, LITERAL_LANG)
        rebuilt = literal_hash(value, value, lang, self._string(str(RDF_LANGSTRING)))
        self._assert(f"{render(self._field(term))} == {render(rebuilt)}")
        return literal_hash(lang, lang, Const(0), self._string(str(XSD_STRING)))

    def _lang_equal(self, lang: Computed, other: CircomTerm, positive: bool) -> str:
        if not positive:
            raise UnsupportedQueryError("LANG comparisons under negation are not supported")
        source = lang.input
        other = self._resolved(other) if isinstance(other, Var) and other.name not in self.projected else other
        if isinstance(other, Static):
            text = other.term
            if not isinstance(text, Literal) or text.language or text.datatype not in (None, XSD.string):
                return "false"
            (value,) = self._literal_components(source, LITERAL_VALUE)
            if str(text) == "":
                rebuilt = literal_hash(value, value, Const(0), self._string(str(XSD_STRING)))
            else:
                rebuilt = literal_hash(value, value, self._string(str(text)),
                                       self._string(str(RDF_LANGSTRING)))
            return f"{render(self._field(source))} == {render(rebuilt)}"

        value, lang_ref = self._literal_components(source, LITERAL_VALUE, LITERAL_LANG)
        rebuilt = literal_hash(value, value, lang_ref, self._string(str(RDF_LANGSTRING)))
        reencoded = literal_hash(lang_ref, lang_ref, Const(0), self._string(str(XSD_STRING)))
        return (f"({render(self._field(source))} == {render(rebuilt)}) & "
                f"({render(self._field(other))} == {render(reencoded)})")

    # -- constraints ----------------------------------------------------------

    def _equal(self, left: CircomTerm, right: CircomTerm, positive: bool) -> str:
        for lang, other in ((left, right), (right, left)):
            if isinstance(lang, Computed) and lang.kind == LANG:
                return self._lang_equal(lang, other, positive)
        return f"{render(self._field(left))} == {render(self._field(right))}"

    def _geq_parts(self, node: Binary):
        if node.operator != GEQ:
            raise InvariantViolation(f"unknown binary operator: {node.operator}")
        right = node.right
        if not (isinstance(right, Static) and isinstance(right.term, Literal)
                and right.term.datatype == XSD_INTEGER and isinstance(right.term.toPython(), int)):
            raise InvariantViolation(f"geq needs a static xsd:integer right operand, got {term_key(right)}")
        threshold = right.term.toPython()
        if not 0 <= threshold < U64_LIMIT:
            raise UnsupportedQueryError(f"geq threshold {threshold} does not fit in u64")

        value, number = self._literal_components(node.left, LITERAL_VALUE, SPECIAL_HANDLING)
        rebuilt = literal_hash(value, number, Const(0), self._string(str(XSD_INTEGER)))
        reencode = f"{render(self._field(node.left))} == {render(rebuilt)}"
        in_range = (f"(({number.text} as u64) as Field == {number.text}) & "
                    f"(({number.text} as u64) >= {threshold})")
        return reencode, in_range

    def _constraint(self, c: Constraint, positive: bool = True) -> str:
        if isinstance(c, (All, Some)):
            if len(c.constraints) < 2:
                raise InvariantViolation(f"{type(c).__name__} node with {len(c.constraints)} children reached the emitter")
            joiner = " & " if isinstance(c, All) else " | "
            return "(" + joiner.join(self._constraint(x, positive) for x in c.constraints) + ")"
        if isinstance(c, Not):
            return f"!({self._constraint(c.constraint, not positive)})"
        if isinstance(c, Equal):
            return self._equal(c.left, c.right, positive)
        if isinstance(c, Unary):
            return self._predicate(c.operator, c.term)
        if isinstance(c, Binary):
            reencode, in_range = self._geq_parts(c)
            if positive:
                return f"({reencode}) & {in_range}"
            # a failed re-encoding must not satisfy the negation
            self._assert(reencode)
            return f"({in_range})"
        if isinstance(c, Boolean):
            raise InvariantViolation("boolean constant reached the emitter")
        raise InvariantViolation(f"unknown constraint node: {type(c).__name__}")

    def _assert_top(self, c: Constraint):
        if isinstance(c, Binary):
            reencode, in_range = self._geq_parts(c)
            self._assert(reencode)
            self._assert(in_range)
        else:
            condition = self._constraint(c)
            if condition == "false":
                # only known once inline bindings are resolved
                raise UnsatisfiableQueryError("query is unsatisfiable: a top level condition is always false")
            self._assert(condition)

    def _bind(self, bind: Bind):
        name = bind.variable.name
        self.definitions.setdefault(name, bind.value)
        if name in self.projected:
            self._assert(f"variables.{name} == {render(self._field(bind.value))}")
        elif name not in self.inline:
            self.inline[name] = bind.value
        else:
            self._assert(f"{render(self._field(bind.variable))} == {render(self._field(bind.value))}")

    # -- output ---------------------------------------------------------------

    @property
    def input_count(self) -> int:
        return len(self.info.required) + len(self.info.optional)

    def emit(self) -> Emission:
        self._prefetch()
        # every definition is known before any value gets resolved
        for bind in self.info.binds:
            self.definitions.setdefault(bind.variable.name, bind.value)
        for bind in self.info.binds:
            self._bind(bind)

        root = self.constraint
        if isinstance(root, Boolean):
            if not root.value:
                raise InvariantViolation("unsatisfiable constraint reached the emitter")
        elif isinstance(root, All):
            if len(root.constraints) < 2:
                raise InvariantViolation(f"All node with {len(root.constraints)} children reached the emitter")
            for child in root.constraints:
                self._assert_top(child)
        else:
            self._assert_top(root)

        return Emission(
            sparql_nr=self._sparql_module(),
            main_nr=self._main_module(),
            variables=list(self.translation.variables),
            hidden=list(self.plan.entries),
        )

    def _sparql_module(self) -> str:
        doc = NoirDocument(header=HEADER)
        doc.use(POSEIDON2_IMPORT)
        doc.global_("DEPTH", "u32", str(self.tree_depth))
        doc.global_("INPUTS", "u32", str(self.input_count))
        doc.struct("Triple", [
            ("terms", "[Field; 4]"),
            ("path", "[Field; DEPTH]"),
            ("directions", "[u1; DEPTH]"),
        ])
        doc.type_alias("BGP", "[Triple; INPUTS]")
        params = [("bgp", "BGP"), ("variables", "Variables")]
        if len(self.plan):
            doc.type_alias("Hidden", f"[Field; {len(self.plan)}]")
            params.append(("hidden", "Hidden"))
        doc.struct("Variables", [(name, "Field") for name in self.translation.variables])
        doc.function("checkBinding", params, [f"assert({a});" for a in self.assertions],
                     visibility="pub(crate) ")
        return doc.render()

    def _main_module(self) -> str:
        has_hidden = len(self.plan) > 0
        doc = NoirDocument(header=HEADER)
        doc.module("sparql")
        names = ["BGP", "DEPTH", "INPUTS", "Variables", "checkBinding"]
        if has_hidden:
            names.insert(1, "Hidden")
        doc.use("sparql", names)
        doc.use(POSEIDON2_IMPORT)

        doc.function("merkle_root", [
            ("leaf", "Field"), ("path", "[Field; DEPTH]"), ("directions", "[u1; DEPTH]"),
        ], [
            "let mut node = leaf;",
            Block("for i in 0..DEPTH", [
                Block("if directions[i] == 0", ["node = Poseidon2::hash([node, path[i]], 2);"]),
                Block("else", ["node = Poseidon2::hash([path[i], node], 2);"]),
            ]),
            "node",
        ], returns="Field")

        params = [
            ("public_key_x", "pub [u8; 32]"),
            ("public_key_y", "pub [u8; 32]"),
            ("signature", "[u8; 64]"),
            ("root", "Field"),
            ("bgp", "BGP"),
            ("variables", "pub Variables"),
        ]
        call = "checkBinding(bgp, variables);"
        if has_hidden:
            params.append(("hidden", "Hidden"))
            call = "checkBinding(bgp, variables, hidden);"
        doc.function("main", params, [
            Block("for i in 0..INPUTS", [
                "let leaf = Poseidon2::hash(bgp[i].terms, 4);",
                "assert(merkle_root(leaf, bgp[i].path, bgp[i].directions) == root);",
            ]),
            "let message: [u8; 32] = root.to_be_bytes();",
            "assert(std::ecdsa_secp256k1::verify_signature(public_key_x, public_key_y, signature, message));",
            call,
        ])
        return doc.render()
