"""
SPARQL algebra -> constraint IR.

rdflib parses the query text into its algebra tree; this module walks the
supported subset of that tree and produces an OutInfo: the triple patterns
the prover has to supply, the variable bindings and the constraint tree.
Anything outside the subset raises UnsupportedQueryError naming the
offending node.
"""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from typing import List, Set

from pyparsing import ParseException
from rdflib import BNode, Literal, URIRef, Variable
from rdflib.namespace import XSD
from rdflib.paths import MulPath, Path, ZeroOrOne
from rdflib.plugins.sparql.algebra import translateQuery, traverse
from rdflib.plugins.sparql.operators import ConditionalAndExpression, simplify
from rdflib.plugins.sparql.parser import parseQuery
from rdflib.plugins.sparql.parserutils import CompValue, Expr

from zksparql.errors import UnsupportedQueryError
from zksparql.ir import (
    EQUAL, GEQ, IS_BLANK, IS_IRI, IS_LITERAL, LANG, All, Bind, Binary, Boolean, Computed,
    ComputedBinary, Equal, Input, Not, OutInfo, Some, Static, Unary, Var, literal_constraint,
    map_constraint, map_term, shift_inputs,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
NOIR_KEYWORDS = {
    "as", "assert", "assert_eq", "bool", "break", "comptime", "constrain", "continue",
    "contract", "crate", "dep", "else", "enum", "false", "fn", "for", "global", "if",
    "impl", "in", "let", "loop", "match", "mod", "mut", "pub", "return", "self", "Self",
    "str", "struct", "trait", "true", "type", "unchecked", "unconstrained", "unsafe",
    "use", "where", "while",
}

_BUILTIN_KINDS = {
    "Builtin_isIRI": IS_IRI,
    "Builtin_isURI": IS_IRI,
    "Builtin_isBLANK": IS_BLANK,
    "Builtin_isLITERAL": IS_LITERAL,
    "Builtin_LANG": LANG,
}


@dataclass
class Translation:
    variables: List[str]
    info: OutInfo


def _keep_constant_filter(node):
    # rdflib drops a group's filter when the combined expression is a falsy literal
    if isinstance(node, CompValue) and node.name == "Filter":
        expr = simplify(node.expr)
        if isinstance(expr, Literal):
            node["expr"] = Expr("ConditionalAndExpression", ConditionalAndExpression, expr=expr, other=[])


def parse_query(text: str):
    try:
        tree = parseQuery(text)
    except ParseException as e:
        raise UnsupportedQueryError(f"query does not parse: {e}") from e
    tree[1] = traverse(tree[1], visitPost=_keep_constant_filter)
    return translateQuery(tree)


def translate_query(text: str) -> Translation:
    return translate_algebra(parse_query(text).algebra)


def translate_algebra(algebra: CompValue) -> Translation:
    if algebra.name != "SelectQuery":
        raise UnsupportedQueryError(f"unsupported query form: {algebra.name}")
    if algebra.datasetClause:
        raise UnsupportedQueryError("FROM / FROM NAMED clauses are not supported")
    top = algebra.p
    if not isinstance(top, CompValue) or top.name != "Project":
        raise UnsupportedQueryError(f"unsupported top level operation: {getattr(top, 'name', top)}")

    variables = [str(v) for v in top.PV]
    for name in variables:
        check_identifier(name)
    return Translation(variables=variables, info=_operation(top.p))


def check_identifier(name: str):
    if not _IDENTIFIER.match(name) or name in NOIR_KEYWORDS or keyword.iskeyword(name):
        raise UnsupportedQueryError(f"variable ?{name} is not a valid circuit identifier")


# -- operations ---------------------------------------------------------------

def _operation(node) -> OutInfo:
    if not isinstance(node, CompValue):
        raise UnsupportedQueryError(f"unsupported operation: {type(node).__name__}")
    if node.name == "BGP":
        return handle_patterns(node.triples)
    if node.name == "Filter":
        inner = _operation(node.p)
        return OutInfo(
            required=inner.required,
            optional=inner.optional,
            binds=inner.binds,
            constraint=All((inner.constraint, translate_constraint(node.expr))),
        )
    if node.name == "Extend":
        inner = _operation(node.p)
        bind = Bind(Var(str(node.var)), translate_value(node.expr))
        return OutInfo(
            required=inner.required,
            optional=inner.optional,
            binds=inner.binds + [bind],
            constraint=inner.constraint,
        )
    if node.name == "Join":
        return join(_operation(node.p1), _operation(node.p2))
    if node.name == "Graph":
        raise UnsupportedQueryError("non-default graph patterns are not supported")
    if node.name == "Project":
        raise UnsupportedQueryError("subqueries are not supported")
    raise UnsupportedQueryError(f"unsupported operation: {node.name}")


def _pattern_term(term):
    if isinstance(term, Variable):
        return Var(str(term))
    if isinstance(term, (URIRef, Literal)):
        return Static(term)
    raise UnsupportedQueryError(f"unexpected term type in pattern: {type(term).__name__}")


def handle_patterns(triples) -> OutInfo:
    """
    Turn a basic graph pattern into input slots.

    Every plain triple becomes a required slot. A first-seen variable is
    bound to its slot position, a repeated one is constrained equal to it
    and constants are constrained equal. Zero-or-one path steps become
    optional slots guarded by a disjunction between the zero and one case.
    """
    required, paths = [], []
    for triple in triples:
        predicate = triple[1]
        if isinstance(predicate, Path):
            if (isinstance(predicate, MulPath) and predicate.mod == ZeroOrOne
                    and isinstance(predicate.path, URIRef)):
                paths.append(triple)
            else:
                raise UnsupportedQueryError(f"unsupported path type: {type(predicate).__name__} {predicate.n3()}")
        else:
            required.append(tuple(triple))

    seen: Set[str] = set()
    binds = []
    constraints = []
    for slot, pattern in enumerate(required):
        for position, term in enumerate(pattern):
            value = _pattern_term(term)
            if isinstance(value, Var):
                if value.name in seen:
                    constraints.append(Equal(value, Input(slot, position)))
                else:
                    seen.add(value.name)
                    binds.append(Bind(value, Input(slot, position)))
            else:
                constraints.append(Equal(value, Input(slot, position)))

    optional = []
    for k, (subject, path, obj) in enumerate(paths):
        slot = len(required) + k
        s, o = _pattern_term(subject), _pattern_term(obj)
        optional.append((subject, path.path, obj))
        constraints.append(Some((
            Equal(s, o),
            All((
                Equal(s, Input(slot, 0)),
                Equal(Static(path.path), Input(slot, 1)),
                Equal(o, Input(slot, 2)),
            )),
        )))

    return OutInfo(required=required, optional=optional, binds=binds, constraint=All(tuple(constraints)))


def join(left: OutInfo, right: OutInfo) -> OutInfo:
    """
    Merge two translated operands.

    Slot order is left required, right required, left optional, right
    optional. A right-hand bind of a variable already bound on the left
    becomes an equality.
    """
    nl, nr, ol = len(left.required), len(right.required), len(left.optional)
    left_map = {i: i for i in range(nl)}
    left_map.update({nl + j: nl + nr + j for j in range(ol)})
    right_map = {i: nl + i for i in range(nr)}
    right_map.update({nr + j: nl + nr + ol + j for j in range(len(right.optional))})
    shift_left, shift_right = shift_inputs(left_map), shift_inputs(right_map)

    binds = [Bind(b.variable, map_term(b.value, shift_left)) for b in left.binds]
    bound = {b.variable.name for b in left.binds}
    extra = []
    for b in right.binds:
        value = map_term(b.value, shift_right)
        if b.variable.name in bound:
            extra.append(Equal(b.variable, value))
        else:
            bound.add(b.variable.name)
            binds.append(Bind(b.variable, value))

    return OutInfo(
        required=left.required + right.required,
        optional=left.optional + right.optional,
        binds=binds,
        constraint=All((
            map_constraint(left.constraint, shift_left),
            map_constraint(right.constraint, shift_right),
        ) + tuple(extra)),
    )


# -- expressions -------------------------------------------------------------

def _expr_name(expr) -> str:
    if isinstance(expr, CompValue):
        return expr.name
    return type(expr).__name__


def translate_value(expr):
    """expression in value position -> CircomTerm"""
    if isinstance(expr, Variable):
        return Var(str(expr))
    if isinstance(expr, (URIRef, Literal)):
        return Static(expr)
    if isinstance(expr, BNode):
        raise UnsupportedQueryError("blank nodes are not supported in expressions")
    name = _expr_name(expr)
    if name in _BUILTIN_KINDS:
        return Computed(_BUILTIN_KINDS[name], translate_value(expr.arg))
    if name == "RelationalExpression" and expr.op == "=":
        return ComputedBinary(EQUAL, translate_value(expr.expr), translate_value(expr.other))
    raise UnsupportedQueryError(f"unsupported value expression: {name}")


def _integer_constant(term) -> bool:
    return (isinstance(term, Literal) and term.datatype == XSD.integer
            and isinstance(term.toPython(), int))


def _geq(variable, constant):
    if not isinstance(variable, Variable):
        raise UnsupportedQueryError(f">= needs a variable operand, got {_expr_name(variable)}")
    if not _integer_constant(constant):
        raise UnsupportedQueryError(f">= needs a static xsd:integer operand, got {_expr_name(constant)}")
    if constant.toPython() < 0:
        raise UnsupportedQueryError(f">= threshold must not be negative: {constant}")
    return Binary(GEQ, Var(str(variable)), Static(constant))


def translate_constraint(expr):
    """filter expression -> Constraint"""
    if isinstance(expr, Literal) and expr.datatype == XSD.boolean:
        return Boolean(bool(expr.toPython()))
    name = _expr_name(expr)
    if name == "ConditionalAndExpression":
        return All(tuple(translate_constraint(x) for x in [expr.expr] + list(expr.other)))
    if name == "ConditionalOrExpression":
        return Some(tuple(translate_constraint(x) for x in [expr.expr] + list(expr.other)))
    if name == "UnaryNot":
        return Not(translate_constraint(expr.expr))
    if name == "RelationalExpression":
        op = expr.op
        if op == "=":
            return Equal(translate_value(expr.expr), translate_value(expr.other))
        if op == "!=":
            return Not(Equal(translate_value(expr.expr), translate_value(expr.other)))
        if op == ">=":
            return _geq(expr.expr, expr.other)
        if op == "<=":
            return _geq(expr.other, expr.expr)
        raise UnsupportedQueryError(f"unsupported operator: {op}")
    if name in ("Builtin_isIRI", "Builtin_isURI"):
        return Unary(IS_IRI, translate_value(expr.arg))
    if name == "Builtin_isBLANK":
        return Unary(IS_BLANK, translate_value(expr.arg))
    if name == "Builtin_isLITERAL":
        return literal_constraint(translate_value(expr.arg))
    raise UnsupportedQueryError(f"unsupported filter expression: {name}")
