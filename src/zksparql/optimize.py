"""
Boolean simplification of the constraint tree.

optimize() is a pure function: every call returns a fresh tree, and the only
state it keeps is the per-node dedup set built while a single All/Some is
being processed. Running it twice gives the same tree as running it once.
"""

from rdflib import Literal
from rdflib.namespace import XSD

from zksparql.errors import InvariantViolation
from zksparql.ir import (
    FALSE, IS_BLANK, IS_IRI, IS_LITERAL, LANG, TRUE, All, Binary, Boolean, Computed, Constraint,
    Equal, Not, Some, Static, Unary, constraint_key, literal_constraint, static_kind,
    term_key,
)

_PREDICATES = (IS_IRI, IS_BLANK, IS_LITERAL)


def optimize(constraint: Constraint) -> Constraint:
    """
    Simplify a constraint.

    Returns:
        an equivalent constraint, TRUE or FALSE; All/Some nodes in the
        result always have at least two children
    """
    if isinstance(constraint, (All, Some)):
        return _optimize_junction(constraint)
    if isinstance(constraint, Not):
        return _optimize_not(constraint)
    if isinstance(constraint, Equal):
        return _optimize_equal(constraint)
    if isinstance(constraint, Unary):
        return _optimize_unary(constraint)
    if isinstance(constraint, (Binary, Boolean)):
        return constraint
    raise InvariantViolation(f"unknown constraint node: {type(constraint).__name__}")


def _optimize_junction(node):
    is_all = isinstance(node, All)
    kind = All if is_all else Some
    other = Some if is_all else All
    absorbing, neutral = (FALSE, TRUE) if is_all else (TRUE, FALSE)

    children = [optimize(x) for x in node.constraints]
    if absorbing in children:
        return absorbing

    flat = []
    for child in children:
        if isinstance(child, Boolean):
            continue
        if isinstance(child, kind):
            flat.extend(child.constraints)
        else:
            flat.append(child)

    seen = set()
    unique = []
    for child in flat:
        key = constraint_key(child)
        if key not in seen:
            seen.add(key)
            unique.append(child)

    def implied(x):
        if constraint_key(x) in seen:
            return True
        # a flattened sibling junction shows up only through its parts
        return isinstance(x, kind) and all(constraint_key(y) in seen for y in x.constraints)

    # a && (a || b) == a, and dually a || (a && b) == a
    kept = [
        child for child in unique
        if not (isinstance(child, other) and any(implied(x) for x in child.constraints))
    ]

    if not kept:
        return neutral
    if len(kept) == 1:
        return kept[0]
    return kind(tuple(kept))


def _optimize_not(node: Not):
    inner = node.constraint
    if isinstance(inner, All):
        return optimize(Some(tuple(Not(x) for x in inner.constraints)))
    if isinstance(inner, Some):
        return optimize(All(tuple(Not(x) for x in inner.constraints)))
    if isinstance(inner, Not):
        return optimize(inner.constraint)

    result = optimize(inner)
    if isinstance(result, Boolean):
        return Boolean(not result.value)
    if isinstance(result, (All, Some, Not)):
        return optimize(Not(result))
    return Not(result)


def _static_boolean(term):
    """True/False for a static xsd:boolean literal, None otherwise"""
    if not isinstance(term, Static) or not isinstance(term.term, Literal):
        return None
    if term.term.datatype != XSD.boolean:
        return None
    lexical = str(term.term).lower()
    if lexical in ("true", "1"):
        return True
    if lexical in ("false", "0"):
        return False
    return None


def _never_a_language(term) -> bool:
    """static terms LANG() can never equal: anything but a simple literal"""
    if not isinstance(term, Static):
        return False
    value = term.term
    return not isinstance(value, Literal) or bool(value.language) or value.datatype not in (None, XSD.string)


def _predicate_constraint(computed: Computed) -> Constraint:
    if computed.kind == IS_LITERAL:
        return literal_constraint(computed.input)
    return Unary(computed.kind, computed.input)


def _optimize_equal(node: Equal):
    left, right = node.left, node.right
    if isinstance(left, Static) and isinstance(right, Static):
        return Boolean(left.term == right.term)
    if term_key(left) == term_key(right):
        return TRUE

    for lang, other in ((left, right), (right, left)):
        if isinstance(lang, Computed) and lang.kind == LANG and _never_a_language(other):
            return FALSE

    for flag, other in ((_static_boolean(left), right), (_static_boolean(right), left)):
        if flag is not None and isinstance(other, Computed) and other.kind in _PREDICATES:
            predicate = _predicate_constraint(other)
            return optimize(predicate if flag else Not(predicate))
    return Equal(left, right)


def _optimize_unary(node: Unary):
    if isinstance(node.term, Static):
        return Boolean(static_kind(node.term.term) == node.operator)
    if isinstance(node.term, Computed):
        # computed values are literals
        return FALSE
    return node
