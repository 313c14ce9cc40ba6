"""
Constraint IR shared by the translator, the optimizer and the emitter.

Terms that appear inside constraints (CircomTerm) and the constraints
themselves are closed sets of frozen dataclasses. Everything is immutable:
passes build new trees instead of editing old ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Tuple, Union

from rdflib import BNode, Literal, URIRef
from rdflib.term import Identifier

# Computed kinds
IS_LITERAL = "isliteral"
IS_IRI = "isiri"
IS_BLANK = "isblank"
LANG = "lang"
EQUAL = "equal"

# Unary / Binary operators
UNARY_OPERATORS = (IS_IRI, IS_BLANK)
GEQ = "geq"


# -- terms -----------------------------------------------------------------

@dataclass(frozen=True)
class Var:
    name: str


@dataclass(frozen=True)
class Input:
    """position `position` (0 s, 1 p, 2 o) of input triple `slot`"""
    slot: int
    position: int


@dataclass(frozen=True)
class Static:
    term: Identifier


@dataclass(frozen=True)
class Computed:
    kind: str
    input: "CircomTerm"


@dataclass(frozen=True)
class ComputedBinary:
    kind: str
    left: "CircomTerm"
    right: "CircomTerm"


@dataclass(frozen=True)
class CustomComputed:
    """opened component (literal_value, literal_lang, special_handling) of a term"""
    kind: str
    input: "CircomTerm"


CircomTerm = Union[Var, Input, Static, Computed, ComputedBinary, CustomComputed]
HiddenInput = Union[Input, Static, CustomComputed]


# -- constraints ------------------------------------------------------------

@dataclass(frozen=True)
class All:
    constraints: Tuple["Constraint", ...]


@dataclass(frozen=True)
class Some:
    constraints: Tuple["Constraint", ...]


@dataclass(frozen=True)
class Not:
    constraint: "Constraint"


@dataclass(frozen=True)
class Equal:
    left: CircomTerm
    right: CircomTerm


@dataclass(frozen=True)
class Unary:
    operator: str
    term: CircomTerm


@dataclass(frozen=True)
class Binary:
    operator: str
    left: CircomTerm
    right: CircomTerm


@dataclass(frozen=True)
class Boolean:
    value: bool


Constraint = Union[All, Some, Not, Equal, Unary, Binary, Boolean]

TRUE = Boolean(True)
FALSE = Boolean(False)


@dataclass(frozen=True)
class Bind:
    variable: Var
    value: CircomTerm


Pattern = Tuple[Identifier, Identifier, Identifier]


@dataclass
class OutInfo:
    required: List[Pattern] = field(default_factory=list)
    optional: List[Pattern] = field(default_factory=list)
    binds: List[Bind] = field(default_factory=list)
    constraint: Constraint = TRUE


def literal_constraint(term: CircomTerm) -> Constraint:
    """isliteral(x) == !(isiri(x) || isblank(x))"""
    return Not(Some((Unary(IS_IRI, term), Unary(IS_BLANK, term))))


def static_kind(term: Identifier) -> str:
    if isinstance(term, Literal):
        return IS_LITERAL
    if isinstance(term, BNode):
        return IS_BLANK
    if isinstance(term, URIRef):
        return IS_IRI
    raise TypeError(f"unexpected static term: {type(term).__name__}")


# -- structural keys ----------------------------------------------------------

def term_key(term: CircomTerm) -> str:
    if isinstance(term, Var):
        return f"?{term.name}"
    if isinstance(term, Input):
        return f"in[{term.slot},{term.position}]"
    if isinstance(term, Static):
        return term.term.n3()
    if isinstance(term, Computed):
        return f"{term.kind}({term_key(term.input)})"
    if isinstance(term, ComputedBinary):
        return f"{term.kind}({','.join(sorted([term_key(term.left), term_key(term.right)]))})"
    if isinstance(term, CustomComputed):
        return f"#{term.kind}({term_key(term.input)})"
    raise TypeError(f"not a term: {term!r}")


def constraint_key(c: Constraint) -> str:
    """canonical key; commutative nodes sort their children's keys"""
    if isinstance(c, All):
        return "and(" + ",".join(sorted(constraint_key(x) for x in c.constraints)) + ")"
    if isinstance(c, Some):
        return "or(" + ",".join(sorted(constraint_key(x) for x in c.constraints)) + ")"
    if isinstance(c, Not):
        return f"not({constraint_key(c.constraint)})"
    if isinstance(c, Equal):
        return "eq(" + ",".join(sorted([term_key(c.left), term_key(c.right)])) + ")"
    if isinstance(c, Unary):
        return f"{c.operator}({term_key(c.term)})"
    if isinstance(c, Binary):
        return f"{c.operator}({term_key(c.left)},{term_key(c.right)})"
    if isinstance(c, Boolean):
        return "true" if c.value else "false"
    raise TypeError(f"not a constraint: {c!r}")


# -- rewriting ---------------------------------------------------------------

def map_term(term: CircomTerm, fn: Callable[[CircomTerm], CircomTerm]) -> CircomTerm:
    """apply fn to every leaf term (Var, Input, Static)"""
    if isinstance(term, (Computed, CustomComputed)):
        return type(term)(term.kind, map_term(term.input, fn))
    if isinstance(term, ComputedBinary):
        return ComputedBinary(term.kind, map_term(term.left, fn), map_term(term.right, fn))
    return fn(term)


def map_constraint(c: Constraint, fn: Callable[[CircomTerm], CircomTerm]) -> Constraint:
    if isinstance(c, All):
        return All(tuple(map_constraint(x, fn) for x in c.constraints))
    if isinstance(c, Some):
        return Some(tuple(map_constraint(x, fn) for x in c.constraints))
    if isinstance(c, Not):
        return Not(map_constraint(c.constraint, fn))
    if isinstance(c, Equal):
        return Equal(map_term(c.left, fn), map_term(c.right, fn))
    if isinstance(c, Unary):
        return Unary(c.operator, map_term(c.term, fn))
    if isinstance(c, Binary):
        return Binary(c.operator, map_term(c.left, fn), map_term(c.right, fn))
    return c


def shift_inputs(offsets) -> Callable[[CircomTerm], CircomTerm]:
    """renumber Input slots through a slot -> slot mapping"""
    def fn(term):
        if isinstance(term, Input):
            return Input(offsets[term.slot], term.position)
        return term
    return fn
