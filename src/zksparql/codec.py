"""
Term codec: canonical field encoding of RDF terms and quads.

    encode(term) = hash2(tag, inner)
    inner        = H(value)                                  for IRIs, blanks, ...
                 = hash4(H(value), special, lang, H(datatype))  for literals

The builders below return field expressions; TermCodec evaluates them with
whatever backend it was given. The emitter renders the very same builders
into Noir, which is what keeps the two sides in agreement.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from rdflib import BNode, Literal, URIRef, Variable
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID
from rdflib.namespace import RDF, XSD

from zksparql.field import Const, FieldExpr, StrField, hash2, hash4

TERM_TYPE_TAGS = {
    "NamedNode": 0,
    "BlankNode": 1,
    "Literal": 2,
    "Variable": 3,
    "DefaultGraph": 4,
    "Quad": 5,
}

XSD_STRING = XSD.string
XSD_BOOLEAN = XSD.boolean
XSD_INTEGER = XSD.integer
RDF_LANGSTRING = RDF.langString

# components of a literal that the emitter can ask the witness to open
LITERAL_VALUE = "literal_value"
LITERAL_LANG = "literal_lang"
SPECIAL_HANDLING = "special_handling"


def is_default_graph(term) -> bool:
    return term is None or term == DATASET_DEFAULT_GRAPH_ID


def term_type(term) -> str:
    if is_default_graph(term):
        return "DefaultGraph"
    if isinstance(term, Literal):
        return "Literal"
    if isinstance(term, BNode):
        return "BlankNode"
    if isinstance(term, Variable):
        return "Variable"
    if isinstance(term, URIRef):
        return "NamedNode"
    raise TypeError(f"unsupported term type: {type(term).__name__}")


def term_value(term) -> str:
    if is_default_graph(term):
        return ""
    return str(term)


def literal_datatype(literal: Literal) -> URIRef:
    """datatype IRI of a literal, filling in the RDF 1.1 implicit ones"""
    if literal.datatype is not None:
        return literal.datatype
    if literal.language:
        return RDF_LANGSTRING
    return XSD_STRING


def special_handling(literal: Literal) -> FieldExpr:
    """datatype-aware field of a literal; anything unrecognised falls back to H(value)"""
    datatype = literal_datatype(literal)
    lexical = str(literal)
    if datatype == XSD_BOOLEAN:
        if lexical.lower() == "true" or lexical == "1":
            return Const(1)
        if lexical.lower() == "false" or lexical == "0":
            return Const(0)
    elif datatype == XSD_INTEGER:
        try:
            return Const(int(lexical.strip()))
        except ValueError:
            pass
    return StrField(lexical)


def lang_field(literal: Literal) -> FieldExpr:
    if literal.language:
        return StrField(literal.language)
    return Const(0)


def literal_hash(value: FieldExpr, special: FieldExpr, lang: FieldExpr, datatype: FieldExpr) -> FieldExpr:
    """full encoding of a literal from its four components"""
    return hash2(Const(TERM_TYPE_TAGS["Literal"]), hash4(value, special, lang, datatype))


def term_field(term) -> FieldExpr:
    """inner encoding (the hash preimage opened by isiri/isblank checks)"""
    if isinstance(term, Literal):
        return hash4(
            StrField(str(term)),
            special_handling(term),
            lang_field(term),
            StrField(str(literal_datatype(term))),
        )
    return StrField(term_value(term))


def term_encoding(term) -> FieldExpr:
    return hash2(Const(TERM_TYPE_TAGS[term_type(term)]), term_field(term))


def literal_component(kind: str, literal: Literal) -> FieldExpr:
    if not isinstance(literal, Literal):
        raise TypeError(f"{kind} needs a literal, got {type(literal).__name__}")
    if kind == LITERAL_VALUE:
        return StrField(str(literal))
    if kind == LITERAL_LANG:
        return lang_field(literal)
    if kind == SPECIAL_HANDLING:
        return special_handling(literal)
    raise ValueError(f"unknown literal component: {kind}")


def quad_leaf(encodings: Sequence[int]) -> FieldExpr:
    """leaf hash over the four term encodings of a quad"""
    return hash4(*[Const(x) for x in encodings])


class TermCodec:
    """Evaluates term encodings with a field evaluator."""

    def __init__(self, evaluator):
        self.evaluator = evaluator

    def encode(self, term) -> int:
        return self.evaluator.evaluate(term_encoding(term))

    def encode_many(self, terms: Iterable) -> List[int]:
        return self.evaluator.evaluate_many([term_encoding(t) for t in terms])

    def inner(self, term) -> int:
        return self.evaluator.evaluate(term_field(term))

    def component(self, kind: str, literal: Literal) -> int:
        return self.evaluator.evaluate(literal_component(kind, literal))

    def string(self, text: str) -> int:
        return self.evaluator.evaluate(StrField(text))

    def encode_quads(self, quads: Sequence[Tuple]) -> List[Tuple[int, int, int, int]]:
        """term encodings of each quad, evaluated as a single batch"""
        flat = self.encode_many([term for quad in quads for term in quad])
        return [tuple(flat[i:i + 4]) for i in range(0, len(flat), 4)]

    def leaves(self, encodings: Sequence[Sequence[int]]) -> List[int]:
        return self.evaluator.evaluate_many([quad_leaf(e) for e in encodings])
