"""Tests for field expressions, term encodings and host-side evaluation."""
from __future__ import annotations

import pytest
from rdflib import BNode, Literal, URIRef
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID
from rdflib.namespace import RDF, XSD

from zksparql.codec import (
    LITERAL_LANG, LITERAL_VALUE, SPECIAL_HANDLING, lang_field, literal_component,
    literal_datatype, special_handling, term_encoding, term_field,
)
from zksparql.errors import OracleError
from zksparql.field import (
    FIELD_MODULUS, Const, Poseidon, Ref, StrField, hash2, noir_string, render, str_to_field,
)


class TestFieldExpressions:
    """Tests for rendering and host evaluation of field expressions."""

    def test_render_iri_encoding(self):
        """An IRI renders as a tagged Poseidon2 hash of its blake2s field."""
        text = render(term_encoding(URIRef("http://ex/a")))

        assert text == (
            'Poseidon2::hash([0, Field::from_le_bytes(std::hash::blake2s("http://ex/a".as_bytes()))], 2)'
        )

    def test_noir_string_escapes(self):
        """Quotes, backslashes and newlines are escaped."""
        assert noir_string('say "hi"\n\\') == '"say \\"hi\\"\\n\\\\"'

    def test_render_ref_and_const(self):
        """Refs render verbatim, constants reduce into the field."""
        assert render(Ref("hidden[3]")) == "hidden[3]"
        assert render(Const(FIELD_MODULUS + 5)) == "5"

    def test_str_to_field_in_range(self):
        """String fields are deterministic and inside the field."""
        a = str_to_field("http://example.org/alice")

        assert a == str_to_field("http://example.org/alice")
        assert 0 <= a < FIELD_MODULUS
        assert a != str_to_field("http://example.org/bob")

    def test_native_evaluator_rejects_refs(self, evaluator):
        """Circuit references cannot be evaluated on the host."""
        with pytest.raises(OracleError):
            evaluator.evaluate(hash2(Const(1), Ref("hidden[0]")))

    def test_native_evaluator_uses_hasher(self, evaluator):
        """Poseidon nodes hand their evaluated children to the hasher."""
        from conftest import fake_poseidon2

        value = evaluator.evaluate(Poseidon((Const(1), StrField("x"))))

        assert value == fake_poseidon2([1, str_to_field("x")])


class TestTermFields:
    """Tests for the datatype-aware components of literals."""

    def test_integer_special_handling(self):
        """xsd:integer literals carry their numeric value."""
        assert special_handling(Literal(23)) == Const(23)
        assert special_handling(Literal("0042", datatype=XSD.integer)) == Const(42)

    def test_malformed_integer_falls_back(self):
        """An unparsable integer lexical form is hashed as a string."""
        assert special_handling(Literal("abc", datatype=XSD.integer)) == StrField("abc")

    def test_boolean_special_handling(self):
        """Booleans map to 0/1 regardless of case."""
        assert special_handling(Literal("TRUE", datatype=XSD.boolean)) == Const(1)
        assert special_handling(Literal("false", datatype=XSD.boolean)) == Const(0)

    def test_plain_and_language_literals(self):
        """Implicit datatypes are filled in and only tagged literals carry a language."""
        plain = Literal("hello")
        tagged = Literal("hello", lang="en")

        assert literal_datatype(plain) == XSD.string
        assert literal_datatype(tagged) == RDF.langString
        assert lang_field(plain) == Const(0)
        assert lang_field(tagged) == StrField("en")
        assert special_handling(tagged) == StrField("hello")

    def test_literal_components(self):
        """Openable components of a literal."""
        lit = Literal("Alice", lang="en")

        assert literal_component(LITERAL_VALUE, lit) == StrField("Alice")
        assert literal_component(LITERAL_LANG, lit) == StrField("en")
        assert literal_component(SPECIAL_HANDLING, Literal(7)) == Const(7)
        with pytest.raises(TypeError):
            literal_component(LITERAL_VALUE, URIRef("http://ex/a"))

    def test_literal_inner_has_four_components(self):
        """The inner encoding of a literal hashes value, special, lang and datatype."""
        inner = term_field(Literal(5))

        assert inner == Poseidon((StrField("5"), Const(5), Const(0), StrField(str(XSD.integer))))


class TestTermCodec:
    """Tests for TermCodec evaluation."""

    def test_encoding_deterministic(self, codec):
        """The same term always encodes to the same field element."""
        assert codec.encode(URIRef("http://ex/a")) == codec.encode(URIRef("http://ex/a"))

    def test_tags_separate_term_types(self, codec):
        """An IRI, a blank node and a literal with the same text encode differently."""
        values = {
            codec.encode(URIRef("http://ex/x")),
            codec.encode(BNode("http://ex/x")),
            codec.encode(Literal("http://ex/x")),
        }

        assert len(values) == 3

    def test_default_graph_spellings(self, codec):
        """None and the dataset default graph id are the same graph."""
        assert codec.encode(None) == codec.encode(DATASET_DEFAULT_GRAPH_ID)

    def test_typed_literals_differ(self, codec):
        """The string "1" and the integer 1 are different terms."""
        assert codec.encode(Literal("1")) != codec.encode(Literal(1))

    def test_encode_quads_shape(self, codec, people_quads):
        """Each quad gives four encodings, consistent with single-term encoding."""
        encodings = codec.encode_quads(people_quads)

        assert len(encodings) == len(people_quads)
        assert all(len(e) == 4 for e in encodings)
        s, p, o, g = people_quads[0]
        assert encodings[0] == (codec.encode(s), codec.encode(p), codec.encode(o), codec.encode(g))
