"""Tests for query compilation and Noir emission."""
from __future__ import annotations

import json

import pytest

from zksparql.codec import LITERAL_VALUE, SPECIAL_HANDLING, TermCodec
from zksparql.compiler import compile_query, load_metadata, write_project
from zksparql.emit import CircuitEmitter
from zksparql.errors import InvariantViolation, UnsatisfiableQueryError, UnsupportedQueryError
from zksparql.ir import FALSE, All, CustomComputed, Equal, Input, Var
from zksparql.metadata import Metadata
from zksparql.noir import NoirDocument
from zksparql.translate import translate_query

PREFIX = "PREFIX ex: <http://example.org/>\n"


class TestAgeThreshold:
    """The ?age >= 18 scenario end to end through the compiler."""

    def test_slots_and_variables(self, evaluator, age_query):
        """One required slot and a single projected variable."""
        compiled = compile_query(age_query, evaluator, tree_depth=2)
        metadata = compiled.metadata

        assert metadata.variables == ["p"]
        assert len(metadata.requiredInputs) == 1
        assert metadata.optionalInputs == []
        assert metadata.requiredInputs[0].predicate == "<http://example.org/age>"
        assert metadata.treeDepth == 2

    def test_hidden_inputs(self, evaluator, age_query):
        """The range check opens the literal's value and its numeric field."""
        entries = compile_query(age_query, evaluator, tree_depth=2).metadata.hidden_entries()

        assert entries == [
            CustomComputed(LITERAL_VALUE, Input(0, 2)),
            CustomComputed(SPECIAL_HANDLING, Input(0, 2)),
        ]

    def test_noir_text(self, evaluator, age_query):
        """checkBinding holds the range assertion and main authenticates the slot."""
        compiled = compile_query(age_query, evaluator, tree_depth=2)

        assert ">= 18)" in compiled.sparql_nr
        assert "as u64) as Field == hidden[1]" in compiled.sparql_nr
        assert "pub(crate) global DEPTH: u32 = 2;" in compiled.sparql_nr
        assert "pub(crate) global INPUTS: u32 = 1;" in compiled.sparql_nr
        assert "pub(crate) type Hidden = [Field; 2];" in compiled.sparql_nr
        assert "assert(variables.p == bgp[0].terms[0]);" in compiled.sparql_nr
        assert "mod sparql;" in compiled.main_nr
        assert "std::ecdsa_secp256k1::verify_signature" in compiled.main_nr
        assert "checkBinding(bgp, variables, hidden);" in compiled.main_nr

    def test_write_project(self, tmp_path, evaluator, age_query):
        """The package layout nargo expects, plus metadata.json."""
        compiled = compile_query(age_query, evaluator, tree_depth=2)
        root = write_project(tmp_path / "circuit", compiled)

        assert (root / "Nargo.toml").exists()
        assert (root / "src" / "main.nr").read_text() == compiled.main_nr
        assert (root / "src" / "sparql.nr").read_text() == compiled.sparql_nr
        assert load_metadata(root) == compiled.metadata

    def test_metadata_json(self, evaluator, age_query):
        """Metadata survives JSON and keeps ?variables as variables."""
        from rdflib import Variable

        metadata = compile_query(age_query, evaluator, tree_depth=2).metadata
        record = json.loads(metadata.to_json())
        restored = Metadata.from_json(metadata.to_json())

        assert list(record)[:4] == ["variables", "requiredInputs", "optionalInputs", "hiddenInputs"]
        assert record["hiddenInputs"][0] == {
            "type": "custom",
            "computed": "literal_value",
            "source": {"type": "input", "slot": 0, "position": 2},
        }
        assert restored.required_patterns()[0][0] == Variable("p")


class TestLang:
    """LANG() comparisons and values."""

    def test_lang_equals_constant(self, evaluator, lang_query):
        """Comparing LANG to a constant opens only the literal's value."""
        compiled = compile_query(lang_query, evaluator, tree_depth=2)

        assert compiled.metadata.hidden_entries() == [CustomComputed(LITERAL_VALUE, Input(0, 2))]
        assert "bgp[0].terms[2] == Poseidon2::hash([2, Poseidon2::hash([hidden[0], hidden[0]," in compiled.sparql_nr

    def test_lang_of_non_simple_literal(self, evaluator):
        """LANG never equals a tagged or typed constant."""
        for constant in ('"en"@en', '"en"^^<http://example.org/dt>', "ex:en"):
            query = PREFIX + f"SELECT ?s WHERE {{ ?s ex:name ?n FILTER(LANG(?n) = {constant}) }}"

            with pytest.raises(UnsatisfiableQueryError):
                compile_query(query, evaluator, tree_depth=1)

    def test_lang_of_bound_tagged_constant(self, evaluator):
        """A constant reaching LANG through a hidden binding is caught while emitting."""
        query = PREFIX + ('SELECT ?s WHERE { ?s ex:name ?n BIND("en"@en AS ?t) '
                          "FILTER(LANG(?n) = ?t) }")

        with pytest.raises(UnsatisfiableQueryError):
            compile_query(query, evaluator, tree_depth=1)

    def test_lang_false_inside_disjunction(self, evaluator):
        """Only the impossible branch drops out of a disjunction."""
        query = PREFIX + ('SELECT ?s WHERE { ?s ex:name ?n '
                          'FILTER(LANG(?n) = "en"@en || LANG(?n) = "en") }')

        compiled = compile_query(query, evaluator, tree_depth=1)

        assert "assert(false);" not in compiled.sparql_nr
        assert compiled.metadata.hidden_entries() == [CustomComputed(LITERAL_VALUE, Input(0, 2))]

    def test_lang_under_negation(self, evaluator):
        query = PREFIX + 'SELECT ?s WHERE { ?s ex:name ?n FILTER(LANG(?n) != "en") }'

        with pytest.raises(UnsupportedQueryError):
            compile_query(query, evaluator, tree_depth=1)

    def test_lang_bind(self, evaluator):
        """A projected LANG value is pinned to the re-encoded tag."""
        query = PREFIX + "SELECT ?s ?l WHERE { ?s ex:name ?n BIND(LANG(?n) AS ?l) }"

        compiled = compile_query(query, evaluator, tree_depth=1)

        assert compiled.metadata.hidden_entries() == [
            CustomComputed(LITERAL_VALUE, Input(0, 2)),
            CustomComputed("literal_lang", Input(0, 2)),
        ]
        assert "assert(variables.l == Poseidon2::hash([2, Poseidon2::hash([hidden[1], hidden[1], 0," in compiled.sparql_nr


class TestPredicates:
    """isIRI / isBlank / isLiteral lowering."""

    def test_is_iri_opens_term(self, evaluator):
        """The opened preimage is pinned to one of the node tags."""
        query = PREFIX + "SELECT ?s WHERE { ?s ?p ?o FILTER(isIRI(?o)) }"

        compiled = compile_query(query, evaluator, tree_depth=1)

        assert compiled.metadata.hidden_entries() == [Input(0, 2)]
        assert "assert(bgp[0].terms[2] == Poseidon2::hash([0, hidden[0]], 2));" in compiled.sparql_nr
        assert "(bgp[0].terms[2] == Poseidon2::hash([1, hidden[0]], 2))" in compiled.sparql_nr

    def test_is_literal(self, evaluator):
        query = PREFIX + "SELECT ?s WHERE { ?s ?p ?o FILTER(isLiteral(?o)) }"

        compiled = compile_query(query, evaluator, tree_depth=1)

        assert "!(bgp[0].terms[2] == Poseidon2::hash([0, hidden[0]], 2))" in compiled.sparql_nr
        assert "!(bgp[0].terms[2] == Poseidon2::hash([1, hidden[0]], 2))" in compiled.sparql_nr


class TestCompilerOutcomes:
    """Unsatisfiable, trivial and unsupported queries."""

    def test_unsatisfiable(self, evaluator):
        query = "SELECT ?s WHERE { ?s ?p ?o FILTER(false) }"

        with pytest.raises(UnsatisfiableQueryError):
            compile_query(query, evaluator, tree_depth=1)

    def test_contradicting_constants(self, evaluator):
        query = PREFIX + "SELECT ?s WHERE { ?s ?p ?o FILTER(ex:a = ex:b) }"

        with pytest.raises(UnsatisfiableQueryError):
            compile_query(query, evaluator, tree_depth=1)

    def test_trivial_warns(self, evaluator, capsys):
        """A query without filters compiles but warns."""
        compiled = compile_query("SELECT ?s WHERE { ?s ?p ?o }", evaluator, tree_depth=1)

        assert "warning" in capsys.readouterr().out
        assert "checkBinding(bgp, variables);" in compiled.main_nr

    def test_unsupported(self, evaluator):
        with pytest.raises(UnsupportedQueryError):
            compile_query("SELECT ?s WHERE { ?s ?p ?o } ORDER BY ?s", evaluator, tree_depth=1)

    def test_threshold_too_large(self, evaluator):
        query = PREFIX + "SELECT ?s WHERE { ?s ex:age ?a FILTER(?a >= 18446744073709551616) }"

        with pytest.raises(UnsupportedQueryError):
            compile_query(query, evaluator, tree_depth=1)


class TestEmitterInvariants:
    """Malformed trees handed straight to the emitter."""

    def _emitter(self, evaluator, constraint):
        translation = translate_query("SELECT ?s WHERE { ?s ?p ?o }")
        return CircuitEmitter(translation, constraint, TermCodec(evaluator), tree_depth=1)

    def test_false_root(self, evaluator):
        with pytest.raises(InvariantViolation):
            self._emitter(evaluator, FALSE).emit()

    def test_single_child_junction(self, evaluator):
        with pytest.raises(InvariantViolation):
            self._emitter(evaluator, All((Equal(Var("s"), Input(0, 2)),))).emit()

    def test_type_before_declaration(self):
        """Noir documents refuse types that are not declared yet."""
        doc = NoirDocument()

        with pytest.raises(InvariantViolation):
            doc.struct("Pair", [("left", "Triple")])
