"""Pytest configuration and fixtures for zksparql tests."""
from __future__ import annotations

import hashlib
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))

from rdflib import Literal, Namespace, URIRef  # noqa: E402

from zksparql.codec import TermCodec  # noqa: E402
from zksparql.field import FIELD_MODULUS  # noqa: E402
from zksparql.oracle import NativeEvaluator  # noqa: E402
from zksparql.signing import generate_keypair  # noqa: E402
from zksparql.store import LeafStore, sort_quads  # noqa: E402

EX = Namespace("http://example.org/")
PEOPLE_GRAPH = URIRef("http://example.org/graphs/people")


def fake_poseidon2(inputs):
    """Stand-in compression for tests: blake2s over the inputs, reduced into the field."""
    data = len(inputs).to_bytes(1, "big") + b"".join(int(x).to_bytes(32, "big") for x in inputs)
    return int.from_bytes(hashlib.blake2s(data).digest(), "big") % FIELD_MODULUS


@pytest.fixture
def evaluator():
    return NativeEvaluator(fake_poseidon2)


@pytest.fixture
def codec(evaluator):
    return TermCodec(evaluator)


@pytest.fixture(scope="session")
def keypair():
    return generate_keypair()


@pytest.fixture
def private_key(keypair):
    return keypair[0]


@pytest.fixture
def people_quads():
    """Ages and names of two people, one quad in a named graph."""
    return sort_quads([
        (EX.alice, EX.age, Literal(23), None),
        (EX.bob, EX.age, Literal(10), None),
        (EX.alice, EX.name, Literal("Alice", lang="en"), None),
        (EX.bob, EX.name, Literal("Bob", lang="fr"), PEOPLE_GRAPH),
    ])


@pytest.fixture
def signed(codec, people_quads, private_key):
    return LeafStore(codec).build(people_quads, private_key)


@pytest.fixture
def people_nquads(tmp_path):
    """The same dataset as people_quads, written as an N-Quads file."""
    path = tmp_path / "people.nq"
    path.write_text(
        '<http://example.org/alice> <http://example.org/age> '
        '"23"^^<http://www.w3.org/2001/XMLSchema#integer> .\n'
        '<http://example.org/bob> <http://example.org/age> '
        '"10"^^<http://www.w3.org/2001/XMLSchema#integer> .\n'
        '<http://example.org/alice> <http://example.org/name> "Alice"@en .\n'
        '<http://example.org/bob> <http://example.org/name> "Bob"@fr '
        '<http://example.org/graphs/people> .\n'
    )
    return path


AGE_QUERY = """
PREFIX ex: <http://example.org/>
SELECT ?p WHERE {
    ?p ex:age ?age .
    FILTER(?age >= 18)
}
"""

LANG_QUERY = """
PREFIX ex: <http://example.org/>
SELECT ?p WHERE {
    ?p ex:name ?n .
    FILTER(LANG(?n) = "en")
}
"""


@pytest.fixture
def age_query():
    return AGE_QUERY


@pytest.fixture
def lang_query():
    return LANG_QUERY
