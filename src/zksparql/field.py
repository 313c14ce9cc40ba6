"""
Field expressions shared by the host and the emitted Noir program.

Every value that has to agree between the host and the circuit is built as a
small expression tree first. The same tree is rendered into Noir source by the
emitter and evaluated on the host by one of the backends in oracle.py, so both
sides always compute the exact same pipeline.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Tuple, Union

# BN254 scalar field, the native field of nargo's default backend
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

POSEIDON2 = "Poseidon2::hash"
POSEIDON2_IMPORT = "std::hash::poseidon2::Poseidon2"


@dataclass(frozen=True)
class Const:
    value: int


@dataclass(frozen=True)
class StrField:
    """blake2s of the utf-8 text, read little-endian into the field"""
    text: str


@dataclass(frozen=True)
class Poseidon:
    inputs: Tuple["FieldExpr", ...]


@dataclass(frozen=True)
class Ref:
    """reference to a circuit value, e.g. hidden[2]; cannot be evaluated on the host"""
    text: str


FieldExpr = Union[Const, StrField, Poseidon, Ref]


def hash2(a: FieldExpr, b: FieldExpr) -> Poseidon:
    return Poseidon((a, b))


def hash4(a: FieldExpr, b: FieldExpr, c: FieldExpr, d: FieldExpr) -> Poseidon:
    return Poseidon((a, b, c, d))


def as_expr(value) -> FieldExpr:
    if isinstance(value, int):
        return Const(value % FIELD_MODULUS)
    return value


_NOIR_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\0": "\\0",
}


def noir_string(text: str) -> str:
    """quote text as a Noir string literal"""
    return '"' + "".join(_NOIR_ESCAPES.get(ch, ch) for ch in text) + '"'


def render(expr: FieldExpr) -> str:
    """Render a field expression as Noir source."""
    if isinstance(expr, Const):
        return str(expr.value % FIELD_MODULUS)
    if isinstance(expr, StrField):
        return f"Field::from_le_bytes(std::hash::blake2s({noir_string(expr.text)}.as_bytes()))"
    if isinstance(expr, Poseidon):
        args = ", ".join(render(x) for x in expr.inputs)
        return f"{POSEIDON2}([{args}], {len(expr.inputs)})"
    if isinstance(expr, Ref):
        return expr.text
    raise TypeError(f"not a field expression: {expr!r}")


def str_to_field(text: str) -> int:
    """
    Host-side StrField.

    Args:
        text: string to hash

    Returns:
        blake2s-256 digest as a little-endian integer reduced into the field
    """
    digest = hashlib.blake2s(text.encode("utf-8")).digest()
    return int.from_bytes(digest, "little") % FIELD_MODULUS
