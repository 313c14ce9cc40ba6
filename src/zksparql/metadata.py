"""
pydantic records exchanged between the compiler, the witness binder and the
prover: the compiled metadata contract and the per-proof input record.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

import pydantic
import tomli_w
from pydantic import ConfigDict, Field, field_validator
from rdflib import Variable
from rdflib.util import from_n3

from zksparql.ir import CustomComputed, HiddenInput, Input, Pattern, Static

METADATA_VERSION = "1"


def term_from_n3(text: str):
    """inverse of Identifier.n3(), including ?variables"""
    if text.startswith("?"):
        return Variable(text[1:])
    return from_n3(text)


class PatternRecord(pydantic.BaseModel):
    subject: str  #N3 syntax, variables as ?name
    predicate: str
    object: str

    @classmethod
    def from_pattern(cls, pattern: Pattern) -> "PatternRecord":
        s, p, o = pattern
        return cls(subject=s.n3(), predicate=p.n3(), object=o.n3())

    def to_pattern(self) -> Pattern:
        return (term_from_n3(self.subject), term_from_n3(self.predicate), term_from_n3(self.object))


class HiddenInputRecord(pydantic.BaseModel):
    type: Literal["input", "static", "custom"]
    slot: Optional[int] = None
    position: Optional[int] = None
    term: Optional[str] = None
    computed: Optional[str] = None
    source: Optional["HiddenInputRecord"] = None

    @classmethod
    def from_entry(cls, entry: HiddenInput) -> "HiddenInputRecord":
        if isinstance(entry, Input):
            return cls(type="input", slot=entry.slot, position=entry.position)
        if isinstance(entry, Static):
            return cls(type="static", term=entry.term.n3())
        if isinstance(entry, CustomComputed):
            return cls(type="custom", computed=entry.kind, source=cls.from_entry(entry.input))
        raise ValueError(f"not a hidden input: {entry!r}")

    def to_entry(self) -> HiddenInput:
        if self.type == "input":
            return Input(self.slot, self.position)
        if self.type == "static":
            return Static(term_from_n3(self.term))
        return CustomComputed(self.computed, self.source.to_entry())


HiddenInputRecord.model_rebuild()


class Metadata(pydantic.BaseModel):
    """positional contract between a compiled circuit and its witnesses"""
    variables: List[str]
    requiredInputs: List[PatternRecord]
    optionalInputs: List[PatternRecord]
    hiddenInputs: List[HiddenInputRecord]
    version: str = METADATA_VERSION
    treeDepth: int

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True)

    @classmethod
    def from_json(cls, text: str) -> "Metadata":
        return cls.model_validate_json(text)

    def required_patterns(self) -> List[Pattern]:
        return [p.to_pattern() for p in self.requiredInputs]

    def optional_patterns(self) -> List[Pattern]:
        return [p.to_pattern() for p in self.optionalInputs]

    def hidden_entries(self) -> List[HiddenInput]:
        return [h.to_entry() for h in self.hiddenInputs]


class TripleInput(pydantic.BaseModel):
    terms: List[str]
    path: List[str]
    directions: List[int]


class ProverInputs(pydantic.BaseModel):
    """concrete inputs of one proof, in the shape main() takes them"""
    model_config = ConfigDict(populate_by_name=True)

    public_key_x: List[int] = Field(alias="publicKeyX")
    public_key_y: List[int] = Field(alias="publicKeyY")
    signature: List[int]
    root: str
    bgp: List[TripleInput]
    variables: Dict[str, str]
    hidden: List[str]

    @field_validator("public_key_x", "public_key_y")
    @classmethod
    def _coordinate(cls, v):
        if len(v) != 32:
            raise ValueError(f"public key coordinate must be 32 bytes, got {len(v)}")
        return v

    @field_validator("signature")
    @classmethod
    def _signature(cls, v):
        if len(v) != 64:
            raise ValueError(f"signature must be 64 bytes, got {len(v)}")
        return v

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)

    def to_prover_toml(self) -> str:
        data = self.model_dump(by_alias=False)
        if not data["hidden"]:
            del data["hidden"]
        return tomli_w.dumps(data)
