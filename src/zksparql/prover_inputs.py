"""
step 3 helpers: turn one witness into the concrete inputs of one proof.
"""

from typing import List

from rdflib import Literal

from zksparql.codec import TermCodec
from zksparql.errors import WitnessBindingError
from zksparql.ir import CustomComputed, HiddenInput, Input, Static
from zksparql.metadata import Metadata, ProverInputs, TripleInput
from zksparql.store import SignedDataset
from zksparql.witness import Witness


def _committed_term(entry, witness: Witness):
    if isinstance(entry, Input):
        return witness.quads[entry.slot][entry.position]
    if isinstance(entry, Static):
        return entry.term
    raise WitnessBindingError(f"hidden input source must be an input slot or a constant: {entry!r}")


def hidden_values(entries: List[HiddenInput], witness: Witness, codec: TermCodec) -> List[int]:
    """
    compute the hidden inputs of one proof, in plan order

    openings of input slots and constants are the term's inner encoding;
    custom entries are single literal components
    """
    values = []
    for i, entry in enumerate(entries):
        if isinstance(entry, CustomComputed):
            term = _committed_term(entry.input, witness)
            if not isinstance(term, Literal):
                raise WitnessBindingError(f"hidden input {i} ({entry.kind}) needs a literal, got {term.n3()}")
            values.append(codec.component(entry.kind, term))
        else:
            values.append(codec.inner(_committed_term(entry, witness)))
    return values


def build_prover_inputs(witness: Witness, metadata: Metadata, signed: SignedDataset,
                        codec: TermCodec) -> ProverInputs:
    """assemble the record main() consumes for one solution"""
    if signed.depth != metadata.treeDepth:
        raise WitnessBindingError(
            f"signed tree has depth {signed.depth}, circuit expects {metadata.treeDepth}"
        )
    bgp = []
    for index in witness.leaf_indices:
        proof = signed.proof(index)
        bgp.append(TripleInput(
            terms=[str(x) for x in signed.encodings[index]],
            path=[str(x) for x in proof.siblings],
            directions=list(proof.directions),
        ))

    variables = {}
    for name in metadata.variables:
        variables[name] = str(codec.encode(witness.bindings[name]))

    hidden = hidden_values(metadata.hidden_entries(), witness, codec)
    return ProverInputs(
        public_key_x=list(signed.public_key_x),
        public_key_y=list(signed.public_key_y),
        signature=list(signed.signature),
        root=str(signed.root),
        bgp=bgp,
        variables=variables,
        hidden=[str(v) for v in hidden],
    )
