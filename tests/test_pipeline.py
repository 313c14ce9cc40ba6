"""End-to-end run of the three step scripts on a small dataset."""
from __future__ import annotations

import json

import pandas as pd
import pytest

import build_leaf_store
import compile_query
import generate_prover_inputs
from conftest import fake_poseidon2
from zksparql.config import Settings
from zksparql.oracle import NativeEvaluator


@pytest.fixture
def offline(monkeypatch):
    """Run every step on the in-process test hasher."""
    for module in (build_leaf_store, compile_query, generate_prover_inputs):
        monkeypatch.setattr(module, "make_evaluator", lambda settings: NativeEvaluator(fake_poseidon2))
    return Settings(verbose=False)


class TestPipeline:
    """Step 1 -> step 2 -> step 3."""

    def test_full_flow(self, tmp_path, people_nquads, age_query, offline):
        artifacts = tmp_path / "artifacts"
        circuit = tmp_path / "circuit"
        query_path = tmp_path / "adults.rq"
        query_path.write_text(age_query)

        signed = build_leaf_store.main(people_nquads, artifacts_dir=artifacts, settings=offline)

        record = json.loads((artifacts / "signed_root.json").read_text())
        assert record["root"] == str(signed.root)
        assert (artifacts / "signer_key.pem").exists()
        table = pd.read_parquet(artifacts / "leaf_paths.parquet")
        assert len(table) == 4

        compiled = compile_query.main(query_path, out_dir=circuit,
                                      signed_root_path=artifacts / "signed_root.json", settings=offline)
        assert compiled.metadata.treeDepth == signed.depth
        assert (circuit / "metadata.json").exists()

        written = generate_prover_inputs.main(people_nquads, query_path, circuit_dir=circuit,
                                              signed_root_path=artifacts / "signed_root.json",
                                              settings=offline)
        assert written == [circuit / "Prover_0.toml"]
        inputs = json.loads((circuit / "inputs_0.json").read_text())
        assert inputs["root"] == str(signed.root)
        assert inputs["hidden"][1] == "23"

    def test_reuses_signing_key(self, tmp_path, people_nquads, keypair, offline):
        """An existing key signs the root instead of a fresh one."""
        from zksparql.signing import public_key_coordinates, save_keypair

        key_path = tmp_path / "key.pem"
        save_keypair(*keypair, private_path=str(key_path), public_path=str(tmp_path / "pub.pem"), verbose=False)

        signed = build_leaf_store.main(people_nquads, artifacts_dir=tmp_path / "out",
                                       key_path=key_path, settings=offline)

        x, _ = public_key_coordinates(keypair[1])
        assert signed.public_key_x == x
        assert not (tmp_path / "out" / "signer_key.pem").exists()
