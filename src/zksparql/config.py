"""
runtime settings, read from ZKSPARQL_* environment variables
"""

import os
from pathlib import Path
from typing import Literal, Optional

import pydantic

from zksparql.oracle import NargoEvaluator, NativeEvaluator
from zksparql.poseidon_hash import PoseidonBridge


class Settings(pydantic.BaseModel):
    backend: Literal["nargo", "bridge"] = "nargo"  #how host-side hashes are computed
    nargo_bin: str = "nargo"
    node_bin: str = "node"
    timeout: int = 120
    artifacts_dir: Path = Path("artifacts")
    tree_depth: Optional[int] = None
    verbose: bool = True

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        env = {
            "backend": os.environ.get("ZKSPARQL_BACKEND"),
            "nargo_bin": os.environ.get("ZKSPARQL_NARGO"),
            "node_bin": os.environ.get("ZKSPARQL_NODE"),
            "timeout": os.environ.get("ZKSPARQL_TIMEOUT"),
            "artifacts_dir": os.environ.get("ZKSPARQL_ARTIFACTS"),
            "tree_depth": os.environ.get("ZKSPARQL_TREE_DEPTH"),
            "verbose": os.environ.get("ZKSPARQL_VERBOSE"),
        }
        values = {k: v for k, v in env.items() if v is not None}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def make_evaluator(settings: Settings):
    """field evaluator for the configured hash backend"""
    if settings.backend == "bridge":
        return NativeEvaluator(PoseidonBridge(node_bin=settings.node_bin, timeout=settings.timeout))
    return NargoEvaluator(nargo_bin=settings.nargo_bin, timeout=settings.timeout, verbose=settings.verbose)
