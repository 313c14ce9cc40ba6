"""
nargo subprocess helpers: write a throwaway or generated Noir package and run
nargo against it.
"""

import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from zksparql.errors import OracleError

NARGO_TOML = """[package]
name = "{name}"
type = "bin"
authors = [""]

[dependencies]
"""


def write_package(project_dir, name: str, sources: Dict[str, str]) -> Path:
    """
    Write a Noir binary package.

    Args:
        project_dir: package root, created if missing
        name: package name for Nargo.toml
        sources: file name (relative to src/) -> Noir source

    Returns:
        the package root as a Path
    """
    root = Path(project_dir)
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "Nargo.toml").write_text(NARGO_TOML.format(name=name))
    for filename, text in sources.items():
        (root / "src" / filename).write_text(text)
    return root


def run_nargo(project_dir, args: List[str], nargo_bin: str = "nargo",
              timeout: Optional[int] = 120, verbose: bool = False) -> str:
    """run nargo inside project_dir and return its stdout"""
    cmd = [nargo_bin] + args
    if verbose:
        print(f"[nargo] {' '.join(cmd)} ({project_dir})")
    try:
        result = subprocess.run(
            cmd,
            cwd=str(project_dir),
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        raise OracleError(f"nargo error: {e.stderr or e.stdout}")
    except subprocess.TimeoutExpired:
        raise OracleError(f"nargo timeout after {timeout}s")
    except FileNotFoundError:
        raise OracleError(f"nargo executable not found: {nargo_bin}")


class NargoProver:
    """executes a compiled query package against one Prover.toml"""

    def __init__(self, nargo_bin: str = "nargo", timeout: Optional[int] = None, verbose: bool = False):
        self.nargo_bin = nargo_bin
        self.timeout = timeout
        self.verbose = verbose

    def execute(self, project_dir, prover_toml: str, witness_name: str = "witness") -> str:
        """
        Write Prover.toml into the package and run `nargo execute`.

        A failing assertion inside checkBinding (or a bad Merkle path or
        signature) surfaces as an OracleError carrying nargo's stderr.
        """
        root = Path(project_dir)
        (root / "Prover.toml").write_text(prover_toml)
        return run_nargo(root, ["execute", witness_name], nargo_bin=self.nargo_bin,
                         timeout=self.timeout, verbose=self.verbose)
