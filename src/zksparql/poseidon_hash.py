"""
Poseidon2 Hash Integration for Python

Provides Poseidon2 hash computation by calling a Node.js subprocess.
This bridges the gap between Python code and the @zkpassport/poseidon2
implementation, which matches Noir's std::hash::poseidon2 sponge.
"""

import subprocess
import json
from typing import List, Sequence
from pathlib import Path

from zksparql.errors import OracleError

# path to the Node.js bridge script (shipped next to this module)
BRIDGE_SCRIPT = Path(__file__).parent / "poseidon2_bridge.js"


class PoseidonBridge:
    """Poseidon2 hash implementation via Node.js bridge."""

    def __init__(self, node_bin: str = "node", script: Path = BRIDGE_SCRIPT, timeout: int = 10):
        self.node_bin = node_bin
        self.script = script
        self.timeout = timeout

    def _run_bridge(self, command: str, args: List[str]) -> str:
        """Run poseidon2_bridge.js with given command and arguments."""
        cmd = [self.node_bin, str(self.script), command] + args

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            raise OracleError(f"Poseidon2 bridge error: {e.stderr}")
        except subprocess.TimeoutExpired:
            raise OracleError("Poseidon2 bridge timeout")
        except FileNotFoundError:
            raise OracleError(f"node executable not found: {self.node_bin}")

    def __call__(self, inputs: Sequence[int]) -> int:
        """
        Hash a list of field elements with Poseidon2.

        Args:
            inputs: field elements (2 or 4 of them in this project)

        Returns:
            the digest as an integer
        """
        args = [str(x) for x in inputs]
        return int(self._run_bridge("hash", args), 16)

    def hash_many(self, batches: Sequence[Sequence[int]]) -> List[int]:
        """Hash several input lists with one node process."""
        if not batches:
            return []
        payload = json.dumps([[str(x) for x in batch] for batch in batches])
        json_result = self._run_bridge("batch", [payload])
        return [int(h, 16) for h in json.loads(json_result)]


if __name__ == "__main__":
    # Test the bridge
    print("Testing Poseidon2 bridge...")
    bridge = PoseidonBridge()
    h = bridge([1, 2])
    print(f"   Poseidon2(1, 2) = {hex(h)}")
    print(f"   batch = {[hex(x) for x in bridge.hash_many([[1, 2], [1, 2, 3, 4]])]}")
