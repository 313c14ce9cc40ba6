"""
Host-side evaluators for field expressions.

NativeEvaluator computes blake2s in-process and hands Poseidon2 to a hasher
callable (the node bridge by default). NargoEvaluator asks nargo itself to
print every requested value, so the host result is whatever the circuit
computes.
"""

import re
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from zksparql.errors import OracleError
from zksparql.field import (
    FIELD_MODULUS, POSEIDON2_IMPORT, Const, Poseidon, Ref, StrField, render, str_to_field,
)
from zksparql.nargo import run_nargo, write_package

Hasher = Callable[[Sequence[int]], int]


class NativeEvaluator:
    """evaluates field expressions in-process with a pluggable Poseidon2 hasher"""

    def __init__(self, hasher: Optional[Hasher] = None):
        if hasher is None:
            from zksparql.poseidon_hash import PoseidonBridge
            hasher = PoseidonBridge()
        self.hasher = hasher
        self._cache: Dict[object, int] = {}

    def evaluate(self, expr) -> int:
        cached = self._cache.get(expr)
        if cached is not None:
            return cached
        if isinstance(expr, Const):
            value = expr.value % FIELD_MODULUS
        elif isinstance(expr, StrField):
            value = str_to_field(expr.text)
        elif isinstance(expr, Poseidon):
            value = self.hasher([self.evaluate(x) for x in expr.inputs]) % FIELD_MODULUS
        elif isinstance(expr, Ref):
            raise OracleError(f"cannot evaluate circuit reference on the host: {expr.text}")
        else:
            raise TypeError(f"not a field expression: {expr!r}")
        self._cache[expr] = value
        return value

    def evaluate_many(self, exprs: Sequence) -> List[int]:
        """
        Evaluate a batch of expressions.

        When the hasher offers hash_many, every pending Poseidon node is
        hashed level by level from the leaves up, with one hash_many call
        per level instead of one hasher call per node.
        """
        hash_many = getattr(self.hasher, "hash_many", None)
        if hash_many is not None:
            self._hash_levels(exprs, hash_many)
        return [self.evaluate(e) for e in exprs]

    def _hash_levels(self, exprs: Sequence, hash_many):
        heights: Dict[object, int] = {}

        def height(expr) -> int:
            if expr in heights:
                return heights[expr]
            h = 0
            if isinstance(expr, Poseidon) and expr not in self._cache:
                h = 1 + max((height(x) for x in expr.inputs), default=0)
            heights[expr] = h
            return h

        for expr in exprs:
            height(expr)
        levels: Dict[int, List[Poseidon]] = {}
        for expr, h in heights.items():
            if h:
                levels.setdefault(h, []).append(expr)

        for h in sorted(levels):
            pending = levels[h]
            inputs = [[self.evaluate(x) for x in expr.inputs] for expr in pending]
            digests = hash_many(inputs)
            if len(digests) != len(pending):
                raise OracleError(f"hasher returned {len(digests)} digests for {len(pending)} inputs")
            for expr, digest in zip(pending, digests):
                self._cache[expr] = digest % FIELD_MODULUS


_MARKER = "zksparql:"
_OUTPUT_LINE = re.compile(re.escape(_MARKER) + r"(\d+):(0x[0-9a-fA-F]+)")


class NargoEvaluator:
    """
    Evaluates field expressions by running them through nargo.

    Each batch renders one throwaway binary whose main prints every
    expression as `zksparql:<index>:<hex>`; the values are parsed back from
    stdout. Results are memoised per rendered expression, so a value is
    only ever computed once per evaluator.
    """

    def __init__(self, nargo_bin: str = "nargo", workdir=None, timeout: Optional[int] = 120,
                 verbose: bool = False):
        self.nargo_bin = nargo_bin
        self.workdir = workdir
        self.timeout = timeout
        self.verbose = verbose
        self._cache: Dict[str, int] = {}

    def _program(self, rendered: List[str]) -> str:
        lines = [f"use {POSEIDON2_IMPORT};", "", "fn main() {"]
        for i, text in enumerate(rendered):
            lines.append(f'    print("{_MARKER}{i}:");')
            lines.append(f"    println({text});")
        lines.append("}")
        return "\n".join(lines) + "\n"

    def _run(self, rendered: List[str]) -> List[int]:
        if self.workdir is not None:
            return self._run_in(Path(self.workdir), rendered)
        with tempfile.TemporaryDirectory(prefix="zksparql_oracle_") as tmp:
            return self._run_in(Path(tmp), rendered)

    def _run_in(self, root: Path, rendered: List[str]) -> List[int]:
        write_package(root, "oracle", {"main.nr": self._program(rendered)})
        stdout = run_nargo(root, ["execute"], nargo_bin=self.nargo_bin,
                           timeout=self.timeout, verbose=self.verbose)
        values: Dict[int, int] = {}
        for match in _OUTPUT_LINE.finditer(stdout):
            values[int(match.group(1))] = int(match.group(2), 16)
        if len(values) != len(rendered):
            raise OracleError(f"nargo printed {len(values)} values, expected {len(rendered)}")
        return [values[i] for i in range(len(rendered))]

    def evaluate(self, expr) -> int:
        return self.evaluate_many([expr])[0]

    def evaluate_many(self, exprs: Sequence) -> List[int]:
        rendered = [render(e) for e in exprs]
        missing = sorted({text for text in rendered if text not in self._cache})
        if missing:
            if self.verbose:
                print(f"[nargo] evaluating {len(missing)} field expressions")
            for text, value in zip(missing, self._run(missing)):
                self._cache[text] = value
        return [self._cache[text] for text in rendered]
