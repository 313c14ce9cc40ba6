"""
Small structured builder for Noir source files.

Declarations are kept in ordered sections (modules, uses, globals, types,
functions) and every type mentioned by a declaration must already be known,
so a generated file can never use a type before declaring it.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from zksparql.errors import InvariantViolation

BUILTIN_TYPES = {"Field", "u1", "u8", "u16", "u32", "u64", "bool", "str"}
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
INDENT = "    "


@dataclass
class Block:
    """a braced statement such as `for i in 0..N { ... }`"""
    header: str
    body: List["Statement"] = field(default_factory=list)


Statement = Union[str, Block]


def _render_statements(statements: Sequence[Statement], depth: int) -> List[str]:
    lines = []
    pad = INDENT * depth
    for stmt in statements:
        if isinstance(stmt, Block):
            lines.append(f"{pad}{stmt.header} {{")
            lines.extend(_render_statements(stmt.body, depth + 1))
            lines.append(f"{pad}}}")
        else:
            lines.append(f"{pad}{stmt}")
    return lines


class NoirDocument:
    def __init__(self, header: Optional[str] = None):
        self.header = header
        self._modules: List[str] = []
        self._uses: List[str] = []
        self._globals: List[str] = []
        self._types: List[List[str]] = []
        self._functions: List[List[str]] = []
        self.declared = set(BUILTIN_TYPES)

    def _check(self, type_text: str):
        for name in _IDENT.findall(type_text):
            if name != "pub" and name not in self.declared:
                raise InvariantViolation(f"noir type {name} used before it is declared")

    def module(self, name: str):
        self._modules.append(f"mod {name};")
        self.declared.add(name)

    def use(self, path: str, names: Sequence[str] = ()):
        if names:
            self._uses.append(f"use {path}::{{{', '.join(names)}}};")
            self.declared.update(names)
        else:
            self._uses.append(f"use {path};")
            self.declared.add(path.rsplit("::", 1)[-1])

    def global_(self, name: str, type_text: str, value: str, visibility: str = "pub(crate) "):
        self._check(type_text)
        self._globals.append(f"{visibility}global {name}: {type_text} = {value};")
        self.declared.add(name)

    def type_alias(self, name: str, target: str, visibility: str = "pub(crate) "):
        self._check(target)
        self._types.append([f"{visibility}type {name} = {target};"])
        self.declared.add(name)

    def struct(self, name: str, fields: Sequence[Tuple[str, str]], visibility: str = "pub(crate) "):
        lines = [f"{visibility}struct {name} {{"]
        for field_name, type_text in fields:
            self._check(type_text)
            lines.append(f"{INDENT}{visibility}{field_name}: {type_text},")
        lines.append("}")
        self._types.append(lines)
        self.declared.add(name)

    def function(self, name: str, params: Sequence[Tuple[str, str]], body: Sequence[Statement],
                 returns: Optional[str] = None, visibility: str = ""):
        for _, type_text in params:
            self._check(type_text)
        if returns:
            self._check(returns)
        signature = ", ".join(f"{p}: {t}" for p, t in params)
        arrow = f" -> {returns}" if returns else ""
        lines = [f"{visibility}fn {name}({signature}){arrow} {{"]
        lines.extend(_render_statements(body, 1))
        lines.append("}")
        self._functions.append(lines)
        self.declared.add(name)

    def render(self) -> str:
        sections: List[List[str]] = []
        if self.header:
            sections.append([f"// {line}" for line in self.header.splitlines()])
        for simple in (self._modules, self._uses, self._globals):
            if simple:
                sections.append(list(simple))
        for block in self._types + self._functions:
            sections.append(block)
        return "\n\n".join("\n".join(lines) for lines in sections) + "\n"
