"""Surface syntax tree definitions for edhit.

Every node carries the source span it was parsed from. Nodes are frozen
dataclasses, so a parsed program can be shared freely between the
elaborator, the checker and the analysis helpers.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Union
from abc import ABC


@dataclass(frozen=True)
class Pos:
    """A position in the source: 0-based offset, 1-based line and column."""
    offset: int
    line: int
    col: int

    def __repr__(self) -> str:
        return f"{self.line}:{self.col}"


@dataclass(frozen=True)
class Span:
    """A source range from ``start`` up to ``end``."""
    start: Pos
    end: Pos

    def __repr__(self) -> str:
        return f"Span({self.start!r}-{self.end!r})"

    def join(self, other: Span) -> Span:
        """Span covering ``self`` through ``other``."""
        return Span(self.start, other.end)

    def contains(self, offset: int) -> bool:
        return self.start.offset <= offset <= self.end.offset


@dataclass(frozen=True)
class Ident:
    """A name together with the span it was written at."""
    value: str
    span: Span

    def __repr__(self) -> str:
        return f"Ident({self.value})"


class Expr(ABC):
    """Base class for surface expressions."""
    span: Span


@dataclass(frozen=True)
class Var(Expr):
    """Variable or global reference."""
    name: str
    span: Span

    def __repr__(self) -> str:
        return f"Var({self.name})"


@dataclass(frozen=True)
class App(Expr):
    """Application by juxtaposition: ``f a``."""
    func: Expr
    arg: Expr
    span: Span

    def __repr__(self) -> str:
        return f"App({self.func!r}, {self.arg!r})"


@dataclass(frozen=True)
class Lam(Expr):
    """Lambda abstraction ``\\x. body``."""
    param: str
    body: Expr
    span: Span

    def __repr__(self) -> str:
        return f"Lam({self.param}. {self.body!r})"


@dataclass(frozen=True)
class Param:
    """A named, typed binder: ``(x : A)``."""
    name: Ident
    ty: Expr
    span: Span

    def __repr__(self) -> str:
        return f"Param({self.name.value} : {self.ty!r})"


@dataclass(frozen=True)
class Pi(Expr):
    """Dependent function type ``(x : A) -> B``."""
    param: Param
    body: Expr
    span: Span

    def __repr__(self) -> str:
        return f"Pi({self.param!r} -> {self.body!r})"


@dataclass(frozen=True)
class Arrow(Expr):
    """Non-dependent function type ``A -> B``."""
    domain: Expr
    codomain: Expr
    span: Span

    def __repr__(self) -> str:
        return f"Arrow({self.domain!r} -> {self.codomain!r})"


@dataclass(frozen=True)
class TypeE(Expr):
    """The universe ``Type``."""
    span: Span

    def __repr__(self) -> str:
        return "Type"


@dataclass(frozen=True)
class CtorPattern:
    """Constructor pattern ``.name x y``."""
    name: str
    args: List[str]
    span: Span

    def __repr__(self) -> str:
        args_str = "".join(f" {a}" for a in self.args)
        return f"CtorPattern(.{self.name}{args_str})"


# The only pattern form
Pattern = CtorPattern


@dataclass(frozen=True)
class MatchBranch:
    """A ``pattern => body`` branch of a match."""
    pattern: Pattern
    body: Expr
    span: Span

    def __repr__(self) -> str:
        return f"{self.pattern!r} => {self.body!r}"


@dataclass(frozen=True)
class Match(Expr):
    """Pattern match ``match e { .c x => b, ... }``."""
    scrutinee: Expr
    branches: List[MatchBranch]
    span: Span

    def __repr__(self) -> str:
        branches_str = ", ".join(repr(b) for b in self.branches)
        return f"Match({self.scrutinee!r} {{ {branches_str} }})"


@dataclass(frozen=True)
class Hole(Expr):
    """A hole ``_``."""
    span: Span

    def __repr__(self) -> str:
        return "Hole"


@dataclass(frozen=True)
class DataCtor:
    """A constructor of a data block: ``.name (x : A) ...``."""
    name: Ident
    params: List[Param]
    span: Span

    def __repr__(self) -> str:
        params_str = "".join(f" {p!r}" for p in self.params)
        return f"DataCtor(.{self.name.value}{params_str})"


@dataclass(frozen=True)
class Data(Expr):
    """Data type body ``data { .c1, .c2 (x : A) }``."""
    constructors: List[DataCtor]
    span: Span

    def __repr__(self) -> str:
        ctors_str = ", ".join(repr(c) for c in self.constructors)
        return f"Data({{ {ctors_str} }})"


@dataclass(frozen=True)
class Proj(Expr):
    """Qualified access ``e.name``."""
    expr: Expr
    name: Ident
    span: Span

    def __repr__(self) -> str:
        return f"Proj({self.expr!r}.{self.name.value})"


@dataclass(frozen=True)
class Variant(Expr):
    """Trailing-dot constructor reference ``name.`` or ``D.name.``."""
    expr: Expr
    span: Span

    def __repr__(self) -> str:
        return f"Variant({self.expr!r}.)"


@dataclass(frozen=True)
class Def:
    """Top-level definition ``def name params (: ty)? := body``."""
    name: Ident
    params: List[Param]
    return_type: Optional[Expr]
    body: Expr
    span: Span

    def __repr__(self) -> str:
        params_str = "".join(f" {p!r}" for p in self.params)
        ret_str = f" : {self.return_type!r}" if self.return_type is not None else ""
        return f"Def({self.name.value}{params_str}{ret_str} := {self.body!r})"


@dataclass(frozen=True)
class ProgramItem:
    """A top-level item: either a declaration or a bare expression."""
    kind: str  # 'decl' or 'expr'
    value: Union[Def, Expr]
    span: Span


@dataclass(frozen=True)
class Program:
    """A parsed source file."""
    items: List[ProgramItem]
    span: Span

    @property
    def declarations(self) -> List[Def]:
        return [item.value for item in self.items if item.kind == 'decl']

    def __repr__(self) -> str:
        items_str = "\n".join(repr(item.value) for item in self.items)
        return f"Program([\n{items_str}\n])"


def is_data_expr(expr: Expr) -> bool:
    """Whether ``expr`` is a ``data { ... }`` block."""
    return isinstance(expr, Data)
