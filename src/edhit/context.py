"""Typing contexts for edhit.

A ``Context`` is persistent: ``bind``, ``define`` and ``define_data`` return
new contexts and never touch the one they were called on. The one shared,
mutable piece is the diagnostic sink ``errors``, which every context derived
from the same ``check_program`` call appends to.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Iterator, List, Mapping, Optional
from types import MappingProxyType

from .core import EMPTY_GLOBALS, Env, GlobalInfo, Term, Thunk, Value, fresh_var
from .errors import TypeDiagnostic
from .evaluator import evaluate, quote
from .pretty import pretty_core
from .syntax import Span


@dataclass(frozen=True)
class Binding:
    """A local variable in the context."""
    name: str
    type: Value


@dataclass(frozen=True)
class CtorInfo:
    """A constructor's data type and full type (data parameters first)."""
    data_name: str
    type: Value


@dataclass(frozen=True)
class DataInfo:
    """A registered data type."""
    param_count: int
    kind: Value
    constructors: Mapping[str, CtorInfo]


class Bindings:
    """Persistent stack of local bindings indexed by de Bruijn level.

    Pushing shares the existing stack; looking up a level or a name walks
    from the most recent binding.
    """

    __slots__ = ('binding', 'rest', 'size')

    def __init__(self, binding: Optional[Binding] = None, rest: Optional[Bindings] = None):
        self.binding = binding
        self.rest = rest
        self.size = 0 if rest is None else rest.size + 1

    def push(self, binding: Binding) -> Bindings:
        return Bindings(binding, self)

    def at_level(self, level: int) -> Optional[Binding]:
        if level < 0 or level >= self.size:
            return None
        node = self
        for _ in range(self.size - 1 - level):
            node = node.rest
        return node.binding

    def find(self, name: str) -> Optional[int]:
        """Level of the innermost binding called ``name``."""
        node = self
        while node.size > 0:
            if node.binding.name == name:
                return node.size - 1
            node = node.rest
        return None

    def __len__(self) -> int:
        return self.size

    def __iter__(self) -> Iterator[Binding]:
        """Bindings from level 0 upwards."""
        stack = []
        node = self
        while node.size > 0:
            stack.append(node.binding)
            node = node.rest
        return reversed(stack)


EMPTY_BINDINGS = Bindings()


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


@dataclass(frozen=True)
class Context:
    """Type checking context."""
    lvl: int = 0
    bindings: Bindings = EMPTY_BINDINGS
    env: Env = field(default_factory=Env)
    data_types: Mapping[str, DataInfo] = field(default_factory=lambda: _frozen({}))
    globals: Mapping[str, GlobalInfo] = field(default_factory=lambda: EMPTY_GLOBALS)
    errors: List[TypeDiagnostic] = field(default_factory=list)

    def bind(self, name: str, ty: Value, value: Optional[Value] = None) -> Context:
        """Extend with a local variable, by default a fresh neutral of type ``ty``."""
        if value is None:
            value = fresh_var(ty, self.lvl)
        return replace(
            self,
            lvl=self.lvl + 1,
            bindings=self.bindings.push(Binding(name, ty)),
            env=self.env.extend(value),
        )

    def define(self, name: str, ty: Value, value: Optional[Thunk] = None) -> Context:
        """Add a global. ``value`` is ``None`` for names that never unfold."""
        table = dict(self.globals)
        table[name] = GlobalInfo(ty, value)
        globals = _frozen(table)
        return replace(self, globals=globals, env=self.env.with_globals(globals))

    def define_data(self, name: str, info: DataInfo) -> Context:
        """Register a data type; it is also a rigid global of type ``info.kind``."""
        table = dict(self.data_types)
        table[name] = info
        return replace(self, data_types=_frozen(table)).define(name, info.kind)

    def lookup_name(self, name: str) -> Optional[int]:
        """Level of a local variable, if bound."""
        return self.bindings.find(name)

    def binding_at_index(self, index: int) -> Optional[Binding]:
        return self.bindings.at_level(self.lvl - 1 - index)

    @property
    def names(self) -> List[str]:
        """Local variable names, outermost first."""
        return [b.name for b in self.bindings]

    def report(self, span: Optional[Span], message: str) -> None:
        self.errors.append(TypeDiagnostic(span, message))

    def eval(self, term: Term) -> Value:
        return evaluate(self.env, term)

    def quote(self, value: Value) -> Term:
        return quote(self.lvl, value)

    def show(self, value: Value) -> str:
        """Pretty print a value using the names in scope."""
        return pretty_core(quote(self.lvl, value), self.names)


def empty_context() -> Context:
    return Context()
