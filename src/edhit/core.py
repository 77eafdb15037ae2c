"""Core terms and semantic values for edhit.

Terms are the de Bruijn-indexed output of elaboration. Values are the
semantic domain used by normalization by evaluation: closures delay
evaluation under binders, neutrals are computations stuck on a variable.
The functions that move between the two (``evaluate``, ``quote``, ``conv``)
live in ``evaluator``.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Optional, Tuple
from types import MappingProxyType
from abc import ABC

from .syntax import Span


# Annotations

@dataclass(frozen=True)
class TypedAnn:
    """Annotation of a checked term: its span and inferred type."""
    span: Span
    type: 'Value'


def ann_span(ann: Any) -> Optional[Span]:
    """The source span of a term annotation, if it has one."""
    if isinstance(ann, Span):
        return ann
    if isinstance(ann, TypedAnn):
        return ann.span
    return None


# Terms

class Term(ABC):
    """Base class for core terms."""
    ann: Any


@dataclass(frozen=True)
class TVar(Term):
    """Bound variable (de Bruijn index)."""
    index: int
    ann: Any = None


@dataclass(frozen=True)
class TGlobal(Term):
    """Reference to a top-level definition or data type."""
    name: str
    ann: Any = None


@dataclass(frozen=True)
class TApp(Term):
    """Application."""
    func: Term
    arg: Term
    ann: Any = None


@dataclass(frozen=True)
class TLam(Term):
    """Lambda."""
    name: str
    body: Term
    ann: Any = None


@dataclass(frozen=True)
class TPi(Term):
    """Pi type; non-dependent arrows use the name ``_``."""
    name: str
    domain: Term
    codomain: Term
    ann: Any = None


@dataclass(frozen=True)
class TType(Term):
    """The universe."""
    ann: Any = None


@dataclass(frozen=True)
class TBranch:
    """Match branch: constructor name, pattern variable names and body."""
    ctor_name: str
    bindings: Tuple[str, ...]
    body: Term
    ann: Any = None


@dataclass(frozen=True)
class TMatch(Term):
    """Pattern match."""
    scrutinee: Term
    branches: Tuple[TBranch, ...]
    ann: Any = None


@dataclass(frozen=True)
class TCtor(Term):
    """Constructor of a data type.

    ``param_count`` is the number of data type parameters the constructor
    takes before its own arguments.
    """
    data_name: str
    ctor_name: str
    param_count: int = 0
    ann: Any = None


@dataclass(frozen=True)
class TProj(Term):
    """Qualified access ``e.name``; rewritten to a constructor by the checker."""
    expr: Term
    name: str
    ann: Any = None


@dataclass(frozen=True)
class TUnresolvedCtor(Term):
    """Bare ``name.`` waiting for an expected type to pick its data type."""
    name: str
    ann: Any = None


@dataclass(frozen=True)
class TError(Term):
    """Placeholder for anything that failed to elaborate or check."""
    ann: Any = None


# Values

class Value(ABC):
    """Base class for semantic values."""
    pass


class Neutral(ABC):
    """Base class for neutral terms."""
    pass


@dataclass(frozen=True)
class VType(Value):
    """The universe."""
    pass


@dataclass(frozen=True, eq=False)
class VPi(Value):
    """Pi type value."""
    name: str
    domain: Value
    codomain: 'Closure'


@dataclass(frozen=True, eq=False)
class VLam(Value):
    """Function value."""
    name: str
    body: 'Closure'


@dataclass(frozen=True, eq=False)
class VNeutral(Value):
    """A computation stuck on a variable, with its type."""
    type: Value
    neutral: Neutral


@dataclass(frozen=True, eq=False)
class VCtor(Value):
    """Constructor applied to arguments (data type parameters first)."""
    data_name: str
    ctor_name: str
    args: Tuple[Value, ...] = ()
    param_count: int = 0

    @property
    def fields(self) -> Tuple[Value, ...]:
        """The constructor's own arguments, without data type parameters."""
        return self.args[self.param_count:]


@dataclass(frozen=True, eq=False)
class VGlobal(Value):
    """A global applied to arguments, unfolded only on demand.

    ``unfold`` is ``None`` for names with no definition to unfold, such as
    data types.
    """
    name: str
    args: Tuple[Value, ...] = ()
    unfold: Optional['Thunk'] = None


@dataclass(frozen=True)
class VError(Value):
    """Absorbing error value."""
    pass


@dataclass(frozen=True)
class NVar(Neutral):
    """Neutral variable (de Bruijn level)."""
    level: int


@dataclass(frozen=True, eq=False)
class NApp(Neutral):
    """Neutral application."""
    head: Neutral
    arg: Value


@dataclass(frozen=True, eq=False)
class NeutralBranch:
    """A match branch kept as a closure while its scrutinee is stuck."""
    ctor_name: str
    bindings: Tuple[str, ...]
    body: 'Closure'


@dataclass(frozen=True, eq=False)
class NMatch(Neutral):
    """Match on a neutral scrutinee."""
    scrutinee: Neutral
    branches: Tuple[NeutralBranch, ...]


def fresh_var(ty: Value, level: int) -> Value:
    """A fresh variable of type ``ty`` at de Bruijn level ``level``."""
    return VNeutral(ty, NVar(level))


# Suspended values

class Thunk:
    """A memoised suspended value.

    ``Thunk.knot()`` makes a placeholder for a recursive definition: forcing
    it before ``tie`` is called yields ``VError``. A thunk whose computation
    forces the thunk itself also yields ``VError``.
    """

    __slots__ = ('_compute', '_value', '_forcing')

    def __init__(self, compute: Optional[Callable[[], Value]] = None):
        self._compute = compute
        self._value: Optional[Value] = None
        self._forcing = False

    @classmethod
    def ready(cls, value: Value) -> Thunk:
        thunk = cls()
        thunk._value = value
        return thunk

    @classmethod
    def knot(cls) -> Thunk:
        return cls()

    @property
    def is_tied(self) -> bool:
        return self._value is not None or self._compute is not None

    def tie(self, value: Value) -> None:
        """Fill in the value of a knot."""
        self._value = value
        self._compute = None

    def force(self) -> Value:
        if self._value is not None:
            return self._value
        if self._compute is None or self._forcing:
            return VError()
        self._forcing = True
        try:
            value = self._compute()
        finally:
            self._forcing = False
        self._value = value
        self._compute = None
        return value

    def __repr__(self) -> str:
        state = "forced" if self._value is not None else ("pending" if self._compute else "untied")
        return f"Thunk({state})"


# Globals and environments

@dataclass(frozen=True)
class GlobalInfo:
    """Type of a global and, when it has one, its definition."""
    type: Value
    value: Optional[Thunk] = None


EMPTY_GLOBALS: Mapping[str, GlobalInfo] = MappingProxyType({})


class Env:
    """Persistent environment of values, most recently bound first.

    Extending an environment shares the old one as its tail. The globals
    table travels with the environment so that ``TGlobal`` can be unfolded
    during evaluation.
    """

    __slots__ = ('_value', '_rest', '_size', 'globals')

    def __init__(self, globals: Optional[Mapping[str, GlobalInfo]] = None):
        self._value: Optional[Value] = None
        self._rest: Optional[Env] = None
        self._size = 0
        self.globals = globals if globals is not None else EMPTY_GLOBALS

    @classmethod
    def of(cls, values, globals: Optional[Mapping[str, GlobalInfo]] = None) -> Env:
        """Environment whose index 0 is ``values[0]``."""
        env = cls(globals)
        for value in reversed(list(values)):
            env = env.extend(value)
        return env

    def extend(self, value: Value) -> Env:
        """Extend environment with a new value."""
        env = Env.__new__(Env)
        env._value = value
        env._rest = self
        env._size = self._size + 1
        env.globals = self.globals
        return env

    def with_globals(self, globals: Mapping[str, GlobalInfo]) -> Env:
        """Same values, different globals table."""
        return Env.of(list(self), globals)

    def lookup(self, index: int) -> Value:
        """Look up a variable by de Bruijn index; out of range gives ``VError``."""
        if index < 0 or index >= self._size:
            return VError()
        node = self
        for _ in range(index):
            node = node._rest
        return node._value

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Value]:
        node = self
        while node._size > 0:
            yield node._value
            node = node._rest

    def __repr__(self) -> str:
        return f"Env(size={self._size})"


@dataclass(frozen=True, eq=False)
class Closure:
    """Closure capturing an environment and an unevaluated term."""
    env: Env
    body: Term
