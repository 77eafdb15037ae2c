"""Pretty printing of core terms.

The output is surface syntax: constructors print as ``Data.ctor`` and match
branches as ``.ctor x y => body``, so a printed normal form can be parsed
and checked again.
"""

from __future__ import annotations
from typing import List, Optional, Sequence, Set

from .core import *


def pretty_core(term: Term, names: Optional[Sequence[str]] = None) -> str:
    """Render a core term.

    ``names`` lists the binders in scope, outermost first, and is used to
    print de Bruijn indices by name; indices beyond it print as ``@index``.
    """
    return _pretty(term, list(names or []))


def _pretty(term: Term, names: List[str]) -> str:
    if isinstance(term, TVar):
        position = len(names) - 1 - term.index
        if 0 <= position < len(names):
            return names[position]
        return f"@{term.index}"

    elif isinstance(term, TGlobal):
        return term.name

    elif isinstance(term, TApp):
        return f"{_wrap_domain(term.func, names)} {_wrap_arg(term.arg, names)}"

    elif isinstance(term, TLam):
        name = _fresh(term.name, names, term.body)
        return f"\\{name}. {_pretty(term.body, names + [name])}"

    elif isinstance(term, TPi):
        name = _fresh(term.name, names, term.codomain)
        codomain = _pretty(term.codomain, names + [name])
        if name == '_':
            return f"{_wrap_domain(term.domain, names)} -> {codomain}"
        return f"({name} : {_pretty(term.domain, names)}) -> {codomain}"

    elif isinstance(term, TType):
        return "Type"

    elif isinstance(term, TMatch):
        return _pretty_match(term, names)

    elif isinstance(term, TCtor):
        return f"{term.data_name}.{term.ctor_name}"

    elif isinstance(term, TProj):
        return f"{_wrap_arg(term.expr, names)}.{term.name}"

    elif isinstance(term, TUnresolvedCtor):
        return f"{term.name}."

    elif isinstance(term, TError):
        return "<error>"

    return f"<{type(term).__name__}>"


def _is_atom(term: Term) -> bool:
    return isinstance(term, (TVar, TGlobal, TType, TCtor, TUnresolvedCtor, TError))


def _wrap_arg(term: Term, names: List[str]) -> str:
    if _is_atom(term):
        return _pretty(term, names)
    return f"({_pretty(term, names)})"


def _wrap_domain(term: Term, names: List[str]) -> str:
    if isinstance(term, (TPi, TLam, TMatch)):
        return f"({_pretty(term, names)})"
    return _pretty(term, names)


def _pretty_match(term: TMatch, names: List[str]) -> str:
    scrutinee = _pretty(term.scrutinee, names)
    if not term.branches:
        return f"match {scrutinee} {{ }}"
    branches = []
    for branch in term.branches:
        scope = list(names)
        for binding in branch.bindings:
            scope.append(_fresh(binding, scope, branch.body))
        bindings = "".join(f" {b}" for b in scope[len(names):])
        body = _pretty(branch.body, scope)
        branches.append(f".{branch.ctor_name}{bindings} => {body}")
    return f"match {scrutinee} {{ {', '.join(branches)} }}"


def _fresh(name: str, names: List[str], body: Term) -> str:
    """``name``, numbered apart from the binders in scope and the globals ``body`` mentions."""
    if name == '_':
        return name
    taken = _mentioned_globals(body)
    if name not in names and name not in taken:
        return name
    taken.update(names)
    i = 1
    while f"{name}{i}" in taken:
        i += 1
    return f"{name}{i}"


def _mentioned_globals(term: Term) -> Set[str]:
    found: Set[str] = set()
    stack = [term]
    while stack:
        term = stack.pop()
        if isinstance(term, TGlobal):
            found.add(term.name)
        elif isinstance(term, TCtor):
            found.add(term.data_name)
        elif isinstance(term, TUnresolvedCtor):
            found.add(term.name)
        elif isinstance(term, TApp):
            stack.extend([term.func, term.arg])
        elif isinstance(term, TLam):
            stack.append(term.body)
        elif isinstance(term, TPi):
            stack.extend([term.domain, term.codomain])
        elif isinstance(term, TMatch):
            stack.append(term.scrutinee)
            stack.extend(b.body for b in term.branches)
        elif isinstance(term, TProj):
            stack.append(term.expr)
    return found
