"""Elaboration from surface syntax to core terms.

Names are resolved to de Bruijn indices against a local scope that starts
with the context's bindings and grows under every binder (lambda, Pi and
pattern variables). Anything that cannot be resolved is reported on the
context and becomes ``TError``; elaboration itself never fails.

Every core node keeps the span of the surface node it came from in ``ann``.
"""

from __future__ import annotations
from typing import Optional

from .syntax import *
from .core import (
    TApp, TBranch, TCtor, TError, TGlobal, TLam, TMatch, TPi, TProj, TType,
    TUnresolvedCtor, TVar, Term,
)
from .context import Context


class Scope:
    """Local names introduced during elaboration, on top of the context."""

    __slots__ = ('ctx', 'name', 'level', 'parent', 'depth')

    def __init__(self, ctx: Context, name: Optional[str] = None, level: int = -1,
                 parent: Optional[Scope] = None):
        self.ctx = ctx
        self.name = name
        self.level = level
        self.parent = parent
        self.depth = ctx.lvl if parent is None else parent.depth + 1

    def bind(self, name: str) -> Scope:
        return Scope(self.ctx, name, self.depth, self)

    def lookup(self, name: str) -> Optional[int]:
        """Level of ``name``, searching local binders before the context."""
        scope = self
        while scope.parent is not None:
            if scope.name == name:
                return scope.level
            scope = scope.parent
        return self.ctx.lookup_name(name)

    def index_of(self, level: int) -> int:
        return self.depth - 1 - level


def elaborate_expr(ctx: Context, expr: Expr) -> Term:
    """Elaborate a surface expression in ``ctx``."""
    return Elaborator(ctx).elaborate(Scope(ctx), expr)


class Elaborator:
    """Surface to core translation for a single expression."""

    def __init__(self, ctx: Context):
        self.ctx = ctx

    def error(self, span: Span, message: str) -> Term:
        self.ctx.report(span, message)
        return TError(span)

    def elaborate(self, scope: Scope, expr: Expr) -> Term:
        if isinstance(expr, Var):
            level = scope.lookup(expr.name)
            if level is not None:
                return TVar(scope.index_of(level), expr.span)
            if expr.name in self.ctx.globals:
                return TGlobal(expr.name, expr.span)
            return self.error(expr.span, f"unresolved name: {expr.name}")

        elif isinstance(expr, App):
            func = self.elaborate(scope, expr.func)
            arg = self.elaborate(scope, expr.arg)
            return TApp(func, arg, expr.span)

        elif isinstance(expr, Lam):
            body = self.elaborate(scope.bind(expr.param), expr.body)
            return TLam(expr.param, body, expr.span)

        elif isinstance(expr, Pi):
            name = expr.param.name.value
            domain = self.elaborate(scope, expr.param.ty)
            codomain = self.elaborate(scope.bind(name), expr.body)
            return TPi(name, domain, codomain, expr.span)

        elif isinstance(expr, Arrow):
            # Non-dependent arrows share the Pi node with a placeholder binder
            domain = self.elaborate(scope, expr.domain)
            codomain = self.elaborate(scope.bind('_'), expr.codomain)
            return TPi('_', domain, codomain, expr.span)

        elif isinstance(expr, TypeE):
            return TType(expr.span)

        elif isinstance(expr, Match):
            scrutinee = self.elaborate(scope, expr.scrutinee)
            branches = tuple(self.elaborate_branch(scope, b) for b in expr.branches)
            return TMatch(scrutinee, branches, expr.span)

        elif isinstance(expr, Hole):
            return self.error(expr.span, "holes are not yet supported")

        elif isinstance(expr, Data):
            return self.error(expr.span, "data expression cannot be used here")

        elif isinstance(expr, Proj):
            inner = self.elaborate(scope, expr.expr)
            return TProj(inner, expr.name.value, expr.span)

        elif isinstance(expr, Variant):
            return self.elaborate_variant(scope, expr)

        raise TypeError(f"Unknown expression: {type(expr).__name__}")

    def elaborate_branch(self, scope: Scope, branch: MatchBranch) -> TBranch:
        pattern = branch.pattern
        branch_scope = scope
        for name in pattern.args:
            branch_scope = branch_scope.bind(name)
        body = self.elaborate(branch_scope, branch.body)
        return TBranch(pattern.name, tuple(pattern.args), body, branch.span)

    def elaborate_variant(self, scope: Scope, expr: Variant) -> Term:
        inner = expr.expr
        if isinstance(inner, Var):
            # `zero.` waits for an expected type
            return TUnresolvedCtor(inner.name, expr.span)

        if isinstance(inner, Proj):
            # `Nat.zero.` names its data type directly
            receiver = self.elaborate(scope, inner.expr)
            if isinstance(receiver, TGlobal) and receiver.name in self.ctx.data_types:
                info = self.ctx.data_types[receiver.name]
                return TCtor(receiver.name, inner.name.value, info.param_count, expr.span)
            if isinstance(receiver, TError):
                return receiver
            return self.error(expr.span, "qualified variant requires a data type")

        return self.error(expr.span, "invalid variant expression")
