"""Type checker for edhit using bidirectional type checking.

``infer`` synthesises a type for a core term and ``check`` verifies a term
against an expected type. Lambdas and bare constructors (``zero.``) can
only be checked, because their type is not determined by the term alone.

Checking never stops at the first problem: every failure is reported on the
context's diagnostic list and replaced by ``TError``/``VError``, which the
evaluator treats as compatible with everything, so checking carries on
without cascading errors.

Declarations come in two shapes. A ``def`` whose body is a ``data`` block
registers a data type and its constructors; any other ``def`` is a value.
Annotated values may refer to themselves: the global is installed with an
untied ``Thunk`` that is tied to the checked value afterwards.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from types import MappingProxyType

from .syntax import Data, Def, Expr, Pos, Program, Span, is_data_expr
from .core import *
from .context import Context, CtorInfo, DataInfo, empty_context
from .elaboration import elaborate_expr
from .errors import ParseDiagnostic, Trace, TypeDiagnostic
from .evaluator import closure_apply, conv, quote, unfold_global
from .parser import parse
from .pretty import pretty_core


UNKNOWN_SPAN = Span(Pos(0, 1, 1), Pos(0, 1, 1))


@dataclass
class CtorSummary:
    """A constructor and its printed type."""
    name: str
    type: str


@dataclass
class DefInfo:
    """A checked top-level definition.

    ``value`` is ``None`` for data types, which list their constructors
    instead.
    """
    name: str
    span: Span
    type: str
    value: Optional[str]
    constructors: List[CtorSummary] = field(default_factory=list)


@dataclass(frozen=True)
class HoverEntry:
    """The printed type of the term at ``span``."""
    span: Span
    type: str


@dataclass
class CheckResult:
    errors: List[TypeDiagnostic]
    defs: List[DefInfo]
    hover_entries: List[HoverEntry]


@dataclass
class SourceCheckResult:
    parse_errors: List[ParseDiagnostic]
    errors: List[TypeDiagnostic]
    defs: List[DefInfo]
    hover_entries: List[HoverEntry]


def spine(term: Term) -> Tuple[Term, List[TApp]]:
    """Split an application into its head and the application nodes, innermost first."""
    apps: List[TApp] = []
    while isinstance(term, TApp):
        apps.append(term)
        term = term.func
    apps.reverse()
    return term, apps


def instantiate(ctor_type: Value, args: Sequence[Value]) -> Value:
    """Apply a constructor type's leading Pis to data type arguments."""
    for arg in args:
        ctor_type = unfold_global(ctor_type)
        if not isinstance(ctor_type, VPi):
            return VError()
        ctor_type = closure_apply(ctor_type.codomain, arg)
    return ctor_type


def pi_arity(ty: Value, level: int) -> int:
    """Number of Pi binders at the head of ``ty``."""
    count = 0
    ty = unfold_global(ty)
    while isinstance(ty, VPi):
        ty = unfold_global(closure_apply(ty.codomain, fresh_var(ty.domain, level + count)))
        count += 1
    return count


def wrap_pis(params: Sequence[Tuple[str, Term]], body: Term) -> Term:
    for name, ty in reversed(params):
        body = TPi(name, ty, body)
    return body


def wrap_lams(params: Sequence[Tuple[str, Term]], body: Term) -> Term:
    for name, _ in reversed(params):
        body = TLam(name, body)
    return body


def is_check_only(term: Term) -> bool:
    """Lambdas and bare constructors have no type of their own."""
    head, _ = spine(term)
    return isinstance(term, TLam) or isinstance(head, TUnresolvedCtor)


class TypeChecker:
    """Bidirectional type checker.

    A checker accumulates definition summaries and hover entries while
    checking a program, so use a fresh instance per program.
    """

    def __init__(self, trace: Optional[Trace] = None):
        self.trace = trace
        self.current_span: Span = UNKNOWN_SPAN
        self.defs: List[DefInfo] = []
        self.hover_entries: List[HoverEntry] = []
        self.context: Context = empty_context()

    # Helpers

    def span_of(self, term: Term) -> Span:
        span = ann_span(term.ann)
        return span if span is not None else self.current_span

    def typed(self, term: Term, ty: Value) -> TypedAnn:
        return TypedAnn(self.span_of(term), ty)

    def error_term(self, term: Term) -> Tuple[Term, Value]:
        return TError(self.typed(term, VError())), VError()

    def data_type_name(self, ctx: Context, value: Value) -> Optional[str]:
        """Name of the data type ``value`` is an instance of, if any."""
        if isinstance(value, VGlobal) and value.unfold is None and value.name in ctx.data_types:
            return value.name
        return None

    # Inference

    def infer(self, ctx: Context, term: Term) -> Tuple[Term, Value]:
        """Infer the type of a term."""
        result, ty = self._infer(ctx, term)
        if self.trace is not None:
            context = {b.name: ctx.show(b.type) for b in list(ctx.bindings)[-3:]}
            self.trace.add_step(f"Inferring type of {type(term).__name__}",
                                span=ann_span(term.ann), context=context,
                                result=ctx.show(ty))
        return result, ty

    def _infer(self, ctx: Context, term: Term) -> Tuple[Term, Value]:
        if isinstance(term, TVar):
            binding = ctx.binding_at_index(term.index)
            if binding is None:
                ctx.report(self.span_of(term), f"invalid de Bruijn index: {term.index}")
                return self.error_term(term)
            return TVar(term.index, self.typed(term, binding.type)), binding.type

        elif isinstance(term, TGlobal):
            info = ctx.globals.get(term.name)
            if info is None:
                ctx.report(self.span_of(term), f"unresolved global: {term.name}")
                return self.error_term(term)
            return TGlobal(term.name, self.typed(term, info.type)), info.type

        elif isinstance(term, TApp):
            func, func_ty = self.infer(ctx, term.func)
            return self.infer_app(ctx, term, func, func_ty)

        elif isinstance(term, TLam):
            ctx.report(self.span_of(term), "cannot infer type of lambda; add a type annotation")
            return self.error_term(term)

        elif isinstance(term, TPi):
            domain = self.check(ctx, term.domain, VType())
            inner = ctx.bind(term.name, ctx.eval(domain))
            codomain = self.check(inner, term.codomain, VType())
            return TPi(term.name, domain, codomain, self.typed(term, VType())), VType()

        elif isinstance(term, TType):
            return TType(self.typed(term, VType())), VType()

        elif isinstance(term, TCtor):
            info = ctx.data_types.get(term.data_name)
            if info is None:
                ctx.report(self.span_of(term), f"unknown data type: {term.data_name}")
                return self.error_term(term)
            ctor = info.constructors.get(term.ctor_name)
            if ctor is None:
                ctx.report(self.span_of(term), f"unknown constructor .{term.ctor_name}")
                return self.error_term(term)
            typed = TCtor(term.data_name, term.ctor_name, info.param_count,
                          self.typed(term, ctor.type))
            return typed, ctor.type

        elif isinstance(term, TProj):
            receiver, _ = self.infer(ctx, term.expr)
            data = unfold_global(ctx.eval(receiver))
            if isinstance(data, VError):
                return self.error_term(term)
            if self.data_type_name(ctx, data) is None:
                ctx.report(self.span_of(term), "dot projection requires a data type")
                return self.error_term(term)
            return self.resolve_ctor(ctx, term, data, term.name)

        elif isinstance(term, TUnresolvedCtor):
            ctx.report(self.span_of(term),
                       f"cannot infer constructor .{term.name}; add a type annotation")
            return self.error_term(term)

        elif isinstance(term, TMatch):
            return self.infer_match(ctx, term, None)

        elif isinstance(term, TError):
            return self.error_term(term)

        raise TypeError(f"Unknown term: {type(term).__name__}")

    def infer_app(self, ctx: Context, term: TApp, func: Term, func_ty: Value) -> Tuple[Term, Value]:
        """Type an application whose function part is already checked."""
        pi = unfold_global(func_ty)
        if isinstance(pi, VPi):
            arg = self.check(ctx, term.arg, pi.domain)
            result_ty = closure_apply(pi.codomain, ctx.eval(arg))
        else:
            if not isinstance(pi, VError):
                ctx.report(self.span_of(term), "expected a function type")
            arg, _ = self.infer(ctx, term.arg)
            result_ty = VError()
        return TApp(func, arg, self.typed(term, result_ty)), result_ty

    def resolve_ctor(self, ctx: Context, term: Term, data: VGlobal, ctor_name: str) -> Tuple[Term, Value]:
        """Rewrite a constructor reference against an instance of its data type.

        The result is the constructor applied to the data type's arguments,
        typed by instantiating the constructor's parameter Pis with them.
        """
        info = ctx.data_types[data.name]
        ctor = info.constructors.get(ctor_name)
        if ctor is None:
            ctx.report(self.span_of(term), f"unknown constructor .{ctor_name}")
            return self.error_term(term)

        ty = instantiate(ctor.type, data.args)
        ann = self.typed(term, ty)
        if not data.args:
            return TCtor(data.name, ctor_name, info.param_count, ann), ty

        result: Term = TCtor(data.name, ctor_name, info.param_count)
        for arg in data.args[:-1]:
            result = TApp(result, ctx.quote(arg))
        return TApp(result, ctx.quote(data.args[-1]), ann), ty

    # Checking

    def check(self, ctx: Context, term: Term, expected: Value) -> Term:
        """Check a term against an expected type."""
        if isinstance(term, TLam):
            return self.check_lam(ctx, term, expected)

        if isinstance(term, TMatch):
            result, _ = self.infer_match(ctx, term, expected)
            return result

        head, apps = spine(term)
        if isinstance(head, TUnresolvedCtor):
            return self.check_ctor(ctx, term, head, apps, expected)

        result, ty = self.infer(ctx, term)
        if not conv(ctx.lvl, ty, expected):
            ctx.report(self.span_of(term),
                       f"type mismatch: expected {ctx.show(expected)}, got {ctx.show(ty)}")
        return result

    def check_lam(self, ctx: Context, term: TLam, expected: Value) -> Term:
        pi = unfold_global(expected)
        if isinstance(pi, VPi):
            var = fresh_var(pi.domain, ctx.lvl)
            inner = ctx.bind(term.name, pi.domain, var)
            body = self.check(inner, term.body, closure_apply(pi.codomain, var))
            return TLam(term.name, body, self.typed(term, expected))

        if isinstance(pi, VError):
            body = self.check(ctx.bind(term.name, VError()), term.body, VError())
            return TLam(term.name, body, self.typed(term, VError()))

        ctx.report(self.span_of(term), "lambda requires a function type")
        return TError(self.typed(term, VError()))

    def check_ctor(self, ctx: Context, term: Term, head: TUnresolvedCtor,
                   apps: List[TApp], expected: Value) -> Term:
        """Check ``c. a b`` by looking ``c`` up in the expected data type."""
        data = unfold_global(expected)
        if self.data_type_name(ctx, data) is None:
            if not isinstance(data, VError):
                ctx.report(self.span_of(head),
                           f"constructor .{head.name} cannot have type {ctx.show(expected)}")
            for app in apps:
                self.check(ctx, app.arg, VError())
            return TError(self.typed(term, VError()))

        func, func_ty = self.resolve_ctor(ctx, head, data, head.name)
        for app in apps:
            func, func_ty = self.infer_app(ctx, app, func, func_ty)

        if not conv(ctx.lvl, func_ty, expected):
            ctx.report(self.span_of(term),
                       f"type mismatch: expected {ctx.show(expected)}, got {ctx.show(func_ty)}")
        return func

    # Pattern matching

    def infer_match(self, ctx: Context, term: TMatch, expected: Optional[Value]) -> Tuple[Term, Value]:
        """Type a match.

        Every branch must agree with a reference type: the expected type when
        checking, otherwise the type of the first branch.
        """
        scrutinee, scrutinee_ty = self.infer(ctx, term.scrutinee)
        if not term.branches:
            ctx.report(self.span_of(term), "match expression with no branches")
            return TMatch(scrutinee, (), self.typed(term, VError())), VError()

        reference = expected
        branches = []
        for branch in term.branches:
            span = ann_span(branch.ann) or self.span_of(term)
            inner = self.bind_pattern(ctx, branch, scrutinee_ty, span)
            body, body_ty = self.check_branch_body(inner, branch.body, reference, span)
            if reference is None:
                reference = body_ty
            branches.append(TBranch(branch.ctor_name, branch.bindings, body, TypedAnn(span, body_ty)))

        return TMatch(scrutinee, tuple(branches), self.typed(term, reference)), reference

    def bind_pattern(self, ctx: Context, branch: TBranch, scrutinee_ty: Value, span: Span) -> Context:
        """Bind a branch's pattern variables at the constructor's field types."""
        data = unfold_global(scrutinee_ty)
        ctor = None
        if self.data_type_name(ctx, data) is not None:
            ctor = ctx.data_types[data.name].constructors.get(branch.ctor_name)
            if ctor is None:
                ctx.report(span, f"unknown constructor .{branch.ctor_name}")

        if ctor is None:
            for name in branch.bindings:
                ctx = ctx.bind(name, VError())
            return ctx

        ty = instantiate(ctor.type, data.args)
        arity = pi_arity(ty, ctx.lvl)
        if arity != len(branch.bindings):
            ctx.report(span, f"constructor .{branch.ctor_name} expects {arity} "
                             f"arguments, pattern binds {len(branch.bindings)}")

        for name in branch.bindings:
            ty = unfold_global(ty)
            if isinstance(ty, VPi):
                var = fresh_var(ty.domain, ctx.lvl)
                ctx = ctx.bind(name, ty.domain, var)
                ty = closure_apply(ty.codomain, var)
            else:
                ctx = ctx.bind(name, VError())
        return ctx

    def accepts(self, ctx: Context, body: Term, reference: Value) -> bool:
        """Whether a lambda or bare constructor can be checked against ``reference``."""
        target = unfold_global(reference)
        if isinstance(target, VError):
            return True
        if isinstance(body, TLam):
            return isinstance(target, VPi)
        return self.data_type_name(ctx, target) is not None

    def check_branch_body(self, ctx: Context, body: Term, reference: Optional[Value],
                          span: Span) -> Tuple[Term, Value]:
        if reference is None:
            return self.infer(ctx, body)

        if is_check_only(body):
            if self.accepts(ctx, body, reference):
                return self.check(ctx, body, reference), reference
            ctx.report(span, "branch type mismatch")
            return self.error_term(body)

        typed, ty = self.infer(ctx, body)
        if not conv(ctx.lvl, ty, reference):
            ctx.report(span, "branch type mismatch")
        return typed, ty

    # Declarations

    def check_params(self, ctx: Context, params) -> Tuple[Context, List[Tuple[str, Term]]]:
        """Check parameter types left to right, binding each parameter."""
        checked: List[Tuple[str, Term]] = []
        for param in params:
            ty = self.check(ctx, elaborate_expr(ctx, param.ty), VType())
            ctx = ctx.bind(param.name.value, ctx.eval(ty))
            checked.append((param.name.value, ty))
        return ctx, checked

    def check_declaration(self, ctx: Context, decl: Def) -> Context:
        """Check a declaration and return the context extended with it."""
        self.current_span = decl.span
        if is_data_expr(decl.body):
            ctx = self.check_data(ctx, decl)
        else:
            ctx = self.check_def(ctx, decl)

        if self.trace is not None:
            info = ctx.globals.get(decl.name.value)
            if info is not None:
                self.trace.add_step(f"Checked definition {decl.name.value}",
                                    span=decl.name.span, result=ctx.show(info.type))
        return ctx

    def check_def(self, ctx: Context, decl: Def) -> Context:
        name = decl.name.value
        inner, params = self.check_params(ctx, decl.params)
        names = [p for p, _ in params]

        if decl.return_type is not None:
            ret = self.check(inner, elaborate_expr(inner, decl.return_type), VType())
            full_type = ctx.eval(wrap_pis(params, ret))

            # The body sees the definition itself through an untied knot
            knot = Thunk.knot()
            result = ctx.define(name, full_type, knot)
            body_ctx = result
            for binding in inner.bindings:
                body_ctx = body_ctx.bind(binding.name, binding.type)
            body = self.check(body_ctx, elaborate_expr(body_ctx, decl.body), inner.eval(ret))
            knot.tie(result.eval(wrap_lams(params, body)))
            self.collect_hover(ret, names)
        else:
            body, body_ty = self.infer(inner, elaborate_expr(inner, decl.body))
            full_type = ctx.eval(wrap_pis(params, inner.quote(body_ty)))
            value = ctx.eval(wrap_lams(params, body))
            result = ctx.define(name, full_type, Thunk.ready(value))

        for i, (_, ty) in enumerate(params):
            self.collect_hover(ty, names[:i])
        self.collect_hover(body, names)

        value = result.globals[name].value.force()
        self.defs.append(DefInfo(
            name=name,
            span=decl.span,
            type=pretty_core(quote(0, full_type)),
            value=pretty_core(quote(0, value)),
        ))
        return result

    def check_data(self, ctx: Context, decl: Def) -> Context:
        name = decl.name.value
        data: Data = decl.body
        inner, params = self.check_params(ctx, decl.params)
        names = [p for p, _ in params]

        if decl.return_type is not None:
            ret = self.check(inner, elaborate_expr(inner, decl.return_type), VType())
            if not conv(inner.lvl, inner.eval(ret), VType()):
                inner.report(decl.return_type.span, "data type must have type Type")

        kind = ctx.eval(wrap_pis(params, TType()))
        # Constructor fields may mention the data type being defined
        data_ctx = ctx.define_data(name, DataInfo(len(params), kind, MappingProxyType({})))

        constructors = {}
        summaries = []
        for ctor in data.constructors:
            ctor_name = ctor.name.value
            if ctor_name in constructors:
                data_ctx.report(ctor.name.span, f"duplicate constructor .{ctor_name}")
                continue

            field_ctx = data_ctx
            for binding in inner.bindings:
                field_ctx = field_ctx.bind(binding.name, binding.type)
            field_ctx, fields = self.check_params(field_ctx, ctor.params)

            field_names = [f for f, _ in fields]
            for i, (_, ty) in enumerate(fields):
                self.collect_hover(ty, names + field_names[:i])

            # D applied to the data type's own parameters
            result_ty: Term = TGlobal(name)
            for i in range(len(params)):
                result_ty = TApp(result_ty, TVar(len(fields) + len(params) - 1 - i))

            ctor_type = data_ctx.eval(wrap_pis(params, wrap_pis(fields, result_ty)))
            constructors[ctor_name] = CtorInfo(name, ctor_type)
            summaries.append(CtorSummary(ctor_name, pretty_core(quote(0, ctor_type))))

        for i, (_, ty) in enumerate(params):
            self.collect_hover(ty, names[:i])

        result = ctx.define_data(name, DataInfo(len(params), kind, MappingProxyType(constructors)))
        self.defs.append(DefInfo(
            name=name,
            span=decl.span,
            type=pretty_core(quote(0, kind)),
            value=None,
            constructors=summaries,
        ))
        return result

    def check_expression(self, ctx: Context, expr: Expr) -> None:
        """Check a top-level expression item."""
        self.current_span = expr.span
        term, _ = self.infer(ctx, elaborate_expr(ctx, expr))
        self.collect_hover(term, [])

    def check_program(self, program: Program) -> CheckResult:
        """Check every item of a program in order."""
        ctx = empty_context()
        for item in program.items:
            try:
                if item.kind == 'decl':
                    ctx = self.check_declaration(ctx, item.value)
                else:
                    self.check_expression(ctx, item.value)
            except RecursionError:
                what = item.value.name.value if item.kind == 'decl' else "expression"
                ctx.report(item.span, f"recursion limit exceeded while checking {what}")
        self.context = ctx
        return CheckResult(ctx.errors, self.defs, self.hover_entries)

    # Hover

    def collect_hover(self, term: Term, names: List[str]) -> None:
        """Record the type of every typed subterm; ``names`` are the binders in scope."""
        ann = term.ann
        if isinstance(ann, TypedAnn) and not isinstance(ann.type, VError):
            text = pretty_core(quote(len(names), ann.type), names)
            self.hover_entries.append(HoverEntry(ann.span, text))

        if isinstance(term, TApp):
            self.collect_hover(term.func, names)
            self.collect_hover(term.arg, names)
        elif isinstance(term, TLam):
            self.collect_hover(term.body, names + [term.name])
        elif isinstance(term, TPi):
            self.collect_hover(term.domain, names)
            self.collect_hover(term.codomain, names + [term.name])
        elif isinstance(term, TMatch):
            self.collect_hover(term.scrutinee, names)
            for branch in term.branches:
                self.collect_hover(branch.body, names + list(branch.bindings))


def infer(ctx: Context, term: Term) -> Tuple[Term, Value]:
    """Infer the type of ``term`` in ``ctx``."""
    return TypeChecker().infer(ctx, term)


def check(ctx: Context, term: Term, expected: Value) -> Term:
    """Check ``term`` against ``expected`` in ``ctx``."""
    return TypeChecker().check(ctx, term, expected)


def check_declaration(ctx: Context, decl: Def) -> Context:
    return TypeChecker().check_declaration(ctx, decl)


def check_program(program: Program, trace: Optional[Trace] = None) -> CheckResult:
    """Type check a parsed program. Never raises."""
    return TypeChecker(trace).check_program(program)


def check_source(source: str, trace: Optional[Trace] = None) -> SourceCheckResult:
    """Parse and type check source code. Never raises."""
    parsed = parse(source)
    result = check_program(parsed.program, trace)
    return SourceCheckResult(parsed.errors, result.errors, result.defs, result.hover_entries)
