"""Normalization by evaluation for edhit.

``evaluate`` turns core terms into values, ``quote`` reads values back into
core terms, and ``conv`` decides definitional equality of values up to
beta, eta and unfolding of global definitions.

All three are total: failures are represented by ``VError``, which absorbs
application and matching and is convertible with everything, so one bad
subterm never produces a cascade of unrelated mismatches.
"""

from __future__ import annotations
from typing import Sequence

from .core import *


UNFOLD_LIMIT = 10_000


def evaluate(env: Env, term: Term) -> Value:
    """Evaluate a term in an environment."""
    if isinstance(term, TVar):
        return env.lookup(term.index)

    elif isinstance(term, TGlobal):
        info = env.globals.get(term.name)
        unfold = info.value if info is not None else None
        return VGlobal(term.name, (), unfold)

    elif isinstance(term, TApp):
        return v_app(evaluate(env, term.func), evaluate(env, term.arg))

    elif isinstance(term, TLam):
        return VLam(term.name, Closure(env, term.body))

    elif isinstance(term, TPi):
        return VPi(term.name, evaluate(env, term.domain), Closure(env, term.codomain))

    elif isinstance(term, TType):
        return VType()

    elif isinstance(term, TMatch):
        return v_match(env, evaluate(env, term.scrutinee), term.branches)

    elif isinstance(term, TCtor):
        return VCtor(term.data_name, term.ctor_name, (), term.param_count)

    elif isinstance(term, (TProj, TUnresolvedCtor, TError)):
        # Projections and bare constructors are rewritten by the checker
        return VError()

    raise TypeError(f"Unknown term: {type(term).__name__}")


def closure_apply(closure: Closure, arg: Value) -> Value:
    """Instantiate a closure's bound variable with ``arg``."""
    return evaluate(closure.env.extend(arg), closure.body)


def v_app(func: Value, arg: Value) -> Value:
    """Apply a function value to an argument value."""
    if isinstance(func, VLam):
        return closure_apply(func.body, arg)

    elif isinstance(func, VNeutral):
        if isinstance(func.type, VPi):
            result_type = closure_apply(func.type.codomain, arg)
        else:
            result_type = VError()
        return VNeutral(result_type, NApp(func.neutral, arg))

    elif isinstance(func, VCtor):
        # Partial constructor application
        return VCtor(func.data_name, func.ctor_name, func.args + (arg,), func.param_count)

    elif isinstance(func, VGlobal):
        unfold = None
        if func.unfold is not None:
            previous = func.unfold
            unfold = Thunk(lambda: v_app(previous.force(), arg))
        return VGlobal(func.name, func.args + (arg,), unfold)

    return VError()


def v_match(env: Env, scrutinee: Value, branches: Sequence[TBranch]) -> Value:
    """Select and evaluate the branch matching ``scrutinee``."""
    if isinstance(scrutinee, VCtor):
        for branch in branches:
            if branch.ctor_name == scrutinee.ctor_name:
                return evaluate(_bind_fields(env, scrutinee.fields, len(branch.bindings)), branch.body)
        return VError()

    elif isinstance(scrutinee, VNeutral):
        stuck = tuple(
            NeutralBranch(b.ctor_name, tuple(b.bindings), Closure(env, b.body))
            for b in branches
        )
        return VNeutral(VError(), NMatch(scrutinee.neutral, stuck))

    elif isinstance(scrutinee, VGlobal) and scrutinee.unfold is not None:
        return v_match(env, unfold_global(scrutinee), branches)

    return VError()


def _bind_fields(env: Env, fields: Sequence[Value], count: int) -> Env:
    """Extend ``env`` with exactly ``count`` pattern variables."""
    for i in range(count):
        env = env.extend(fields[i] if i < len(fields) else VError())
    return env


def unfold_global(value: Value) -> Value:
    """Unfold global definitions at the head until a rigid value appears.

    A definition that keeps unfolding to another global application for
    ``UNFOLD_LIMIT`` steps is treated as non-terminating and gives ``VError``.
    """
    for _ in range(UNFOLD_LIMIT):
        if not isinstance(value, VGlobal) or value.unfold is None:
            return value
        value = value.unfold.force()
    return VError()


def quote(level: int, value: Value, unfold: bool = False) -> Term:
    """Read a value back into a core term under ``level`` binders.

    Globals are read back by name unless ``unfold`` is set, in which case
    their definitions are unfolded. Unfolding under a binder does not
    terminate for recursive definitions that recurse on a variable.
    """
    if isinstance(value, VType):
        return TType()

    elif isinstance(value, VPi):
        domain = quote(level, value.domain, unfold)
        codomain = closure_apply(value.codomain, fresh_var(value.domain, level))
        return TPi(value.name, domain, quote(level + 1, codomain, unfold))

    elif isinstance(value, VLam):
        body = closure_apply(value.body, fresh_var(VError(), level))
        return TLam(value.name, quote(level + 1, body, unfold))

    elif isinstance(value, VNeutral):
        return quote_neutral(level, value.neutral, unfold)

    elif isinstance(value, VCtor):
        result: Term = TCtor(value.data_name, value.ctor_name, value.param_count)
        for arg in value.args:
            result = TApp(result, quote(level, arg, unfold))
        return result

    elif isinstance(value, VGlobal):
        if unfold and value.unfold is not None:
            return quote(level, unfold_global(value), unfold)
        result = TGlobal(value.name)
        for arg in value.args:
            result = TApp(result, quote(level, arg, unfold))
        return result

    return TError()


def quote_neutral(level: int, neutral: Neutral, unfold: bool = False) -> Term:
    """Read a neutral back into a core term."""
    if isinstance(neutral, NVar):
        return TVar(level - 1 - neutral.level)

    elif isinstance(neutral, NApp):
        return TApp(quote_neutral(level, neutral.head, unfold), quote(level, neutral.arg, unfold))

    elif isinstance(neutral, NMatch):
        branches = []
        for branch in neutral.branches:
            env, branch_level = _fresh_pattern_vars(branch.body.env, level, len(branch.bindings))
            body = quote(branch_level, evaluate(env, branch.body.body), unfold)
            branches.append(TBranch(branch.ctor_name, branch.bindings, body))
        return TMatch(quote_neutral(level, neutral.scrutinee, unfold), tuple(branches))

    raise TypeError(f"Unknown neutral: {type(neutral).__name__}")


def _fresh_pattern_vars(env: Env, level: int, count: int):
    for _ in range(count):
        env = env.extend(fresh_var(VError(), level))
        level += 1
    return env, level


def normalize(env: Env, term: Term, unfold: bool = True) -> Term:
    """Normalize a term by evaluation and quotation."""
    return quote(len(env), evaluate(env, term), unfold)


def _may_be_function(value: Value) -> bool:
    return isinstance(value, (VNeutral, VGlobal, VCtor))


def conv(level: int, v1: Value, v2: Value) -> bool:
    """Definitional equality of two values under ``level`` binders."""
    if isinstance(v1, VError) or isinstance(v2, VError):
        return True

    # Same global head: compare arguments before unfolding anything
    if (isinstance(v1, VGlobal) and isinstance(v2, VGlobal) and v1.name == v2.name
            and _conv_args(level, v1.args, v2.args)):
        return True

    if isinstance(v1, VGlobal) and v1.unfold is not None:
        return conv(level, unfold_global(v1), v2)
    if isinstance(v2, VGlobal) and v2.unfold is not None:
        return conv(level, v1, unfold_global(v2))

    # Eta: f == \x. b  iff  f x == b[x]
    if isinstance(v1, VLam) and _may_be_function(v2):
        x = fresh_var(VError(), level)
        return conv(level + 1, closure_apply(v1.body, x), v_app(v2, x))
    if isinstance(v2, VLam) and _may_be_function(v1):
        x = fresh_var(VError(), level)
        return conv(level + 1, v_app(v1, x), closure_apply(v2.body, x))

    if isinstance(v1, VType):
        return isinstance(v2, VType)

    elif isinstance(v1, VPi):
        if not isinstance(v2, VPi) or not conv(level, v1.domain, v2.domain):
            return False
        x = fresh_var(v1.domain, level)
        return conv(level + 1, closure_apply(v1.codomain, x), closure_apply(v2.codomain, x))

    elif isinstance(v1, VLam):
        if not isinstance(v2, VLam):
            return False
        x = fresh_var(VError(), level)
        return conv(level + 1, closure_apply(v1.body, x), closure_apply(v2.body, x))

    elif isinstance(v1, VNeutral):
        return isinstance(v2, VNeutral) and conv_neutral(level, v1.neutral, v2.neutral)

    elif isinstance(v1, VCtor):
        return (isinstance(v2, VCtor)
                and v1.data_name == v2.data_name
                and v1.ctor_name == v2.ctor_name
                and _conv_args(level, v1.args, v2.args))

    # Rigid globals with different heads or arguments
    return False


def _conv_args(level: int, args1: Sequence[Value], args2: Sequence[Value]) -> bool:
    if len(args1) != len(args2):
        return False
    return all(conv(level, a, b) for a, b in zip(args1, args2))


def conv_neutral(level: int, n1: Neutral, n2: Neutral) -> bool:
    """Structural equality of neutral terms."""
    if isinstance(n1, NVar):
        return isinstance(n2, NVar) and n1.level == n2.level

    elif isinstance(n1, NApp):
        return (isinstance(n2, NApp)
                and conv_neutral(level, n1.head, n2.head)
                and conv(level, n1.arg, n2.arg))

    elif isinstance(n1, NMatch):
        if not isinstance(n2, NMatch) or not conv_neutral(level, n1.scrutinee, n2.scrutinee):
            return False
        if len(n1.branches) != len(n2.branches):
            return False
        for b1, b2 in zip(n1.branches, n2.branches):
            if b1.ctor_name != b2.ctor_name or len(b1.bindings) != len(b2.bindings):
                return False
            env1, branch_level = _fresh_pattern_vars(b1.body.env, level, len(b1.bindings))
            env2, _ = _fresh_pattern_vars(b2.body.env, level, len(b2.bindings))
            if not conv(branch_level, evaluate(env1, b1.body.body), evaluate(env2, b2.body.body)):
                return False
        return True

    return False
