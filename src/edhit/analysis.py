"""Whole-source analysis for editor-style consumers.

``analyze`` runs the full pipeline once and bundles everything a front end
needs: diagnostics, checked definitions, hover entries and a classification
of source ranges into semantic tokens. ``collect_scope_at_offset`` lists the
names visible at a position in a parsed program.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional

from .syntax import *
from .lexer import Lexer, TokenType
from .parser import parse
from .errors import ParseDiagnostic, TypeDiagnostic
from .typechecker import DefInfo, HoverEntry, check_program


class SemanticKind(Enum):
    KEYWORD = 'keyword'
    VARIABLE = 'variable'
    GLOBAL = 'global'
    CONSTRUCTOR = 'constructor'
    TYPE = 'type'
    PUNCTUATION = 'punctuation'
    HOLE = 'hole'
    OPERATOR = 'operator'


@dataclass(frozen=True)
class SemanticToken:
    offset: int
    length: int
    kind: SemanticKind


@dataclass
class AnalysisResult:
    source: str
    program: Program
    parse_errors: List[ParseDiagnostic]
    type_errors: List[TypeDiagnostic]
    semantic_tokens: List[SemanticToken]
    defs: List[DefInfo]
    hover_entries: List[HoverEntry]


TOKEN_KINDS = {
    TokenType.DEF: SemanticKind.KEYWORD,
    TokenType.DATA: SemanticKind.KEYWORD,
    TokenType.MATCH: SemanticKind.KEYWORD,
    TokenType.TYPE: SemanticKind.TYPE,
    TokenType.UNDERSCORE: SemanticKind.HOLE,
    TokenType.ARROW: SemanticKind.OPERATOR,
    TokenType.FAT_ARROW: SemanticKind.OPERATOR,
    TokenType.COLON_EQ: SemanticKind.OPERATOR,
    TokenType.COMMA: SemanticKind.PUNCTUATION,
    TokenType.PIPE: SemanticKind.PUNCTUATION,
    TokenType.COLON: SemanticKind.PUNCTUATION,
    TokenType.BACKSLASH: SemanticKind.PUNCTUATION,
    TokenType.DOT: SemanticKind.PUNCTUATION,
    TokenType.LPAREN: SemanticKind.PUNCTUATION,
    TokenType.RPAREN: SemanticKind.PUNCTUATION,
    TokenType.LBRACE: SemanticKind.PUNCTUATION,
    TokenType.RBRACE: SemanticKind.PUNCTUATION,
    TokenType.SLASHDASH: SemanticKind.PUNCTUATION,
}


def analyze(source: str) -> AnalysisResult:
    """Parse, check and classify ``source``. Never raises."""
    tokens: List[SemanticToken] = []

    # Keywords and punctuation come straight from the lexer
    for token in Lexer(source).tokenize():
        kind = TOKEN_KINDS.get(token.type)
        length = token.span.end.offset - token.span.start.offset
        if kind is not None and length > 0:
            tokens.append(SemanticToken(token.span.start.offset, length, kind))

    # Identifiers are classified from the syntax tree
    parsed = parse(source)
    collector = TokenCollector(tokens)
    collector.collect_program(parsed.program)
    tokens.sort(key=lambda t: t.offset)

    result = check_program(parsed.program)
    reported = {e.span for e in result.errors}
    type_errors = list(result.errors) + [
        TypeDiagnostic(span, "recursion limit exceeded while analysing this item")
        for span in collector.skipped
        if span not in reported
    ]
    return AnalysisResult(
        source=source,
        program=parsed.program,
        parse_errors=parsed.errors,
        type_errors=type_errors,
        semantic_tokens=tokens,
        defs=result.defs,
        hover_entries=result.hover_entries,
    )


class TokenCollector:
    """Classifies identifier occurrences as variables, globals or constructors."""

    def __init__(self, tokens: List[SemanticToken]):
        self.tokens = tokens
        # Items too deeply nested to classify
        self.skipped: List[Span] = []

    def add(self, span: Span, kind: SemanticKind) -> None:
        length = span.end.offset - span.start.offset
        if length > 0:
            self.tokens.append(SemanticToken(span.start.offset, length, kind))

    def collect_program(self, program: Program) -> None:
        for item in program.items:
            try:
                if item.kind == 'decl':
                    self.collect_def(item.value)
                else:
                    self.collect_expr(item.value, frozenset())
            except RecursionError:
                self.skipped.append(item.span)

    def collect_def(self, decl: Def) -> None:
        self.add(decl.name.span, SemanticKind.GLOBAL)
        locals_ = self.collect_params(decl.params, frozenset())
        if decl.return_type is not None:
            self.collect_expr(decl.return_type, locals_)
        self.collect_expr(decl.body, locals_)

    def collect_params(self, params: List[Param], locals_: FrozenSet[str]) -> FrozenSet[str]:
        for param in params:
            self.add(param.name.span, SemanticKind.VARIABLE)
            self.collect_expr(param.ty, locals_)
            locals_ = locals_ | {param.name.value}
        return locals_

    def collect_expr(self, expr: Expr, locals_: FrozenSet[str]) -> None:
        # Application spines are left-nested; walk them without recursing
        args = []
        while isinstance(expr, App):
            args.append(expr.arg)
            expr = expr.func
        for arg in reversed(args):
            self.collect_expr(arg, locals_)

        if isinstance(expr, Var):
            kind = SemanticKind.VARIABLE if expr.name in locals_ else SemanticKind.GLOBAL
            self.add(expr.span, kind)

        elif isinstance(expr, Lam):
            self.collect_expr(expr.body, locals_ | {expr.param})

        elif isinstance(expr, Pi):
            self.add(expr.param.name.span, SemanticKind.VARIABLE)
            self.collect_expr(expr.param.ty, locals_)
            self.collect_expr(expr.body, locals_ | {expr.param.name.value})

        elif isinstance(expr, Arrow):
            self.collect_expr(expr.domain, locals_)
            self.collect_expr(expr.codomain, locals_)

        elif isinstance(expr, Match):
            self.collect_expr(expr.scrutinee, locals_)
            for branch in expr.branches:
                self.collect_expr(branch.body, locals_ | set(branch.pattern.args))

        elif isinstance(expr, Data):
            for ctor in expr.constructors:
                self.add(ctor.name.span, SemanticKind.CONSTRUCTOR)
                self.collect_params(ctor.params, locals_)

        elif isinstance(expr, Proj):
            self.collect_expr(expr.expr, locals_)
            self.add(expr.name.span, SemanticKind.CONSTRUCTOR)

        elif isinstance(expr, Variant):
            if isinstance(expr.expr, Var):
                self.add(expr.expr.span, SemanticKind.CONSTRUCTOR)
            else:
                self.collect_expr(expr.expr, locals_)


# Scope queries

@dataclass(frozen=True)
class ScopeEntry:
    name: str
    kind: str  # 'variable', 'constructor' or 'global'


def collect_scope_at_offset(program: Program, offset: int) -> List[ScopeEntry]:
    """Names in scope at ``offset``, globals first and innermost locals last.

    Globals come from the declarations before the one containing ``offset``
    (plus that declaration itself, for recursion); locals from the binders
    enclosing ``offset``.
    """
    scope: List[ScopeEntry] = []

    containing = None
    for i, item in enumerate(program.items):
        if item.span.contains(offset):
            containing = i
            break

    limit = len(program.items) if containing is None else containing
    for item in program.items[:limit]:
        if item.kind == 'decl':
            decl = item.value
            scope.append(ScopeEntry(decl.name.value, 'global'))
            if isinstance(decl.body, Data):
                for ctor in decl.body.constructors:
                    scope.append(ScopeEntry(ctor.name.value, 'constructor'))

    if containing is not None:
        item = program.items[containing]
        if item.kind == 'decl':
            _def_scope(item.value, offset, scope)
        else:
            _expr_scope(item.value, offset, scope)
    return scope


def _variables(names, scope: List[ScopeEntry]) -> None:
    for name in names:
        if name and name != '_':
            scope.append(ScopeEntry(name, 'variable'))


def _def_scope(decl: Def, offset: int, scope: List[ScopeEntry]) -> None:
    scope.append(ScopeEntry(decl.name.value, 'global'))

    in_body = decl.body.span.contains(offset)
    in_return = decl.return_type is not None and decl.return_type.span.contains(offset)
    if in_body or in_return:
        _variables([p.name.value for p in decl.params], scope)
        _expr_scope(decl.body if in_body else decl.return_type, offset, scope)
        return

    _params_scope(decl.params, offset, scope)


def _params_scope(params: List[Param], offset: int, scope: List[ScopeEntry]) -> None:
    for i, param in enumerate(params):
        if param.span.contains(offset):
            _variables([p.name.value for p in params[:i]], scope)
            _expr_scope(param.ty, offset, scope)
            return


def _expr_scope(expr: Optional[Expr], offset: int, scope: List[ScopeEntry]) -> None:
    # Descends one level per step so long spines do not exhaust the stack
    while expr is not None:
        expr = _scope_step(expr, offset, scope)


def _scope_step(expr: Expr, offset: int, scope: List[ScopeEntry]) -> Optional[Expr]:
    """Add the binders ``expr`` puts around ``offset``; return the child to descend into."""
    if isinstance(expr, Lam):
        if expr.body.span.contains(offset):
            _variables([expr.param], scope)
            return expr.body

    elif isinstance(expr, Pi):
        if expr.body.span.contains(offset):
            _variables([expr.param.name.value], scope)
            return expr.body
        if expr.param.span.contains(offset):
            return expr.param.ty

    elif isinstance(expr, Match):
        if expr.scrutinee.span.contains(offset):
            return expr.scrutinee
        for branch in expr.branches:
            if branch.body.span.contains(offset):
                _variables(branch.pattern.args, scope)
                return branch.body

    elif isinstance(expr, (App, Arrow)):
        left, right = (expr.func, expr.arg) if isinstance(expr, App) else (expr.domain, expr.codomain)
        if left.span.contains(offset):
            return left
        if right.span.contains(offset):
            return right

    elif isinstance(expr, Data):
        for ctor in expr.constructors:
            if ctor.span.contains(offset):
                _params_scope(ctor.params, offset, scope)
                return None

    elif isinstance(expr, (Proj, Variant)):
        if expr.expr.span.contains(offset):
            return expr.expr

    return None


@dataclass(frozen=True)
class MatchPatternContext:
    """``offset`` sits in pattern position of the match on ``scrutinee_span``."""
    scrutinee_span: Span


def find_match_pattern_context(program: Program, offset: int) -> Optional[MatchPatternContext]:
    """Whether ``offset`` is inside match braces but outside the scrutinee and bodies."""
    for item in program.items:
        if not item.span.contains(offset):
            continue
        if item.kind == 'decl':
            decl = item.value
            exprs = [p.ty for p in decl.params] + [decl.return_type, decl.body]
        else:
            exprs = [item.value]
        for expr in exprs:
            if expr is not None and expr.span.contains(offset):
                return _match_in_expr(expr, offset)
    return None


def _children(expr: Expr) -> List[Expr]:
    if isinstance(expr, App):
        return [expr.func, expr.arg]
    if isinstance(expr, Lam):
        return [expr.body]
    if isinstance(expr, Pi):
        return [expr.param.ty, expr.body]
    if isinstance(expr, Arrow):
        return [expr.domain, expr.codomain]
    if isinstance(expr, Data):
        return [p.ty for ctor in expr.constructors for p in ctor.params]
    if isinstance(expr, (Proj, Variant)):
        return [expr.expr]
    return []


def _match_in_expr(expr: Expr, offset: int) -> Optional[MatchPatternContext]:
    while True:
        if isinstance(expr, Match):
            children = [expr.scrutinee] + [b.body for b in expr.branches]
        else:
            children = _children(expr)
        inner = next((c for c in children if c.span.contains(offset)), None)
        if inner is None:
            if isinstance(expr, Match) and expr.span.contains(offset):
                return MatchPatternContext(expr.scrutinee.span)
            return None
        expr = inner
