"""Tests for whole-source analysis and scope queries."""

import pytest
from edhit.analysis import (
    MatchPatternContext, SemanticKind, SemanticToken, TokenCollector, analyze,
    collect_scope_at_offset, find_match_pattern_context,
)
from edhit.parser import parse
from edhit.syntax import Program, ProgramItem


BOOL = "def Bool := data { .true, .false }\n"


def kind_at(result, offset: int):
    """Helper: the semantic kind of the token starting at ``offset``."""
    for token in result.semantic_tokens:
        if token.offset == offset:
            return token.kind
    return None


def test_analyze_bundles_results():
    source = BOOL + "def x : Bool := true."
    result = analyze(source)
    assert result.source == source
    assert result.parse_errors == []
    assert result.type_errors == []
    assert [d.name for d in result.defs] == ["Bool", "x"]
    assert result.hover_entries
    assert len(result.program.declarations) == 2


def test_analyze_reports_errors():
    result = analyze("def x := foo\ndef y = Type")
    assert [e.message for e in result.type_errors] == ["unresolved name: foo"]
    assert result.parse_errors


def test_semantic_tokens_keywords_and_globals():
    source = BOOL + "def x : Bool := true."
    result = analyze(source)
    assert kind_at(result, 0) == SemanticKind.KEYWORD
    assert kind_at(result, source.index("data")) == SemanticKind.KEYWORD
    assert kind_at(result, source.index(":=")) == SemanticKind.OPERATOR
    assert kind_at(result, source.index("{")) == SemanticKind.PUNCTUATION

    # Declaration names and references to them are globals
    assert kind_at(result, 4) == SemanticKind.GLOBAL
    assert kind_at(result, source.index("x :")) == SemanticKind.GLOBAL
    assert kind_at(result, source.rindex("Bool")) == SemanticKind.GLOBAL


def test_semantic_tokens_constructors():
    source = BOOL + "def x : Bool := true.\ndef y := Bool.false"
    result = analyze(source)
    assert kind_at(result, source.index("true")) == SemanticKind.CONSTRUCTOR
    assert kind_at(result, source.rindex("true")) == SemanticKind.CONSTRUCTOR
    assert kind_at(result, source.rindex("false")) == SemanticKind.CONSTRUCTOR


def test_semantic_tokens_variables():
    source = "def id (A : Type) (x : A) : A := x"
    result = analyze(source)
    assert kind_at(result, source.index("A :")) == SemanticKind.VARIABLE
    assert kind_at(result, source.index("A)")) == SemanticKind.VARIABLE
    assert kind_at(result, source.rindex("x")) == SemanticKind.VARIABLE
    assert kind_at(result, source.index("Type")) == SemanticKind.TYPE


def test_semantic_tokens_are_sorted():
    result = analyze(BOOL + "def f (b : Bool) : Bool := match b { .true => b, .false => _ }")
    offsets = [t.offset for t in result.semantic_tokens]
    assert offsets == sorted(offsets)
    assert any(t.kind == SemanticKind.HOLE for t in result.semantic_tokens)


SCOPE_SOURCE = BOOL + "def f (b : Bool) : Bool := \\y. match b { .true => b, .false => y }\ndef g := Type"


def scope_names(offset: int):
    program = parse(SCOPE_SOURCE).program
    return [(e.name, e.kind) for e in collect_scope_at_offset(program, offset)]


def test_scope_in_body():
    """Locals of enclosing binders come after the globals."""
    names = scope_names(SCOPE_SOURCE.rindex("y }"))
    assert names == [
        ("Bool", "global"),
        ("true", "constructor"),
        ("false", "constructor"),
        ("f", "global"),
        ("b", "variable"),
        ("y", "variable"),
    ]


def test_scope_in_parameter_type():
    names = scope_names(SCOPE_SOURCE.index("Bool) :"))
    assert ("b", "variable") not in names
    assert ("f", "global") in names


def test_scope_excludes_later_declarations():
    names = scope_names(SCOPE_SOURCE.index("\\y"))
    assert ("g", "global") not in names


def test_scope_in_pattern_bound_branch():
    source = "def Nat := data { .zero, .succ (n : Nat) }\ndef p (n : Nat) : Nat := match n { .zero => n, .succ k => k }"
    program = parse(source).program
    names = [e.name for e in collect_scope_at_offset(program, source.rindex("k"))]
    assert names[-2:] == ["n", "k"]


def test_scope_outside_any_declaration():
    program = parse(SCOPE_SOURCE).program
    names = [e.name for e in collect_scope_at_offset(program, len(SCOPE_SOURCE) + 10)]
    assert names == ["Bool", "true", "false", "f", "g"]


def test_match_pattern_context():
    program = parse(SCOPE_SOURCE).program
    context = find_match_pattern_context(program, SCOPE_SOURCE.index(".true =>"))
    assert isinstance(context, MatchPatternContext)
    assert context.scrutinee_span.start.offset == SCOPE_SOURCE.index("b {")

    assert find_match_pattern_context(program, SCOPE_SOURCE.rindex("y }")) is None
    assert find_match_pattern_context(program, 0) is None


@pytest.mark.parametrize("source", ["", "def", "def x := match", "}}}", "def x := \\y. match y {"])
def test_analyze_is_total(source):
    result = analyze(source)
    assert isinstance(result.semantic_tokens, list)
    for offset in range(len(source) + 1):
        collect_scope_at_offset(result.program, offset)
        find_match_pattern_context(result.program, offset)


def test_analyze_long_application_spine():
    """Left-nested applications are classified without exhausting the stack."""
    source = "def T := Type\ndef x := T" + " T" * 3000
    result = analyze(source)
    assert result.parse_errors == []
    globals_ = [t for t in result.semantic_tokens if t.kind == SemanticKind.GLOBAL]
    assert len(globals_) == 3003
    program = result.program
    assert ("T", "global") in [(e.name, e.kind) for e in collect_scope_at_offset(program, 30)]
    assert find_match_pattern_context(program, 30) is None


def test_analyze_deep_nesting_is_total():
    source = "def x := " + "\\y. " * 3000 + "y"
    result = analyze(source)
    assert result.parse_errors or result.type_errors or result.semantic_tokens


def test_expression_items():
    """Bare expression items are classified and see the earlier declarations."""
    source = BOOL + "def main := match Bool.true { .true => \\z. z, .false => \\z. z }"
    program = parse(source).program
    body = program.declarations[-1].body
    program = Program(program.items[:-1] + [ProgramItem('expr', body, body.span)], program.span)

    tokens = []
    TokenCollector(tokens).collect_program(program)
    assert SemanticToken(source.index("Bool.true"), 4, SemanticKind.GLOBAL) in tokens
    assert SemanticToken(source.rindex("z"), 1, SemanticKind.VARIABLE) in tokens

    names = [(e.name, e.kind) for e in collect_scope_at_offset(program, source.rindex("z"))]
    assert names == [("Bool", "global"), ("true", "constructor"), ("false", "constructor"), ("z", "variable")]

    context = find_match_pattern_context(program, source.index(".false"))
    assert context.scrutinee_span.start.offset == source.index("Bool.true")
