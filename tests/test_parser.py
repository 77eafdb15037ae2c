"""Tests for the parser."""

import pytest
from edhit.parser import Parser, parse
from edhit.lexer import lex
from edhit.syntax import *


def parse_expr(source: str):
    """Helper to parse a bare expression."""
    result = parse(f"def main := {source}")
    assert result.errors == [], result.errors
    return result.program.declarations[0].body


def names(result):
    return [d.name.value for d in result.program.declarations]


def test_parse_variables_and_type():
    """Test parsing atoms."""
    expr = parse_expr("x")
    assert isinstance(expr, Var)
    assert expr.name == "x"

    assert isinstance(parse_expr("Type"), TypeE)
    assert isinstance(parse_expr("_"), Hole)


def test_parse_application_is_left_associative():
    """Test parsing application by juxtaposition."""
    expr = parse_expr("f a b")
    assert isinstance(expr, App)
    assert isinstance(expr.func, App)
    assert expr.func.func.name == "f"
    assert expr.func.arg.name == "a"
    assert expr.arg.name == "b"


def test_parse_parenthesized_argument():
    expr = parse_expr("f (g x)")
    assert isinstance(expr, App)
    assert isinstance(expr.arg, App)
    assert expr.arg.func.name == "g"


def test_parse_lambda():
    """Test parsing lambda expressions."""
    expr = parse_expr("\\x. \\y. x")
    assert isinstance(expr, Lam)
    assert expr.param == "x"
    assert isinstance(expr.body, Lam)
    assert expr.body.param == "y"
    assert isinstance(expr.body.body, Var)


def test_parse_arrow_is_right_associative():
    """Test parsing non-dependent function types."""
    expr = parse_expr("A -> B -> C")
    assert isinstance(expr, Arrow)
    assert expr.domain.name == "A"
    assert isinstance(expr.codomain, Arrow)
    assert expr.codomain.codomain.name == "C"


def test_parse_pi():
    """Test parsing dependent function types."""
    expr = parse_expr("(A : Type) -> A -> A")
    assert isinstance(expr, Pi)
    assert expr.param.name.value == "A"
    assert isinstance(expr.param.ty, TypeE)
    assert isinstance(expr.body, Arrow)


def test_parenthesized_expression_is_not_a_pi():
    """Parentheses without a binder fall back to an arrow."""
    expr = parse_expr("(F A) -> Type")
    assert isinstance(expr, Arrow)
    assert isinstance(expr.domain, App)


def test_failed_pi_backtracks_without_leaking_errors():
    """Only the fallback parse reports an error."""
    result = parse("def T := (x : Type)")
    assert len(result.errors) == 1
    assert "')'" in result.errors[0].message


def test_parse_match():
    """Test parsing match expressions."""
    expr = parse_expr("match n { .zero => a, .succ k => f k }")
    assert isinstance(expr, Match)
    assert expr.scrutinee.name == "n"
    assert len(expr.branches) == 2

    zero, succ = expr.branches
    assert zero.pattern.name == "zero"
    assert zero.pattern.args == []
    assert succ.pattern.name == "succ"
    assert succ.pattern.args == ["k"]
    assert isinstance(succ.body, App)


def test_parse_match_with_pipes_and_wildcards():
    """Branches may be separated by '|', with a leading separator."""
    expr = parse_expr("match p { | .pair _ y => y | .none => z }")
    assert [b.pattern.name for b in expr.branches] == ["pair", "none"]
    assert expr.branches[0].pattern.args == ["_", "y"]


def test_parse_trailing_separator():
    expr = parse_expr("match b { .true => x, .false => y, }")
    assert len(expr.branches) == 2


def test_parse_data():
    """Test parsing data blocks."""
    expr = parse_expr("data { .zero, .succ (n : Nat) }")
    assert isinstance(expr, Data)
    assert [c.name.value for c in expr.constructors] == ["zero", "succ"]
    assert expr.constructors[0].params == []
    param = expr.constructors[1].params[0]
    assert param.name.value == "n"
    assert param.ty.name == "Nat"


def test_parse_projection_and_variants():
    """Dots bind tightly: adjacency decides projection versus variant."""
    expr = parse_expr("Bool.true")
    assert isinstance(expr, Proj)
    assert expr.expr.name == "Bool"
    assert expr.name.value == "true"

    expr = parse_expr("true.")
    assert isinstance(expr, Variant)
    assert isinstance(expr.expr, Var)

    expr = parse_expr("Nat.zero.")
    assert isinstance(expr, Variant)
    assert isinstance(expr.expr, Proj)


def test_parse_variant_arguments():
    """A variant followed by arguments is an application."""
    expr = parse_expr("succ. (succ. zero.)")
    assert isinstance(expr, App)
    assert isinstance(expr.func, Variant)
    assert isinstance(expr.arg, App)
    assert isinstance(expr.arg.arg, Variant)


def test_parse_definition():
    """Test parsing a definition with parameters and a return type."""
    result = parse("def id (A : Type) (x : A) : A := x")
    assert result.errors == []
    decl = result.program.declarations[0]
    assert decl.name.value == "id"
    assert [p.name.value for p in decl.params] == ["A", "x"]
    assert decl.return_type.name == "A"
    assert decl.body.name == "x"


def test_parse_wildcard_parameter():
    result = parse("def const (A : Type) (_ : A) : Type := A")
    assert result.errors == []
    assert result.program.declarations[0].params[1].name.value == "_"


def test_spans():
    """Nodes carry source spans."""
    result = parse("def x := f y")
    decl = result.program.declarations[0]
    assert decl.span.start.offset == 0
    assert decl.span.end.offset == 12
    assert decl.body.span.start.col == 10
    assert decl.name.span.start.col == 5


def test_commented_out_declaration():
    """'/-' drops the next declaration."""
    result = parse("/- def a := Type\ndef b := Type")
    assert result.errors == []
    assert names(result) == ["b"]


def test_commented_out_branch_and_constructor():
    expr = parse_expr("match b { .true => x, /- .false => y }")
    assert [br.pattern.name for br in expr.branches] == ["true"]

    expr = parse_expr("data { .a, /- .b, .c }")
    assert [c.name.value for c in expr.constructors] == ["a", "c"]


def test_unterminated_data_block():
    """An unterminated data block gives exactly one diagnostic."""
    source = "def Bad := data { .a\ndef Bool := data { .true, .false }\ndef x : Bool := true."
    result = parse(source)
    assert len(result.errors) == 1
    assert result.errors[0].message.startswith("expected '}'")
    assert names(result) == ["Bad", "Bool", "x"]
    assert [c.name.value for c in result.program.declarations[0].body.constructors] == ["a"]


def test_recover_at_next_def():
    """A broken declaration is skipped up to the next 'def'."""
    result = parse("def a : := \ndef b := Type")
    assert len(result.errors) >= 1
    assert "b" in names(result)


def test_recover_missing_expression():
    result = parse("def a := )\ndef b := Type")
    assert len(result.errors) == 1
    assert result.errors[0].message == "expected expression, got ')'"
    assert names(result) == ["a", "b"]


def test_recover_inside_list():
    """A broken list item does not lose its siblings."""
    result = parse("def D := data { .a, (oops), .b }")
    assert len(result.errors) == 1
    assert [c.name.value for c in result.program.declarations[0].body.constructors] == ["a", "b"]

    result = parse("def f := match x { .a => y, => z, .b => w }")
    assert len(result.errors) == 1
    assert [b.pattern.name for b in result.program.declarations[0].body.branches] == ["a", "b"]


def test_stray_tokens_at_top_level():
    result = parse("foo bar\ndef x := Type")
    assert len(result.errors) == 1
    assert "expected declaration" in result.errors[0].message
    assert names(result) == ["x"]


def test_lexer_errors_are_reported():
    result = parse("def x = Type")
    assert any("'='" in e.message for e in result.errors)


def test_parser_class_directly():
    parser = Parser(lex("def x := Type"))
    program = parser.parse_program()
    assert parser.errors == []
    assert len(program.items) == 1
    assert program.items[0].kind == 'decl'


@pytest.mark.parametrize("source", [
    "",
    "def",
    "def x",
    "def x :=",
    "def x := (",
    "def x := match",
    "def x := match y {",
    "def x := data {",
    "def x := data { .a (",
    "def f (x : ) := x",
    "def x := \\",
    "def x := \\y",
    "))))}}}}",
    "def def def",
    "/-",
    "| , | ,",
    "def x := " + "(" * 3000,
    "def x := " + "\\y. " * 3000 + "y",
])
def test_parse_is_total(source):
    """Parsing never raises and always returns a program."""
    result = parse(source)
    assert isinstance(result.program, Program)
    assert isinstance(result.errors, list)
