"""Tests for the pretty printer."""

from edhit.core import *
from edhit.evaluator import normalize, quote
from edhit.pretty import pretty_core
from edhit.typechecker import TypeChecker, check_source
from edhit.parser import parse


def test_atoms():
    assert pretty_core(TType()) == "Type"
    assert pretty_core(TGlobal("Nat")) == "Nat"
    assert pretty_core(TCtor("Nat", "zero")) == "Nat.zero"
    assert pretty_core(TUnresolvedCtor("zero")) == "zero."
    assert pretty_core(TError()) == "<error>"


def test_variables_use_names():
    """Indices print by name, innermost last in the name list."""
    assert pretty_core(TVar(0), ["a", "b"]) == "b"
    assert pretty_core(TVar(1), ["a", "b"]) == "a"


def test_variables_without_names():
    assert pretty_core(TVar(0)) == "@0"
    assert pretty_core(TVar(3), ["a"]) == "@3"


def test_application_parenthesises_arguments():
    term = TApp(TApp(TGlobal("f"), TGlobal("x")), TApp(TGlobal("g"), TGlobal("y")))
    assert pretty_core(term) == "f x (g y)"


def test_lambda_head_is_parenthesised():
    term = TApp(TLam("x", TVar(0)), TType())
    assert pretty_core(term) == "(\\x. x) Type"


def test_pi_and_arrow():
    assert pretty_core(TPi("A", TType(), TVar(0))) == "(A : Type) -> A"
    assert pretty_core(TPi("_", TGlobal("A"), TGlobal("B"))) == "A -> B"

    # Arrows nest to the right and parenthesise function domains
    domain = TPi("_", TGlobal("A"), TGlobal("B"))
    assert pretty_core(TPi("_", domain, TGlobal("C"))) == "(A -> B) -> C"


def test_match():
    term = TMatch(TVar(0), (
        TBranch("zero", (), TGlobal("z")),
        TBranch("succ", ("k",), TApp(TGlobal("s"), TVar(0))),
    ))
    assert pretty_core(term, ["n"]) == "match n { .zero => z, .succ k => s k }"


def test_projection():
    assert pretty_core(TProj(TGlobal("Bool"), "true")) == "Bool.true"


NAT = """
def Nat := data { .zero, .succ (n : Nat) }
def add (m : Nat) (n : Nat) : Nat := match m {
  .zero => n,
  .succ k => succ. (add k n)
}
def two : Nat := succ. (succ. zero.)
def four : Nat := add two two
def pick (n : Nat) : Nat -> Nat := match n { .zero => \\x. x, .succ k => \\x. add k x }
"""


def test_normal_forms_check_again():
    """Printed normal forms parse and check to the same type."""
    checker = TypeChecker()
    result = checker.check_program(parse(NAT).program)
    assert result.errors == []
    ctx = checker.context
    types = {d.name: d.type for d in result.defs}

    texts = {
        "four": pretty_core(normalize(ctx.env, TGlobal("four"))),
        "add": pretty_core(quote(0, ctx.globals["add"].value.force())),
        "pick": pretty_core(quote(0, ctx.globals["pick"].value.force())),
    }
    for name, text in texts.items():
        source = NAT + f"def again : {types[name]} := {text}\n"
        again = check_source(source)
        assert again.parse_errors == [], (text, again.parse_errors)
        assert again.errors == [], (text, [e.message for e in again.errors])
        assert next(d for d in again.defs if d.name == "again").type == types[name]


def test_shadowing_binders_are_renamed():
    """A binder that would capture an outer variable gets a numbered name."""
    assert pretty_core(TLam("x", TLam("x", TVar(1)))) == "\\x. \\x1. x"
    assert pretty_core(TLam("x", TLam("x", TVar(0)))) == "\\x. \\x1. x1"
    assert pretty_core(TPi("A", TType(), TPi("A", TVar(0), TVar(1)))) == "(A : Type) -> (A1 : A) -> A"
    assert pretty_core(TLam("x", TVar(0)), ["x", "x1"]) == "\\x2. x2"


def test_binders_do_not_capture_globals():
    assert pretty_core(TLam("f", TApp(TGlobal("f"), TVar(0)))) == "\\f1. f f1"
    assert pretty_core(TLam("Nat", TCtor("Nat", "zero"))) == "\\Nat1. Nat.zero"


def test_match_bindings_are_renamed():
    term = TMatch(TVar(0), (TBranch("succ", ("n",), TApp(TVar(1), TVar(0))),))
    assert pretty_core(term, ["n"]) == "match n { .succ n1 => n n1 }"


ROUND_TRIP = """
def Bool := data { .true, .false }
def P := data { .mk (b : Bool) }
def h (x : Bool) : Bool -> Bool := match P.mk x { .mk y => \\x. y }
def Nat := data { .zero, .succ (n : Nat) }
def add (m : Nat) (n : Nat) : Nat := match m {
  .zero => n,
  .succ k => succ. (add k n)
}
def Maybe (A : Type) := data { .nothing, .just (x : A) }
def wrap (A : Type) (x : A) : Maybe A := just. x
def get (A : Type) (d : A) (o : Maybe A) : A := match o { .nothing => d, .just x => x }
"""


def test_printed_values_round_trip():
    """Printed values re-parse and re-check at the same type without new errors."""
    result = check_source(ROUND_TRIP)
    assert result.errors == []
    for info in result.defs:
        if info.value is None:
            continue
        source = ROUND_TRIP + f"def again : {info.type} := {info.value}\n"
        again = check_source(source)
        assert again.parse_errors == [], (info.value, again.parse_errors)
        assert again.errors == [], (info.value, [e.message for e in again.errors])
        assert next(d for d in again.defs if d.name == "again").type == info.type


def test_printed_shadowing_value_keeps_its_meaning():
    result = check_source(ROUND_TRIP)
    h = next(d for d in result.defs if d.name == "h")
    assert h.value == "\\x. \\x1. x"

    source = ROUND_TRIP + f"def h2 : {h.type} := {h.value}\n"
    checker = TypeChecker()
    assert checker.check_program(parse(source).program).errors == []
    for name in ("h", "h2"):
        term = TApp(TApp(TGlobal(name), TCtor("Bool", "true")), TCtor("Bool", "false"))
        assert pretty_core(normalize(checker.context.env, term)) == "Bool.true"
