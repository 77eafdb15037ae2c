"""Parser for edhit using recursive descent.

The parser never fails: syntax errors are collected as diagnostics and the
parser resynchronises, at the next ``def`` for declarations and at the next
separator or closing brace inside lists.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, NamedTuple, Optional

from .lexer import Lexer, Token, TokenType, token_description
from .syntax import (
    Arrow, App, CtorPattern, Data, DataCtor, Def, Expr, Hole, Ident, Lam,
    Match, MatchBranch, Param, Pi, Program, ProgramItem, Proj, Span, TypeE,
    Var, Variant,
)
from .errors import ParseDiagnostic, ParseError


SEPARATORS = (TokenType.COMMA, TokenType.PIPE)

# Tokens that may start an application argument
ATOM_START = (TokenType.IDENT, TokenType.TYPE, TokenType.UNDERSCORE, TokenType.LPAREN)


class SavePoint(NamedTuple):
    position: int
    error_count: int


@dataclass
class ParseResult:
    """A parsed program together with every lexical and syntax diagnostic."""
    program: Program
    errors: List[ParseDiagnostic]


class Parser:
    """Recursive descent parser for edhit."""

    def __init__(self, tokens: List[Token], errors: Optional[List[ParseDiagnostic]] = None):
        self.tokens = tokens
        self.position = 0
        self.current_token = tokens[0]
        self.errors: List[ParseDiagnostic] = list(errors or [])

    # Token helpers

    def advance(self) -> Token:
        """Consume the current token; EOF is never consumed."""
        token = self.current_token
        if token.type != TokenType.EOF:
            self.position += 1
            self.current_token = self.tokens[self.position]
        return token

    def peek(self, offset: int = 1) -> Token:
        """Look ahead at a token."""
        pos = min(self.position + offset, len(self.tokens) - 1)
        return self.tokens[pos]

    def match(self, *token_types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        return self.current_token.type in token_types

    def consume(self, token_type: TokenType) -> bool:
        """Consume a token if it matches the type."""
        if self.current_token.type == token_type:
            self.advance()
            return True
        return False

    def expect(self, token_type: TokenType, expected: str) -> Token:
        """Consume a token of the expected type or raise ``ParseError``."""
        if self.current_token.type != token_type:
            raise ParseError(
                self.current_token.span.start,
                f"expected {expected}, got {token_description(self.current_token)}")
        return self.advance()

    def expect_or_insert(self, token_type: TokenType, expected: str) -> Token:
        """Like ``expect`` but records the error and pretends the token was there."""
        token = self.current_token
        if token.type != token_type:
            self.errors.append(ParseDiagnostic(
                token.span.start, f"expected {expected}, got {token_description(token)}"))
            return Token(token_type, '', Span(token.span.start, token.span.start))
        return self.advance()

    def expect_ident(self) -> Ident:
        token = self.current_token
        if token.type != TokenType.IDENT:
            raise ParseError(
                token.span.start, f"expected identifier, got {token_description(token)}")
        self.advance()
        return Ident(token.value, token.span)

    def is_at_end(self) -> bool:
        return self.current_token.type == TokenType.EOF

    def save(self) -> SavePoint:
        return SavePoint(self.position, len(self.errors))

    def restore(self, saved: SavePoint) -> None:
        self.position = saved.position
        self.current_token = self.tokens[saved.position]
        del self.errors[saved.error_count:]

    def skip_until(self, *token_types: TokenType) -> None:
        """Skip tokens until one of ``token_types`` or EOF."""
        while not self.is_at_end() and not self.match(*token_types):
            self.advance()

    def previous_end(self) -> int:
        """Offset where the most recently consumed token ends."""
        if self.position == 0:
            return -1
        return self.tokens[self.position - 1].span.end.offset

    # Program

    def parse_program(self) -> Program:
        """Parse a whole program, recovering at each ``def``."""
        start_span = self.current_token.span
        items: List[ProgramItem] = []

        while not self.is_at_end():
            if self.match(TokenType.DEF, TokenType.SLASHDASH):
                start = self.current_token.span.start
                try:
                    if self.consume(TokenType.SLASHDASH):
                        self.parse_declaration()  # commented out
                        continue
                    decl = self.parse_declaration()
                    items.append(ProgramItem('decl', decl, decl.span))
                except ParseError as e:
                    self.errors.append(e.to_diagnostic())
                    self.skip_until(TokenType.DEF)
                except RecursionError:
                    self.errors.append(ParseDiagnostic(start, "expression nesting too deep"))
                    self.skip_until(TokenType.DEF)
            else:
                token = self.current_token
                self.errors.append(ParseDiagnostic(
                    token.span.start,
                    f"expected declaration ('def'), got {token_description(token)}"))
                self.advance()
                self.skip_until(TokenType.DEF)

        return Program(items, start_span.join(self.current_token.span))

    # Declarations

    def parse_declaration(self) -> Def:
        if self.match(TokenType.DEF):
            return self.parse_def()
        raise ParseError(
            self.current_token.span.start,
            f"expected declaration ('def'), got {token_description(self.current_token)}")

    def parse_def(self) -> Def:
        """Parse ``def name params (: type)? := body``."""
        start = self.advance()  # def
        name = self.expect_ident()
        params = self.parse_params()

        return_type = None
        if self.consume(TokenType.COLON):
            return_type = self.parse_expr()
        self.expect(TokenType.COLON_EQ, "':='")

        body = self.parse_expr()
        return Def(name, params, return_type, body, start.span.join(body.span))

    def parse_params(self) -> List[Param]:
        params = []
        while self.match(TokenType.LPAREN):
            params.append(self.parse_param())
        return params

    def parse_param(self) -> Param:
        """Parse ``(x : A)`` or ``(_ : A)``."""
        lparen = self.advance()
        if self.match(TokenType.UNDERSCORE):
            token = self.advance()
            name = Ident('_', token.span)
        elif self.match(TokenType.IDENT):
            name = self.expect_ident()
        else:
            raise ParseError(self.current_token.span.start, "expected identifier in parameter")
        self.expect(TokenType.COLON, "':'")
        ty = self.parse_expr()
        rparen = self.expect(TokenType.RPAREN, "')'")
        return Param(name, ty, lparen.span.join(rparen.span))

    # Expressions

    def parse_expr(self) -> Expr:
        """Parse an expression."""
        if self.match(TokenType.BACKSLASH):
            return self.parse_lambda()
        if self.match(TokenType.MATCH):
            return self.parse_match()
        return self.parse_pi_or_arrow()

    def parse_lambda(self) -> Expr:
        """Parse ``\\x. body``."""
        start = self.advance()
        param = self.expect_ident()
        self.expect(TokenType.DOT, "'.'")
        body = self.parse_expr()
        return Lam(param.value, body, start.span.join(body.span))

    def parse_match(self) -> Expr:
        """Parse ``match e { .c x => body, ... }``."""
        start = self.advance()
        scrutinee = self.parse_expr()
        self.expect(TokenType.LBRACE, "'{'")

        branches: List[MatchBranch] = []
        self.parse_separated(lambda: self.try_parse_branch(branches))

        end = self.expect_or_insert(TokenType.RBRACE, "'}'")
        return Match(scrutinee, branches, start.span.join(end.span))

    def parse_separated(self, parse_item) -> None:
        """Parse a brace-delimited list body: items split by ``,`` or ``|``.

        A leading or trailing separator is allowed. Each item recovers on its
        own, so one broken item does not lose the rest of the list.
        """
        if self.match(*SEPARATORS):
            self.advance()
        if self.match(TokenType.RBRACE) or self.is_at_end():
            return
        parse_item()
        while self.match(*SEPARATORS):
            self.advance()
            if self.match(TokenType.RBRACE) or self.is_at_end():
                break
            parse_item()

    def recover_item(self, error: ParseError) -> None:
        self.errors.append(error.to_diagnostic())
        self.skip_until(TokenType.COMMA, TokenType.PIPE, TokenType.RBRACE)

    def try_parse_branch(self, branches: List[MatchBranch]) -> None:
        try:
            if self.consume(TokenType.SLASHDASH):
                self.parse_branch()
            else:
                branches.append(self.parse_branch())
        except ParseError as e:
            self.recover_item(e)

    def parse_branch(self) -> MatchBranch:
        pattern = self.parse_pattern()
        self.expect(TokenType.FAT_ARROW, "'=>'")
        body = self.parse_expr()
        return MatchBranch(pattern, body, pattern.span.join(body.span))

    def parse_pattern(self) -> CtorPattern:
        """Parse ``.name x _ y``."""
        dot = self.expect(TokenType.DOT, "'.'")
        name = self.expect_ident()
        end = name.span
        args = []
        while self.match(TokenType.IDENT, TokenType.UNDERSCORE):
            token = self.advance()
            args.append(token.value)
            end = token.span
        return CtorPattern(name.value, args, dot.span.join(end))

    # Pi / arrow

    def looks_like_pi(self) -> bool:
        return (self.match(TokenType.LPAREN)
                and self.peek().type == TokenType.IDENT
                and self.peek(2).type == TokenType.COLON)

    def parse_pi_or_arrow(self) -> Expr:
        """Parse a Pi type, an arrow type or an application."""
        if self.looks_like_pi():
            saved = self.save()
            try:
                return self.parse_pi()
            except ParseError:
                self.restore(saved)

        lhs = self.parse_app()
        if self.consume(TokenType.ARROW):
            rhs = self.parse_pi_or_arrow()
            return Arrow(lhs, rhs, lhs.span.join(rhs.span))
        return lhs

    def parse_pi(self) -> Expr:
        lparen = self.advance()
        name = self.expect_ident()
        self.expect(TokenType.COLON, "':'")
        ty = self.parse_expr()
        rparen = self.expect(TokenType.RPAREN, "')'")
        self.expect(TokenType.ARROW, "'->'")
        body = self.parse_pi_or_arrow()
        param = Param(name, ty, lparen.span.join(rparen.span))
        return Pi(param, body, lparen.span.join(body.span))

    # Application and atoms

    def parse_app(self) -> Expr:
        """Parse application by juxtaposition."""
        result = self.parse_postfix()
        while self.match(*ATOM_START):
            arg = self.parse_postfix()
            result = App(result, arg, result.span.join(arg.span))
        return result

    def parse_postfix(self) -> Expr:
        """Parse ``e.name`` and ``e.`` suffixes.

        The dot must touch the preceding token. ``e.name`` additionally
        needs the name to touch the dot; otherwise the dot ends a variant.
        """
        result = self.parse_atom()
        while self.match(TokenType.DOT) and self.current_token.span.start.offset == self.previous_end():
            dot = self.advance()
            token = self.current_token
            if token.type == TokenType.IDENT and token.span.start.offset == dot.span.end.offset:
                self.advance()
                result = Proj(result, Ident(token.value, token.span), result.span.join(token.span))
            else:
                result = Variant(result, result.span.join(dot.span))
        return result

    def parse_atom(self) -> Expr:
        token = self.current_token

        if token.type == TokenType.IDENT:
            self.advance()
            return Var(token.value, token.span)

        if token.type == TokenType.TYPE:
            self.advance()
            return TypeE(token.span)

        if token.type == TokenType.UNDERSCORE:
            self.advance()
            return Hole(token.span)

        if token.type == TokenType.LPAREN:
            self.advance()
            inner = self.parse_expr()
            self.expect(TokenType.RPAREN, "')'")
            return inner

        if token.type == TokenType.DATA:
            return self.parse_data()

        self.errors.append(ParseDiagnostic(
            token.span.start, f"expected expression, got {token_description(token)}"))
        # Leave delimiters and `def` for the enclosing recovery point
        if not self.match(TokenType.COMMA, TokenType.PIPE, TokenType.RBRACE,
                          TokenType.DEF, TokenType.EOF):
            self.advance()
        return Hole(token.span)

    def parse_data(self) -> Expr:
        """Parse ``data { .c1, .c2 (x : A) }``."""
        start = self.advance()
        self.expect(TokenType.LBRACE, "'{'")

        constructors: List[DataCtor] = []
        self.parse_separated(lambda: self.try_parse_data_ctor(constructors))

        end = self.expect_or_insert(TokenType.RBRACE, "'}'")
        return Data(constructors, start.span.join(end.span))

    def try_parse_data_ctor(self, constructors: List[DataCtor]) -> None:
        try:
            if self.consume(TokenType.SLASHDASH):
                self.parse_data_ctor()
            else:
                constructors.append(self.parse_data_ctor())
        except ParseError as e:
            self.recover_item(e)

    def parse_data_ctor(self) -> DataCtor:
        dot = self.expect(TokenType.DOT, "'.'")
        name = self.expect_ident()
        params = self.parse_params()
        end = params[-1].span if params else name.span
        return DataCtor(name, params, dot.span.join(end))


def parse(source: str) -> ParseResult:
    """Parse source code into a program plus diagnostics. Never raises."""
    lexer = Lexer(source)
    tokens = lexer.tokenize()
    parser = Parser(tokens, lexer.errors)
    program = parser.parse_program()
    return ParseResult(program, parser.errors)
