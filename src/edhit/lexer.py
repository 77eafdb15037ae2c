"""Lexer for edhit."""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional

from .syntax import Pos, Span
from .errors import ParseDiagnostic


class TokenType(Enum):
    """Token types for edhit."""
    # Keywords
    DATA = auto()       # data
    DEF = auto()        # def
    MATCH = auto()      # match
    TYPE = auto()       # Type

    # Symbols
    COLON = auto()      # :
    COLON_EQ = auto()   # :=
    ARROW = auto()      # ->
    FAT_ARROW = auto()  # =>
    BACKSLASH = auto()  # \
    DOT = auto()        # .
    LPAREN = auto()     # (
    RPAREN = auto()     # )
    LBRACE = auto()     # {
    RBRACE = auto()     # }
    COMMA = auto()      # ,
    PIPE = auto()       # |
    UNDERSCORE = auto() # _
    SLASHDASH = auto()  # /-

    IDENT = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    """A lexical token."""
    type: TokenType
    value: str
    span: Span

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def column(self) -> int:
        return self.span.start.col

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}, {self.column})"


KEYWORDS = {
    'data': TokenType.DATA,
    'def': TokenType.DEF,
    'match': TokenType.MATCH,
    'Type': TokenType.TYPE,
}

SYMBOLS = {
    ',': TokenType.COMMA,
    '\\': TokenType.BACKSLASH,
    '.': TokenType.DOT,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
}

# Characters that can never be part of an identifier
RESERVED_CHARS = frozenset(',:\\.(){}=-_')

WHITESPACE = frozenset(' \t\n\r')


def is_ident_char(ch: str) -> bool:
    """Identifiers are maximal runs of anything but whitespace and reserved punctuation."""
    return ch not in WHITESPACE and ch not in RESERVED_CHARS


class Lexer:
    """Lexical analyzer for edhit.

    The lexer never raises: an illegal character is recorded in ``errors``
    and skipped.
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []
        self.errors: List[ParseDiagnostic] = []

    def pos(self) -> Pos:
        """The current source position."""
        return Pos(self.position, self.line, self.column)

    def current_char(self) -> Optional[str]:
        """Get the current character."""
        if self.position >= len(self.source):
            return None
        return self.source[self.position]

    def peek_char(self, offset: int = 1) -> Optional[str]:
        """Peek at a character ahead."""
        pos = self.position + offset
        if pos >= len(self.source):
            return None
        return self.source[pos]

    def advance(self) -> None:
        """Move to the next character."""
        if self.position < len(self.source):
            if self.source[self.position] == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.position += 1

    def at_end(self) -> bool:
        return self.position >= len(self.source)

    def skip_whitespace(self) -> None:
        while not self.at_end() and self.current_char() in WHITESPACE:
            self.advance()

    def skip_line_comment(self) -> None:
        while not self.at_end() and self.current_char() != '\n':
            self.advance()

    def skip_block_comment(self) -> None:
        """Skip a nested ``//[ ... //]`` comment; the opener is already consumed."""
        depth = 1
        while depth > 0 and not self.at_end():
            if self.current_char() == '/' and self.peek_char() == '/' and self.peek_char(2) == '[':
                self.advance()
                self.advance()
                self.advance()
                depth += 1
            elif self.current_char() == '/' and self.peek_char() == '/' and self.peek_char(2) == ']':
                self.advance()
                self.advance()
                self.advance()
                depth -= 1
            else:
                self.advance()

    def make_token(self, token_type: TokenType, start: Pos) -> Token:
        value = self.source[start.offset:self.position]
        return Token(token_type, value, Span(start, self.pos()))

    def read_identifier(self, start: Pos) -> Token:
        """Read the rest of an identifier or keyword starting at ``start``."""
        while not self.at_end() and is_ident_char(self.current_char()):
            self.advance()
        name = self.source[start.offset:self.position]
        if name in KEYWORDS:
            return self.make_token(KEYWORDS[name], start)
        if name == '|':
            return self.make_token(TokenType.PIPE, start)
        return self.make_token(TokenType.IDENT, start)

    def next_token(self) -> Token:
        """Scan the next token, skipping whitespace, comments and illegal characters."""
        while True:
            self.skip_whitespace()

            if self.at_end():
                p = self.pos()
                return Token(TokenType.EOF, '', Span(p, p))

            start = self.pos()
            ch = self.current_char()

            # `//` comments and `/-`; a lone `/` belongs to an identifier
            if ch == '/':
                if self.peek_char() == '/':
                    if self.peek_char(2) == '[':
                        self.advance()
                        self.advance()
                        self.advance()
                        self.skip_block_comment()
                        continue
                    self.skip_line_comment()
                    continue
                if self.peek_char() == '-':
                    self.advance()
                    self.advance()
                    return self.make_token(TokenType.SLASHDASH, start)

            if ch in SYMBOLS:
                self.advance()
                return self.make_token(SYMBOLS[ch], start)

            if ch == ':':
                self.advance()
                if self.current_char() == '=':
                    self.advance()
                    return self.make_token(TokenType.COLON_EQ, start)
                return self.make_token(TokenType.COLON, start)

            if ch == '=':
                if self.peek_char() == '>':
                    self.advance()
                    self.advance()
                    return self.make_token(TokenType.FAT_ARROW, start)
                self.errors.append(ParseDiagnostic(
                    start, "unexpected character '='; use ':=' for definitions"))
                self.advance()
                continue

            if ch == '-':
                if self.peek_char() == '>':
                    self.advance()
                    self.advance()
                    return self.make_token(TokenType.ARROW, start)
                self.errors.append(ParseDiagnostic(start, "unexpected character '-'"))
                self.advance()
                continue

            if ch == '_':
                self.advance()
                if not self.at_end() and is_ident_char(self.current_char()):
                    return self.read_identifier(start)
                return self.make_token(TokenType.UNDERSCORE, start)

            self.advance()
            return self.read_identifier(start)

    def tokenize(self) -> List[Token]:
        """Tokenize the whole source, ending with an EOF token."""
        self.tokens = []
        while True:
            token = self.next_token()
            self.tokens.append(token)
            if token.type == TokenType.EOF:
                break
        return self.tokens


def lex(source: str) -> List[Token]:
    """Convenience function to tokenize source code."""
    lexer = Lexer(source)
    return lexer.tokenize()


def token_description(token: Token) -> str:
    """Human readable description of a token for diagnostics."""
    if token.type == TokenType.IDENT:
        return f"identifier '{token.value}'"
    if token.type == TokenType.EOF:
        return "end of input"
    return f"'{token.value}'"
