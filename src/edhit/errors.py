"""Diagnostic and error types for edhit.

Nothing in the language core raises out of a public entry point: lexing,
parsing, elaboration and checking all record diagnostics and carry on.
The exception classes here are used for control flow inside the parser
and by the command-line front end.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .syntax import Pos, Span


@dataclass(frozen=True)
class ParseDiagnostic:
    """A lexical or syntactic problem at a source position."""
    pos: Pos
    message: str

    def __str__(self) -> str:
        return f"{self.pos.line}:{self.pos.col}: {self.message}"


@dataclass(frozen=True)
class TypeDiagnostic:
    """An elaboration or type checking problem over a source span."""
    span: Span
    message: str

    def __str__(self) -> str:
        return f"{self.span.start.line}:{self.span.start.col}: {self.message}"


class EdhitError(Exception):
    """Base class for edhit errors."""
    pass


class ParseError(EdhitError):
    """Raised inside the parser and caught at a recovery point."""

    def __init__(self, pos: Pos, message: str):
        super().__init__(message)
        self.pos = pos
        self.message = message

    def to_diagnostic(self) -> ParseDiagnostic:
        return ParseDiagnostic(self.pos, self.message)


class SourceFileError(EdhitError):
    """A source file could not be read."""
    pass


@dataclass
class TraceStep:
    """One recorded derivation step."""
    description: str
    span: Optional[Span] = None
    context: Dict[str, str] = field(default_factory=dict)
    result: Optional[str] = None


class Trace:
    """Collects type derivation steps for verbose output.

    A trace is handed to ``check_program`` explicitly; checking without one
    records nothing.
    """

    def __init__(self):
        self.steps: List[TraceStep] = []

    def add_step(self, description: str, span: Optional[Span] = None,
                 context: Optional[Dict[str, str]] = None,
                 result: Optional[str] = None) -> None:
        """Record a derivation step."""
        self.steps.append(TraceStep(description, span, context or {}, result))

    def clear(self) -> None:
        self.steps = []

    def __len__(self) -> int:
        return len(self.steps)
