"""Rendering of diagnostics for the terminal.

This module provides:
- Source context display with the offending range underlined
- "Did you mean" hints for unresolved names
- Type derivation traces in verbose mode

Rendering is built on rich ``Text`` objects so colour handling (and turning
it off) is left to the ``Console`` that prints them.
"""

from __future__ import annotations
from typing import Iterable, List, Optional, Union

from rich.console import Console, Group
from rich.text import Text

from .syntax import Pos, Span
from .errors import ParseDiagnostic, Trace, TypeDiagnostic


Diagnostic = Union[ParseDiagnostic, TypeDiagnostic]

UNRESOLVED_PREFIX = "unresolved name: "


def diagnostic_span(diagnostic: Diagnostic) -> Span:
    """The source range a diagnostic points at (parse errors point at a position)."""
    if isinstance(diagnostic, TypeDiagnostic):
        return diagnostic.span
    return Span(diagnostic.pos, diagnostic.pos)


def format_location(pos: Pos, filename: Optional[str] = None) -> str:
    """Format a source position for display."""
    location = f"{pos.line}:{pos.col}"
    if filename:
        return f"{filename}:{location}"
    return location


def show_source_context(source: str, span: Span, context_lines: int = 2) -> Text:
    """Display the lines around ``span`` with the span underlined."""
    lines = source.split('\n')
    line_no = span.start.line
    if not (0 < line_no <= len(lines)):
        return Text()

    output = Text()
    first = max(0, line_no - context_lines - 1)
    last = min(len(lines), line_no + context_lines)

    for i in range(first, last):
        content = lines[i]
        if i + 1 == line_no:
            output.append("→ ", style="bold red")
            output.append(f"{i + 1:4d} │ ", style="dim")
            output.append(content + "\n")

            # Underline to the end of the span, or to the end of the line
            start_col = span.start.col
            if span.end.line == line_no and span.end.col > start_col:
                width = span.end.col - start_col
            else:
                width = max(1, len(content) - start_col + 1)
            output.append("       │ ", style="dim")
            output.append(" " * (start_col - 1) + "^" + "~" * (width - 1) + "\n", style="bold red")
        else:
            output.append(f"  {i + 1:4d} │ ", style="dim")
            output.append(content + "\n")

    output.rstrip()
    return output


def edit_distance(s1: str, s2: str) -> int:
    """Levenshtein distance between two strings."""
    if len(s1) < len(s2):
        return edit_distance(s2, s1)
    if not s2:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def suggest_similar_names(name: str, available_names: Iterable[str], max_suggestions: int = 3) -> List[str]:
    """Names within edit distance 2 of ``name``, closest first."""
    candidates = []
    for available in set(available_names):
        if available == name:
            continue
        distance = edit_distance(name, available)
        if distance <= 2:
            candidates.append((distance, available))
    candidates.sort()
    return [candidate for _, candidate in candidates[:max_suggestions]]


def generate_hint(diagnostic: Diagnostic, available_names: Iterable[str]) -> Optional[str]:
    """A hint for a diagnostic, if one applies."""
    message = diagnostic.message
    if message.startswith(UNRESOLVED_PREFIX):
        similar = suggest_similar_names(message[len(UNRESOLVED_PREFIX):], available_names)
        if similar:
            return "Did you mean: " + ", ".join(f"'{name}'" for name in similar) + "?"
    elif message.startswith("cannot infer type of lambda"):
        return "Give the definition a type: def f : A -> B := \\x. ..."
    elif message.startswith("cannot infer constructor"):
        return "Qualify the constructor, as in Nat.zero., or annotate the definition"
    elif message.startswith("unexpected character '='"):
        return "Definitions are written def name := body"
    return None


def format_diagnostic(diagnostic: Diagnostic, source: Optional[str] = None,
                      filename: Optional[str] = None, hint: Optional[str] = None) -> Group:
    """Format one diagnostic with its source context and an optional hint."""
    span = diagnostic_span(diagnostic)
    kind = "Syntax error" if isinstance(diagnostic, ParseDiagnostic) else "Type error"

    parts = [
        Text.assemble((f"{kind}: ", "bold red"), diagnostic.message),
        Text.assemble(("at ", "dim"), format_location(span.start, filename)),
    ]
    if source:
        context = show_source_context(source, span)
        if context:
            parts.append(context)
    if hint:
        parts.append(Text.assemble(("Hint: ", "bold cyan"), hint))
    return Group(*parts)


def format_trace(trace: Trace, filename: Optional[str] = None) -> Text:
    """Format the recorded type derivation steps."""
    if not trace.steps:
        return Text()

    lines = Text("Type Derivation Trace:\n", style="bold")
    for i, step in enumerate(trace.steps, 1):
        lines.append(f"\nStep {i}: ", style="dim")
        lines.append(step.description + "\n")
        if step.span is not None:
            lines.append("  at ", style="dim")
            lines.append(format_location(step.span.start, filename) + "\n")
        if step.context:
            lines.append("  context:\n", style="dim")
            for name, ty in step.context.items():
                lines.append(f"    {name}", style="green")
                lines.append(" : ")
                lines.append(ty + "\n", style="cyan")
        if step.result:
            lines.append("  result: ", style="dim")
            lines.append(step.result + "\n", style="cyan")
    lines.rstrip()
    return lines


def report_diagnostics(console: Console, diagnostics: Iterable[Diagnostic],
                       source: Optional[str] = None, filename: Optional[str] = None,
                       available_names: Iterable[str] = ()) -> int:
    """Print diagnostics in source order and return how many were printed."""
    names = list(available_names)
    ordered = sorted(diagnostics, key=lambda d: diagnostic_span(d).start.offset)
    for diagnostic in ordered:
        console.print(format_diagnostic(diagnostic, source, filename, generate_hint(diagnostic, names)))
        console.print()
    return len(ordered)
