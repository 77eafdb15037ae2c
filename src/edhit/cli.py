"""Command-line interface for edhit."""

import json
import sys
import time
from typing import Optional

import click
from rich.console import Console
from rich.text import Text

from edhit import __version__
from edhit.errors import SourceFileError, Trace


def read_source(filename: str) -> str:
    try:
        with open(filename, 'r', encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise SourceFileError(f"cannot read {filename}: {e}") from e


def span_to_dict(span) -> dict:
    return {
        'start': {'offset': span.start.offset, 'line': span.start.line, 'col': span.start.col},
        'end': {'offset': span.end.offset, 'line': span.end.line, 'col': span.end.col},
    }


def results_to_json(parse_errors, result) -> str:
    """Serialize parse and check results."""
    payload = {
        'parse_errors': [
            {'line': e.pos.line, 'col': e.pos.col, 'offset': e.pos.offset, 'message': e.message}
            for e in parse_errors
        ],
        'errors': [
            {'span': span_to_dict(e.span), 'message': e.message}
            for e in result.errors
        ],
        'defs': [
            {
                'name': d.name,
                'span': span_to_dict(d.span),
                'type': d.type,
                'value': d.value,
                'constructors': [{'name': c.name, 'type': c.type} for c in d.constructors],
            }
            for d in result.defs
        ],
        'hover_entries': [
            {'span': span_to_dict(h.span), 'type': h.type}
            for h in result.hover_entries
        ],
    }
    return json.dumps(payload, indent=2)


@click.command()
@click.argument('filename', type=click.Path(exists=True, dir_okay=False))
@click.option('--ast', is_flag=True, help='Print the syntax tree and stop')
@click.option('--json', 'as_json', is_flag=True, help='Print diagnostics and definitions as JSON')
@click.option('--eval', 'eval_name', metavar='NAME', help='Print the normal form of a definition')
@click.option('--verbose', '-v', is_flag=True, help='Show the type derivation trace')
@click.option('--timing', is_flag=True, help='Show timing information')
@click.option('--no-color', is_flag=True, help='Disable coloured output')
@click.version_option(__version__, prog_name='edhit')
def main(filename: str,
         ast: bool = False,
         as_json: bool = False,
         eval_name: Optional[str] = None,
         verbose: bool = False,
         timing: bool = False,
         no_color: bool = False) -> None:
    """edhit - a small dependently-typed language.

    Parse and type check FILENAME, printing diagnostics and the type of
    every definition. The exit status is 1 when there are diagnostics.

    Examples:

      edhit nat.edh                 # Check a file

      edhit nat.edh --ast           # Show the syntax tree

      edhit nat.edh --eval four     # Normalize a definition

      edhit -v nat.edh              # Verbose output
    """
    from edhit.parser import parse
    from edhit.typechecker import TypeChecker
    from edhit.analysis import collect_scope_at_offset
    from edhit.error_reporting import format_trace, report_diagnostics

    console = Console(no_color=no_color, highlight=False)
    err_console = Console(stderr=True, no_color=no_color, highlight=False)

    try:
        source = read_source(filename)
    except SourceFileError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(2)

    start_time = time.time()
    parsed = parse(source)
    if timing:
        console.print(f"Parse time: {time.time() - start_time:.3f}s")

    if ast:
        console.print(repr(parsed.program), markup=False)
        if parsed.errors:
            report_diagnostics(err_console, parsed.errors, source, filename)
            sys.exit(1)
        return

    trace = Trace() if verbose else None
    checker = TypeChecker(trace)
    check_start = time.time()
    result = checker.check_program(parsed.program)
    if timing:
        console.print(f"Type check time: {time.time() - check_start:.3f}s")

    failed = bool(parsed.errors or result.errors)

    if as_json:
        click.echo(results_to_json(parsed.errors, result))
        sys.exit(1 if failed else 0)

    names = [entry.name for entry in collect_scope_at_offset(parsed.program, len(source))]
    report_diagnostics(err_console, list(parsed.errors) + list(result.errors), source, filename, names)

    if trace is not None and trace.steps:
        console.print(format_trace(trace, filename))
        console.print()

    if eval_name is not None:
        if not evaluate_definition(console, err_console, checker.context, eval_name):
            sys.exit(1)
    else:
        for info in result.defs:
            console.print(Text.assemble((info.name, "bold green"), f" : {info.type}"))
            for ctor in info.constructors:
                console.print(f"  .{ctor.name} : {ctor.type}", markup=False)
            if verbose and info.value is not None:
                console.print(f"  := {info.value}", markup=False)

    if failed:
        count = len(parsed.errors) + len(result.errors)
        err_console.print(f"[bold red]{count} error{'s' if count != 1 else ''}[/bold red]")
        sys.exit(1)


def evaluate_definition(console: Console, err_console: Console, ctx, name: str) -> bool:
    """Print the normal form of the global ``name``; False if that is not possible."""
    from edhit.core import TGlobal
    from edhit.evaluator import normalize
    from edhit.pretty import pretty_core

    if name not in ctx.globals:
        err_console.print(f"[bold red]Error:[/bold red] no definition named '{name}'")
        return False
    try:
        normal_form = normalize(ctx.env, TGlobal(name))
    except RecursionError:
        err_console.print(f"[bold red]Error:[/bold red] normalizing '{name}' did not terminate")
        return False
    console.print(pretty_core(normal_form), markup=False)
    return True


if __name__ == '__main__':
    main()
