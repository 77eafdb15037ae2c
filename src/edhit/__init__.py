"""edhit - a small dependently-typed language.

The pipeline is ``parse`` (source to syntax tree plus diagnostics) followed
by ``check_program`` (elaboration, bidirectional checking and evaluation).
``check_source`` and ``analyze`` run both in one call.
"""

__version__ = "0.1.0"

from .parser import ParseResult, parse
from .typechecker import (
    CheckResult, CtorSummary, DefInfo, HoverEntry, SourceCheckResult,
    check_program, check_source,
)
from .analysis import AnalysisResult, analyze, collect_scope_at_offset

__all__ = [
    "__version__",
    "parse", "ParseResult",
    "check_program", "check_source",
    "CheckResult", "SourceCheckResult", "DefInfo", "CtorSummary", "HoverEntry",
    "analyze", "AnalysisResult", "collect_scope_at_offset",
]
