"""
Pipeline driver: scan, parse and bind a KatLang program, collecting
diagnostics instead of raising.

A syntax error restarts the pipeline just after the failing span with the
parser in panic mode, so one source text can report several independent
errors. A binder error is recorded and ends the run. Whenever errors were
recorded the resulting expression is an empty algorithm.
"""
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from katlang.kat_datatypes import KatLangError, Expression, Algorithm, Diagnostic, MarkerSeverity, _dbg
from katlang.kat_interpreter import Binder
from katlang.kat_lexer import scan
from katlang.kat_parser import Parser
from katlang.kat_printer import to_string


def position_to_line_column(new_lines: List[int], position: int) -> Tuple[int, int]:
    """
    Maps a character offset to a 1-based line and a column counted from
    the preceding newline (the first line is offset by one so columns are
    1-based everywhere).
    """
    preceding = bisect_left(new_lines, position)
    if preceding == 0:
        return 1, position + 1
    return preceding + 1, position - new_lines[preceding - 1]


@dataclass
class ParsingResult:
    """The reduced program and any diagnostics found on the way."""
    expression: Expression = field(default_factory=Algorithm)
    errors: List[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def text(self) -> str:
        return to_string(self.expression)

    def format_errors(self, source: Optional[str] = None) -> str:
        """Formats every diagnostic with its location and, when the source is given, an excerpt."""
        out = []
        for error in self.errors:
            message = f"Error on line {error.start_line}, col {error.start_column}: {error.message}"
            if source:
                context = _source_context(source, error.start_line, error.start_column)
                if context:
                    message = f"{message}\n{context}"
            out.append(message)
        return "\n".join(out)


def _source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
        if i == line and col is not None:
            out.append(f"  {' ' * width} | {' ' * max(col - 1, 0)}^")
    return "\n".join(out)


class ScriptRunner:
    """Runs KatLang source text through the lexer, parser and binder."""

    def __init__(self, loader: Optional[Callable[[str], str]] = None, source_dir: Optional[str] = None):
        self.loader = loader
        self.source_dir = source_dir

    def parse(self, source: Optional[str]) -> ParsingResult:
        new_lines: List[int] = []
        errors: List[Diagnostic] = []
        result: Optional[Expression] = None
        interruption = 0
        is_panic_mode = False
        completed = False

        while not completed:
            _dbg("pass", "from", interruption, "panic" if is_panic_mode else "")
            try:
                tokens = scan(source, interruption, new_lines)
                program = Parser().parse(tokens, is_panic_mode)
                completed = True
                result = Binder(self.loader, self.source_dir).bind(program)
            except KatLangError as e:
                is_panic_mode = True
                end = e.position + e.length
                diagnostic = self._diagnostic(e, new_lines)
                _dbg("error", diagnostic)
                errors.append(diagnostic)
                # No progress past the last failure: stop instead of spinning.
                if end <= interruption:
                    completed = True
                interruption = end

        if result is None or errors:
            result = Algorithm()
        return ParsingResult(result, errors)

    @staticmethod
    def _diagnostic(error: KatLangError, new_lines: List[int]) -> Diagnostic:
        start_line, start_column = position_to_line_column(new_lines, error.position)
        end_line, end_column = position_to_line_column(new_lines, error.position + error.length)
        return Diagnostic(error.message, MarkerSeverity.ERROR, start_line, start_column, end_line, end_column)


def parse(source: Optional[str], loader: Optional[Callable[[str], str]] = None, *,
          source_dir: Optional[str] = None) -> ParsingResult:
    """Parses and reduces `source`; `loader` retrieves code for `load` and `join`."""
    return ScriptRunner(loader, source_dir).parse(source)
