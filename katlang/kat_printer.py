"""
Renders KatLang expressions back into canonical source text.
"""
import math
from decimal import Decimal

from katlang.kat_datatypes import (
    Constant, Text, Parameter, IgnoreArgument, Unary, Binary, ContentSelection,
    PropertyAccess, PropertyExecution, AlgorithmExecution, Algorithm,
    ConditionalAlgorithm, format_condition
)
from katlang.kat_language import TokenKind, OPERATOR_SYMBOLS


def format_number(value: float) -> str:
    """Shortest round-trip text, `E+XX` notation for very large or small magnitudes."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    number = Decimal(repr(abs(value))).normalize()
    sign = "-" if value < 0 else ""
    _, digits, exponent = number.as_tuple()
    scientific_exponent = len(digits) - 1 + exponent
    if scientific_exponent >= 15 or scientific_exponent < -5:
        mantissa = str(digits[0])
        if len(digits) > 1:
            mantissa += "." + "".join(str(d) for d in digits[1:])
        exponent_sign = "+" if scientific_exponent >= 0 else "-"
        return f"{sign}{mantissa}E{exponent_sign}{abs(scientific_exponent):02d}"
    return sign + format(number, "f")


class Printer:
    """Formats expressions as KatLang source strings."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, expression, leading: bool = True) -> str:
        """
        Formats one expression. `leading` is true while nothing has been
        written before the expression; a tuple in that position is printed
        without parentheses.
        """
        if expression is None:
            return ""
        handler = self._handlers.get(type(expression))
        if handler is None:
            return repr(expression)
        return handler(expression, leading)

    def _create_handlers(self):
        return {
            Constant: self._pformat_constant,
            Text: self._pformat_text,
            Parameter: self._pformat_parameter,
            IgnoreArgument: self._pformat_ignore,
            Unary: self._pformat_unary,
            Binary: self._pformat_binary,
            ContentSelection: self._pformat_content_selection,
            PropertyAccess: self._pformat_property_access,
            PropertyExecution: self._pformat_property_execution,
            AlgorithmExecution: self._pformat_algorithm_execution,
            Algorithm: self._pformat_algorithm,
            ConditionalAlgorithm: self._pformat_conditional,
        }

    def _pformat_constant(self, expression: Constant, leading: bool) -> str:
        return format_number(expression.value)

    def _pformat_text(self, expression: Text, leading: bool) -> str:
        return f"'{expression.value}'"

    def _pformat_parameter(self, expression: Parameter, leading: bool) -> str:
        return f"#{expression.name}" if expression.is_ignored else expression.name

    def _pformat_ignore(self, expression: IgnoreArgument, leading: bool) -> str:
        return "#"

    def _pformat_unary(self, expression: Unary, leading: bool) -> str:
        op = "-" if expression.kind == TokenKind.MINUS else "not "
        return op + self.pformat(expression.expression, False)

    def _pformat_binary(self, expression: Binary, leading: bool) -> str:
        lhs = self.pformat(expression.lhs, leading)
        op = OPERATOR_SYMBOLS.get(expression.kind, expression.kind.name.lower())
        return lhs + op + self.pformat(expression.rhs, False)

    def _pformat_content_selection(self, expression: ContentSelection, leading: bool) -> str:
        return f"{self.pformat(expression.content, leading)}:{self.pformat(expression.selector, False)}"

    def _pformat_property_access(self, expression: PropertyAccess, leading: bool) -> str:
        return f"{self.pformat(expression.algorithm, leading)}.{self.pformat(expression.property, False)}"

    def _pformat_property_execution(self, expression: PropertyExecution, leading: bool) -> str:
        out = ""
        if expression.parent is not None:
            out = self.pformat(expression.parent, leading) + "."
        out += expression.identity.name
        if expression.input is not None:
            out += self.pformat(expression.input, False)
        return out

    def _pformat_algorithm_execution(self, expression: AlgorithmExecution, leading: bool) -> str:
        out = self.pformat(expression.algorithm, leading)
        if expression.input is not None:
            out += self.pformat(expression.input, False)
        return out

    def _pformat_algorithm(self, expression: Algorithm, leading: bool) -> str:
        parts = [self.pformat(e, leading and i == 0) for i, e in enumerate(expression.expressions)]
        body = ",".join(parts)
        return body if leading else f"({body})"

    def _pformat_conditional(self, expression: ConditionalAlgorithm, leading: bool) -> str:
        branches = []
        for condition, body in expression.branches.items():
            branches.append(",".join([format_condition(condition)] + [self.pformat(e, False) for e in body.expressions]))
        if expression.default_branch is not None:
            branches.append(",".join(self.pformat(e, False) for e in expression.default_branch.expressions))
        return f"({' '.join(branches)})"


def to_string(expression) -> str:
    """
    Canonical text of a result. Elements of a top-level tuple go on
    separate lines; nested tuples are parenthesized.
    """
    printer = Printer()
    if not isinstance(expression, Algorithm):
        return printer.pformat(expression)
    out = ""
    for element in expression.expressions:
        if out:
            out += "\n"
        out += printer.pformat(element)
    return out
