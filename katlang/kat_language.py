"""
Static tables of the KatLang language: token kinds, keywords, operators
and the builtin math algorithms.
"""
import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, Optional


class TokenKind(Enum):
    NUMBER = auto()
    STRING = auto()
    IDENTIFIER = auto()
    PROPERTY = auto()
    CONSTANT = auto()
    IGNORE = auto()
    IGNORE_PARAMETER = auto()
    IGNORE_VALUE = auto()
    INLINE_COMMENT = auto()
    GRACE = auto()
    BEGIN = auto()
    END = auto()
    BEGIN_SCOPE = auto()
    END_SCOPE = auto()
    ASSIGN = auto()
    COMMA = auto()
    SEMICOLON = auto()
    COLON = auto()
    DOT = auto()
    POW = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    DIV = auto()
    MOD = auto()
    PLUS = auto()
    MINUS = auto()
    EQUAL = auto()
    INEQUAL = auto()
    LESS = auto()
    LESS_OR_EQUAL = auto()
    GREATER = auto()
    GREATER_OR_EQUAL = auto()
    AND = auto()
    OR = auto()
    XOR = auto()
    NOT = auto()
    END_OF_FILE = auto()


# Special property names
IF = "if"
REPEAT = "repeat"
LOOP = "loop"
OPEN = "open"
LOAD = "load"
JOIN = "join"
COMBINE = "combine"
LENGTH = "length"
STRING = "String"
REVERSE = "Reverse"
PI = "pi"
EXP = "exp"

OPERATOR_KEYWORDS: Dict[str, TokenKind] = {
    "or": TokenKind.OR,
    "xor": TokenKind.XOR,
    "and": TokenKind.AND,
    "not": TokenKind.NOT,
    "mod": TokenKind.MOD,
    "div": TokenKind.DIV,
}

PROPERTY_KEYWORDS = frozenset({
    IF, REPEAT, LOOP, OPEN, LOAD, JOIN, COMBINE, LENGTH, STRING, REVERSE,
})

CONSTANT_KEYWORDS: Dict[str, float] = {
    PI: math.pi,
    EXP: math.e,
}

KEYWORDS = frozenset(OPERATOR_KEYWORDS) | PROPERTY_KEYWORDS | frozenset(CONSTANT_KEYWORDS)


@dataclass(frozen=True)
class OperatorDescriptor:
    precedence: int
    right_associative: bool = False
    execution: bool = False
    symmetric: bool = False


OPERATORS: Dict[TokenKind, OperatorDescriptor] = {
    TokenKind.DOT: OperatorDescriptor(10),
    TokenKind.BEGIN: OperatorDescriptor(10, execution=True),
    TokenKind.BEGIN_SCOPE: OperatorDescriptor(10, execution=True),
    TokenKind.COLON: OperatorDescriptor(10),
    TokenKind.POW: OperatorDescriptor(8, right_associative=True),
    TokenKind.MOD: OperatorDescriptor(7),
    TokenKind.DIV: OperatorDescriptor(7),
    TokenKind.DIVIDE: OperatorDescriptor(7),
    TokenKind.MULTIPLY: OperatorDescriptor(7, symmetric=True),
    TokenKind.PLUS: OperatorDescriptor(6, symmetric=True),
    TokenKind.MINUS: OperatorDescriptor(6),
    TokenKind.GREATER_OR_EQUAL: OperatorDescriptor(5),
    TokenKind.GREATER: OperatorDescriptor(5),
    TokenKind.LESS_OR_EQUAL: OperatorDescriptor(5),
    TokenKind.INEQUAL: OperatorDescriptor(5),
    TokenKind.EQUAL: OperatorDescriptor(5),
    TokenKind.LESS: OperatorDescriptor(5),
    TokenKind.XOR: OperatorDescriptor(4),
    TokenKind.AND: OperatorDescriptor(3),
    TokenKind.OR: OperatorDescriptor(2, symmetric=True),
}

UNARY_OPERATORS: Dict[TokenKind, OperatorDescriptor] = {
    TokenKind.MINUS: OperatorDescriptor(9),
    TokenKind.NOT: OperatorDescriptor(9),
}

OPERATOR_SYMBOLS: Dict[TokenKind, str] = {
    TokenKind.AND: "and",
    TokenKind.OR: "or",
    TokenKind.XOR: "xor",
    TokenKind.PLUS: "+",
    TokenKind.MINUS: "-",
    TokenKind.MULTIPLY: "*",
    TokenKind.DIVIDE: "/",
    TokenKind.DIV: "div",
    TokenKind.MOD: "mod",
    TokenKind.POW: "^",
    TokenKind.EQUAL: "==",
    TokenKind.INEQUAL: "!=",
    TokenKind.GREATER: ">",
    TokenKind.LESS: "<",
    TokenKind.GREATER_OR_EQUAL: ">=",
    TokenKind.LESS_OR_EQUAL: "<=",
}


# ===================================================================
# IEEE 754 arithmetic
# ===================================================================
# Python raises where the IEEE result is an infinity or NaN; these helpers
# return the IEEE value instead.

def _truth(value: bool) -> float:
    return 1.0 if value else 0.0


def divide(a: float, b: float) -> float:
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def power(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except OverflowError:
        if a < 0 and b.is_integer() and int(b) % 2 == 1:
            return -math.inf
        return math.inf
    except ValueError:
        if a == 0 and b < 0:
            if b.is_integer() and int(b) % 2 == 1:
                return math.copysign(math.inf, a)
            return math.inf
        return math.nan


def remainder(a: float, b: float) -> float:
    try:
        return math.fmod(a, b)
    except ValueError:
        return math.nan


def floor(a: float) -> float:
    return float(math.floor(a)) if math.isfinite(a) else a


def ceil(a: float) -> float:
    return float(math.ceil(a)) if math.isfinite(a) else a


def floor_divide(a: float, b: float) -> float:
    return floor(divide(a, b))


def round_to(a: float, digits: float) -> float:
    if not math.isfinite(a) or not math.isfinite(digits):
        return a
    # round() is half-to-even
    return float(round(a, int(digits)))


def sign(a: float) -> float:
    if math.isnan(a):
        return math.nan
    return float((a > 0) - (a < 0))


def sqrt(a: float) -> float:
    if math.isnan(a) or a < 0:
        return math.nan
    return math.sqrt(a)


def ln(a: float) -> float:
    if math.isnan(a) or a < 0:
        return math.nan
    if a == 0:
        return -math.inf
    return math.log(a)


def lg(a: float) -> float:
    return divide(ln(a), math.log(10))


def log(a: float, base: float) -> float:
    return divide(ln(a), ln(base))


def _periodic(func: Callable[[float], float]) -> Callable[[float], float]:
    def wrapped(a: float) -> float:
        try:
            return func(a)
        except ValueError:
            return math.nan
    return wrapped


def _bounded(func: Callable[[float], float]) -> Callable[[float], float]:
    def wrapped(a: float) -> float:
        if math.isnan(a) or a < -1 or a > 1:
            return math.nan
        return func(a)
    return wrapped


BINARY_OPERATIONS: Dict[TokenKind, Callable[[float, float], float]] = {
    TokenKind.POW: power,
    TokenKind.DIVIDE: divide,
    TokenKind.MULTIPLY: lambda a, b: a * b,
    TokenKind.DIV: floor_divide,
    TokenKind.MOD: remainder,
    TokenKind.PLUS: lambda a, b: a + b,
    TokenKind.MINUS: lambda a, b: a - b,
    TokenKind.GREATER: lambda a, b: _truth(a > b),
    TokenKind.LESS: lambda a, b: _truth(a < b),
    TokenKind.GREATER_OR_EQUAL: lambda a, b: _truth(a >= b),
    TokenKind.LESS_OR_EQUAL: lambda a, b: _truth(a <= b),
    TokenKind.OR: lambda a, b: _truth(a == 1 or b == 1),
    TokenKind.AND: lambda a, b: _truth(a == 1 and b == 1),
    TokenKind.XOR: lambda a, b: _truth((a == 1 and b == 0) or (a == 0 and b == 1)),
    TokenKind.EQUAL: lambda a, b: _truth(a == b),
    TokenKind.INEQUAL: lambda a, b: _truth(a != b),
}

TEXT_OPERATIONS: Dict[TokenKind, Callable[[str, str], float]] = {
    TokenKind.EQUAL: lambda a, b: _truth(a == b),
    TokenKind.INEQUAL: lambda a, b: _truth(a != b),
}


@dataclass(frozen=True)
class BuiltinAlgorithm:
    name: str
    arity: int
    function: Callable[..., float]


BUILTIN_ALGORITHMS: Dict[str, BuiltinAlgorithm] = {
    b.name: b for b in (
        BuiltinAlgorithm("abs", 1, abs),
        BuiltinAlgorithm("ceil", 1, ceil),
        BuiltinAlgorithm("floor", 1, floor),
        BuiltinAlgorithm("round", 2, round_to),
        BuiltinAlgorithm("sign", 1, sign),
        BuiltinAlgorithm("div", 2, floor_divide),
        BuiltinAlgorithm("mod", 2, remainder),
        BuiltinAlgorithm("pow", 2, power),
        BuiltinAlgorithm("sqrt", 1, sqrt),
        BuiltinAlgorithm("ln", 1, ln),
        BuiltinAlgorithm("lg", 1, lg),
        BuiltinAlgorithm("log", 2, log),
        BuiltinAlgorithm("sin", 1, _periodic(math.sin)),
        BuiltinAlgorithm("asin", 1, _bounded(math.asin)),
        BuiltinAlgorithm("cos", 1, _periodic(math.cos)),
        BuiltinAlgorithm("acos", 1, _bounded(math.acos)),
        BuiltinAlgorithm("tan", 1, _periodic(math.tan)),
        BuiltinAlgorithm("atan", 1, math.atan),
    )
}


def get_builtin(name: str) -> Optional[BuiltinAlgorithm]:
    return BUILTIN_ALGORITHMS.get(name)
