"""
Defines the core data types of the KatLang engine.

This module provides the exception types raised by the parser and the
binder, the closed set of expression nodes the parser produces and the
binder rewrites, and the diagnostic record returned to callers.
"""

import os
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Sequence

from katlang.kat_language import TokenKind


def _dbg(*parts):
    if os.environ.get("KAT_DEBUG"):
        try:
            print("[DBG]", *parts, file=sys.stderr)
        except Exception:
            pass


class KatLangError(Exception):
    """A lexical or syntactic failure tied to a span of the source text."""
    def __init__(self, message: str, position: int = 0, length: int = 0):
        super().__init__(message)
        self.message = message
        self.position = position
        self.length = length

    @classmethod
    def at(cls, message: str, span) -> 'KatLangError':
        """Builds the error from anything that carries `position` and `length`."""
        if span is None:
            return cls(message)
        return cls(message, span.position, span.length)


class KatLangRuntimeError(KatLangError):
    """A failure raised while binding a parsed program."""
    pass


# =================================================================
# Expressions
# =================================================================

class Expression:
    """Base class of every node. Carries the source span for diagnostics."""
    position: int = 0
    length: int = 0

    def to_algorithm(self) -> 'Algorithm':
        return Algorithm([self])

    def __str__(self) -> str:
        from katlang.kat_printer import to_string
        return to_string(self)


class Constant(Expression):
    def __init__(self, value: float):
        self.value = float(value)

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


class Text(Expression):
    def __init__(self, value: str):
        self.value = value

    def __repr__(self) -> str:
        return f"Text({self.value!r})"


class Parameter(Expression):
    """A name reference. `grace_weight` only influences parameter ordering."""
    def __init__(self, name: str, grace_weight: int = 0, is_ignored: bool = False):
        self.name = name
        self.grace_weight = grace_weight
        self.is_ignored = is_ignored

    def __repr__(self) -> str:
        flags = ""
        if self.grace_weight:
            flags += f", grace_weight={self.grace_weight}"
        if self.is_ignored:
            flags += ", is_ignored=True"
        return f"Parameter({self.name!r}{flags})"


class IgnoreArgument(Expression):
    def __repr__(self) -> str:
        return "IgnoreArgument()"


class Unary(Expression):
    def __init__(self, kind: TokenKind, expression: Optional[Expression]):
        self.kind = kind
        self.expression = expression

    def __repr__(self) -> str:
        return f"Unary({self.kind.name}, {self.expression!r})"


class Binary(Expression):
    def __init__(self, kind: TokenKind, lhs: Optional[Expression], rhs: Optional[Expression]):
        self.kind = kind
        self.lhs = lhs
        self.rhs = rhs

    def __repr__(self) -> str:
        return f"Binary({self.kind.name}, {self.lhs!r}, {self.rhs!r})"


class ContentSelection(Expression):
    def __init__(self, content: Optional[Expression], selector: Optional[Expression]):
        self.content = content
        self.selector = selector

    def __repr__(self) -> str:
        return f"ContentSelection({self.content!r}, {self.selector!r})"


class PropertyAccess(Expression):
    def __init__(self, algorithm: Optional[Expression], property: Parameter):
        self.algorithm = algorithm
        self.property = property

    def __repr__(self) -> str:
        return f"PropertyAccess({self.algorithm!r}, {self.property!r})"


class PropertyExecution(Expression):
    """A call by name. `parent` is set for extension-style `a.f(x)` calls."""
    def __init__(self, identity: Parameter, input: Optional['Algorithm'],
                 parent: Optional[Expression] = None):
        self.identity = identity
        self.input = input
        self.parent = parent

    def __repr__(self) -> str:
        parent = f", parent={self.parent!r}" if self.parent is not None else ""
        return f"PropertyExecution({self.identity!r}, {self.input!r}{parent})"


class AlgorithmExecution(Expression):
    """A resolved call: an algorithm body applied to a bound input tuple."""
    def __init__(self, algorithm: 'Algorithm', input: Optional['Algorithm'],
                 identity: Optional[Parameter] = None):
        self.algorithm = algorithm
        self.input = input
        self.identity = identity

    def __repr__(self) -> str:
        return f"AlgorithmExecution({self.algorithm!r}, {self.input!r})"


class Property(Expression):
    """A named property of an algorithm."""
    def __init__(self, name: str, algorithm: Expression):
        self.name = name
        self.algorithm = algorithm

    def __repr__(self) -> str:
        return f"Property({self.name!r}, {self.algorithm!r})"


class PropertyBranch(Expression):
    """One `name = ...` declaration, optionally keyed by a condition."""
    def __init__(self, name: str, algorithm: 'Algorithm', condition: Optional['Condition'] = None):
        self.name = name
        self.algorithm = algorithm
        self.condition = condition


class Algorithm(Expression):
    """An ordered tuple of expressions plus named properties."""
    def __init__(self, expressions: Optional[List[Expression]] = None,
                 properties: Optional[List[Property]] = None,
                 is_parametrized: bool = False):
        self.expressions = expressions if expressions is not None else []
        self.properties = properties if properties is not None else []
        self.is_parametrized = is_parametrized

    def to_algorithm(self) -> 'Algorithm':
        return self

    def get_property(self, name: str) -> Optional[Property]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def __repr__(self) -> str:
        props = f", properties={self.properties!r}" if self.properties else ""
        flag = ", is_parametrized=True" if self.is_parametrized else ""
        return f"Algorithm({self.expressions!r}{props}{flag})"


class Condition:
    """A literal tuple of numbers keying a conditional branch."""
    def __init__(self, values: Sequence[float]):
        self.values = tuple(float(v) for v in values)

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other) -> bool:
        return isinstance(other, Condition) and self.values == other.values

    def __hash__(self) -> int:
        return hash(self.values)

    def __repr__(self) -> str:
        return f"Condition({list(self.values)!r})"


class ConditionalAlgorithm(Expression):
    """A property made of branches selected by literal leading arguments."""
    def __init__(self, properties: Optional[List[Property]] = None):
        self.properties = properties if properties is not None else []
        self.conditional_parameters_count = 0
        self.branches: Dict[Condition, Algorithm] = {}
        self.default_branch: Optional[Algorithm] = None

    def add_branch(self, branch: PropertyBranch):
        condition = branch.condition
        if condition is None:
            if self.default_branch is not None:
                raise KatLangRuntimeError.at(
                    f"Conditional property '{branch.name}' already has a default branch.", branch)
            self.default_branch = branch.algorithm
            return
        if self.branches and len(condition) != self.conditional_parameters_count:
            raise KatLangRuntimeError.at(
                f"Conditional property '{branch.name}' expects {self.conditional_parameters_count} "
                f"condition values, but the branch declares {len(condition)}.", branch)
        if condition in self.branches:
            raise KatLangRuntimeError.at(
                f"Conditional property '{branch.name}' already contains a branch for condition "
                f"{format_condition(condition)}.", branch)
        self.branches[condition] = branch.algorithm
        self.conditional_parameters_count = len(condition)

    def __repr__(self) -> str:
        return f"ConditionalAlgorithm({self.branches!r}, default={self.default_branch!r})"


def format_condition(condition: Condition) -> str:
    from katlang.kat_printer import format_number
    return ",".join(f"#{format_number(v)}" for v in condition.values)


# =================================================================
# Diagnostics
# =================================================================

class MarkerSeverity(IntEnum):
    HINT = 1
    INFO = 2
    WARNING = 4
    ERROR = 8


@dataclass
class Diagnostic:
    """A problem found in the source text; lines are 1-based."""
    message: str
    severity: MarkerSeverity
    start_line: int
    start_column: int
    end_line: int
    end_column: int
