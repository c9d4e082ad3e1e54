"""
Infers the positional parameters of an algorithm from its free names.
"""
from typing import Callable, List, Optional

from katlang.kat_datatypes import Expression, Parameter, IgnoreArgument, Algorithm
from katlang.kat_language import KEYWORDS, get_builtin
from katlang.kat_visitor import Visitor

IGNORED_SLOT = "#"


class WeightedParameter:
    def __init__(self, name: str, weight: int = 0):
        self.name = name
        self.weight = weight

    def __repr__(self) -> str:
        return f"WeightedParameter({self.name!r}, {self.weight})"


class ParameterDetector(Visitor):
    """
    Collects free parameter names in order of first occurrence.

    A name is not a parameter when `is_property(name)` reports it as a
    property visible from the current scope, or when it is a builtin or
    keyword. Parametrized algorithms nested in the inspected one keep
    their names to themselves.
    """

    def __init__(self, is_property: Callable[[str], bool]):
        self._is_property = is_property
        self._root: Optional[Algorithm] = None
        self._parameters: List[WeightedParameter] = []

    def get_ordered_algorithm_parameters(self, algorithm: Algorithm) -> List[str]:
        self._parameters = []
        self._root = algorithm
        self.visit(algorithm)
        self._root = None
        ordered = self._reorder(self._parameters)
        return [p.name for p in ordered]

    def is_parameter_contained_in_expression(self, name: str, expression: Optional[Expression]) -> bool:
        self._parameters = []
        self._root = None
        self.visit(expression)
        return any(p.name == name for p in self._parameters)

    @staticmethod
    def _reorder(parameters: List[WeightedParameter]) -> List[WeightedParameter]:
        # Grace weight walks a name past lighter neighbours, one step per unit.
        params = list(parameters)
        for i in range(len(params)):
            current = params[i]
            position = i
            while current.weight > 0 and position + 1 < len(params) and params[position + 1].weight < current.weight:
                current.weight -= 1
                params[position], params[position + 1] = params[position + 1], current
                position += 1
            while current.weight < 0 and position > 0 and params[position - 1].weight > current.weight:
                current.weight += 1
                params[position], params[position - 1] = params[position - 1], current
                position -= 1
        return params

    def _read_parameter(self, expression: Parameter):
        name = expression.name
        if name in KEYWORDS or get_builtin(name) is not None or self._is_property(name):
            return
        for existing in self._parameters:
            if existing.name == name:
                existing.weight += expression.grace_weight
                return
        self._parameters.append(WeightedParameter(name, expression.grace_weight))

    def visit_parameter(self, expression: Parameter):
        self._read_parameter(expression)
        return expression

    def visit_property_identity(self, expression: Parameter):
        self._read_parameter(expression)
        return expression

    def visit_ignore_argument(self, expression: IgnoreArgument):
        self._parameters.append(WeightedParameter(IGNORED_SLOT))
        return expression

    def visit_algorithm(self, algorithm: Algorithm):
        if algorithm is self._root or not algorithm.is_parametrized:
            return super().visit_algorithm(algorithm)
        return algorithm
