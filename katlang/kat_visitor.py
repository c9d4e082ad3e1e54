"""
Generic traversal over the KatLang expression tree.

`Visitor.visit` dispatches on the node type; the default `visit_*`
methods walk children and store the visited results back into the node.
Passes (parameter detection, cloning, binding) override what they need.
A visit may return None, which removes the node from its tuple.
"""
from typing import Optional

from katlang.kat_datatypes import (
    KatLangRuntimeError, Expression, Constant, Text, Parameter, IgnoreArgument,
    Unary, Binary, ContentSelection, PropertyAccess, PropertyExecution,
    AlgorithmExecution, Algorithm, ConditionalAlgorithm
)


class Visitor:

    def visit(self, expression: Optional[Expression]) -> Optional[Expression]:
        match expression:
            case Constant():
                return self.visit_constant(expression)
            case Text():
                return self.visit_text(expression)
            case Parameter():
                return self.visit_parameter(expression)
            case IgnoreArgument():
                return self.visit_ignore_argument(expression)
            case Unary():
                return self.visit_unary(expression)
            case Binary():
                return self.visit_binary(expression)
            case ContentSelection():
                return self.visit_content_selection(expression)
            case PropertyAccess():
                return self.visit_property_access(expression)
            case PropertyExecution():
                return self.visit_property_execution(expression)
            case AlgorithmExecution():
                return self.visit_algorithm_execution(expression)
            case ConditionalAlgorithm():
                return self.visit_conditional_algorithm(expression)
            case Algorithm():
                return self.visit_algorithm(expression)
            case _:
                return expression

    def visit_constant(self, expression: Constant):
        return expression

    def visit_text(self, expression: Text):
        return expression

    def visit_parameter(self, expression: Parameter):
        return expression

    def visit_property_identity(self, expression: Parameter):
        return expression

    def visit_ignore_argument(self, expression: IgnoreArgument):
        return expression

    def visit_unary(self, expression: Unary):
        inner = self.visit(expression.expression)
        if inner is None:
            return None
        expression.expression = inner
        return expression

    def visit_binary(self, expression: Binary):
        expression.lhs = self.visit(expression.lhs)
        expression.rhs = self.visit(expression.rhs)
        return expression

    def visit_content_selection(self, expression: ContentSelection):
        content = self.visit(expression.content)
        if content is None:
            raise KatLangRuntimeError.at(
                "Content selection operator cannot be applied to empty content.", expression)
        selector = self.visit(expression.selector)
        if selector is None:
            return content
        expression.content = content
        expression.selector = selector
        return expression

    def visit_property_access(self, expression: PropertyAccess):
        algorithm = self.visit(expression.algorithm)
        if algorithm is None:
            raise KatLangRuntimeError.at(
                "Property access operator cannot be applied to empty content.", expression)
        expression.algorithm = algorithm
        prop = self.visit_parameter(expression.property)
        if isinstance(prop, Parameter):
            expression.property = prop
        return expression

    def visit_property_execution(self, expression: PropertyExecution):
        expression.identity = self.visit_property_identity(expression.identity)
        if expression.input is not None:
            visited = self.visit_algorithm(expression.input)
            expression.input = visited if isinstance(visited, Algorithm) else None
        return expression

    def visit_algorithm_execution(self, expression: AlgorithmExecution):
        algorithm = self.visit_algorithm(expression.algorithm)
        if algorithm is None:
            return None
        expression.algorithm = algorithm
        if expression.input is not None:
            expression.input = self.visit_algorithm(expression.input)
        return expression

    def visit_algorithm(self, algorithm: Algorithm):
        visited = []
        for expression in algorithm.expressions:
            result = self.visit(expression)
            if result is not None:
                visited.append(result)
        algorithm.expressions = visited
        return algorithm

    def visit_conditional_algorithm(self, algorithm: ConditionalAlgorithm):
        for condition, branch in list(algorithm.branches.items()):
            algorithm.branches[condition] = self._visit_branch(branch)
        if algorithm.default_branch is not None:
            algorithm.default_branch = self._visit_branch(algorithm.default_branch)
        return algorithm

    def _visit_branch(self, branch: Algorithm) -> Algorithm:
        visited = [self.visit(e) for e in branch.expressions]
        return Algorithm([e for e in visited if e is not None], branch.properties)
