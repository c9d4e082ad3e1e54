"""
Deep copies of expression trees.

Bodies that are invoked more than once are copied before every
invocation because the binder rewrites the nodes it visits. Leaves
(constants, texts, parameters, ignore markers) are never rewritten and
are shared between copies.
"""
from typing import List, Optional

from katlang.kat_datatypes import (
    Expression, Constant, Text, Parameter, IgnoreArgument, Unary, Binary,
    ContentSelection, PropertyAccess, PropertyExecution, AlgorithmExecution,
    Algorithm, ConditionalAlgorithm, Property
)
from katlang.kat_visitor import Visitor


def _copy_span(source: Expression, target: Expression) -> Expression:
    target.position = source.position
    target.length = source.length
    return target


class ExpressionCloner(Visitor):

    def clone(self, original: Optional[Expression]) -> Optional[Expression]:
        if original is None or isinstance(original, (Constant, Text, Parameter, IgnoreArgument)):
            return original
        return self.visit(original)

    def clone_properties(self, properties: List[Property]) -> List[Property]:
        return [_copy_span(p, Property(p.name, self.clone(p.algorithm))) for p in properties]

    def visit_unary(self, expression: Unary):
        return _copy_span(expression, Unary(expression.kind, self.clone(expression.expression)))

    def visit_binary(self, expression: Binary):
        clone = Binary(expression.kind, self.clone(expression.lhs), self.clone(expression.rhs))
        return _copy_span(expression, clone)

    def visit_content_selection(self, expression: ContentSelection):
        clone = ContentSelection(self.clone(expression.content), self.clone(expression.selector))
        return _copy_span(expression, clone)

    def visit_property_access(self, expression: PropertyAccess):
        clone = PropertyAccess(self.clone(expression.algorithm), expression.property)
        return _copy_span(expression, clone)

    def visit_property_execution(self, expression: PropertyExecution):
        clone = PropertyExecution(
            expression.identity,
            self.clone(expression.input),
            self.clone(expression.parent),
        )
        return _copy_span(expression, clone)

    def visit_algorithm_execution(self, expression: AlgorithmExecution):
        clone = AlgorithmExecution(
            self.clone(expression.algorithm),
            self.clone(expression.input),
            expression.identity,
        )
        return _copy_span(expression, clone)

    def visit_algorithm(self, algorithm: Algorithm):
        clone = Algorithm(
            [self.clone(e) for e in algorithm.expressions],
            self.clone_properties(algorithm.properties),
            algorithm.is_parametrized,
        )
        return _copy_span(algorithm, clone)

    def visit_conditional_algorithm(self, algorithm: ConditionalAlgorithm):
        clone = ConditionalAlgorithm(self.clone_properties(algorithm.properties))
        clone.conditional_parameters_count = algorithm.conditional_parameters_count
        clone.branches = {condition: self.clone(branch) for condition, branch in algorithm.branches.items()}
        clone.default_branch = self.clone(algorithm.default_branch)
        return _copy_span(algorithm, clone)
