"""
The KatLang binder: reduces a parsed program to its most evaluated form.

Every visit either reduces a node or hands back a residual node that
still refers to unbound parameters. Calls push an `Environment` frame
chained to the active one (dynamic scope) and pop it on return.
"""
import math
import os
from typing import Callable, List, Optional

from katlang.kat_cloner import ExpressionCloner
from katlang.kat_datatypes import (
    KatLangRuntimeError, Expression, Constant, Text, Parameter, IgnoreArgument,
    Unary, Binary, ContentSelection, PropertyAccess, PropertyExecution,
    AlgorithmExecution, Algorithm, ConditionalAlgorithm, Condition, format_condition, _dbg
)
from katlang.kat_detector import ParameterDetector
from katlang.kat_environment import Environment
from katlang.kat_language import (
    TokenKind, OPERATORS, BINARY_OPERATIONS, TEXT_OPERATIONS, CONSTANT_KEYWORDS,
    IF, REPEAT, LOOP, OPEN, LOAD, JOIN, COMBINE, LENGTH, STRING, REVERSE, get_builtin
)
from katlang.kat_printer import format_number
from katlang.kat_visitor import Visitor

Loader = Callable[[str], str]


def _input_of(expression: Optional[Expression]) -> List[Expression]:
    """The positional arguments carried by a (possibly unwrapped) input."""
    if isinstance(expression, Algorithm):
        return expression.expressions
    if expression is None:
        return []
    return [expression]


class Binder(Visitor):
    """
    Rewrites a program tree given the active environment chain.

    `loader` retrieves program text for `load` and `join`; `source_dir`
    anchors relative paths given to `open`.
    """

    def __init__(self, loader: Optional[Loader] = None, source_dir: Optional[str] = None):
        self.loader = loader
        self.source_dir = source_dir
        self._environment: Optional[Environment] = None
        self._detector = ParameterDetector(
            lambda name: self._environment is not None and self._environment.contains_algorithm(name))
        self._cloner = ExpressionCloner()

    def bind(self, algorithm: Algorithm) -> Optional[Expression]:
        parameters = self._detector.get_ordered_algorithm_parameters(algorithm)
        _dbg("bind()", "properties", [p.name for p in algorithm.properties], "parameters", parameters)
        self._environment = Environment(None, algorithm.properties, parameters, [], self._detector)
        return self.visit_algorithm(algorithm)

    def _push(self, properties, parameters, arguments, identity=None):
        self._environment = Environment(
            self._environment, properties, parameters, arguments, self._detector, identity)

    def _pop(self):
        self._environment = self._environment.parent

    # --- Leaves ---------------------------------------------------------

    def visit_parameter(self, expression: Parameter):
        if expression.is_ignored:
            return None
        value = self._environment.get_parameter_value(expression.name)
        if value is not None:
            # A value mentioning its own name would expand forever.
            if self._detector.is_parameter_contained_in_expression(expression.name, value):
                return value
            return self.visit(value)
        algorithm = self._environment.get_algorithm(expression.name)
        if algorithm is not None:
            return self.visit(algorithm)
        if expression.name in CONSTANT_KEYWORDS:
            return Constant(CONSTANT_KEYWORDS[expression.name])
        return expression

    def visit_ignore_argument(self, expression: IgnoreArgument):
        return None

    # --- Operators ------------------------------------------------------

    def visit_unary(self, expression: Unary):
        inner = self.visit(expression.expression)
        if not isinstance(inner, Constant):
            return expression
        if expression.kind == TokenKind.MINUS:
            return Constant(-inner.value)
        return Constant(0 if inner.value != 0 else 1)

    def visit_binary(self, expression: Binary):
        lhs = self.visit(expression.lhs) if expression.lhs is not None else None
        rhs = self.visit(expression.rhs) if expression.rhs is not None else None

        if isinstance(lhs, Algorithm) and lhs.expressions:
            lhs = lhs.expressions[0]
        if isinstance(rhs, Algorithm) and rhs.expressions:
            rhs = rhs.expressions[0]

        if isinstance(lhs, Constant) and isinstance(rhs, Constant):
            return Constant(BINARY_OPERATIONS[expression.kind](lhs.value, rhs.value))
        if isinstance(lhs, Text) and isinstance(rhs, Text) and expression.kind in TEXT_OPERATIONS:
            return Constant(TEXT_OPERATIONS[expression.kind](lhs.value, rhs.value))

        if lhs is None and rhs is None:
            return None
        if (lhs is None) != (rhs is None):
            # A missing operand of a symmetric operator is its identity.
            if OPERATORS[expression.kind].symmetric:
                return rhs if rhs is not None else lhs
            if rhs is None:
                return lhs

        expression.lhs = lhs
        expression.rhs = rhs
        return expression

    def visit_content_selection(self, expression: ContentSelection):
        result = super().visit_content_selection(expression)
        if not isinstance(result, ContentSelection):
            return None
        content, selector = result.content, result.selector
        if isinstance(content, Algorithm) and isinstance(selector, Constant):
            if not math.isfinite(selector.value):
                raise KatLangRuntimeError.at("Index out of range.", expression)
            index = int(selector.value)
            if index < 0 or index >= len(content.expressions):
                raise KatLangRuntimeError.at("Index out of range.", expression)
            return content.expressions[index]
        if isinstance(content, Constant) and isinstance(selector, Constant):
            if selector.value != 0:
                raise KatLangRuntimeError.at("Index out of range.", expression)
            return content
        return result

    # --- Algorithms -----------------------------------------------------

    def visit_algorithm(self, algorithm: Algorithm):
        result = super().visit_algorithm(algorithm)
        return self._unwrap_algorithm(result) if result is not None else None

    def _unwrap_algorithm(self, expression: Optional[Expression]) -> Optional[Expression]:
        """Collapses empty and singleton tuples; closures with free names stay wrapped."""
        if not isinstance(expression, Algorithm) or expression.properties:
            return expression
        count = len(expression.expressions)
        if count == 0:
            return None
        if count == 1:
            if expression.is_parametrized and self._detector.get_ordered_algorithm_parameters(expression):
                return expression
            return self._unwrap_algorithm(expression.expressions[0])
        for i, element in enumerate(expression.expressions):
            unwrapped = self._unwrap_algorithm(element)
            expression.expressions[i] = unwrapped if unwrapped is not None else Algorithm()
        expression.expressions[:] = [
            e for e in expression.expressions
            if not (isinstance(e, Algorithm) and not e.expressions)
        ]
        return expression

    def visit_property_access(self, expression: PropertyAccess):
        name = expression.property.name
        target = self.visit(expression.algorithm)
        if isinstance(target, Algorithm):
            prop = target.get_property(name)
            if prop is not None:
                return prop.algorithm
            if name == LENGTH:
                return Constant(len(target.expressions))
            return self.visit_property_execution(PropertyExecution(expression.property, target))

        algorithm = self._environment.get_algorithm(name)
        if isinstance(algorithm, Algorithm):
            argument = target.to_algorithm() if target is not None else Algorithm()
            return self.visit_algorithm_execution(AlgorithmExecution(algorithm, argument, expression.property))

        match target:
            case Constant():
                if name == STRING:
                    return Text(format_number(target.value))
                return self.visit_algorithm_execution(
                    AlgorithmExecution(expression.property.to_algorithm(), target.to_algorithm()))
            case Text():
                if name == REVERSE:
                    return Text(target.value[::-1])
                raise KatLangRuntimeError.at(
                    f"Trying to access non-existent property '{name}' of the algorithm "
                    f"'{expression.algorithm}'.", expression)
            case PropertyExecution():
                if isinstance(expression.algorithm, Parameter):
                    raise KatLangRuntimeError.at(
                        f"Trying to access non-existent property '{name}' of the algorithm "
                        f"'{expression.algorithm}'.", expression)
                return self.visit_property_execution(PropertyExecution(expression.property, target.to_algorithm()))
        return expression

    def visit_algorithm_execution(self, expression: AlgorithmExecution):
        body = expression.algorithm
        if len(body.expressions) == 1 and isinstance(body.expressions[0], PropertyAccess):
            access = body.expressions[0]
            if isinstance(access.algorithm, Parameter) and not self._environment.contains_algorithm(access.algorithm.name):
                # `a.t` where `a` is a parameter, e.g. K=a.t
                parameters = self._detector.get_ordered_algorithm_parameters(body)
                self._push(body.properties, parameters, _input_of(expression.input), expression.identity)
                try:
                    return self.visit_algorithm(body)
                finally:
                    self._pop()
            # Chained extension calls such as Add1.Add1.Check.repeat(...)
            owner = self.visit_algorithm_execution(
                AlgorithmExecution(access.algorithm.to_algorithm(), expression.input))
            if owner is None:
                raise KatLangRuntimeError.at(
                    f"Attempt to access property {access.property} using invalid object.", access.algorithm)
            return self.visit_property_access(PropertyAccess(owner, access.property))

        detection_target: Expression = body
        if len(body.expressions) == 1 and isinstance(body.expressions[0], Parameter):
            resolved = self.visit_parameter(body.expressions[0])
            if resolved is not None:
                detection_target = resolved

        parameters = self._detector.get_ordered_algorithm_parameters(detection_target.to_algorithm())
        self._push(body.properties, parameters, _input_of(expression.input), expression.identity)
        try:
            return self.visit_algorithm(body)
        finally:
            self._pop()

    # --- Calls ----------------------------------------------------------

    def visit_property_execution(self, expression: PropertyExecution):
        name = expression.identity.name

        if expression.parent is not None:
            return self._execute_extension(expression)
        if name == REPEAT:
            return self._execute_repeat(expression)
        if name == LOOP:
            return self._execute_loop(expression)

        visited_input = None
        input_algorithm = None
        if expression.input is not None:
            visited_input = self.visit_algorithm(self._cloner.clone(expression.input))
            if isinstance(visited_input, Algorithm):
                input_algorithm = visited_input
            else:
                input_algorithm = Algorithm([visited_input] if visited_input is not None else [])

        if name == STRING and isinstance(visited_input, Constant):
            return Text(format_number(visited_input.value))
        if name == REVERSE and isinstance(visited_input, Text):
            return Text(visited_input.value[::-1])

        builtin = get_builtin(name)
        if builtin is not None:
            arguments = _input_of(visited_input)
            if builtin.arity > len(arguments):
                raise KatLangRuntimeError.at(
                    f"Algorithm '{name}' expects {builtin.arity} arguments, but received {len(arguments)}.",
                    expression)
            values = arguments[:builtin.arity]
            if all(isinstance(a, Constant) for a in values):
                return Constant(builtin.function(*(a.value for a in values)))
            return PropertyExecution(expression.identity, Algorithm(arguments))

        declared = self._environment.get_algorithm(name)
        if declared is not None:
            _dbg("call", name, "declared", type(declared).__name__)
            if isinstance(declared, ConditionalAlgorithm):
                return self._dispatch_conditional(expression, declared, _input_of(visited_input))
            if isinstance(declared, Algorithm):
                if input_algorithm is not None and not input_algorithm.is_parametrized:
                    unbound = [
                        p for p in self._detector.get_ordered_algorithm_parameters(input_algorithm)
                        if self._environment.get_parameter_value(p) is None
                    ]
                    if unbound:
                        # Free names in the input: keep the call for later.
                        expression.input = input_algorithm
                        return expression
                return self.visit_algorithm_execution(
                    AlgorithmExecution(declared, input_algorithm, expression.identity))
            return declared

        if name == IF:
            return self._execute_if(expression, _input_of(visited_input))
        if name == LOAD:
            return self._execute_load(expression)
        if name == OPEN:
            return self._execute_open(expression)
        if name == JOIN:
            return self._execute_join(expression)
        if name == COMBINE:
            return self._execute_combine(expression)

        value = self._environment.get_parameter_value(name)
        if value is not None:
            algorithm = value if isinstance(value, Algorithm) else Algorithm([value])
            return self.visit_algorithm_execution(AlgorithmExecution(algorithm, input_algorithm, expression.identity))

        expression.input = input_algorithm
        return expression

    def _execute_extension(self, expression: PropertyExecution):
        """`a.f(x)` calls property `f` of `a` when it has one, else `f(a, x)`."""
        parent = expression.parent
        if isinstance(parent, Parameter):
            owner = self.visit_parameter(parent)
            if isinstance(owner, Algorithm):
                prop = owner.get_property(expression.identity.name)
                if prop is not None:
                    return self.visit(AlgorithmExecution(prop.algorithm.to_algorithm(), expression.input))
        arguments = [parent]
        if expression.input is not None:
            arguments.extend(expression.input.expressions)
        return self.visit(PropertyExecution(expression.identity, Algorithm(arguments)))

    def _execute_repeat(self, expression: PropertyExecution):
        arguments = expression.input
        if arguments is None:
            raise KatLangRuntimeError.at("Expected existing algorithm, but got nothing.", expression.identity)
        if len(arguments.expressions) < 2:
            raise KatLangRuntimeError.at("Not provided enough arguments.", expression.identity)
        iterations = self.visit(arguments.expressions[1])
        if not isinstance(iterations, Constant) or iterations.value < 0:
            raise KatLangRuntimeError.at(
                "The second argument of the loop should be a non-negative numeric value "
                "representing the number of the loop iterations.", expression.identity)
        body = arguments.expressions[0].to_algorithm()
        state = self._as_algorithm(self.visit_algorithm(Algorithm(arguments.expressions[2:])))

        i = 0
        while i < iterations.value:
            _dbg("repeat()", "iteration", i)
            result = self.visit_algorithm_execution(AlgorithmExecution(self._cloner.clone(body), state))
            state = self._as_algorithm(result)
            i += 1
        return state

    def _execute_loop(self, expression: PropertyExecution):
        arguments = expression.input
        if arguments is None:
            raise KatLangRuntimeError.at("Expected existing algorithm, but got nothing.", expression.identity)
        if len(arguments.expressions) < 1:
            raise KatLangRuntimeError.at("Not provided enough arguments.", expression.identity)
        recursive = self.visit(arguments.expressions[0])
        if recursive is None:
            raise KatLangRuntimeError.at(
                "The first argument of the loop should represent a valid recursive expression.",
                expression.identity)
        body = recursive.to_algorithm()
        state = self._as_algorithm(self.visit_algorithm(Algorithm(arguments.expressions[1:])))
        parameters = self._detector.get_ordered_algorithm_parameters(body)

        iteration = 0
        while True:
            probe = self._cloner.clone(body)
            self._push([], parameters, _input_of(state), expression.identity)
            try:
                continuation = self.visit(probe.expressions[-1])
                if isinstance(continuation, Algorithm) and continuation.expressions:
                    continuation = continuation.expressions[-1]
            finally:
                self._pop()

            if not isinstance(continuation, Constant):
                raise KatLangRuntimeError.at(
                    f"Recursive expression '{body}' execution lacks some arguments and loop "
                    f"continuation expression cannot be evaluated.", expression.identity)
            _dbg("loop()", "iteration", iteration, "continue", continuation.value)
            if continuation.value != 1:
                return state
            result = self.visit_algorithm_execution(AlgorithmExecution(self._cloner.clone(body), state))
            state = self._as_algorithm(result)
            iteration += 1

    @staticmethod
    def _as_algorithm(expression: Optional[Expression]) -> Optional[Algorithm]:
        return expression.to_algorithm() if expression is not None else None

    def _dispatch_conditional(self, expression: PropertyExecution, conditional: ConditionalAlgorithm,
                              arguments: List[Expression]):
        count = conditional.conditional_parameters_count
        if count > len(arguments):
            raise KatLangRuntimeError.at(
                "Not supplied enough arguments for function conditional parameters!", expression)

        values = []
        for argument in arguments[:count]:
            visited = self.visit(argument)
            if not isinstance(visited, Constant):
                # Dispatch needs every condition value.
                return expression
            values.append(visited.value)

        condition = Condition(values)
        branch = conditional.branches.get(condition)
        first_free = count
        if branch is None:
            branch = conditional.default_branch
            first_free = 0
        if branch is None:
            raise KatLangRuntimeError.at(
                f"Non-existent conditional branch for condition: {format_condition(condition)}",
                expression.identity)

        remaining = [v for v in (self.visit(a) for a in arguments[first_free:]) if v is not None]
        parameters = self._detector.get_ordered_algorithm_parameters(branch)
        self._push(conditional.properties, parameters, remaining, expression.identity)
        try:
            results = [v for v in (self.visit(e) for e in branch.expressions) if v is not None]
        finally:
            self._pop()

        if not results:
            return None
        if len(results) == 1:
            return results[0]
        return Algorithm(results)

    def _execute_if(self, expression: PropertyExecution, arguments: List[Expression]):
        if len(arguments) < 2:
            raise KatLangRuntimeError.at(
                f"Expression 'if' expects at least 2 parameters, but got {len(arguments)}.", expression)
        condition = arguments[0]
        if not isinstance(condition, Constant):
            return expression
        if len(arguments) == 2:
            return arguments[1] if condition.value != 0 else None
        return arguments[1] if condition.value != 0 else arguments[2]

    # --- Secondary programs ---------------------------------------------

    def _text_argument(self, expression: PropertyExecution) -> Optional[str]:
        if expression.input is not None and len(expression.input.expressions) == 1:
            argument = expression.input.expressions[0]
            if isinstance(argument, Text):
                return argument.value
        return None

    def _download(self, address: str, expression: PropertyExecution) -> str:
        if self.loader is None:
            raise KatLangRuntimeError.at(
                f"Invalid algorithm location: '{address}'. No code loader is configured.", expression)
        try:
            return self.loader(address)
        except Exception as e:
            raise KatLangRuntimeError.at(f"Invalid algorithm location: '{address}'. {e}", expression) from e

    def _parse_secondary(self, code: str, address: str, expression: PropertyExecution,
                         source_dir: Optional[str] = None) -> Expression:
        # Imported lazily; the runtime drives the binder.
        from katlang.kat_runtime import ScriptRunner
        runner = ScriptRunner(loader=self.loader, source_dir=source_dir or self.source_dir)
        result = runner.parse(code)
        if result.errors:
            raise KatLangRuntimeError.at(f"Invalid KatLang code at: '{address}'", expression)
        return result.expression

    def _execute_load(self, expression: PropertyExecution):
        address = self._text_argument(expression)
        if address is None:
            raise KatLangRuntimeError.at(
                "Algorithm loading expects one parameter - URL of the KatLang code", expression)
        _dbg("load()", address)
        code = self._download(address, expression)
        return self.visit(self._parse_secondary(code, address, expression))

    def _execute_open(self, expression: PropertyExecution):
        from katlang.kat_file import file_get_text, resolve_locator
        address = self._text_argument(expression)
        if address is None:
            raise KatLangRuntimeError.at(
                "Algorithm opening expects one parameter - address of the KatLang code file", expression)
        path = resolve_locator(address, self.source_dir)
        _dbg("open()", address, "->", path)
        try:
            code = file_get_text(path)
        except Exception as e:
            raise KatLangRuntimeError.at(f"File reading failed: '{address}'. {e}", expression) from e
        return self.visit(self._parse_secondary(code, address, expression, os.path.dirname(path)))

    def _execute_join(self, expression: PropertyExecution):
        if expression.input is None or len(expression.input.expressions) != 1:
            raise KatLangRuntimeError.at("Algorithm joining expects one parameter", expression)
        argument = expression.input.expressions[0]
        match argument:
            case Text(value=address):
                _dbg("join()", address)
                code = self._download(address, expression)
                joined = self.visit(self._parse_secondary(code, address, expression))
            case Parameter(name=name):
                algorithm = self._environment.get_algorithm(name)
                if not isinstance(algorithm, Algorithm):
                    raise KatLangRuntimeError.at(f"Unknown property '{name}'", expression)
                joined = self.visit(algorithm)
            case _:
                raise KatLangRuntimeError.at(
                    "The argument of the 'join' operator should be address of the KatLang code "
                    "or algorithm expression", expression)
        if isinstance(joined, Algorithm):
            self._environment.join_algorithm(joined.properties)
        return None

    def _execute_combine(self, expression: PropertyExecution):
        if expression.input is None or not expression.input.expressions:
            raise KatLangRuntimeError.at("No input provided for the algorithm combining!", expression)
        parts = [v for v in (self.visit(e) for e in expression.input.expressions) if v is not None]
        if any(isinstance(p, PropertyExecution) for p in parts):
            # Cannot splice what did not reduce yet.
            return PropertyExecution(expression.identity, Algorithm(parts))

        expressions = []
        properties = []
        for part in parts:
            if isinstance(part, Algorithm) and not part.is_parametrized:
                expressions.extend(part.expressions)
                properties.extend(part.properties)
            else:
                expressions.append(part)
        return Algorithm(expressions, properties)
