"""
Precedence-climbing parser producing the KatLang expression tree.

The parser consumes the lazy token stream of `kat_lexer.scan` and raises
`KatLangError` on the first syntax error. Recovery is driven from the
runtime: it restarts scanning after the failing span and asks the parser
to resynchronize in panic mode.
"""
from typing import Dict, Iterable, Optional

from katlang.kat_datatypes import (
    KatLangError, Expression, Constant, Text, Parameter, IgnoreArgument,
    Unary, Binary, ContentSelection, PropertyAccess, PropertyExecution,
    Algorithm, ConditionalAlgorithm, Property, PropertyBranch, Condition
)
from katlang.kat_language import TokenKind, OPERATORS, UNARY_OPERATORS, COMBINE
from katlang.kat_lexer import Token

# Tokens that cannot start an expression; skipped after an error.
SYNCHRONIZATION_TOKENS = frozenset({
    TokenKind.COMMA, TokenKind.SEMICOLON, TokenKind.END, TokenKind.END_SCOPE,
    TokenKind.ASSIGN, TokenKind.COLON, TokenKind.DOT,
    TokenKind.AND, TokenKind.OR, TokenKind.XOR,
    TokenKind.LESS, TokenKind.LESS_OR_EQUAL, TokenKind.GREATER, TokenKind.GREATER_OR_EQUAL,
    TokenKind.EQUAL, TokenKind.INEQUAL,
    TokenKind.PLUS, TokenKind.MINUS, TokenKind.MULTIPLY, TokenKind.DIVIDE, TokenKind.POW,
    TokenKind.MOD, TokenKind.DIV,
})

BLOCK_TERMINATORS = (TokenKind.END_OF_FILE, TokenKind.END, TokenKind.END_SCOPE)


def describe(token: Token) -> str:
    if token.kind == TokenKind.END_OF_FILE:
        return "end of file"
    return f"'{token.text}'"


class TokenStream:
    """A one-token lookahead cursor over a token iterator."""

    def __init__(self, tokens: Iterable[Token]):
        self._tokens = iter(tokens)
        self.current: Optional[Token] = None
        self.last_end = 0

    @property
    def kind(self) -> TokenKind:
        return self.current.kind

    def move_next(self) -> bool:
        token = next(self._tokens, None)
        if token is None:
            return False
        if self.current is not None:
            self.last_end = self.current.position + self.current.length
        self.current = token
        return True

    def is_execution_operator(self) -> bool:
        descriptor = OPERATORS.get(self.kind)
        return descriptor is not None and descriptor.execution


class Parser:
    """Builds one top-level algorithm out of a token sequence."""

    def parse(self, tokens: Iterable[Token], is_panic_mode: bool = False) -> Algorithm:
        stream = TokenStream(tokens)
        if not stream.move_next():
            return Algorithm()
        if is_panic_mode:
            self._synchronize(stream)
        algorithm = self._read_second_order_algorithm(stream, True)
        if stream.kind != TokenKind.END_OF_FILE:
            raise KatLangError.at(f"Expected end of file, but got: {describe(stream.current)}", stream.current)
        return algorithm

    def _synchronize(self, stream: TokenStream):
        while stream.kind in SYNCHRONIZATION_TOKENS:
            if not stream.move_next():
                break

    @staticmethod
    def _span(expression: Expression, start: int, stream: TokenStream) -> Expression:
        expression.position = start
        expression.length = max(0, stream.last_end - start)
        return expression

    # --- Algorithms ---------------------------------------------------

    def _read_second_order_algorithm(self, stream: TokenStream, is_parametrized: bool) -> Algorithm:
        """A program or block: property declarations and tuple elements."""
        start = stream.current.position
        properties: Dict[str, Expression] = {}
        expressions = []
        while stream.kind not in BLOCK_TERMINATORS:
            while stream.kind == TokenKind.INLINE_COMMENT:
                stream.move_next()
            token = stream.current
            if token.kind != TokenKind.IDENTIFIER:
                expressions.append(self._read_first_order_algorithm(stream))
                continue

            parameter = self._read_parameter(stream, False)
            if stream.kind != TokenKind.ASSIGN:
                first = self._read_expression(stream, 0, parameter)
                expressions.append(self._read_first_order_algorithm(stream, first))
                continue

            if parameter.grace_weight != 0:
                raise KatLangError.at("Grace~ operator cannot be applied to property name.", parameter)
            stream.move_next()
            branch = self._read_property(stream, parameter.name, token.position)
            existing = properties.get(branch.name)
            if existing is not None:
                if not isinstance(existing, ConditionalAlgorithm):
                    raise KatLangError.at(f"Property '{branch.name}' is already defined.", branch)
                existing.add_branch(branch)
            elif branch.condition is None:
                properties[branch.name] = branch.algorithm
            else:
                conditional = ConditionalAlgorithm()
                conditional.add_branch(branch)
                properties[branch.name] = conditional

        result = Algorithm(
            expressions,
            [Property(name, body) for name, body in properties.items()],
            is_parametrized,
        )
        return self._span(result, start, stream)

    def _read_property(self, stream: TokenStream, name: str, start: int) -> PropertyBranch:
        condition = self._read_conditions(stream)
        body = self._read_first_order_algorithm(stream)
        return self._span(PropertyBranch(name, body, condition), start, stream)

    def _read_conditions(self, stream: TokenStream) -> Optional[Condition]:
        values = []
        while stream.kind == TokenKind.IGNORE_VALUE:
            values.append(stream.current.value)
            stream.move_next()
            if stream.kind in (TokenKind.COMMA, TokenKind.SEMICOLON):
                stream.move_next()
        return Condition(values) if values else None

    def _read_first_order_algorithm(self, stream: TokenStream, first: Optional[Expression] = None) -> Algorithm:
        """
        Reads comma separated expressions. A semicolon splices its two
        neighbours into one `combine` call; anything else ends the tuple.
        """
        start = first.position if first is not None else stream.current.position
        expressions = [first] if first is not None else []
        while stream.kind not in BLOCK_TERMINATORS:
            should_join = stream.kind == TokenKind.SEMICOLON
            if stream.kind in (TokenKind.COMMA, TokenKind.SEMICOLON):
                stream.move_next()
            elif expressions:
                break
            following = self._read_expression(stream)
            if should_join and expressions:
                previous = expressions.pop()
                following = PropertyExecution(Parameter(COMBINE), Algorithm([previous, following]))
            expressions.append(following)

        if len(expressions) == 1 and isinstance(expressions[0], Algorithm):
            result = expressions[0]
        else:
            result = Algorithm(expressions)
        return self._span(result, start, stream)

    # --- Expressions --------------------------------------------------

    def _read_expression(self, stream: TokenStream, min_precedence: int = 0,
                         starting: Optional[Expression] = None) -> Expression:
        start = starting.position if starting is not None else stream.current.position
        lhs = starting
        if lhs is None:
            token = stream.current
            if token.kind in UNARY_OPERATORS:
                stream.move_next()
                operand = self._read_expression(stream, UNARY_OPERATORS[token.kind].precedence + 1)
                lhs = Unary(token.kind, operand)
            elif token.kind == TokenKind.BEGIN:
                stream.move_next()
                algorithm = self._read_second_order_algorithm(stream, False)
                self._read_keyword(stream, TokenKind.END, ")")
                if len(algorithm.expressions) == 1 and not algorithm.properties:
                    lhs = algorithm.expressions[0]
                else:
                    lhs = algorithm
            elif token.kind == TokenKind.BEGIN_SCOPE:
                stream.move_next()
                algorithm = self._read_second_order_algorithm(stream, True)
                self._read_keyword(stream, TokenKind.END_SCOPE, "}")
                if (len(algorithm.expressions) == 1 and not algorithm.properties
                        and isinstance(algorithm.expressions[0], Algorithm)):
                    closure = algorithm.expressions[0]
                    closure.is_parametrized = True
                    return self._span(closure, start, stream)
                lhs = algorithm
            else:
                lhs = self._read_atom(stream)

        while stream.kind in OPERATORS and OPERATORS[stream.kind].precedence >= min_precedence:
            operator = stream.current
            descriptor = OPERATORS[operator.kind]
            next_min_precedence = descriptor.precedence if descriptor.right_associative else descriptor.precedence + 1

            if descriptor.execution:
                # A call needs a name; anything else starts a new tuple element.
                if not isinstance(lhs, Parameter):
                    return self._span(lhs, start, stream)
                if lhs.is_ignored:
                    raise KatLangError.at("Operator '#' cannot be applied to property calls!", operator)
                rhs = self._read_expression(stream, next_min_precedence)
                if isinstance(rhs, PropertyExecution) and rhs.parent is not None:
                    parent_input = rhs.parent if isinstance(rhs.parent, Algorithm) else None
                    rhs.parent = PropertyExecution(lhs, parent_input)
                    lhs = rhs
                elif isinstance(rhs, PropertyAccess):
                    body = PropertyExecution(lhs, rhs.algorithm.to_algorithm())
                    lhs = PropertyExecution(rhs.property, Algorithm([body]))
                else:
                    lhs = PropertyExecution(lhs, rhs.to_algorithm())
                self._span(lhs, start, stream)
                continue

            stream.move_next()
            match operator.kind:
                case TokenKind.COLON:
                    lhs = self._read_content_selection(stream, lhs, operator, next_min_precedence)
                case TokenKind.DOT:
                    lhs = self._read_property_reference(stream, lhs, next_min_precedence)
                case _:
                    lhs = Binary(operator.kind, lhs, self._read_expression(stream, next_min_precedence))

        return self._span(lhs, start, stream)

    def _read_content_selection(self, stream: TokenStream, content: Expression,
                                operator: Token, min_precedence: int) -> ContentSelection:
        if not isinstance(content, (Parameter, Algorithm, PropertyExecution, PropertyAccess)):
            raise KatLangError.at("Selector content can be algorithm or parameter.", operator)
        if stream.kind == TokenKind.END_OF_FILE:
            raise KatLangError.at("Selector not provided.", stream.current)
        selector = self._read_expression(stream, min_precedence)
        if not isinstance(selector, (Parameter, Constant)):
            raise KatLangError.at("Selector can be only constant or parameter.", selector)
        return ContentSelection(content, selector)

    def _read_property_reference(self, stream: TokenStream, target: Expression,
                                 min_precedence: int) -> Expression:
        """`a.b` is a property access; `a.b(...)` an extension call on `a`."""
        if stream.kind not in (TokenKind.IDENTIFIER, TokenKind.PROPERTY, TokenKind.GRACE):
            raise KatLangError.at(
                f"After operator . should follow property name, but got: {describe(stream.current)}",
                stream.current)
        prop = self._read_parameter(stream, False)
        if stream.is_execution_operator():
            property_input = self._read_expression(stream, min_precedence)
            if not isinstance(property_input, Algorithm):
                property_input = Algorithm([property_input])
            return PropertyExecution(prop, property_input, target)
        return PropertyAccess(target, prop)

    def _read_atom(self, stream: TokenStream) -> Expression:
        token = stream.current
        match token.kind:
            case TokenKind.NUMBER | TokenKind.CONSTANT:
                stream.move_next()
                atom = Constant(token.value)
            case TokenKind.GRACE | TokenKind.IDENTIFIER | TokenKind.PROPERTY:
                return self._read_parameter(stream, False)
            case TokenKind.IGNORE_PARAMETER:
                return self._read_parameter(stream, True)
            case TokenKind.IGNORE:
                stream.move_next()
                atom = IgnoreArgument()
            case TokenKind.IGNORE_VALUE:
                raise KatLangError.at(
                    f"Ignored value '#{token.text}' can be used only as the first expressions "
                    f"in the property declaration.", token)
            case TokenKind.STRING:
                stream.move_next()
                atom = Text(token.value)
            case TokenKind.INLINE_COMMENT:
                stream.move_next()
                return self._read_atom(stream)
            case _:
                raise KatLangError.at(f"Unexpected token: {describe(token)}", token)
        return self._span(atom, token.position, stream)

    def _read_parameter(self, stream: TokenStream, ignore: bool) -> Parameter:
        """Reads `name`, `#name` or a name wrapped in grace markers like `~~a~`."""
        token = stream.current
        if token.kind == TokenKind.PROPERTY:
            stream.move_next()
            return self._span(Parameter(token.text), token.position, stream)

        weight = 0
        while stream.kind == TokenKind.GRACE:
            weight -= 1
            stream.move_next()
        expected = TokenKind.IGNORE_PARAMETER if ignore else TokenKind.IDENTIFIER
        name = stream.current
        if name.kind != expected:
            raise KatLangError.at(f"Expected identifier, but got: {describe(name)}", name)
        stream.move_next()
        while stream.kind == TokenKind.GRACE:
            weight += 1
            stream.move_next()
        return self._span(Parameter(name.text, weight, ignore), token.position, stream)

    def _read_keyword(self, stream: TokenStream, kind: TokenKind, symbol: str):
        if stream.kind != kind:
            raise KatLangError.at(f"Expected '{symbol}', but got: {describe(stream.current)}", stream.current)
        stream.move_next()
