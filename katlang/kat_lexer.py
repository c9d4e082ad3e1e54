"""
Turns KatLang source text into a lazy stream of positioned tokens.
"""
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from katlang.kat_datatypes import KatLangError
from katlang.kat_language import (
    TokenKind, OPERATOR_KEYWORDS, PROPERTY_KEYWORDS, CONSTANT_KEYWORDS
)


@dataclass
class Token:
    kind: TokenKind
    position: int
    length: int
    text: str = ""
    value: Union[float, str, None] = None

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.position}, {self.length}, {self.text!r})"


SINGLE_CHAR_TOKENS = {
    "*": TokenKind.MULTIPLY,
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "^": TokenKind.POW,
    "~": TokenKind.GRACE,
    "(": TokenKind.BEGIN,
    ")": TokenKind.END,
    "{": TokenKind.BEGIN_SCOPE,
    "}": TokenKind.END_SCOPE,
    ":": TokenKind.COLON,
    ",": TokenKind.COMMA,
    ";": TokenKind.SEMICOLON,
    ".": TokenKind.DOT,
}

# `x` and `x=` pairs
COMPARISON_TOKENS = {
    "=": (TokenKind.ASSIGN, TokenKind.EQUAL),
    "<": (TokenKind.LESS, TokenKind.LESS_OR_EQUAL),
    ">": (TokenKind.GREATER, TokenKind.GREATER_OR_EQUAL),
}


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


def _is_identifier_start(c: str) -> bool:
    return c.isalpha() or c == "_"


def _is_identifier_part(c: str) -> bool:
    return c.isalpha() or _is_digit(c) or c == "_"


def record_new_line(new_lines: List[int], offset: int):
    # Restarts rescan text seen before; offsets stay unique and sorted.
    if not new_lines or offset > new_lines[-1]:
        new_lines.append(offset)


def _scan_identifier(source: str, index: int) -> Token:
    start = index
    while index < len(source) and _is_identifier_part(source[index]):
        index += 1
    name = source[start:index]
    length = index - start
    if name in OPERATOR_KEYWORDS:
        return Token(OPERATOR_KEYWORDS[name], start, length, name)
    if name in PROPERTY_KEYWORDS:
        return Token(TokenKind.PROPERTY, start, length, name)
    if name in CONSTANT_KEYWORDS:
        return Token(TokenKind.CONSTANT, start, length, name, CONSTANT_KEYWORDS[name])
    return Token(TokenKind.IDENTIFIER, start, length, name)


def _scan_number(source: str, index: int) -> Token:
    start = index
    while index < len(source) and _is_digit(source[index]):
        index += 1
    if index + 1 < len(source) and source[index] == "." and _is_digit(source[index + 1]):
        index += 1
        while index < len(source) and _is_digit(source[index]):
            index += 1
    text = source[start:index]
    return Token(TokenKind.NUMBER, start, index - start, text, float(text))


def _scan_string(source: str, index: int) -> Token:
    start = index
    end = source.find("'", start + 1)
    if end < 0:
        value = source[start + 1:]
        stop = len(source)
    else:
        value = source[start + 1:end]
        stop = end + 1
    return Token(TokenKind.STRING, start, stop - start, source[start:stop], value)


def _scan_ignore(source: str, index: int) -> Token:
    start = index
    following = source[index + 1] if index + 1 < len(source) else ""
    if following and _is_identifier_start(following):
        name = _scan_identifier(source, index + 1)
        return Token(TokenKind.IGNORE_PARAMETER, start, name.length + 1, name.text)
    if following and _is_digit(following):
        number = _scan_number(source, index + 1)
        return Token(TokenKind.IGNORE_VALUE, start, number.length + 1, number.text, number.value)
    return Token(TokenKind.IGNORE, start, 1, "#")


def scan(source: Optional[str], start_position: int = 0,
         new_lines: Optional[List[int]] = None) -> Iterator[Token]:
    """
    Lazily yields the tokens of `source` starting at `start_position`.

    Newline offsets met on the way are recorded into `new_lines` so the
    caller can map positions to lines even when scanning restarts mid-text.
    The stream always ends with an END_OF_FILE token of length 0.
    """
    if source is None:
        return
    if new_lines is None:
        new_lines = []
    index = start_position
    size = len(source)
    while index < size:
        c = source[index]
        if c.isspace():
            if c == "\n":
                record_new_line(new_lines, index)
            index += 1
            continue

        if c.isalpha():
            token = _scan_identifier(source, index)
        elif _is_digit(c):
            token = _scan_number(source, index)
        elif c == "'":
            token = _scan_string(source, index)
        elif c == "#":
            token = _scan_ignore(source, index)
        elif c in COMPARISON_TOKENS:
            single, double = COMPARISON_TOKENS[c]
            if index + 1 < size and source[index + 1] == "=":
                token = Token(double, index, 2, source[index:index + 2])
            else:
                token = Token(single, index, 1, c)
        elif c == "!":
            if index + 1 < size and source[index + 1] == "=":
                token = Token(TokenKind.INEQUAL, index, 2, "!=")
            else:
                raise KatLangError("Expected '=' as part of '!='", index, 1)
        elif c == "/":
            if index + 1 < size and source[index + 1] == "/":
                end = source.find("\n", index)
                end = size if end < 0 else end
                token = Token(TokenKind.INLINE_COMMENT, index, end - index, source[index + 2:end])
            else:
                token = Token(TokenKind.DIVIDE, index, 1, c)
        elif c in SINGLE_CHAR_TOKENS:
            token = Token(SINGLE_CHAR_TOKENS[c], index, 1, c)
        else:
            raise KatLangError(f"Unexpected: {c}", index, 1)

        index = token.position + token.length
        yield token

    yield Token(TokenKind.END_OF_FILE, max(size, start_position), 0)
