"""
Extraction expressions.

Grammar::

    expression := segment ("." segment | "[" ... "]")*
    segment    := name | "[" index "]" | "[" key "=" literal "]"

A bare name reads an object field; on an array, a numeric name indexes
it. ``[n]`` indexes an array. ``[key=value]`` selects the first element
of an array whose ``key`` field, rendered as text, equals ``value``.
Applied to an object, the selection searches the first array found under
one of the common wrapper keys (data, items, results, records).

Examples::

    data.token
    0.id
    [0].id
    [name=John].id
    data.items[status=active].owner.email
"""

from dataclasses import dataclass
from typing import Any, Union

WRAPPER_KEYS = ("data", "items", "results", "records")


class ExpressionSyntaxError(ValueError):
    """Raised for malformed extraction expressions."""

    def __init__(self, expression: str, position: int, message: str):
        super().__init__(f"{message} at position {position} in {expression!r}")
        self.expression = expression
        self.position = position


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Index:
    position: int


@dataclass(frozen=True)
class Select:
    key: str
    value: str


Segment = Union[Field, Index, Select]


@dataclass(frozen=True)
class Expression:
    source: str
    segments: tuple[Segment, ...]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(self.text, self.pos, message)

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if not self.at_end() else ""

    def parse(self) -> Expression:
        if not self.text.strip():
            raise self.error("Empty expression")

        segments = [self.parse_segment()]
        while not self.at_end():
            char = self.peek()
            if char == ".":
                self.pos += 1
                segments.append(self.parse_segment())
            elif char == "[":
                segments.append(self.parse_bracket())
            else:
                raise self.error(f"Unexpected character {char!r}")

        return Expression(source=self.text, segments=tuple(segments))

    def parse_segment(self) -> Segment:
        if self.peek() == "[":
            return self.parse_bracket()
        return self.parse_name()

    def parse_name(self) -> Field:
        start = self.pos
        while not self.at_end() and self.peek() not in ".[]=":
            self.pos += 1
        name = self.text[start : self.pos].strip()
        if not name:
            raise self.error("Expected a field name")
        return Field(name)

    def parse_bracket(self) -> Segment:
        self.pos += 1  # "["
        close = self.text.find("]", self.pos)
        if close == -1:
            raise self.error("Unclosed '['")

        body = self.text[self.pos : close]
        if not body.strip():
            raise self.error("Empty brackets")

        if "=" in body:
            key, _, literal = body.partition("=")
            key = key.strip()
            literal = _unquote(literal.strip())
            if not key or not literal:
                raise self.error("Selection needs both a key and a value")
            segment: Segment = Select(key, literal)
        else:
            text = body.strip()
            if not text.isdigit():
                raise self.error(f"Array index must be a non-negative integer, got {text!r}")
            segment = Index(int(text))

        self.pos = close + 1
        return segment


def _unquote(literal: str) -> str:
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in "'\"":
        return literal[1:-1]
    return literal


def parse_expression(text: str) -> Expression:
    """
    Parse an extraction expression.

    Raises:
        ExpressionSyntaxError: If the expression is malformed
    """
    return _Parser(text).parse()


def as_text(value: Any) -> str:
    """Render a JSON value the way it appears in a URL or a comparison."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _find_array(value: Any) -> Any:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        for key in WRAPPER_KEYS:
            if isinstance(value.get(key), list):
                return value[key]
    return MISSING


def _step(value: Any, segment: Segment) -> Any:
    if isinstance(segment, Field):
        if isinstance(value, dict):
            return value.get(segment.name, MISSING)
        if isinstance(value, list) and segment.name.isdigit():
            return _step(value, Index(int(segment.name)))
        return MISSING

    if isinstance(segment, Index):
        if isinstance(value, list) and segment.position < len(value):
            return value[segment.position]
        return MISSING

    array = _find_array(value)
    if array is MISSING:
        return MISSING
    for item in array:
        if isinstance(item, dict) and segment.key in item and as_text(item[segment.key]) == segment.value:
            return item
    return MISSING


def evaluate(expression: Union[Expression, str], value: Any) -> Any:
    """
    Evaluate an expression against a JSON value.

    Returns:
        The resolved value, or MISSING when any segment does not resolve.
        A null leaf resolves to None, which is a value and not a miss.

    Raises:
        ExpressionSyntaxError: If a string expression is malformed
    """
    if isinstance(expression, str):
        expression = parse_expression(expression)

    current = value
    for segment in expression.segments:
        current = _step(current, segment)
        if current is MISSING:
            return MISSING
    return current
