"""
Value extraction from API responses.

Exports:
    parse_expression / evaluate: extraction expression language
    extract_token / find_token: credential extraction for auth steps
"""

from swaggbot.extraction.expression import (
    MISSING,
    Expression,
    ExpressionSyntaxError,
    Field,
    Index,
    Select,
    as_text,
    evaluate,
    parse_expression,
)
from swaggbot.extraction.token import (
    TokenMatch,
    extract_token,
    find_token,
    is_token_like,
)

__all__ = [
    "MISSING",
    "Expression",
    "ExpressionSyntaxError",
    "Field",
    "Index",
    "Select",
    "as_text",
    "evaluate",
    "parse_expression",
    "TokenMatch",
    "extract_token",
    "find_token",
    "is_token_like",
]
