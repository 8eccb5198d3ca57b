"""
Placeholder substitution for workflow actions.

Placeholders are written ``{{name}}`` or ``{name}``, and may be qualified
with the step that captured the value: ``{{step1.id}}``. A placeholder
that stands alone as a body or parameter value is replaced by the raw
captured value (keeping numbers as numbers); inside a longer string it is
rendered as text.
"""

import re
from typing import Any, Optional

from swaggbot.extraction.expression import (
    MISSING,
    ExpressionSyntaxError,
    Field,
    as_text,
    parse_expression,
)
from swaggbot.workflow.models import WorkflowAction

PLACEHOLDER = re.compile(
    r"\{\{\s*(?P<double>[^{}]+?)\s*\}\}|\{(?P<single>[A-Za-z_][\w.\-]*|\[[^{}\]]+\][\w.\[\]=\-]*)\}"
)
_QUALIFIED = re.compile(r"^step(\d+)[._](.+)$")

# Patterns tried for *_id fields when the named field is absent
ID_FALLBACK_PATTERNS = ["0.id", "[0].id", "id", "0.uuid", "[0].uuid", "uuid"]


class UnresolvedPlaceholderError(LookupError):
    """A placeholder names a value no earlier step captured."""

    def __init__(self, name: str):
        super().__init__(f"Unresolved placeholder: {{{{{name}}}}}")
        self.name = name


def capture_name(expression: str) -> str:
    """
    Name under which an extracted value is stored.

    The last field name in the expression, so ``[name=John].id`` and
    ``data.0.id`` are both captured as ``id``. Expressions without a field
    name are captured under their own text.
    """
    try:
        parsed = parse_expression(expression)
    except ExpressionSyntaxError:
        return expression
    for segment in reversed(parsed.segments):
        if isinstance(segment, Field) and not segment.name.isdigit():
            return segment.name
    return expression


class CapturedValues:
    """
    Values extracted by completed steps of one run.

    Each value is reachable by its capture name, by the extraction
    expression it came from, and qualified by step number. A later step
    capturing the same name shadows the earlier one for unqualified use.
    """

    def __init__(self):
        self._by_step: dict[int, dict[str, Any]] = {}

    def record(self, step_number: int, expression: str, value: Any) -> None:
        scope = self._by_step.setdefault(step_number, {})
        scope[expression] = value
        scope.setdefault(capture_name(expression), value)

    def step_values(self, step_number: int) -> dict[str, Any]:
        return dict(self._by_step.get(step_number, {}))

    def lookup(self, name: str, before_step: Optional[int] = None) -> Any:
        """Resolve a placeholder name, or return MISSING."""
        name = name.strip()
        qualified = _QUALIFIED.match(name)
        if qualified:
            step_number, field = int(qualified.group(1)), qualified.group(2)
            if before_step is not None and step_number >= before_step:
                return MISSING
            return self._by_step.get(step_number, {}).get(field, MISSING)

        for step_number in sorted(self._by_step, reverse=True):
            if before_step is not None and step_number >= before_step:
                continue
            scope = self._by_step[step_number]
            if name in scope:
                return scope[name]
        return MISSING

    def as_dict(self) -> dict[str, Any]:
        """Flat view keyed ``step<N>_<name>``."""
        return {
            f"step{step_number}_{name}": value
            for step_number, scope in sorted(self._by_step.items())
            for name, value in scope.items()
        }


def _placeholder_name(match: re.Match) -> str:
    return match.group("double") or match.group("single")


def substitute_text(text: str, values: CapturedValues, before_step: Optional[int] = None) -> str:
    """
    Replace every placeholder in a string.

    Raises:
        UnresolvedPlaceholderError: For the first placeholder with no value
    """

    def replace(match: re.Match) -> str:
        name = _placeholder_name(match)
        value = values.lookup(name, before_step)
        if value is MISSING:
            raise UnresolvedPlaceholderError(name)
        return as_text(value)

    return PLACEHOLDER.sub(replace, text)


def substitute_value(value: Any, values: CapturedValues, before_step: Optional[int] = None) -> Any:
    """Recursively substitute placeholders inside a JSON value."""
    if isinstance(value, str):
        whole = PLACEHOLDER.fullmatch(value.strip())
        if whole:
            name = _placeholder_name(whole)
            resolved = values.lookup(name, before_step)
            if resolved is MISSING:
                raise UnresolvedPlaceholderError(name)
            return resolved
        return substitute_text(value, values, before_step)
    if isinstance(value, dict):
        return {key: substitute_value(item, values, before_step) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_value(item, values, before_step) for item in value]
    return value


def find_placeholders(text: str) -> list[str]:
    return [_placeholder_name(match) for match in PLACEHOLDER.finditer(text)]


def resolve_action(
    action: WorkflowAction,
    values: CapturedValues,
    before_step: Optional[int] = None,
) -> WorkflowAction:
    """
    Return a copy of an action with all placeholders filled in.

    Path template parameters (``/users/{id}`` with ``parameters: {id: 1}``)
    are filled from the action's own parameters first and removed from
    the query parameters.

    Raises:
        UnresolvedPlaceholderError: If any placeholder cannot be resolved
    """
    parameters = substitute_value(action.parameters, values, before_step)

    endpoint = action.endpoint
    for name in find_placeholders(endpoint):
        if name in parameters:
            value = parameters.pop(name)
            endpoint = re.sub(
                r"\{\{?\s*" + re.escape(name) + r"\s*\}?\}",
                lambda _m: as_text(value),
                endpoint,
            )
    endpoint = substitute_text(endpoint, values, before_step)

    body = substitute_value(action.body, values, before_step) if action.body else action.body

    return action.model_copy(update={"endpoint": endpoint, "parameters": parameters, "body": body})
