"""Condition evaluator for workflow rules.

A workflow carries a list of conditions like::

    [
        {"field": "submission.score", "operator": "less_than", "value": 7, "logic": "AND"},
        {"field": "submission.tags", "operator": "contains", "value": "vip"},
    ]

``evaluate`` answers whether the trigger data satisfies them. It performs no
I/O and never raises for malformed conditions: anything it cannot interpret
simply does not match.

Combination logic is read from the first condition (``AND`` unless it says
``OR``). Fields are dot paths into the trigger data; a path that does not
resolve yields ``MISSING``, which only satisfies ``is_empty`` and
``not_equals`` against a non-null value.
"""

import logging
import re
from typing import Any, Optional

from core.constants import OPERATOR_ALIASES, ConditionLogic, ConditionOperator
from core.utils import MISSING, get_nested_value

logger = logging.getLogger(__name__)


def evaluate(conditions: Optional[list[dict]], data: dict) -> bool:
    """Evaluate ``conditions`` against ``data``.

    Returns True for an empty or absent list.
    """
    if not conditions:
        return True

    first = conditions[0]
    logic = _parse_logic(first.get("logic") if isinstance(first, dict) else None)
    results = (evaluate_condition(c, data) for c in conditions)

    if logic == ConditionLogic.OR:
        return any(results)
    return all(results)


def evaluate_condition(condition: dict, data: dict) -> bool:
    """Evaluate a single ``{field, operator, value}`` condition."""
    if not isinstance(condition, dict):
        logger.warning(f"Ignoring malformed condition: {condition!r}")
        return False

    operator = resolve_operator(condition.get("operator"))
    if operator is None:
        logger.warning(f"Unknown condition operator: {condition.get('operator')!r}")
        return False

    actual = get_nested_value(data, condition.get("field", ""))
    expected = condition.get("value")

    handler = _OPERATORS[operator]
    try:
        return bool(handler(actual, expected))
    except Exception as e:
        logger.warning(f"Condition on {condition.get('field')!r} failed to evaluate: {e}")
        return False


def resolve_operator(raw: Any) -> Optional[ConditionOperator]:
    """Map an operator name or symbolic alias to ``ConditionOperator``."""
    if isinstance(raw, ConditionOperator):
        return raw
    if not isinstance(raw, str):
        return None
    if raw in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[raw]
    try:
        return ConditionOperator(raw.strip().lower())
    except ValueError:
        return None


def is_empty(value: Any) -> bool:
    """None, missing, empty string and empty collections are empty.

    ``0`` and ``False`` are values, not emptiness.
    """
    if value is MISSING or value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


# ─── Operator implementations ──────────────────────────────────

def _parse_logic(raw: Any) -> ConditionLogic:
    if isinstance(raw, str) and raw.strip().upper() == ConditionLogic.OR.value:
        return ConditionLogic.OR
    return ConditionLogic.AND


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None or value is MISSING:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _loose_equals(actual: Any, expected: Any) -> bool:
    """Equality that treats numeric strings and numbers as comparable."""
    if actual is MISSING:
        return False
    if actual is None or expected is None:
        return actual is None and expected is None
    if actual == expected:
        return True
    if isinstance(actual, bool) or isinstance(expected, bool):
        return str(actual).lower() == str(expected).lower()
    a, b = _to_number(actual), _to_number(expected)
    if a is not None and b is not None:
        return a == b
    return False


def _not_equals(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return expected is not None
    return not _loose_equals(actual, expected)


def _as_text(value: Any) -> Optional[str]:
    if value is MISSING or value is None:
        return None
    return str(value).lower()


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)):
        return any(_loose_equals(item, expected) or _as_text(item) == _as_text(expected) for item in actual)
    haystack, needle = _as_text(actual), _as_text(expected)
    if haystack is None or needle is None:
        return False
    return needle in haystack


def _not_contains(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    return not _contains(actual, expected)


def _starts_with(actual: Any, expected: Any) -> bool:
    haystack, needle = _as_text(actual), _as_text(expected)
    return haystack is not None and needle is not None and haystack.startswith(needle)


def _ends_with(actual: Any, expected: Any) -> bool:
    haystack, needle = _as_text(actual), _as_text(expected)
    return haystack is not None and needle is not None and haystack.endswith(needle)


def _numeric(compare):
    def check(actual: Any, expected: Any) -> bool:
        a, b = _to_number(actual), _to_number(expected)
        if a is None or b is None:
            return False
        return compare(a, b)
    return check


def _matches_regex(actual: Any, expected: Any) -> bool:
    if actual is MISSING or actual is None or not isinstance(expected, str):
        return False
    try:
        return re.search(expected, str(actual)) is not None
    except re.error as e:
        logger.warning(f"Invalid regex in workflow condition {expected!r}: {e}")
        return False


def _in(actual: Any, expected: Any) -> bool:
    if actual is MISSING or not isinstance(expected, (list, tuple)):
        return False
    return any(_loose_equals(actual, candidate) for candidate in expected)


def _not_in(actual: Any, expected: Any) -> bool:
    if actual is MISSING or not isinstance(expected, (list, tuple)):
        return False
    return not _in(actual, expected)


_OPERATORS = {
    ConditionOperator.EQUALS: _loose_equals,
    ConditionOperator.NOT_EQUALS: _not_equals,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.NOT_CONTAINS: _not_contains,
    ConditionOperator.STARTS_WITH: _starts_with,
    ConditionOperator.ENDS_WITH: _ends_with,
    ConditionOperator.GREATER_THAN: _numeric(lambda a, b: a > b),
    ConditionOperator.LESS_THAN: _numeric(lambda a, b: a < b),
    ConditionOperator.GREATER_THAN_OR_EQUAL: _numeric(lambda a, b: a >= b),
    ConditionOperator.LESS_THAN_OR_EQUAL: _numeric(lambda a, b: a <= b),
    ConditionOperator.IS_EMPTY: lambda actual, _: is_empty(actual),
    ConditionOperator.IS_NOT_EMPTY: lambda actual, _: not is_empty(actual),
    ConditionOperator.MATCHES_REGEX: _matches_regex,
    ConditionOperator.IN: _in,
    ConditionOperator.NOT_IN: _not_in,
}
