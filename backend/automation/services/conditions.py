import logging
import re
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_DEPTH = 32


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _is_empty(value: Any) -> bool:
    """None, False, whitespace-only strings and empty collections are empty."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda actual, expected: actual == expected,
    "not_equals": lambda actual, expected: actual != expected,
    "greater_than": lambda actual, expected: float(actual) > float(expected),
    "less_than": lambda actual, expected: float(actual) < float(expected),
    "greater_than_or_equals": lambda actual, expected: float(actual) >= float(expected),
    "less_than_or_equals": lambda actual, expected: float(actual) <= float(expected),
    "contains": lambda actual, expected: _text(expected) in _text(actual),
    "not_contains": lambda actual, expected: _text(expected) not in _text(actual),
    "starts_with": lambda actual, expected: _text(actual).startswith(_text(expected)),
    "ends_with": lambda actual, expected: _text(actual).endswith(_text(expected)),
    "is_empty": lambda actual, _expected: _is_empty(actual),
    "is_not_empty": lambda actual, _expected: not _is_empty(actual),
    "in": lambda actual, expected: actual in _as_list(expected),
    "not_in": lambda actual, expected: actual not in _as_list(expected),
    "matches": lambda actual, expected: re.search(_text(expected), _text(actual)) is not None,
}


class ConditionEvaluator:
    """
    Evaluate a step's guard conditions against the execution context.

    Accepts a single rule ``{"field", "operator", "value"}`` or a group
    ``{"combinator": "and"|"or", "rules": [...]}`` whose members may be rules
    or nested groups. Fields are dot-separated paths into the context. The
    evaluator never raises: unknown operators and comparison errors make the
    rule false.
    """

    def __init__(self, conditions: Optional[Mapping[str, Any]], context: Optional[Mapping[str, Any]]):
        self.conditions = conditions or {}
        self.context = context or {}

    def evaluate(self) -> bool:
        if not self.conditions or not isinstance(self.conditions, Mapping):
            return True

        if self.conditions.get("rules"):
            return self._evaluate_group(self.conditions, depth=1)
        if self.conditions.get("field"):
            return self._evaluate_single(self.conditions)
        return True

    def _evaluate_group(self, group: Mapping[str, Any], depth: int) -> bool:
        if depth > MAX_DEPTH:
            logger.warning(f"Condition nesting exceeds {MAX_DEPTH} levels; treating group as false")
            return False

        rules = group.get("rules") or []
        if not rules:
            return True

        results = []
        for rule in rules:
            if not isinstance(rule, Mapping):
                results.append(False)
            elif rule.get("rules"):
                results.append(self._evaluate_group(rule, depth + 1))
            else:
                results.append(self._evaluate_single(rule))

        combinator = str(group.get("combinator") or "and").lower()
        if combinator == "or":
            return any(results)
        # "and" and anything unrecognised
        return all(results)

    def _evaluate_single(self, rule: Mapping[str, Any]) -> bool:
        field = rule.get("field")
        operator = rule.get("operator")

        if not field or not operator:
            return True

        actual = self.resolve_field(field)
        return self._compare(actual, str(operator), rule.get("value"))

    def resolve_field(self, field: str) -> Any:
        """Navigate a dot-separated path; unresolved paths yield ``None``."""
        current: Any = self.context
        for part in str(field).split("."):
            if isinstance(current, Mapping):
                current = current.get(part)
            elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
                index = int(part)
                current = current[index] if -len(current) <= index < len(current) else None
            else:
                return None
            if current is None:
                return None
        return current

    def _compare(self, actual: Any, operator: str, expected: Any) -> bool:
        comparator = OPERATORS.get(operator)
        if comparator is None:
            logger.warning(f"Unknown condition operator: {operator}")
            return False

        try:
            return bool(comparator(actual, expected))
        except Exception as e:
            logger.warning(f"Condition comparison failed ({operator}): {str(e)}")
            return False


def evaluate_conditions(conditions: Optional[Mapping[str, Any]], context: Optional[Mapping[str, Any]]) -> bool:
    """Convenience wrapper around :class:`ConditionEvaluator`."""
    return ConditionEvaluator(conditions, context).evaluate()
