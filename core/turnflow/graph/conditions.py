"""
Condition evaluation for If nodes.

An If node holds an ordered list of conditions and a logic operator.
Every condition is resolved on its own against the turn's variable context,
then the results are folded:

- AND: all conditions true (an empty list is True)
- OR: any condition true (an empty list is False)

How a condition operand is resolved and compared is a pluggable
``ConditionPolicy``. ``DefaultConditionPolicy`` implements the typed
operator set shipped with the flow editor (``string_contains``,
``number_greater_than``, ``boolean_is_true``, ...).
"""

import logging
import math
import re
from enum import StrEnum
from typing import Annotated, Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from turnflow.graph.context import render_template, resolve_path
from turnflow.schemas.base import CAMEL_MODEL_CONFIG, JsonList, NodeDetail
from turnflow.schemas.result import Result

logger = logging.getLogger(__name__)


class LogicOperator(StrEnum):
    """How the results of an If node's conditions are combined."""

    AND = "AND"
    OR = "OR"


class ConditionDataType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"


class ConditionOperator(StrEnum):
    """Typed comparison operators. The prefix names the operand data type."""

    STRING_EXISTS = "string_exists"
    STRING_NOT_EXISTS = "string_not_exists"
    STRING_IS_EMPTY = "string_is_empty"
    STRING_IS_NOT_EMPTY = "string_is_not_empty"
    STRING_EQUALS = "string_equals"
    STRING_NOT_EQUALS = "string_not_equals"
    STRING_CONTAINS = "string_contains"
    STRING_NOT_CONTAINS = "string_not_contains"
    STRING_STARTS_WITH = "string_starts_with"
    STRING_NOT_STARTS_WITH = "string_not_starts_with"
    STRING_ENDS_WITH = "string_ends_with"
    STRING_NOT_ENDS_WITH = "string_not_ends_with"
    STRING_MATCHES_REGEX = "string_matches_regex"
    STRING_NOT_MATCHES_REGEX = "string_not_matches_regex"

    NUMBER_EXISTS = "number_exists"
    NUMBER_NOT_EXISTS = "number_not_exists"
    NUMBER_IS_EMPTY = "number_is_empty"
    NUMBER_IS_NOT_EMPTY = "number_is_not_empty"
    NUMBER_EQUALS = "number_equals"
    NUMBER_NOT_EQUALS = "number_not_equals"
    NUMBER_GREATER_THAN = "number_greater_than"
    NUMBER_LESS_THAN = "number_less_than"
    NUMBER_GREATER_THAN_OR_EQUALS = "number_greater_than_or_equals"
    NUMBER_LESS_THAN_OR_EQUALS = "number_less_than_or_equals"

    INTEGER_EXISTS = "integer_exists"
    INTEGER_NOT_EXISTS = "integer_not_exists"
    INTEGER_IS_EMPTY = "integer_is_empty"
    INTEGER_IS_NOT_EMPTY = "integer_is_not_empty"
    INTEGER_EQUALS = "integer_equals"
    INTEGER_NOT_EQUALS = "integer_not_equals"
    INTEGER_GREATER_THAN = "integer_greater_than"
    INTEGER_LESS_THAN = "integer_less_than"
    INTEGER_GREATER_THAN_OR_EQUALS = "integer_greater_than_or_equals"
    INTEGER_LESS_THAN_OR_EQUALS = "integer_less_than_or_equals"

    BOOLEAN_EXISTS = "boolean_exists"
    BOOLEAN_NOT_EXISTS = "boolean_not_exists"
    BOOLEAN_IS_EMPTY = "boolean_is_empty"
    BOOLEAN_IS_NOT_EMPTY = "boolean_is_not_empty"
    BOOLEAN_IS_TRUE = "boolean_is_true"
    BOOLEAN_IS_FALSE = "boolean_is_false"
    BOOLEAN_EQUALS = "boolean_equals"
    BOOLEAN_NOT_EQUALS = "boolean_not_equals"

    @property
    def data_type(self) -> ConditionDataType:
        return ConditionDataType(self.value.split("_", 1)[0])

    @property
    def predicate(self) -> str:
        return self.value.split("_", 1)[1]


UNARY_PREDICATES = frozenset(
    {"exists", "not_exists", "is_empty", "is_not_empty", "is_true", "is_false"}
)
UNARY_OPERATORS = frozenset(op for op in ConditionOperator if op.predicate in UNARY_PREDICATES)


class Condition(BaseModel):
    """One comparison inside an If node."""

    id: str
    data_type: ConditionDataType | None = None
    value1: str = ""
    operator: ConditionOperator | None = None
    value2: str = ""

    model_config = CAMEL_MODEL_CONFIG

    @property
    def is_unary(self) -> bool:
        return self.operator in UNARY_OPERATORS


@runtime_checkable
class ConditionPolicy(Protocol):
    """Resolves condition operands and compares them."""

    def resolve(self, path: str, context: dict[str, Any]) -> Any: ...

    def compare(self, value: Any, operator: ConditionOperator, other: Any) -> bool: ...


# A whole-operand reference such as "{{ stats.hp }}" resolves to the raw value
_WHOLE_REFERENCE = re.compile(r"^\s*\{\{\s*([\w.]+)\s*\}\}\s*$")


def _to_number(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return None if math.isnan(number) else number


def _to_integer(value: Any) -> int | None:
    number = _to_number(value)
    if number is None or math.isinf(number):
        return None
    return int(number)


def _to_boolean(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    return None


def _convert(value: Any, data_type: ConditionDataType) -> Any:
    if value is None:
        return None
    if data_type == ConditionDataType.STRING:
        return value if isinstance(value, str) else str(value)
    if data_type == ConditionDataType.NUMBER:
        return _to_number(value)
    if data_type == ConditionDataType.INTEGER:
        return _to_integer(value)
    return _to_boolean(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class DefaultConditionPolicy:
    """
    Operand resolution and typed comparison used by the flow editor.

    Operands are template strings. An operand that is exactly one reference
    (``{{ score }}``) resolves to the referenced raw value, or None when the
    path is missing, so ``*_exists`` checks work. Anything else is rendered
    as text with each reference substituted.
    """

    def resolve(self, path: str, context: dict[str, Any]) -> Any:
        match = _WHOLE_REFERENCE.match(path or "")
        if match:
            return resolve_path(context, match.group(1))
        return render_template(path or "", context)

    def compare(self, value: Any, operator: ConditionOperator, other: Any) -> bool:
        operator = ConditionOperator(operator)
        data_type = operator.data_type
        predicate = operator.predicate
        left = _convert(value, data_type)

        if predicate == "exists":
            return left is not None
        if predicate == "not_exists":
            return left is None
        if predicate == "is_empty":
            return _is_empty(left)
        if predicate == "is_not_empty":
            return not _is_empty(left)

        if data_type == ConditionDataType.STRING:
            return self._compare_strings(predicate, left or "", _convert(other, data_type) or "")
        if data_type == ConditionDataType.BOOLEAN:
            return self._compare_booleans(predicate, left, _convert(other, data_type))

        right = _convert(other, data_type)
        if left is None or right is None:
            return False
        return self._compare_numbers(predicate, left, right)

    @staticmethod
    def _compare_strings(predicate: str, left: str, right: str) -> bool:
        if predicate == "equals":
            return left == right
        if predicate == "not_equals":
            return left != right
        if predicate == "contains":
            return right in left
        if predicate == "not_contains":
            return right not in left
        if predicate == "starts_with":
            return left.startswith(right)
        if predicate == "not_starts_with":
            return not left.startswith(right)
        if predicate == "ends_with":
            return left.endswith(right)
        if predicate == "not_ends_with":
            return not left.endswith(right)
        if predicate in ("matches_regex", "not_matches_regex"):
            try:
                matched = re.search(right, left) is not None
            except re.error as e:
                logger.warning(f"Invalid regex pattern {right!r}: {e}")
                # An invalid pattern never matches
                return predicate == "not_matches_regex"
            return matched if predicate == "matches_regex" else not matched
        return False

    @staticmethod
    def _compare_booleans(predicate: str, left: bool | None, right: bool | None) -> bool:
        if predicate == "is_true":
            return left is True
        if predicate == "is_false":
            return left is False
        if predicate == "equals":
            return bool(left) == bool(right)
        if predicate == "not_equals":
            return bool(left) != bool(right)
        return False

    @staticmethod
    def _compare_numbers(predicate: str, left: float, right: float) -> bool:
        if predicate == "equals":
            return left == right
        if predicate == "not_equals":
            return left != right
        if predicate == "greater_than":
            return left > right
        if predicate == "less_than":
            return left < right
        if predicate == "greater_than_or_equals":
            return left >= right
        if predicate == "less_than_or_equals":
            return left <= right
        return False


def evaluate_condition(
    condition: Condition,
    context: dict[str, Any],
    policy: ConditionPolicy | None = None,
) -> bool:
    """Evaluate one condition. Incomplete conditions and policy errors are False."""
    policy = policy or DefaultConditionPolicy()

    if condition.data_type is None or condition.operator is None:
        logger.warning(f"Condition {condition.id} has no data type or operator")
        return False

    try:
        value = policy.resolve(condition.value1, context)
        other = None if condition.is_unary else policy.resolve(condition.value2, context)
        return bool(policy.compare(value, condition.operator, other))
    except Exception as e:
        logger.warning(
            f"Failed to evaluate condition {condition.id} ({condition.operator}): {e}",
            extra={"event": "condition_error"},
        )
        return False


def evaluate_conditions(
    conditions: list[Condition],
    logic_operator: LogicOperator | str,
    context: dict[str, Any],
    policy: ConditionPolicy | None = None,
) -> bool:
    """
    Evaluate an If node's conditions and fold them with *logic_operator*.

    Every condition is evaluated (no short-circuit) so each one is resolved
    independently of the others.

    Returns:
        AND: True when all are true, True for an empty list.
        OR: True when any is true, False for an empty list.
    """
    policy = policy or DefaultConditionPolicy()
    results = [evaluate_condition(c, context, policy) for c in conditions]

    if LogicOperator(logic_operator) == LogicOperator.AND:
        return all(results)
    return any(results)


class IfNodeDetail(NodeDetail):
    """Dedicated row holding an If node's name, color, operator and conditions."""

    name: str = "New If"
    logic_operator: LogicOperator = LogicOperator.AND
    conditions: Annotated[list[Condition], JsonList] = Field(default_factory=list)

    def evaluate(self, context: dict[str, Any], policy: ConditionPolicy | None = None) -> bool:
        return evaluate_conditions(self.conditions, self.logic_operator, context, policy)

    def update_conditions(self, conditions: list[Condition]) -> Result[None]:
        self.conditions = list(conditions)
        self.touch()
        return Result.ok()

    def update_logic_operator(self, logic_operator: LogicOperator | str) -> Result[None]:
        try:
            self.logic_operator = LogicOperator(logic_operator)
        except ValueError:
            return Result.fail(f"Unknown logic operator: {logic_operator}")
        self.touch()
        return Result.ok()
