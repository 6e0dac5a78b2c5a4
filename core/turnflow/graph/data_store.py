"""
Data-store field processing.

A flow declares an ordered data-store schema (typed fields with initial
values). Each session keeps a live data store holding one saved value per
schema field. DataStore nodes carry an ordered list of
``(schema_field_id, logic)`` pairs; when the node runs, each pair is
evaluated in list order and its result written back before the next pair
is evaluated, so a later field can read what an earlier one just wrote.
"""

import logging
import math
from collections.abc import Iterable
from enum import StrEnum
from typing import Annotated, Any, Protocol

from pydantic import BaseModel, Field

from turnflow.graph.context import build_full_context, render_template
from turnflow.graph.safe_eval import SafeEvalError, safe_eval
from turnflow.schemas.base import CAMEL_MODEL_CONFIG, JsonList, NodeDetail
from turnflow.schemas.result import Result

logger = logging.getLogger(__name__)

# A rendered logic string containing one of these is treated as an expression
_OPERATOR_CHARS = frozenset("+-*/%<>=?:&|!")


class DataStoreFieldType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"


class DataStoreSchemaField(BaseModel):
    """Definition of one data-store key on the flow."""

    id: str
    name: str
    type: DataStoreFieldType = DataStoreFieldType.STRING
    initial_value: str = ""
    description: str = ""

    model_config = CAMEL_MODEL_CONFIG


class DataStoreField(BaseModel):
    """One update performed by a DataStore node."""

    id: str
    schema_field_id: str
    logic: str | None = None

    model_config = CAMEL_MODEL_CONFIG


class DataStoreSavedField(BaseModel):
    """A data-store value as stored in the session and in Option snapshots."""

    id: str
    name: str
    type: DataStoreFieldType = DataStoreFieldType.STRING
    value: str = ""

    model_config = {**CAMEL_MODEL_CONFIG, "frozen": True}


class DataStoreNodeDetail(NodeDetail):
    """Dedicated row holding a DataStore node's name, color and ordered fields."""

    name: str = "New Data Update"
    data_store_fields: Annotated[list[DataStoreField], JsonList] = Field(default_factory=list)

    def update_data_store_fields(self, fields: list[DataStoreField]) -> Result[None]:
        self.data_store_fields = list(fields)
        self.touch()
        return Result.ok()


class LogicEvaluator(Protocol):
    """Evaluates one field's logic string against the merged context."""

    def __call__(self, expression: str, context: dict[str, Any]) -> Any: ...


def default_logic_evaluator(expression: str, context: dict[str, Any]) -> Any:
    """
    Render ``{{ }}`` placeholders, then evaluate the text if it is an expression.

    ``{{hp}} - 5`` and ``hp - 5`` are both evaluated by :func:`safe_eval`;
    plain text such as ``CRITICAL`` is taken literally, and so is text that
    merely contains punctuation (``Time: noon``) and does not parse.
    """
    rendered = render_template(expression, context).strip()
    if any(ch in _OPERATOR_CHARS for ch in rendered):
        try:
            return safe_eval(rendered, context)
        except SafeEvalError as e:
            logger.debug(f"Using logic text literally ({e}): {rendered!r}")
            return rendered
    if rendered in context:
        return context[rendered]
    return rendered


def _format_number(number: float) -> int | float:
    return int(number) if number.is_integer() else number


def convert_to_field_type(value: Any, field_type: DataStoreFieldType) -> Any:
    """
    Convert *value* to the field's type, or None when it is not a valid value.

    None means "skip the update and keep the previous value".
    """
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    if isinstance(value, bool):
        text = "true" if value else "false"
    if text in ("", "undefined", "null", "None"):
        return None

    field_type = DataStoreFieldType(field_type)
    if field_type == DataStoreFieldType.STRING:
        return text
    if field_type == DataStoreFieldType.BOOLEAN:
        return text.strip().lower() in ("true", "1", "yes")
    try:
        number = float(text.strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if field_type == DataStoreFieldType.INTEGER:
        return int(number)
    return _format_number(number)


def format_field_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def default_value_for(field_type: DataStoreFieldType) -> str:
    if field_type in (DataStoreFieldType.NUMBER, DataStoreFieldType.INTEGER):
        return "0"
    if field_type == DataStoreFieldType.BOOLEAN:
        return "false"
    return ""


class DataStore:
    """
    Live session data store: ordered saved fields keyed by schema field id.

    Mutated in place while one turn pipeline runs, then frozen into the
    turn's Option via :meth:`snapshot`.
    """

    def __init__(self, fields: Iterable[DataStoreSavedField] = ()):
        self._fields: dict[str, DataStoreSavedField] = {}
        for field in fields:
            self._fields[field.id] = field

    @classmethod
    def from_snapshot(cls, snapshot: Iterable[DataStoreSavedField]) -> "DataStore":
        return cls(snapshot)

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def get(self, field_id: str) -> DataStoreSavedField | None:
        return self._fields.get(field_id)

    def set(self, schema_field: DataStoreSchemaField, value: Any) -> DataStoreSavedField:
        saved = DataStoreSavedField(
            id=schema_field.id,
            name=schema_field.name,
            type=schema_field.type,
            value=format_field_value(value),
        )
        self._fields[schema_field.id] = saved
        return saved

    def snapshot(self) -> list[DataStoreSavedField]:
        return list(self._fields.values())

    def as_context(self) -> dict[str, Any]:
        """Typed values keyed by field name, for templates and expressions."""
        context: dict[str, Any] = {}
        for field in self._fields.values():
            converted = convert_to_field_type(field.value, field.type)
            if converted is None:
                converted = field.value if field.type == DataStoreFieldType.STRING else None
            context[field.name] = converted
        return context


def initialize_data_store(
    schema: list[DataStoreSchemaField],
    store: DataStore,
    context: dict[str, Any] | None = None,
    evaluator: LogicEvaluator = default_logic_evaluator,
) -> list[str]:
    """
    Seed schema fields missing from *store* with their initial values.

    Fields already present (carried over from the previous turn) are left
    alone. An initial value that fails to evaluate falls back to the type
    default. Returns the ids of the fields that were added.
    """
    added = []
    for schema_field in schema:
        if schema_field.id in store:
            continue
        full_context = build_full_context(context, None, store.as_context())
        try:
            value = convert_to_field_type(
                evaluator(schema_field.initial_value, full_context), schema_field.type
            )
        except Exception as e:
            logger.error(
                f"Failed to initialize data store field '{schema_field.name}': {e}",
                extra={"field_id": schema_field.id},
            )
            value = None
        if value is None:
            value = default_value_for(schema_field.type)
        store.set(schema_field, value)
        added.append(schema_field.id)
    return added


def evaluate_data_store_fields(
    fields: list[DataStoreField],
    schema: list[DataStoreSchemaField],
    store: DataStore,
    variables: dict[str, Any] | None = None,
    evaluator: LogicEvaluator = default_logic_evaluator,
    context: dict[str, Any] | None = None,
) -> list[str]:
    """
    Evaluate a DataStore node's fields in declared order, writing each result
    into *store* before the next field is evaluated.

    Each field sees ``context ∪ variables ∪ store`` as it stands at that
    moment. Fields without logic, with an unknown schema field, whose
    evaluation fails or whose value does not convert are skipped and keep
    their previous value.

    Returns:
        Schema field ids that were written, in evaluation order
    """
    schema_by_id = {f.id: f for f in schema}
    written = []

    for field in fields:
        if not field.logic:
            continue

        schema_field = schema_by_id.get(field.schema_field_id)
        if schema_field is None:
            logger.warning(
                f"Schema field not found for data store field {field.id}",
                extra={"field_id": field.schema_field_id},
            )
            continue

        full_context = build_full_context(context, variables, store.as_context())
        try:
            raw_value = evaluator(field.logic, full_context)
            value = convert_to_field_type(raw_value, schema_field.type)
        except Exception as e:
            logger.error(
                f"Failed to execute data store logic for '{schema_field.name}': {e}",
                extra={"field_id": schema_field.id},
            )
            continue

        if value is None:
            logger.debug(
                f"Skipping data store update for '{schema_field.name}': "
                f"not a valid {schema_field.type}"
            )
            continue

        store.set(schema_field, value)
        written.append(schema_field.id)

    return written
