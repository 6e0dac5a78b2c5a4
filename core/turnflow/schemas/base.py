"""
Shared model configuration and the base for dedicated node-detail rows.

If and DataStore nodes keep their detail (name, color, conditions, fields)
in dedicated rows keyed by ``(flow_id, node_id)``. Rows arrive in one of
two encodings:

- local: snake_case keys, nested lists stored as JSON strings, epoch-ms
  timestamps (what a relational text column holds)
- cloud: camelCase keys, nested lists inline, ISO 8601 timestamps

Both decode to the same model; see ``turnflow.storage.codec``.
"""

import json
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Self

from pydantic import BaseModel, BeforeValidator, Field, ValidationError
from pydantic.alias_generators import to_camel

from turnflow.schemas.result import Result

CAMEL_MODEL_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "extra": "ignore",
}


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def decode_json_list(value: Any) -> Any:
    """Accept a JSON-encoded string where a list is expected (local rows)."""
    if isinstance(value, str):
        value = value.strip()
        return json.loads(value) if value else []
    if value is None:
        return []
    return value


def decode_timestamp(value: Any) -> Any:
    """Accept epoch milliseconds (local rows) as well as ISO strings/datetimes."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, UTC)
    return value


Timestamp = Annotated[datetime, BeforeValidator(decode_timestamp)]
JsonList = BeforeValidator(decode_json_list)


class NodeDetail(BaseModel):
    """Common fields and metadata mutators of a dedicated node-detail row."""

    id: str = Field(description="Graph node ID this row belongs to")
    flow_id: str
    name: str
    color: str = "#3b82f6"
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    model_config = CAMEL_MODEL_CONFIG

    @classmethod
    def create(cls, **fields: Any) -> Result[Self]:
        """Build a new row, rejecting an empty name or a missing flow id."""
        flow_id = fields.get("flow_id")
        if not flow_id or not str(flow_id).strip():
            return Result.fail("Flow ID is required")
        name = fields.get("name")
        if name is not None and not str(name).strip():
            return Result.fail("Name cannot be empty")
        if not fields.get("id"):
            return Result.fail("Node ID is required")
        try:
            return Result.ok(cls(**fields))
        except ValidationError as e:
            return Result.fail(f"Invalid {cls.__name__}: {e}")

    def touch(self) -> None:
        self.updated_at = utc_now()

    def update_name(self, name: str) -> Result[None]:
        if not name or not name.strip():
            return Result.fail("Name cannot be empty")
        self.name = name
        self.touch()
        return Result.ok()

    def update_color(self, color: str) -> Result[None]:
        self.color = color
        self.touch()
        return Result.ok()
