"""
Local and cloud encodings of If / DataStore detail rows.

- local: snake_case keys, list fields JSON-encoded into strings,
  timestamps as epoch milliseconds
- cloud: camelCase keys, list fields inline, ISO 8601 timestamps

Decoding does not need to know which encoding a row uses: the models
accept both key styles, JSON-string lists and either timestamp form.
"""

import json
from datetime import datetime
from typing import Any, Literal, TypeVar

from turnflow.schemas.base import NodeDetail

D = TypeVar("D", bound=NodeDetail)

Encoding = Literal["local", "cloud"]


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def to_local_row(detail: NodeDetail) -> dict[str, Any]:
    """Encode a detail row the way a relational text column stores it."""
    row: dict[str, Any] = {}
    for name in type(detail).model_fields:
        value = getattr(detail, name)
        if isinstance(value, datetime):
            row[name] = _epoch_ms(value)
        elif isinstance(value, list):
            row[name] = json.dumps([item.model_dump(mode="json") for item in value])
        else:
            dumped = detail.model_dump(mode="json", include={name})
            row[name] = dumped[name]
    return row


def to_cloud_json(detail: NodeDetail) -> dict[str, Any]:
    """Encode a detail row as plain camelCase JSON."""
    return detail.model_dump(mode="json", by_alias=True)


def encode_detail(detail: NodeDetail, encoding: Encoding = "local") -> dict[str, Any]:
    if encoding == "cloud":
        return to_cloud_json(detail)
    return to_local_row(detail)


def decode_detail(model: type[D], row: dict[str, Any]) -> D:
    """
    Decode a row in either encoding.

    Raises:
        pydantic.ValidationError: The row is malformed, including a list
            column that holds invalid JSON
    """
    return model.model_validate(row)
