"""Canonical JSON values for payloads and operation results."""

import enum
import json
import math
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Union
from uuid import UUID

from pydantic import BaseModel

from wms_shared.exceptions import PayloadTypeError

JSONValue = Union[None, bool, int, float, str, List["JSONValue"], Dict[str, "JSONValue"]]

# Fields that vary between deliveries of the same logical event
VOLATILE_FIELDS = frozenset({"timestamp", "created_at", "updated_at", "processed_at"})


def to_json_value(value: Any) -> JSONValue:
    """
    Convert a payload or result into a plain JSON value.

    Raises:
        PayloadTypeError: If the value (or anything nested in it) has no
            canonical JSON representation.
    """
    if value is None or type(value) in (bool, str):
        return value

    if isinstance(value, enum.Enum):
        return to_json_value(value.value)

    if isinstance(value, str):
        return str(value)

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        if not math.isfinite(value):
            raise PayloadTypeError(f"Non-finite float is not allowed: {value}")
        return value

    if isinstance(value, Decimal):
        if not value.is_finite():
            raise PayloadTypeError(f"Non-finite decimal is not allowed: {value}")
        return str(value)

    if isinstance(value, UUID):
        return str(value)

    # datetime is a subclass of date
    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, BaseModel):
        return to_json_value(value.model_dump(mode="json"))

    if isinstance(value, Mapping):
        converted = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise PayloadTypeError(
                    f"Payload keys must be strings, got {type(key).__name__}"
                )
            converted[key] = to_json_value(item)
        return converted

    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]

    raise PayloadTypeError(f"Unsupported payload type: {type(value).__name__}")


def canonical_json(value: Any) -> str:
    """Serialize a value with sorted keys and no insignificant whitespace."""
    return json.dumps(
        to_json_value(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def strip_volatile_fields(payload: Any) -> JSONValue:
    """Drop top-level timestamp fields that differ between duplicate deliveries."""
    converted = to_json_value(payload)

    if not isinstance(converted, dict):
        return converted

    return {
        key: item
        for key, item in converted.items()
        if key not in VOLATILE_FIELDS
    }
