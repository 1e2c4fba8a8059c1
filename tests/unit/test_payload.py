"""Unit tests for canonical payload values and key generation."""

import enum
import json
import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from unittest.mock import MagicMock

from pydantic import BaseModel

from wms_shared.exceptions import PayloadTypeError
from wms_shared.idempotency import IdempotencyService
from wms_shared.payload import canonical_json, strip_volatile_fields, to_json_value


class Carrier(str, enum.Enum):
    UPS = "ups"
    FEDEX = "fedex"


class ShipmentRequest(BaseModel):
    order_id: int
    carrier: Carrier
    weight: Decimal


@pytest.fixture
def key_service():
    """Key generation needs no storage."""
    return IdempotencyService(MagicMock(), default_ttl_hours=24, stale_processing_seconds=None)


class TestToJsonValue:
    """Test conversion into plain JSON values."""

    def test_scalars_pass_through(self):
        assert to_json_value(None) is None
        assert to_json_value(True) is True
        assert to_json_value(42) == 42
        assert to_json_value(1.5) == 1.5
        assert to_json_value("sku-1") == "sku-1"

    def test_rich_types_are_normalized(self):
        value = {
            "amount": Decimal("19.90"),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "shipped_on": date(2026, 1, 2),
            "at": datetime(2026, 1, 2, 3, 4, 5),
            "carrier": Carrier.UPS,
            "lines": (1, 2),
        }

        assert to_json_value(value) == {
            "amount": "19.90",
            "id": "12345678-1234-5678-1234-567812345678",
            "shipped_on": "2026-01-02",
            "at": "2026-01-02T03:04:05",
            "carrier": "ups",
            "lines": [1, 2],
        }

    def test_str_enum_becomes_plain_str(self):
        converted = to_json_value(Carrier.FEDEX)

        assert converted == "fedex"
        assert type(converted) is str

    def test_pydantic_model_is_dumped(self):
        request = ShipmentRequest(order_id=42, carrier=Carrier.UPS, weight=Decimal("2.5"))

        assert to_json_value(request) == {
            "order_id": 42,
            "carrier": "ups",
            "weight": "2.5",
        }

    @pytest.mark.parametrize(
        "value",
        [
            {1: "non-string key"},
            {"tags": {"a", "b"}},
            {"raw": b"bytes"},
            {"ratio": float("nan")},
            {"ratio": float("inf")},
            {"amount": Decimal("NaN")},
            object(),
        ],
    )
    def test_unsupported_values_raise(self, value):
        with pytest.raises(PayloadTypeError):
            to_json_value(value)

    def test_payload_type_error_is_value_error(self):
        assert issubclass(PayloadTypeError, ValueError)


class TestCanonicalJson:
    """Test canonical serialization."""

    def test_key_order_is_irrelevant(self):
        assert canonical_json({"a": 1, "b": {"y": 2, "x": 1}}) == canonical_json(
            {"b": {"x": 1, "y": 2}, "a": 1}
        )

    def test_compact_and_sorted(self):
        assert canonical_json({"b": 2, "a": [1, "é"]}) == '{"a":[1,"é"],"b":2}'

    def test_round_trips_through_json(self):
        payload = {"order_id": 42, "lines": [{"sku": "A", "qty": 3}]}

        assert json.loads(canonical_json(payload)) == payload


class TestStripVolatileFields:
    """Test removal of timestamp fields."""

    def test_top_level_timestamps_are_dropped(self):
        payload = {
            "order_id": 1,
            "timestamp": "2026-01-01T00:00:00",
            "created_at": "x",
            "updated_at": "y",
            "processed_at": "z",
        }

        assert strip_volatile_fields(payload) == {"order_id": 1}

    def test_nested_timestamps_are_kept(self):
        payload = {"order": {"created_at": "2026-01-01"}}

        assert strip_volatile_fields(payload) == payload

    def test_non_mapping_payload_is_returned_as_is(self):
        assert strip_volatile_fields([1, 2]) == [1, 2]


class TestGenerateKey:
    """Test deterministic idempotency key generation."""

    def test_field_order_does_not_change_key(self, key_service):
        first = key_service.generate_key("op", {"a": 1, "b": 2}, "src")
        second = key_service.generate_key("op", {"b": 2, "a": 1}, "src")

        assert first == second

    def test_key_is_sha256_hex(self, key_service):
        key = key_service.generate_key("op", {"a": 1}, "src")

        assert len(key) == 64
        int(key, 16)

    def test_operation_name_changes_key(self, key_service):
        assert key_service.generate_key("op", {"a": 1}, "src") != key_service.generate_key(
            "other_op", {"a": 1}, "src"
        )

    def test_source_changes_key(self, key_service):
        assert key_service.generate_key("op", {"a": 1}, "src") != key_service.generate_key(
            "op", {"a": 1}, "other_src"
        )

    def test_missing_source_differs_from_named_source(self, key_service):
        assert key_service.generate_key("op", {"a": 1}) != key_service.generate_key(
            "op", {"a": 1}, "src"
        )

    def test_payload_changes_key(self, key_service):
        assert key_service.generate_key("op", {"a": 1}, "src") != key_service.generate_key(
            "op", {"a": 2}, "src"
        )

    def test_volatile_fields_are_ignored(self, key_service):
        first = key_service.generate_key(
            "op", {"order_id": 42, "timestamp": "2026-01-01T00:00:00"}, "src"
        )
        second = key_service.generate_key(
            "op", {"order_id": 42, "timestamp": "2026-06-01T12:30:00"}, "src"
        )

        assert first == second

    def test_model_and_dict_payloads_agree(self, key_service):
        request = ShipmentRequest(order_id=42, carrier=Carrier.UPS, weight=Decimal("2.5"))
        as_dict = {"weight": "2.5", "carrier": "ups", "order_id": 42}

        assert key_service.generate_key("create_shipment", request, "api") == (
            key_service.generate_key("create_shipment", as_dict, "api")
        )
