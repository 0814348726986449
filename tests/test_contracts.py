from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from order_facts.contracts import (
    NULLABLE_FIELDS,
    ORDER_STATUS_FLOW,
    ORDER_STATUSES,
    REQUIRED_FIELDS,
    OrderFact,
    as_utc_datetime,
    contract_field_inventory,
    validate_asset_fact_contract,
    validate_order_fact_contract,
    validate_trace_fact_contract,
)


def _valid_order_payload() -> dict:
    return {
        "order_id": "ord-1",
        "restaurant_id": "rest-7",
        "status": "accepted",
        "created_at": "2026-03-01T10:00:00+00:00",
        "worker_id": "wrk-3",
        "accepted_at": "2026-03-01T10:05:00+00:00",
        "completed_at": None,
    }


def _valid_trace_payload() -> dict:
    return {
        "id": "trc-1",
        "asset_id": "cyl-9",
        "action_type": "DELIVERED",
        "operator_id": "wrk-3",
        "order_id": "ord-1",
        "created_at": "2026-03-01T10:20:00Z",
    }


def test_order_contract_accepts_valid_payload():
    result = validate_order_fact_contract(_valid_order_payload())
    assert result.valid is True
    assert result.errors == ()
    assert result.fact is not None
    assert result.fact.accepted_at == datetime(2026, 3, 1, 10, 5, tzinfo=timezone.utc)
    assert result.fact.completed_at is None


def test_order_contract_treats_explicit_null_as_fact_absence():
    payload = _valid_order_payload()
    payload["worker_id"] = None
    payload["accepted_at"] = None

    result = validate_order_fact_contract(payload)

    assert result.valid is True
    assert result.fact.worker_id is None
    assert result.fact.accepted_at is None


@pytest.mark.parametrize("key", ["worker_id", "accepted_at", "completed_at"])
def test_order_contract_rejects_omitted_nullable_key(key: str):
    payload = _valid_order_payload()
    del payload[key]

    result = validate_order_fact_contract(payload)

    assert result.valid is False
    assert result.fact is None
    assert result.errors == (
        f"order.{key} is missing; record an absent fact as explicit null",
    )


@pytest.mark.parametrize("key", ["order_id", "restaurant_id", "status", "created_at"])
def test_order_contract_rejects_missing_required_field(key: str):
    payload = _valid_order_payload()
    del payload[key]

    result = validate_order_fact_contract(payload)

    assert result.valid is False
    assert f"order.{key} is required" in result.errors


@pytest.mark.parametrize("key", ["order_id", "restaurant_id", "status", "created_at"])
@pytest.mark.parametrize("empty", ["", "   ", None])
def test_order_contract_rejects_empty_required_field(key: str, empty):
    payload = _valid_order_payload()
    payload[key] = empty

    result = validate_order_fact_contract(payload)

    assert result.valid is False
    assert f"order.{key}: {key} must not be empty" in result.errors


def test_order_contract_reports_every_error_at_once():
    payload = _valid_order_payload()
    del payload["order_id"]
    del payload["completed_at"]
    payload["status"] = ""

    result = validate_order_fact_contract(payload)

    assert len(result.errors) == 3


def test_order_contract_rejects_unparsable_created_at():
    payload = _valid_order_payload()
    payload["created_at"] = "yesterday-ish"

    result = validate_order_fact_contract(payload)

    assert result.valid is False
    assert any(error.startswith("order.created_at:") for error in result.errors)


def test_order_contract_rejects_non_mapping_payload():
    result = validate_order_fact_contract(["ord-1"])  # type: ignore[arg-type]
    assert result.valid is False
    assert result.errors == ("order must be an object",)


def test_order_contract_normalizes_naive_timestamps_to_utc():
    payload = _valid_order_payload()
    payload["created_at"] = "2026-03-01T10:00:00"

    fact = validate_order_fact_contract(payload).fact

    assert fact.created_at.tzinfo is not None
    assert fact.created_at.utcoffset().total_seconds() == 0


def test_order_contract_converts_offsets_to_utc():
    payload = _valid_order_payload()
    payload["created_at"] = "2026-03-01T18:00:00+08:00"

    fact = validate_order_fact_contract(payload).fact

    assert fact.created_at == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_order_contract_keeps_unknown_status_as_recorded():
    payload = _valid_order_payload()
    payload["status"] = "on_hold"

    fact = validate_order_fact_contract(payload).fact

    assert fact.status == "on_hold"
    assert fact.next_expected_state is None


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("pending", "accepted"),
        ("accepted", "delivering"),
        ("delivering", "completed"),
        ("completed", None),
        ("cancelled", None),
    ],
)
def test_order_fact_next_expected_state_follows_status_flow(status: str, expected):
    payload = _valid_order_payload()
    payload["status"] = status

    fact = validate_order_fact_contract(payload).fact

    assert fact.next_expected_state == expected
    assert fact.to_dict()["next_expected_state"] == expected


def test_status_flow_covers_every_known_status():
    assert tuple(ORDER_STATUS_FLOW) == ORDER_STATUSES
    for status in ORDER_STATUSES:
        successor = ORDER_STATUS_FLOW[status]
        assert successor is None or successor in ORDER_STATUSES


def test_order_fact_is_immutable():
    fact = validate_order_fact_contract(_valid_order_payload()).fact
    with pytest.raises(ValidationError):
        fact.status = "completed"  # type: ignore[misc]


def test_order_fact_model_requires_nullable_keys():
    payload = _valid_order_payload()
    del payload["worker_id"]
    with pytest.raises(ValidationError, match="worker_id"):
        OrderFact.model_validate(payload)


def test_trace_contract_keeps_invalid_action_type_for_governance():
    payload = _valid_trace_payload()
    payload["action_type"] = "BOGUS"

    result = validate_trace_fact_contract(payload)

    assert result.valid is True
    assert result.fact.action_type == "BOGUS"


def test_trace_contract_accepts_uncorrelated_trace():
    payload = _valid_trace_payload()
    payload["order_id"] = None

    result = validate_trace_fact_contract(payload)

    assert result.valid is True
    assert result.fact.order_id is None


def test_trace_contract_uses_indexed_paths():
    payload = _valid_trace_payload()
    del payload["order_id"]
    payload["operator_id"] = ""

    result = validate_trace_fact_contract(payload, index=4)

    assert result.valid is False
    assert "traces[4].order_id is missing; record an absent fact as explicit null" in result.errors
    assert "traces[4].operator_id: operator_id must not be empty" in result.errors


def test_asset_contract_uses_empty_sentinels_when_no_trace_exists():
    result = validate_asset_fact_contract(
        {"asset_id": "cyl-9", "status": "in_use", "last_action": None, "last_action_at": None}
    )

    assert result.valid is True
    assert result.fact.last_action == ""
    assert result.fact.last_action_at is None
    assert result.fact.to_dict() == {
        "asset_id": "cyl-9",
        "status": "in_use",
        "last_action": "",
        "last_action_at": "",
    }


def test_asset_contract_serializes_known_last_action_at():
    result = validate_asset_fact_contract(
        {
            "asset_id": "cyl-9",
            "status": "in_use",
            "last_action": "FILLED",
            "last_action_at": datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
        }
    )

    data = result.fact.to_dict()
    assert data["last_action"] == "FILLED"
    assert as_utc_datetime(data["last_action_at"]) == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_same_instant_serializes_identically_across_facts():
    instant = "2026-03-01T10:20:00Z"
    order_payload = _valid_order_payload()
    order_payload["completed_at"] = instant
    trace_payload = _valid_trace_payload()
    trace_payload["created_at"] = instant

    order = validate_order_fact_contract(order_payload).fact.to_dict()
    trace = validate_trace_fact_contract(trace_payload).fact.to_dict()
    asset = validate_asset_fact_contract(
        {"asset_id": "cyl-9", "status": "in_use", "last_action": "DELIVERED", "last_action_at": instant}
    ).fact.to_dict()

    assert order["completed_at"] == "2026-03-01T10:20:00+00:00"
    assert trace["created_at"] == order["completed_at"]
    assert asset["last_action_at"] == order["completed_at"]
    assert order["accepted_at"] == "2026-03-01T10:05:00+00:00"


def test_asset_contract_rejects_omitted_last_action_keys():
    result = validate_asset_fact_contract({"asset_id": "cyl-9", "status": "in_use"}, index=0)

    assert result.valid is False
    assert set(result.errors) == {
        "assets[0].last_action is missing; record an absent fact as explicit null",
        "assets[0].last_action_at is missing; record an absent fact as explicit null",
    }


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2026-03-01T10:00:00Z", datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)),
        ("2026-03-01T10:00:00", datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)),
        (datetime(2026, 3, 1, 10, 0), datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)),
        ("", None),
        ("not a timestamp", None),
        (None, None),
        (12345, None),
    ],
)
def test_as_utc_datetime(value, expected):
    assert as_utc_datetime(value) == expected


def test_contract_field_inventory_exposes_required_and_nullable_fields():
    inventory = contract_field_inventory()
    assert inventory["required"] == REQUIRED_FIELDS
    assert inventory["nullable"] == NULLABLE_FIELDS
    assert "accepted_at" in inventory["nullable"]["order"]
    assert "order_id" in inventory["nullable"]["trace"]
