from __future__ import annotations

from datetime import datetime, timezone

import pytest

from order_facts.fact_warnings import (
    FACT_TIMELINE_BREAK,
    WARNING_CODES,
    FactWarning,
)

_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _kwargs(**overrides) -> dict:
    data = {
        "code": FACT_TIMELINE_BREAK,
        "level": "high",
        "domain": "trace",
        "message": "traces[0].created_at is earlier than order.created_at",
        "fields": ("traces[0].created_at", "order.created_at"),
        "detected_at": _AT,
        "evidence": {"trace_id": "trc-1", "delta_seconds": -60.0},
        "restaurant_id": "rest-7",
    }
    data.update(overrides)
    return data


def test_warning_codes_are_closed_vocabulary():
    assert WARNING_CODES == (
        "FACT_ACCEPTED_AT_MISSING_AUDIT_LOG",
        "FACT_TIME_INVERSION",
        "FACT_TIMELINE_BREAK",
        "FACT_ENUM_VALUE_INVALID",
        "FACT_TIMELINE_ANOMALY",
    )


@pytest.mark.parametrize(
    ("field", "value"),
    [("code", "FACT_SOMETHING_ELSE"), ("level", "critical"), ("domain", "invoice")],
)
def test_warning_rejects_values_outside_vocabulary(field: str, value: str):
    with pytest.raises(ValueError, match="Unknown fact warning"):
        FactWarning(**_kwargs(**{field: value}))


def test_warning_to_dict():
    assert FactWarning(**_kwargs()).to_dict() == {
        "code": FACT_TIMELINE_BREAK,
        "level": "high",
        "domain": "trace",
        "message": "traces[0].created_at is earlier than order.created_at",
        "fields": ["traces[0].created_at", "order.created_at"],
        "evidence": {"trace_id": "trc-1", "delta_seconds": -60.0},
        "detected_at": "2026-03-01T12:00:00+00:00",
        "restaurant_id": "rest-7",
        "worker_id": None,
        "device_id": None,
    }
