"""Fact contracts for the order facts read path.

Every fact field has exactly one upstream source and an explicit meaning for
emptiness:

- ``order_id``/``restaurant_id``/``status``/``created_at``: ``delivery_orders``,
  required, never empty.
- ``accepted_at``/``completed_at``: recorded lifecycle timestamps, nullable.
  ``None`` means the fact does not exist; the key itself must be present.
- ``worker_id``: ``delivery_orders.worker_id``, nullable with the same rule.
- ``TraceFact.order_id``: ``trace_logs.order_id``; ``None`` means the trace is
  not correlated to any order.
- ``AssetFact.last_action``/``last_action_at``: the asset's most recent trace.
  Empty means no trace exists; asset ``updated_at``/``created_at`` are never
  substituted.

An omitted key is malformed and rejected. An explicit ``None`` is a valid
record of fact-absence.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_serializer, field_validator

ORDER_STATUSES: tuple[str, ...] = (
    "pending",
    "accepted",
    "delivering",
    "completed",
    "exception",
    "rejected",
    "cancelled",
)

# Expected next state per status; terminal states have none.
ORDER_STATUS_FLOW: dict[str, str | None] = {
    "pending": "accepted",
    "accepted": "delivering",
    "delivering": "completed",
    "completed": None,
    "exception": None,
    "rejected": None,
    "cancelled": None,
}

TRACE_ACTION_TYPES: tuple[str, ...] = (
    "CREATED",
    "FILLED",
    "DELIVERED",
    "RETURNED",
    "INSPECTED",
)

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "order": ("order_id", "restaurant_id", "status", "created_at"),
    "trace": ("id", "asset_id", "action_type", "operator_id", "created_at"),
    "asset": ("asset_id", "status"),
}

NULLABLE_FIELDS: dict[str, tuple[str, ...]] = {
    "order": ("worker_id", "accepted_at", "completed_at"),
    "trace": ("order_id",),
    "asset": ("last_action", "last_action_at"),
}


def as_utc_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 value into an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = f"{raw[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


def _normalized_non_empty(value: Any, *, field_name: str) -> Any:
    if value is None:
        raise ValueError(f"{field_name} must not be empty")
    if isinstance(value, str):
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{field_name} must not be empty")
        return normalized
    return value


def _trim_optional(value: Any) -> Any:
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    return value


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OrderFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    restaurant_id: str
    status: str
    created_at: datetime
    worker_id: str | None
    accepted_at: datetime | None
    completed_at: datetime | None

    @field_validator("order_id", "restaurant_id", "status", "created_at", mode="before")
    @classmethod
    def validate_required(cls, value: Any, info: Any) -> Any:
        return _normalized_non_empty(value, field_name=info.field_name)

    @field_validator("worker_id", "accepted_at", "completed_at", mode="before")
    @classmethod
    def trim_optional_values(cls, value: Any) -> Any:
        return _trim_optional(value)

    @field_validator("created_at", "accepted_at", "completed_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return _to_utc(value)

    @field_serializer("created_at", "accepted_at", "completed_at")
    def serialize_timestamps(self, value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    @property
    def next_expected_state(self) -> str | None:
        return ORDER_STATUS_FLOW.get(self.status)

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["next_expected_state"] = self.next_expected_state
        return data


class TraceFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    asset_id: str
    # Kept as recorded; the governance guard reports values outside
    # TRACE_ACTION_TYPES instead of rejecting the trace.
    action_type: str
    operator_id: str
    order_id: str | None
    created_at: datetime

    @field_validator("id", "asset_id", "action_type", "operator_id", "created_at", mode="before")
    @classmethod
    def validate_required(cls, value: Any, info: Any) -> Any:
        return _normalized_non_empty(value, field_name=info.field_name)

    @field_validator("order_id", mode="before")
    @classmethod
    def trim_order_id(cls, value: Any) -> Any:
        return _trim_optional(value)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return _to_utc(value)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class AssetFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset_id: str
    status: str
    last_action: str
    last_action_at: datetime | None

    @field_validator("asset_id", "status", mode="before")
    @classmethod
    def validate_required(cls, value: Any, info: Any) -> Any:
        return _normalized_non_empty(value, field_name=info.field_name)

    @field_validator("last_action", mode="before")
    @classmethod
    def normalize_last_action(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("last_action_at", mode="before")
    @classmethod
    def trim_last_action_at(cls, value: Any) -> Any:
        return _trim_optional(value)

    @field_validator("last_action_at")
    @classmethod
    def normalize_last_action_at(cls, value: datetime | None) -> datetime | None:
        return _to_utc(value)

    @field_serializer("last_action_at")
    def serialize_last_action_at(self, value: datetime | None) -> str:
        # Empty string is the "unknown" sentinel of the response shape.
        return value.isoformat() if value is not None else ""

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


FactT = TypeVar("FactT", bound=BaseModel)


@dataclass(frozen=True)
class ContractResult(Generic[FactT]):
    valid: bool
    errors: tuple[str, ...]
    fact: FactT | None = None


def _format_errors(
    exc: ValidationError,
    *,
    prefix: str,
    nullable: tuple[str, ...],
) -> list[str]:
    errors: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        path = f"{prefix}.{loc}" if loc else prefix
        if err["type"] == "missing":
            if loc in nullable:
                errors.append(
                    f"{path} is missing; record an absent fact as explicit null"
                )
            else:
                errors.append(f"{path} is required")
            continue
        message = str(err["msg"])
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append(f"{path}: {message}")
    return errors


def _validate(
    model: type[FactT],
    payload: Mapping[str, Any],
    *,
    kind: str,
    prefix: str,
) -> ContractResult[FactT]:
    if not isinstance(payload, Mapping):
        return ContractResult(valid=False, errors=(f"{prefix} must be an object",))
    try:
        fact = model.model_validate(dict(payload))
    except ValidationError as exc:
        errors = _format_errors(exc, prefix=prefix, nullable=NULLABLE_FIELDS[kind])
        return ContractResult(valid=False, errors=tuple(errors))
    return ContractResult(valid=True, errors=(), fact=fact)


def validate_order_fact_contract(
    payload: Mapping[str, Any],
) -> ContractResult[OrderFact]:
    """Validate an order payload against the order fact contract."""
    return _validate(OrderFact, payload, kind="order", prefix="order")


def validate_trace_fact_contract(
    payload: Mapping[str, Any],
    *,
    index: int | None = None,
) -> ContractResult[TraceFact]:
    prefix = "trace" if index is None else f"traces[{index}]"
    return _validate(TraceFact, payload, kind="trace", prefix=prefix)


def validate_asset_fact_contract(
    payload: Mapping[str, Any],
    *,
    index: int | None = None,
) -> ContractResult[AssetFact]:
    prefix = "asset" if index is None else f"assets[{index}]"
    return _validate(AssetFact, payload, kind="asset", prefix=prefix)


def contract_field_inventory() -> dict[str, dict[str, tuple[str, ...]]]:
    """Required and nullable field names per fact kind, keyed by order/trace/asset."""
    return {
        "required": REQUIRED_FIELDS,
        "nullable": NULLABLE_FIELDS,
    }
