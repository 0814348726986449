"""Order fact governance guard.

Governance exposes contradictions between facts; it never repairs them and
never rejects a request because of them. This is different from contract
validation, which rejects malformed input before governance runs.

Each check is a pure function of ``GovernanceInput`` returning an immutable
tuple of warnings. All checks always run, in any order, and their results
are concatenated.

Audit actions are free text. They are matched by an explicit normalization
step (strip + uppercase) against the fixed alias tables below. This is a
known fragility: a new upstream spelling goes unmatched until it is added
here together with a test scenario.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .contracts import TRACE_ACTION_TYPES, OrderFact, TraceFact, as_utc_datetime
from .fact_warnings import (
    DOMAIN_AUDIT,
    DOMAIN_ORDER,
    DOMAIN_TRACE,
    FACT_ACCEPTED_AT_MISSING_AUDIT_LOG,
    FACT_ENUM_VALUE_INVALID,
    FACT_TIME_INVERSION,
    FACT_TIMELINE_ANOMALY,
    FACT_TIMELINE_BREAK,
    LEVEL_HIGH,
    LEVEL_LOW,
    LEVEL_MEDIUM,
    FactWarning,
)

logger = logging.getLogger(__name__)

ACCEPT_ACTION_ALIASES: frozenset[str] = frozenset({"ORDER_ACCEPT", "ORDER_ACCEPTED"})
COMPLETE_ACTION_ALIASES: frozenset[str] = frozenset({"ORDER_COMPLETE", "ORDER_COMPLETED"})


@dataclass(frozen=True)
class RawAuditRecord:
    """One audit_logs row as untrusted evidence. created_at None = unparsable."""

    action: str
    created_at: datetime | None
    actor_id: str | None = None


def raw_audit_records(rows: Iterable[Mapping[str, Any]]) -> tuple[RawAuditRecord, ...]:
    records: list[RawAuditRecord] = []
    for row in rows:
        actor = row.get("actor_id")
        records.append(
            RawAuditRecord(
                action=str(row.get("action") or ""),
                created_at=as_utc_datetime(row.get("created_at")),
                actor_id=str(actor) if actor is not None else None,
            )
        )
    return tuple(records)


def normalize_action(action: str | None) -> str:
    return (action or "").strip().upper()


def is_accept_action(action: str | None) -> bool:
    return normalize_action(action) in ACCEPT_ACTION_ALIASES


def is_complete_action(action: str | None) -> bool:
    return normalize_action(action) in COMPLETE_ACTION_ALIASES


@dataclass(frozen=True)
class GovernanceInput:
    order: OrderFact
    traces: tuple[TraceFact, ...]
    audit_records: tuple[RawAuditRecord, ...]
    detected_at: datetime
    # Asset ids known to be devices; best-effort, may be empty.
    device_ids: frozenset[str] = field(default_factory=frozenset)


GovernanceCheck = Callable[[GovernanceInput], tuple[FactWarning, ...]]


def _delta_seconds(later: datetime, earlier: datetime) -> float:
    return round((later - earlier).total_seconds(), 3)


def _warning(
    inputs: GovernanceInput,
    *,
    code: str,
    level: str,
    domain: str,
    message: str,
    fields: tuple[str, ...],
    evidence: dict[str, Any],
    asset_id: str | None = None,
) -> FactWarning:
    device_id = asset_id if asset_id is not None and asset_id in inputs.device_ids else None
    return FactWarning(
        code=code,
        level=level,
        domain=domain,
        message=message,
        fields=fields,
        evidence=evidence,
        detected_at=inputs.detected_at,
        restaurant_id=inputs.order.restaurant_id,
        worker_id=inputs.order.worker_id,
        device_id=device_id,
    )


def check_accepted_without_audit(inputs: GovernanceInput) -> tuple[FactWarning, ...]:
    order = inputs.order
    if order.accepted_at is None:
        return ()
    if any(is_accept_action(record.action) for record in inputs.audit_records):
        return ()
    return (
        _warning(
            inputs,
            code=FACT_ACCEPTED_AT_MISSING_AUDIT_LOG,
            level=LEVEL_MEDIUM,
            domain=DOMAIN_AUDIT,
            message=(
                f"order.accepted_at is recorded ({order.accepted_at.isoformat()}) "
                "but the audit trail has no ORDER_ACCEPT/ORDER_ACCEPTED record."
            ),
            fields=("order.accepted_at", "audit_logs"),
            evidence={
                "order_id": order.order_id,
                "accepted_at": order.accepted_at.isoformat(),
                "audit_record_count": len(inputs.audit_records),
                "audit_actions": sorted(
                    {normalize_action(r.action) for r in inputs.audit_records}
                ),
            },
        ),
    )


def check_order_time_inversion(inputs: GovernanceInput) -> tuple[FactWarning, ...]:
    """Any recorded lifecycle timestamp earlier than order.created_at."""
    order = inputs.order
    warnings: list[FactWarning] = []
    for field_name, recorded in (
        ("accepted_at", order.accepted_at),
        ("completed_at", order.completed_at),
    ):
        if recorded is None or recorded >= order.created_at:
            continue
        warnings.append(
            _warning(
                inputs,
                code=FACT_TIME_INVERSION,
                level=LEVEL_HIGH,
                domain=DOMAIN_ORDER,
                message=(
                    f"order.{field_name} ({recorded.isoformat()}) is earlier than "
                    f"order.created_at ({order.created_at.isoformat()})."
                ),
                fields=(f"order.{field_name}", "order.created_at"),
                evidence={
                    "order_id": order.order_id,
                    "created_at": order.created_at.isoformat(),
                    field_name: recorded.isoformat(),
                    "delta_seconds": _delta_seconds(recorded, order.created_at),
                },
            )
        )
    return tuple(warnings)


def _audit_inversions(
    inputs: GovernanceInput,
    *,
    matches: Callable[[str | None], bool],
    code: str,
    kind: str,
) -> tuple[FactWarning, ...]:
    order = inputs.order
    warnings: list[FactWarning] = []
    for index, record in enumerate(inputs.audit_records):
        if not matches(record.action):
            continue
        if record.created_at is None or record.created_at >= order.created_at:
            continue
        warnings.append(
            _warning(
                inputs,
                code=code,
                level=LEVEL_HIGH,
                domain=DOMAIN_AUDIT,
                message=(
                    f"audit_logs[{index}] records {kind} ({record.action}) at "
                    f"{record.created_at.isoformat()}, earlier than order.created_at "
                    f"({order.created_at.isoformat()})."
                ),
                fields=(f"audit_logs[{index}].created_at", "order.created_at"),
                evidence={
                    "order_id": order.order_id,
                    "audit_index": index,
                    "action": record.action,
                    "actor_id": record.actor_id,
                    "audit_created_at": record.created_at.isoformat(),
                    "order_created_at": order.created_at.isoformat(),
                    "delta_seconds": _delta_seconds(record.created_at, order.created_at),
                },
            )
        )
    return tuple(warnings)


def check_audit_completion_inversion(inputs: GovernanceInput) -> tuple[FactWarning, ...]:
    # Reported per record, whether or not it surfaced into completed_at.
    return _audit_inversions(
        inputs,
        matches=is_complete_action,
        code=FACT_TIME_INVERSION,
        kind="completion",
    )


def check_audit_acceptance_inversion(inputs: GovernanceInput) -> tuple[FactWarning, ...]:
    return _audit_inversions(
        inputs,
        matches=is_accept_action,
        code=FACT_TIMELINE_BREAK,
        kind="acceptance",
    )


def check_trace_action_enum(inputs: GovernanceInput) -> tuple[FactWarning, ...]:
    warnings: list[FactWarning] = []
    for index, trace in enumerate(inputs.traces):
        if trace.action_type in TRACE_ACTION_TYPES:
            continue
        warnings.append(
            _warning(
                inputs,
                code=FACT_ENUM_VALUE_INVALID,
                level=LEVEL_MEDIUM,
                domain=DOMAIN_TRACE,
                message=(
                    f"traces[{index}].action_type ({trace.action_type}) is not one of "
                    f"{', '.join(TRACE_ACTION_TYPES)}."
                ),
                fields=(f"traces[{index}].action_type",),
                evidence={
                    "trace_id": trace.id,
                    "trace_index": index,
                    "asset_id": trace.asset_id,
                    "action_type": trace.action_type,
                    "allowed": list(TRACE_ACTION_TYPES),
                },
                asset_id=trace.asset_id,
            )
        )
    return tuple(warnings)


def check_trace_timeline(inputs: GovernanceInput) -> tuple[FactWarning, ...]:
    """Traces earlier than the order: a break when correlated, an anomaly otherwise.

    Pre-order asset handling (provisioning before assignment) is plausible for
    uncorrelated traces. An event explicitly correlated to this order cannot
    predate the order.
    """
    order = inputs.order
    warnings: list[FactWarning] = []
    for index, trace in enumerate(inputs.traces):
        if trace.created_at >= order.created_at:
            continue
        correlated = trace.order_id == order.order_id
        if correlated:
            code, level = FACT_TIMELINE_BREAK, LEVEL_HIGH
            message = (
                f"traces[{index}].created_at ({trace.created_at.isoformat()}) is earlier "
                f"than order.created_at ({order.created_at.isoformat()}) although the "
                f"trace is correlated to this order."
            )
        else:
            code, level = FACT_TIMELINE_ANOMALY, LEVEL_LOW
            message = (
                f"traces[{index}].created_at ({trace.created_at.isoformat()}) is earlier "
                f"than order.created_at ({order.created_at.isoformat()}); the trace is "
                f"not correlated to this order (order_id={trace.order_id or 'null'})."
            )
        warnings.append(
            _warning(
                inputs,
                code=code,
                level=level,
                domain=DOMAIN_TRACE,
                message=message,
                fields=(f"traces[{index}].created_at", "order.created_at"),
                evidence={
                    "trace_id": trace.id,
                    "trace_index": index,
                    "asset_id": trace.asset_id,
                    "trace_order_id": trace.order_id,
                    "trace_created_at": trace.created_at.isoformat(),
                    "order_created_at": order.created_at.isoformat(),
                    "delta_seconds": _delta_seconds(trace.created_at, order.created_at),
                },
                asset_id=trace.asset_id,
            )
        )
    return tuple(warnings)


GOVERNANCE_CHECKS: tuple[GovernanceCheck, ...] = (
    check_accepted_without_audit,
    check_order_time_inversion,
    check_audit_completion_inversion,
    check_audit_acceptance_inversion,
    check_trace_action_enum,
    check_trace_timeline,
)


def run_governance(
    inputs: GovernanceInput,
    checks: Iterable[GovernanceCheck] = GOVERNANCE_CHECKS,
) -> tuple[FactWarning, ...]:
    """Run every check and concatenate the results. Never raises on findings."""
    warnings: list[FactWarning] = []
    for check in checks:
        warnings.extend(check(inputs))
    if warnings:
        logger.info(
            "Order fact governance found %d warnings for order=%s",
            len(warnings),
            inputs.order.order_id,
            extra={
                "facts_order_id": inputs.order.order_id,
                "facts_warning_codes": [w.code for w in warnings],
            },
        )
    return tuple(warnings)


def human_readable(warnings: Iterable[FactWarning]) -> list[str]:
    return [w.message for w in warnings]
