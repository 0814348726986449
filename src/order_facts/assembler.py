"""Order facts assembler.

Orchestrates one ``GetOrderFacts`` request:

1. read the order (missing → OrderNotFound), run the caller's access check,
   validate the order contract
2. read audit trail + traces concurrently, validate trace contracts
3. read assets, each asset's last trace and device ids concurrently,
   validate asset contracts
4. merge timeline → governance → health score

Only contract violations (and the surface errors: not found, access denied,
deadline) reject a request. Warnings never do. An evidence read that fails is
logged and treated as "no evidence"; the checks then report what that absence
implies. Every read of a phase completes before anything downstream runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, NoReturn, TypeVar

from . import metrics
from .access import FactIdentity, FactRequestContext
from .contracts import (
    AssetFact,
    OrderFact,
    TraceFact,
    validate_asset_fact_contract,
    validate_order_fact_contract,
    validate_trace_fact_contract,
)
from .errors import ContractViolation, DeadlineExceeded, OrderNotFound
from .fact_health import FactHealthSummary, score_warnings
from .fact_warnings import FactWarning
from .governance import (
    GOVERNANCE_CHECKS,
    GovernanceCheck,
    GovernanceInput,
    human_readable,
    raw_audit_records,
    run_governance,
)
from .sources import ORDER_AUDIT_TARGET_TYPE, FactSource, Row
from .timeline import TimelineNode, merge_timeline

logger = logging.getLogger(__name__)

T = TypeVar("T")

AccessCheck = Callable[[FactIdentity, str], None]

_ORDER_TEXT_KEYS = frozenset({"order_id", "restaurant_id", "status", "worker_id"})
_TRACE_TEXT_KEYS = frozenset({"id", "asset_id", "operator_id", "action_type", "order_id"})
_ASSET_TEXT_KEYS = frozenset({"asset_id", "status"})


@dataclass(frozen=True)
class OrderFactsResponse:
    order: OrderFact
    assets: tuple[AssetFact, ...]
    traces: tuple[TraceFact, ...]
    timeline: tuple[TimelineNode, ...]
    warnings: tuple[FactWarning, ...]
    health: FactHealthSummary

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": True,
            "order": self.order.to_dict(),
            "assets": [asset.to_dict() for asset in self.assets],
            "traces": [trace.to_dict() for trace in self.traces],
            "timeline": [node.to_dict() for node in self.timeline],
        }
        if self.warnings:
            body["fact_warnings"] = human_readable(self.warnings)
            body["fact_warnings_structured"] = [w.to_dict() for w in self.warnings]
        body["fact_health"] = self.health.to_dict()
        return body


def _text(value: Any) -> Any:
    # Postgres ids arrive as UUID/int; contracts speak text.
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _contract_payload(
    row: Mapping[str, Any],
    *,
    text_keys: frozenset[str],
    rename: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Copy a raw row into a contract payload. Absent columns stay absent."""
    payload: dict[str, Any] = {}
    for key, value in row.items():
        key = (rename or {}).get(key, key)
        payload[key] = _text(value) if key in text_keys else value
    return payload


def _check_deadline(deadline: float | None, phase: str) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise DeadlineExceeded(f"Deadline passed before {phase} reads")


async def _read_evidence(
    name: str,
    read: Callable[[], Awaitable[T]],
    default: T,
    *,
    ctx: FactRequestContext,
    order_id: str,
) -> T:
    """Run one evidence read; a failure degrades to ``default`` (no evidence)."""
    try:
        return await read()
    except Exception as exc:
        metrics.record_degraded_read(name)
        logger.warning(
            "Evidence read %s failed for order=%s, treating as empty: %s",
            name,
            order_id,
            exc,
            extra={
                "facts_order_id": order_id,
                "facts_request_id": ctx.request_id,
                "facts_reader": name,
            },
        )
        return default


def _raise_contract_violation(
    errors: list[str],
    *,
    order_id: str,
    ctx: FactRequestContext,
) -> NoReturn:
    logger.warning(
        "Order facts for order=%s violate the fact contract: %s",
        order_id,
        "; ".join(errors),
        extra={
            "facts_order_id": order_id,
            "facts_request_id": ctx.request_id,
            "facts_contract_errors": errors,
        },
    )
    raise ContractViolation(errors)


def _distinct_asset_ids(traces: Iterable[TraceFact]) -> list[str]:
    seen: dict[str, None] = {}
    for trace in traces:
        seen.setdefault(trace.asset_id, None)
    return list(seen)


def _validate_order(row: Row, *, order_id: str, ctx: FactRequestContext) -> OrderFact:
    result = validate_order_fact_contract(
        _contract_payload(row, text_keys=_ORDER_TEXT_KEYS, rename={"id": "order_id"})
    )
    if not result.valid or result.fact is None:
        _raise_contract_violation(list(result.errors), order_id=order_id, ctx=ctx)
    return result.fact


def _validate_traces(
    rows: list[Row],
    *,
    order_id: str,
    ctx: FactRequestContext,
) -> tuple[TraceFact, ...]:
    traces: list[TraceFact] = []
    errors: list[str] = []
    for index, row in enumerate(rows):
        result = validate_trace_fact_contract(
            _contract_payload(row, text_keys=_TRACE_TEXT_KEYS),
            index=index,
        )
        if result.valid and result.fact is not None:
            traces.append(result.fact)
        else:
            errors.extend(result.errors)
    if errors:
        _raise_contract_violation(errors, order_id=order_id, ctx=ctx)
    return tuple(traces)


def _asset_payload(row: Row, last_trace: Row | None) -> dict[str, Any]:
    payload = _contract_payload(row, text_keys=_ASSET_TEXT_KEYS, rename={"id": "asset_id"})
    # Derived from the last trace only; asset timestamps are never substituted.
    payload["last_action"] = _text(last_trace.get("action_type")) if last_trace else None
    payload["last_action_at"] = last_trace.get("created_at") if last_trace else None
    return payload


def _validate_assets(
    asset_ids: list[str],
    asset_rows: list[Row],
    last_traces: dict[str, Row | None],
    *,
    order_id: str,
    ctx: FactRequestContext,
) -> tuple[AssetFact, ...]:
    rows_by_id: dict[str, Row] = {}
    for row in asset_rows:
        key = _text(row.get("asset_id", row.get("id")))
        if key is not None:
            rows_by_id.setdefault(key, row)

    assets: list[AssetFact] = []
    errors: list[str] = []
    # Traces may point at assets with no record; those yield no asset fact.
    found = [asset_id for asset_id in asset_ids if asset_id in rows_by_id]
    for index, asset_id in enumerate(found):
        result = validate_asset_fact_contract(
            _asset_payload(rows_by_id[asset_id], last_traces.get(asset_id)),
            index=index,
        )
        if result.valid and result.fact is not None:
            assets.append(result.fact)
        else:
            errors.extend(result.errors)
    if errors:
        _raise_contract_violation(errors, order_id=order_id, ctx=ctx)
    return tuple(assets)


async def get_order_facts(
    source: FactSource,
    order_id: str,
    ctx: FactRequestContext,
    *,
    access_check: AccessCheck | None = None,
    deadline: float | None = None,
    now: datetime | None = None,
    checks: Iterable[GovernanceCheck] = GOVERNANCE_CHECKS,
) -> OrderFactsResponse:
    """Assemble the facts of one order with governance warnings and health.

    ``deadline`` is a ``time.monotonic()`` value checked before every read
    phase. ``now`` fixes the warnings' ``detected_at``; output is identical
    for identical upstream data and ``now``. Without ``now`` (the HTTP
    surface) ``detected_at`` is wall-clock time and is the only value that
    differs between two requests over unchanged data.
    """
    detected_at = now or datetime.now(timezone.utc)
    started = time.monotonic()

    _check_deadline(deadline, "order")
    order_row = await source.read_order(ctx, order_id)
    if order_row is None:
        raise OrderNotFound(order_id)

    if access_check is not None:
        access_check(ctx.identity, _text(order_row.get("restaurant_id")) or "")

    order = _validate_order(order_row, order_id=order_id, ctx=ctx)

    _check_deadline(deadline, "audit and trace")
    async with asyncio.TaskGroup() as tg:
        audit_task = tg.create_task(
            _read_evidence(
                "audit_trail",
                lambda: source.read_audit_trail(ctx, ORDER_AUDIT_TARGET_TYPE, order.order_id),
                [],
                ctx=ctx,
                order_id=order.order_id,
            )
        )
        traces_task = tg.create_task(
            _read_evidence(
                "traces",
                lambda: source.read_traces(ctx, order.order_id),
                [],
                ctx=ctx,
                order_id=order.order_id,
            )
        )
    traces = _validate_traces(list(traces_task.result()), order_id=order.order_id, ctx=ctx)
    audit_records = raw_audit_records(audit_task.result())

    asset_ids = _distinct_asset_ids(traces)
    assets: tuple[AssetFact, ...] = ()
    device_ids: frozenset[str] = frozenset()
    if asset_ids:
        _check_deadline(deadline, "asset")
        async with asyncio.TaskGroup() as tg:
            assets_task = tg.create_task(
                _read_evidence(
                    "assets",
                    lambda: source.read_assets_by_ids(ctx, asset_ids),
                    [],
                    ctx=ctx,
                    order_id=order.order_id,
                )
            )
            last_trace_tasks = {
                asset_id: tg.create_task(
                    _read_evidence(
                        "last_trace",
                        lambda asset_id=asset_id: source.read_last_trace(ctx, asset_id),
                        None,
                        ctx=ctx,
                        order_id=order.order_id,
                    )
                )
                for asset_id in asset_ids
            }
            devices_task = tg.create_task(
                _read_evidence(
                    "device_ids",
                    lambda: source.read_device_ids(ctx, asset_ids),
                    set(),
                    ctx=ctx,
                    order_id=order.order_id,
                )
            )
        assets = _validate_assets(
            asset_ids,
            list(assets_task.result()),
            {asset_id: task.result() for asset_id, task in last_trace_tasks.items()},
            order_id=order.order_id,
            ctx=ctx,
        )
        device_ids = frozenset(str(device_id) for device_id in devices_task.result())

    timeline = merge_timeline(order, list(traces))
    warnings = run_governance(
        GovernanceInput(
            order=order,
            traces=traces,
            audit_records=audit_records,
            detected_at=detected_at,
            device_ids=device_ids,
        ),
        checks,
    )
    health = score_warnings(warnings)

    logger.info(
        "Assembled facts for order=%s: %d traces, %d assets, %d warnings, score=%d (%.0fms)",
        order.order_id,
        len(traces),
        len(assets),
        len(warnings),
        health.score,
        (time.monotonic() - started) * 1000,
        extra={
            "facts_order_id": order.order_id,
            "facts_request_id": ctx.request_id,
            "facts_health_score": health.score,
        },
    )

    return OrderFactsResponse(
        order=order,
        assets=assets,
        traces=traces,
        timeline=tuple(timeline),
        warnings=warnings,
        health=health,
    )
