"""Order timeline merger.

Merges two independent sources into one chronological view:
- order lifecycle pseudo-events synthesized from recorded OrderFact timestamps
- one node per TraceFact

Nodes are never collapsed or deduplicated. Several nodes at the same instant
are all kept; ties resolve lifecycle-before-trace, then by input position.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from .contracts import OrderFact, TraceFact

NodeKind = Literal["order_created", "order_accepted", "order_completed", "trace"]
NodeSource = Literal["order", "trace"]

_SOURCE_PRIORITY: dict[str, int] = {"order": 0, "trace": 1}

_LIFECYCLE_LABELS: dict[str, str] = {
    "order_created": "Order created",
    "order_accepted": "Order accepted",
    "order_completed": "Order completed",
}

_TRACE_ACTION_LABELS: dict[str, str] = {
    "CREATED": "Asset created",
    "FILLED": "Asset filled",
    "DELIVERED": "Asset delivered",
    "RETURNED": "Asset returned",
    "INSPECTED": "Asset inspected",
}


@dataclass(frozen=True)
class TimelineNode:
    node_id: str
    kind: NodeKind
    source: NodeSource
    timestamp: datetime
    label: str
    fact: OrderFact | TraceFact
    order_id: str | None = None
    asset_id: str | None = None
    operator_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "kind": self.kind,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "label": self.label,
            "order_id": self.order_id,
            "asset_id": self.asset_id,
            "operator_id": self.operator_id,
        }


def _lifecycle_node(order: OrderFact, kind: NodeKind, timestamp: datetime) -> TimelineNode:
    return TimelineNode(
        node_id=f"{kind}:{order.order_id}",
        kind=kind,
        source="order",
        timestamp=timestamp,
        label=_LIFECYCLE_LABELS[kind],
        fact=order,
        order_id=order.order_id,
        operator_id=order.worker_id if kind != "order_created" else None,
    )


def _trace_node(trace: TraceFact) -> TimelineNode:
    return TimelineNode(
        node_id=f"trace:{trace.id}",
        kind="trace",
        source="trace",
        timestamp=trace.created_at,
        # Unknown action types keep their recorded value as label.
        label=_TRACE_ACTION_LABELS.get(trace.action_type, trace.action_type),
        fact=trace,
        order_id=trace.order_id,
        asset_id=trace.asset_id,
        operator_id=trace.operator_id,
    )


def build_nodes(order: OrderFact, traces: list[TraceFact]) -> list[TimelineNode]:
    """Build unsorted timeline nodes: lifecycle first, then traces in input order."""
    nodes = [_lifecycle_node(order, "order_created", order.created_at)]
    if order.accepted_at is not None:
        nodes.append(_lifecycle_node(order, "order_accepted", order.accepted_at))
    if order.completed_at is not None:
        nodes.append(_lifecycle_node(order, "order_completed", order.completed_at))
    nodes.extend(_trace_node(trace) for trace in traces)
    return nodes


def merge_timeline(order: OrderFact, traces: list[TraceFact]) -> list[TimelineNode]:
    """Return every lifecycle and trace node in chronological order."""
    nodes = build_nodes(order, traces)
    # sorted() is stable, so equal (timestamp, priority) keep input position.
    return sorted(
        nodes,
        key=lambda node: (node.timestamp, _SOURCE_PRIORITY[node.source]),
    )
