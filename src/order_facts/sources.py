"""Source readers for order facts.

Three independent, read-only sources feed the engine: the order record, the
append-only audit trail, and the trace (asset action) log. Readers return raw,
untrusted rows; no joins are performed at the source.

Completeness is a contract of the reader: ``read_audit_trail`` and
``read_traces`` must return every row for the target, never a page of them.
The engine cannot verify this. A silently paginating store would make the
accepted-without-audit and timeline checks report false positives.

Filters compare columns as stored. Ids are passed as untyped text
parameters and PostgreSQL coerces them to the column's type.

Row shapes (``dict`` rows, column name → value):

- OrderRow: id, restaurant_id, status, created_at, worker_id, accepted_at,
  completed_at
- AuditRow: action, created_at, actor_id
- TraceRow: id, asset_id, operator_id, action_type, order_id, created_at
- AssetRow: asset_id, status
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import psycopg
from psycopg.rows import dict_row

from .access import FactRequestContext

logger = logging.getLogger(__name__)

Row = dict[str, Any]

ORDER_AUDIT_TARGET_TYPE = "delivery_order"


class FactSource(Protocol):
    """Read-only accessors the assembler depends on."""

    async def read_order(self, ctx: FactRequestContext, order_id: str) -> Row | None: ...

    async def read_audit_trail(
        self,
        ctx: FactRequestContext,
        target_type: str,
        target_id: str,
    ) -> list[Row]: ...

    async def read_traces(self, ctx: FactRequestContext, order_id: str) -> list[Row]: ...

    async def read_assets_by_ids(
        self,
        ctx: FactRequestContext,
        asset_ids: list[str],
    ) -> list[Row]: ...

    async def read_last_trace(self, ctx: FactRequestContext, asset_id: str) -> Row | None: ...

    async def read_device_ids(
        self,
        ctx: FactRequestContext,
        asset_ids: list[str],
    ) -> set[str]: ...


class PostgresFactSource:
    """FactSource over the platform's PostgreSQL tables. SELECT only."""

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self._conn = conn

    async def read_order(self, ctx: FactRequestContext, order_id: str) -> Row | None:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, restaurant_id, status, created_at, worker_id,
                       accepted_at, completed_at
                FROM delivery_orders
                WHERE id = %s
                """,
                (order_id,),
            )
            row = await cur.fetchone()
        logger.debug(
            "read_order order=%s found=%s",
            order_id,
            row is not None,
            extra={"facts_request_id": ctx.request_id},
        )
        return row

    async def read_audit_trail(
        self,
        ctx: FactRequestContext,
        target_type: str,
        target_id: str,
    ) -> list[Row]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT action, created_at, actor_id
                FROM audit_logs
                WHERE target_type = %s
                  AND target_id = %s
                ORDER BY created_at ASC
                """,
                (target_type, target_id),
            )
            rows = await cur.fetchall()
        logger.debug(
            "read_audit_trail target=%s:%s rows=%d",
            target_type,
            target_id,
            len(rows),
            extra={"facts_request_id": ctx.request_id},
        )
        return rows

    async def read_traces(self, ctx: FactRequestContext, order_id: str) -> list[Row]:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, asset_id, operator_id, action_type, order_id, created_at
                FROM trace_logs
                WHERE order_id = %s
                ORDER BY created_at ASC, id ASC
                """,
                (order_id,),
            )
            rows = await cur.fetchall()
        logger.debug(
            "read_traces order=%s rows=%d",
            order_id,
            len(rows),
            extra={"facts_request_id": ctx.request_id},
        )
        return rows

    async def read_assets_by_ids(
        self,
        ctx: FactRequestContext,
        asset_ids: list[str],
    ) -> list[Row]:
        if not asset_ids:
            return []
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id AS asset_id, status
                FROM gas_cylinders
                WHERE id = ANY(%s)
                ORDER BY id ASC
                """,
                (list(asset_ids),),
            )
            return await cur.fetchall()

    async def read_last_trace(self, ctx: FactRequestContext, asset_id: str) -> Row | None:
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id, asset_id, operator_id, action_type, order_id, created_at
                FROM trace_logs
                WHERE asset_id = %s
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (asset_id,),
            )
            return await cur.fetchone()

    async def read_device_ids(
        self,
        ctx: FactRequestContext,
        asset_ids: list[str],
    ) -> set[str]:
        if not asset_ids:
            return set()
        async with self._conn.cursor() as cur:
            await cur.execute(
                "SELECT device_id FROM devices WHERE device_id = ANY(%s)",
                (list(asset_ids),),
            )
            rows = await cur.fetchall()
        return {str(row[0]) for row in rows}
