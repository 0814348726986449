"""Minimal async HTTP surface for order facts.

Uses raw asyncio.start_server. Routes:

- ``GET /api/facts/orders/{order_id}``: assembled order facts
- ``GET /health``: liveness, database check and request metrics

Each facts request opens its own autocommit connection; nothing is shared
between requests except the in-memory metrics.
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from http import HTTPStatus
from urllib.parse import unquote

import psycopg

from .access import FactRequestContext, resolve_identity, verify_fact_access
from .assembler import get_order_facts
from .config import Config
from .errors import ContractViolation, FactsError
from .metrics import get_metrics, record_request, record_warnings
from .sources import FactSource, PostgresFactSource

logger = logging.getLogger(__name__)

_ORDER_FACTS_PATH = re.compile(r"^/api/facts/orders/(?P<order_id>[^/]+)/?$")
_REQUEST_ID_HEADER = "x-request-id"
_MAX_HEADERS = 100

SourceOpener = Callable[[], AbstractAsyncContextManager[FactSource]]
DbCheck = Callable[[], Awaitable[str]]


def postgres_source_opener(db_url: str) -> SourceOpener:
    @asynccontextmanager
    async def open_source() -> AsyncIterator[FactSource]:
        async with await psycopg.AsyncConnection.connect(db_url, autocommit=True) as conn:
            yield PostgresFactSource(conn)

    return open_source


async def _check_db(db_url: str) -> str:
    """Try SELECT 1 with a 2s timeout. Returns 'ok' or 'error'."""
    try:
        async with asyncio.timeout(2):
            async with await psycopg.AsyncConnection.connect(
                db_url, autocommit=True
            ) as conn:
                await conn.execute("SELECT 1")
        return "ok"
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "error"


async def _health(db_check: DbCheck) -> tuple[int, dict]:
    db_status = await db_check()
    metrics = get_metrics()
    status = "ok" if db_status == "ok" else "degraded"
    body = {
        "status": status,
        "uptime_seconds": metrics["uptime_seconds"],
        "db": db_status,
        "metrics": metrics,
    }
    return (200 if status == "ok" else 503), body


async def _order_facts(
    order_id: str,
    headers: dict[str, str],
    *,
    open_source: SourceOpener,
    admin_token: str | None,
    request_timeout: float,
) -> tuple[int, dict]:
    started = time.monotonic()
    identity = resolve_identity(headers, admin_token=admin_token)
    request_id = headers.get(_REQUEST_ID_HEADER)
    ctx = (
        FactRequestContext(identity=identity, request_id=request_id)
        if request_id
        else FactRequestContext(identity=identity)
    )
    log_extra = {"facts_order_id": order_id, "facts_request_id": ctx.request_id}

    try:
        async with open_source() as source:
            response = await get_order_facts(
                source,
                order_id,
                ctx,
                access_check=verify_fact_access,
                deadline=started + request_timeout,
            )
    except ContractViolation as exc:
        record_request(exc.error_code, (time.monotonic() - started) * 1000)
        return exc.http_status, {
            "success": False,
            "error": str(exc),
            "details": exc.errors,
        }
    except FactsError as exc:
        record_request(exc.error_code, (time.monotonic() - started) * 1000)
        logger.info("Order facts request rejected: %s", exc, extra=log_extra)
        return exc.http_status, {
            "success": False,
            "error": exc.error_code,
            "message": str(exc),
        }
    except Exception:
        record_request("error", (time.monotonic() - started) * 1000)
        logger.error("Order facts request failed", exc_info=True, extra=log_extra)
        return 500, {"success": False, "error": "internal_error"}

    record_request("ok", (time.monotonic() - started) * 1000)
    record_warnings([warning.code for warning in response.warnings])
    return 200, response.to_dict()


async def dispatch(
    method: str,
    path: str,
    headers: dict[str, str],
    *,
    open_source: SourceOpener,
    db_check: DbCheck,
    admin_token: str | None = None,
    request_timeout: float = 10.0,
) -> tuple[int, dict]:
    """Route one parsed request. Returns (status, JSON body)."""
    path = path.split("?", 1)[0]

    if path == "/health":
        if method != "GET":
            return 405, {"error": "method_not_allowed"}
        return await _health(db_check)

    match = _ORDER_FACTS_PATH.match(path)
    if match is None:
        return 404, {"error": "not_found"}
    if method != "GET":
        return 405, {"success": False, "error": "method_not_allowed"}

    return await _order_facts(
        unquote(match.group("order_id")),
        headers,
        open_source=open_source,
        admin_token=admin_token,
        request_timeout=request_timeout,
    )


async def _read_request(reader: asyncio.StreamReader) -> tuple[str, str, dict[str, str]]:
    request_line = await asyncio.wait_for(reader.readline(), timeout=5)
    # "GET /api/facts/orders/42 HTTP/1.1\r\n"
    parts = request_line.decode("utf-8", errors="replace").strip().split()
    method = parts[0].upper() if parts else ""
    path = parts[1] if len(parts) >= 2 else "/"

    headers: dict[str, str] = {}
    for _ in range(_MAX_HEADERS):
        line = await asyncio.wait_for(reader.readline(), timeout=5)
        decoded = line.decode("utf-8", errors="replace").strip()
        if not decoded:
            break
        name, _, value = decoded.partition(":")
        headers[name.strip().lower()] = value.strip()
    return method, path, headers


def _encode_response(status: int, body: dict) -> bytes:
    payload = json.dumps(body, default=str).encode()
    head = (
        f"HTTP/1.1 {status} {HTTPStatus(status).phrase}\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Connection: close\r\n\r\n"
    )
    return head.encode() + payload


async def _handle_request(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    config: Config,
    open_source: SourceOpener,
    db_check: DbCheck,
) -> None:
    try:
        method, path, headers = await _read_request(reader)
        status, body = await dispatch(
            method,
            path,
            headers,
            open_source=open_source,
            db_check=db_check,
            admin_token=config.admin_token,
            request_timeout=config.request_timeout_seconds,
        )
        writer.write(_encode_response(status, body))
        await writer.drain()
    except Exception:
        logger.debug("HTTP request error", exc_info=True)
    finally:
        writer.close()
        await writer.wait_closed()


async def start_server(
    config: Config,
    *,
    open_source: SourceOpener | None = None,
    db_check: DbCheck | None = None,
) -> asyncio.Server:
    """Start the facts HTTP server. Returns the asyncio.Server for lifecycle management."""
    opener = open_source or postgres_source_opener(config.database_url)

    async def check() -> str:
        return await _check_db(config.database_url)

    async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await _handle_request(reader, writer, config, opener, db_check or check)

    server = await asyncio.start_server(handler, config.http_host, config.http_port)
    logger.info("Order facts API listening on %s:%d", config.http_host, config.http_port)
    return server
