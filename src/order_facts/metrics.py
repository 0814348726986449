"""In-memory order facts metrics.

Asyncio is single-threaded, so plain dicts are safe; no locking needed.
"""

import time

_start_time = time.monotonic()

_metrics: dict = {
    "requests": {},
    "warnings": {},
    "degraded_reads": {},
    "request_duration_ms_total": 0.0,
}


def record_request(outcome: str, duration_ms: float) -> None:
    """Record one facts request by outcome (ok, not_found, contract_violation, ...)."""
    requests = _metrics["requests"]
    requests[outcome] = requests.get(outcome, 0) + 1
    _metrics["request_duration_ms_total"] += duration_ms


def record_warnings(codes: list[str]) -> None:
    warnings = _metrics["warnings"]
    for code in codes:
        warnings[code] = warnings.get(code, 0) + 1


def record_degraded_read(reader_name: str) -> None:
    degraded = _metrics["degraded_reads"]
    degraded[reader_name] = degraded.get(reader_name, 0) + 1


def get_metrics() -> dict:
    """Return a snapshot of current metrics."""
    total = sum(_metrics["requests"].values())
    avg_ms = _metrics["request_duration_ms_total"] / total if total else 0.0
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "requests_total": total,
        "requests": dict(_metrics["requests"]),
        "request_duration_ms_avg": round(avg_ms, 2),
        "warnings": dict(_metrics["warnings"]),
        "degraded_reads": dict(_metrics["degraded_reads"]),
    }


def reset_metrics() -> None:
    _metrics["requests"] = {}
    _metrics["warnings"] = {}
    _metrics["degraded_reads"] = {}
    _metrics["request_duration_ms_total"] = 0.0
