"""Structured fact warnings.

A warning states that two facts contradict each other, or that a fact is
outside its declared vocabulary. It never states what should be done about
it; ``evidence`` exists for diagnostics and must not drive display logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

FACT_ACCEPTED_AT_MISSING_AUDIT_LOG = "FACT_ACCEPTED_AT_MISSING_AUDIT_LOG"
FACT_TIME_INVERSION = "FACT_TIME_INVERSION"
FACT_TIMELINE_BREAK = "FACT_TIMELINE_BREAK"
FACT_ENUM_VALUE_INVALID = "FACT_ENUM_VALUE_INVALID"
FACT_TIMELINE_ANOMALY = "FACT_TIMELINE_ANOMALY"

WARNING_CODES: tuple[str, ...] = (
    FACT_ACCEPTED_AT_MISSING_AUDIT_LOG,
    FACT_TIME_INVERSION,
    FACT_TIMELINE_BREAK,
    FACT_ENUM_VALUE_INVALID,
    FACT_TIMELINE_ANOMALY,
)

LEVEL_HIGH = "high"
LEVEL_MEDIUM = "medium"
LEVEL_LOW = "low"
WARNING_LEVELS: tuple[str, ...] = (LEVEL_HIGH, LEVEL_MEDIUM, LEVEL_LOW)

DOMAIN_ORDER = "order"
DOMAIN_TRACE = "trace"
DOMAIN_AUDIT = "audit"
WARNING_DOMAINS: tuple[str, ...] = (DOMAIN_ORDER, DOMAIN_TRACE, DOMAIN_AUDIT)


@dataclass(frozen=True)
class FactWarning:
    code: str
    level: str
    domain: str
    message: str
    fields: tuple[str, ...]
    detected_at: datetime
    evidence: dict[str, Any] = field(default_factory=dict)
    restaurant_id: str | None = None
    worker_id: str | None = None
    device_id: str | None = None

    def __post_init__(self) -> None:
        if self.code not in WARNING_CODES:
            raise ValueError(f"Unknown fact warning code: {self.code!r}")
        if self.level not in WARNING_LEVELS:
            raise ValueError(f"Unknown fact warning level: {self.level!r}")
        if self.domain not in WARNING_DOMAINS:
            raise ValueError(f"Unknown fact warning domain: {self.domain!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "level": self.level,
            "domain": self.domain,
            "message": self.message,
            "fields": list(self.fields),
            "evidence": dict(self.evidence),
            "detected_at": self.detected_at.isoformat(),
            "restaurant_id": self.restaurant_id,
            "worker_id": self.worker_id,
            "device_id": self.device_id,
        }
