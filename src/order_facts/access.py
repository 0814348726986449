"""Explicit caller identity for the order facts API.

Identity is resolved once per request from headers and then passed down as a
value. Nothing below the HTTP surface looks identity up on its own.

- admin: ``authorization: Bearer <token>`` matching the configured admin token.
- client: ``x-restaurant-id`` header, scoped to that restaurant.
- anonymous: neither present.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from .errors import FactAccessDenied

logger = logging.getLogger(__name__)

IdentityKind = Literal["admin", "client", "anonymous"]

RESTAURANT_ID_HEADER = "x-restaurant-id"
AUTHORIZATION_HEADER = "authorization"


@dataclass(frozen=True)
class FactIdentity:
    kind: IdentityKind
    restaurant_id: str | None = None


ANONYMOUS = FactIdentity(kind="anonymous")


@dataclass(frozen=True)
class FactRequestContext:
    """Per-request tenant/identity value handed to every source read."""

    identity: FactIdentity
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def resolve_identity(
    headers: Mapping[str, str],
    *,
    admin_token: str | None = None,
) -> FactIdentity:
    """Resolve caller identity from lower-cased request headers."""
    authorization = (headers.get(AUTHORIZATION_HEADER) or "").strip()
    if admin_token and authorization.lower().startswith("bearer "):
        presented = authorization[len("bearer "):].strip()
        if presented and hmac.compare_digest(presented, admin_token):
            return FactIdentity(kind="admin")

    restaurant_id = (headers.get(RESTAURANT_ID_HEADER) or "").strip()
    if restaurant_id:
        return FactIdentity(kind="client", restaurant_id=restaurant_id)

    return ANONYMOUS


def verify_fact_access(identity: FactIdentity, restaurant_id: str) -> None:
    """Raise FactAccessDenied unless identity may read the restaurant's facts."""
    if identity.kind == "admin":
        logger.info(
            "Admin access to order facts of restaurant=%s",
            restaurant_id,
            extra={"facts_restaurant_id": restaurant_id},
        )
        return
    if identity.kind == "anonymous":
        raise FactAccessDenied(
            "Order facts are only available to signed-in callers",
            http_status=401,
        )
    if identity.restaurant_id != restaurant_id:
        raise FactAccessDenied(
            "restaurant_id does not match the caller's restaurant",
            http_status=403,
        )
