"""Fatal error taxonomy for the order facts read path.

Only these errors stop a request. Detected inconsistencies between facts are
never raised; they travel as ``FactWarning`` values instead.
"""

from __future__ import annotations


class FactsError(Exception):
    """Base class for errors that reject an order facts request."""

    error_code = "facts_error"
    http_status = 500


class ContractViolation(FactsError):
    """A required fact field is structurally missing or malformed."""

    error_code = "contract_violation"
    http_status = 422

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Order facts violate the fact contract ({len(self.errors)} errors)")


class OrderNotFound(FactsError):
    error_code = "order_not_found"
    http_status = 404

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class FactAccessDenied(FactsError):
    error_code = "access_denied"

    def __init__(self, message: str, *, http_status: int = 403) -> None:
        self.http_status = http_status
        super().__init__(message)


class DeadlineExceeded(FactsError):
    """The caller's deadline passed before the next read phase started."""

    error_code = "deadline_exceeded"
    http_status = 504
