"""Error taxonomy for the reservation engine.

Every error carries a stable machine-readable ``code`` and the HTTP status the
web layer answers with. Storage driver exceptions never cross the use case
boundary; they are translated into :class:`PersistenceError` subclasses by the
unit of work.
"""

from __future__ import annotations

from typing import Any


class ReservationError(Exception):
    code = "reservation_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message}


class ValidationError(ReservationError):
    code = "validation_error"
    http_status = 400


class PermissionDenied(ReservationError):
    code = "forbidden"
    http_status = 403


class NotFoundError(ReservationError):
    code = "not_found"
    http_status = 404


class SlotUnavailable(ReservationError):
    code = "slot_unavailable"
    http_status = 409


class InsufficientCapacity(ReservationError):
    code = "insufficient_capacity"
    http_status = 409


class VoucherInvalid(ReservationError):
    code = "voucher_invalid"
    http_status = 409


class VoucherNotFound(VoucherInvalid):
    code = "voucher_invalid:not_found"


class VoucherExpired(VoucherInvalid):
    code = "voucher_invalid:expired"


class VoucherExhausted(VoucherInvalid):
    code = "voucher_invalid:exhausted"


class VoucherUserMismatch(VoucherInvalid):
    code = "voucher_invalid:user_mismatch"


class VoucherBelowMinimum(VoucherInvalid):
    code = "voucher_invalid:below_minimum"


class PersistenceError(ReservationError):
    code = "persistence_error"
    http_status = 500


class PersistenceConflict(PersistenceError):
    """Serialization failure or lock timeout; the whole call may be retried."""

    code = "persistence_conflict"
    http_status = 503
    retryable = True


class InvariantViolation(ReservationError):
    code = "invariant_violation"
    http_status = 500
