from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Literal, Optional

AuditAction = Literal[
    "booking.created",
    "booking.cancelled",
    "booking.confirmed",
    "booking.completed",
    "voucher.redeemed",
    "slot.created",
    "slot.updated",
    "slot.reconciled",
    "slot.invariant_violation",
]
AuditInitiator = Literal["user", "admin", "system"]
AuditLevel = Literal["info", "warning", "error"]

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def generate_request_id() -> str:
    return uuid.uuid4().hex


def set_request_id(request_id: str | None) -> None:
    """Bind the request id for the current context (None to clear)."""
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    booking_id: Optional[int] = None,
    slot_id: Optional[int] = None,
    trek_slug: Optional[str] = None,
    user_id: Optional[str] = None,
    participants: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    level: AuditLevel = "info",
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "booking_id": booking_id,
        "slot_id": slot_id,
        "trek_slug": trek_slug,
        "user_id": user_id,
        "participants": participants,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    log = getattr(_audit_logger, level)
    try:
        log(json.dumps(compact_payload, ensure_ascii=True, default=str))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
