# FILE: ipd_billing/api/response.py
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ipd_billing.services.billing_errors import (
    BillStateError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)

# most specific first; the first isinstance match wins
LEDGER_ERRORS: Tuple[Tuple[type, int, str], ...] = (
    (BillStateError, 400, "BILL_STATE"),
    (ValidationError, 400, "VALIDATION"),
    (RecordNotFoundError, 404, "NOT_FOUND"),
    (PersistenceError, 503, "PERSISTENCE"),
)

PERSISTENCE_MSG = "Ledger store unavailable, please retry"


def _send(status_code: int, payload: Dict[str, Any]) -> JSONResponse:
    # Decimal / date / Enum -> JSON-safe
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def ok(data: Any = None, *, meta: Optional[Dict[str, Any]] = None, status_code: int = 200) -> JSONResponse:
    """{"ok": true, "data": ..., "meta": {...}}; meta only when given."""
    payload: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        payload["meta"] = meta
    return _send(status_code, payload)


def err(msg: str = "Something went wrong",
        *,
        status_code: int = 400,
        code: Optional[str] = None,
        details: Any = None,
        retryable: Optional[bool] = None) -> JSONResponse:
    error: Dict[str, Any] = {"msg": msg, "code": code}
    if details is not None:
        error["details"] = details
    if retryable is not None:
        error["retryable"] = retryable
    return _send(status_code, {"ok": False, "error": error})


def ledger_error(exc: Exception) -> JSONResponse:
    """Envelope for a billing/ledger exception; unknown types become a 500."""
    for exc_type, status_code, code in LEDGER_ERRORS:
        if isinstance(exc, exc_type):
            break
    else:
        return err("Internal server error", status_code=500)

    if isinstance(exc, PersistenceError):
        # store detail stays in the log
        return err(PERSISTENCE_MSG, status_code=status_code, code=code, retryable=exc.retryable)
    return err(str(exc), status_code=status_code, code=code)
