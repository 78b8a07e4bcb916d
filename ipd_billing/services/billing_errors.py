# ipd_billing/services/billing_errors.py
from __future__ import annotations


class ValidationError(ValueError):
    """Rejected input; raised before anything is written."""


class BillStateError(ValidationError):
    """Operation not allowed in the bill's current status."""


class RecordNotFoundError(LookupError):
    def __init__(self, kind: str, record_id):
        super().__init__(f"{kind.title()} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class PersistenceError(RuntimeError):
    """Ledger Store I/O failed. Safe to retry: nothing partial was written."""

    retryable = True


class DeletionRejectedError(PersistenceError):
    """The store refused a hard delete; callers soft-delete instead."""
