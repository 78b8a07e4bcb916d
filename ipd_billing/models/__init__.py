# ipd_billing/models/__init__.py
from .ledger import LedgerRecord, RecordKind, RecordStatus

__all__ = [
    "LedgerRecord",
    "RecordKind",
    "RecordStatus",
]
