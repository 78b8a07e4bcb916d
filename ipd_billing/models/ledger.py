# FILE: ipd_billing/models/ledger.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from ipd_billing.db.base import Base


class RecordKind(str, enum.Enum):
    BILL = "BILL"
    DEPOSIT = "DEPOSIT"


class RecordStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"
    CANCELLED = "CANCELLED"


# rows in these states no longer count towards bills or deposits
INACTIVE_STATUSES = (RecordStatus.DELETED.value, RecordStatus.CANCELLED.value)


class LedgerRecord(Base):
    """
    One row of the billing ledger.
    The store only understands amount/status/free text: line items of a
    bill live inside `description` (see services.bill_codec).
    """

    __tablename__ = "ipd_ledger_records"
    __table_args__ = (Index("ix_ipd_ledger_patient_kind", "patient_ref",
                            "kind", "status"), )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    kind = Column(String(16), nullable=False)  # BILL | DEPOSIT
    patient_ref = Column(String(64), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RecordStatus.PENDING.value)
    payment_mode = Column(String(32), nullable=True)  # CASH/CARD/UPI/...

    # business date; older rows may not have it
    record_date = Column(Date, nullable=True)

    description = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True)  # receipt no.
    received_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())
