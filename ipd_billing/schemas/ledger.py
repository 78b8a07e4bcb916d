# FILE: ipd_billing/schemas/ledger.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class LedgerRecordIn(BaseModel):
    kind: str
    patient_ref: str
    amount: Decimal = Decimal("0")
    status: str = "PENDING"
    payment_mode: Optional[str] = None
    record_date: Optional[date] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    received_by: Optional[str] = None


class PersistedRecord(BaseModel):
    """What the Ledger Store hands back for a row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    patient_ref: str
    amount: Decimal
    status: str
    payment_mode: Optional[str] = None
    record_date: Optional[date] = None
    description: Optional[str] = None
    reference: Optional[str] = None
    received_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
