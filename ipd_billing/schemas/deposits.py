from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ipd_billing.schemas.billing import normalize_payment_mode


# ---------- CREATE DEPOSIT ----------
class DepositCreate(BaseModel):
    patient_ref: str
    amount: Decimal = Field(..., gt=0)
    deposit_date: date
    mode: str = "CASH"
    reference: Optional[str] = None
    received_by: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _mode(cls, v):
        return normalize_payment_mode(v)


# ---------- UPDATE DEPOSIT ----------
class DepositUpdate(BaseModel):
    amount: Optional[Decimal] = None
    deposit_date: Optional[date] = None
    mode: Optional[str] = None
    reference: Optional[str] = None
    received_by: Optional[str] = None


# ---------- DEPOSIT OUT ----------
class DepositEntry(BaseModel):
    id: int
    patient_ref: str
    amount: Decimal
    deposit_date: date
    date_source: str
    mode: Optional[str] = None
    reference: Optional[str] = None
    received_by: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


# ---------- PATIENT SUMMARY ----------
class DepositSummary(BaseModel):
    patient_ref: str
    deposit_count: int = 0
    total_deposits: Decimal = Decimal("0")
    total_billed: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    refund_due: Decimal = Decimal("0")


class DepositResult(BaseModel):
    deposit: Optional[DepositEntry] = None
    summary: DepositSummary
    deletion: Optional[str] = None  # "hard" | "soft"
