# FILE: ipd_billing/schemas/billing.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ipd_billing.services.room_type import RoomType, normalize_room_type
from ipd_billing.utils.timezone import parse_date


class ChargeCategory(str, Enum):
    ADMISSION = "ADMISSION"
    STAY = "STAY"
    SERVICE = "SERVICE"


class BillStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


PAYMENT_MODES = ("CASH", "CARD", "UPI", "ONLINE", "BANK_TRANSFER", "INSURANCE",
                 "ADJUSTMENT")


def normalize_payment_mode(x: Optional[str]) -> str:
    s = (x or "CASH").strip().upper().replace(" ", "_").replace("-", "_")
    return s if s in PAYMENT_MODES else "CASH"


# ---------- STAY SEGMENT ----------
class StaySegment(BaseModel):
    """One room-stay period with four per-day rate components."""

    room_type: RoomType = RoomType.GENERAL_WARD
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    bed_rate: Decimal = Decimal("0")
    nursing_rate: Decimal = Decimal("0")
    rmo_rate: Decimal = Decimal("0")
    doctor_rate: Decimal = Decimal("0")

    @field_validator("room_type", mode="before")
    @classmethod
    def _room_type(cls, v):
        return normalize_room_type(v)

    # unparseable dates fail soft; stay_days() then bills one day
    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, v):
        return parse_date(v)

    @property
    def daily_rate(self) -> Decimal:
        return self.bed_rate + self.nursing_rate + self.rmo_rate + self.doctor_rate


# ---------- LINE ITEMS (tagged on category) ----------
class _LineItemBase(BaseModel):
    label: str
    quantity: Decimal = Decimal("1")
    unit_rate: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class AdmissionItem(_LineItemBase):
    category: Literal["ADMISSION"] = "ADMISSION"


class StayItem(_LineItemBase):
    category: Literal["STAY"] = "STAY"
    segment: StaySegment


class ServiceItem(_LineItemBase):
    category: Literal["SERVICE"] = "SERVICE"


ChargeLineItem = Annotated[Union[AdmissionItem, StayItem, ServiceItem],
                           Field(discriminator="category")]


# ---------- CHARGE INPUT ----------
class ServiceCharge(BaseModel):
    name: str
    unit_price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("1")


class BillCharges(BaseModel):
    """Everything a user finalizes to produce a bill."""

    patient_ref: Optional[str] = None
    billing_date: Optional[date] = None
    admission_fee: Decimal = Decimal("0")
    stay_segments: List[StaySegment] = []
    services: List[ServiceCharge] = []
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    payment_mode: str = "CASH"

    @field_validator("payment_mode", mode="before")
    @classmethod
    def _mode(cls, v):
        return normalize_payment_mode(v)


class BillEdit(BaseModel):
    """Edited line items for an existing bill (PUT body)."""

    line_items: List[ChargeLineItem] = []
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    payment_mode: Optional[str] = None
    billing_date: Optional[date] = None


# ---------- SNAPSHOT ----------
class BillSnapshot(BaseModel):
    patient_ref: Optional[str] = None
    billing_date: Optional[date] = None
    line_items: List[ChargeLineItem] = []

    admission_fee: Decimal = Decimal("0")
    stay_total: Decimal = Decimal("0")
    services_total: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    gross: Decimal = Decimal("0")
    net: Decimal = Decimal("0")

    deposits_applied: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    refund_due: Decimal = Decimal("0")

    payment_mode: str = "CASH"
    status: BillStatus = BillStatus.DRAFT


class CreatedBillOut(BaseModel):
    id: int
    snapshot: BillSnapshot
    anomalies: List[str] = []


class EditableBillOut(BaseModel):
    record_id: int
    patient_ref: Optional[str] = None
    status: BillStatus
    source: str
    stored_amount: Decimal
    snapshot: BillSnapshot
    notes: List[str] = []


class BillBalanceOut(BaseModel):
    record_id: int
    patient_ref: Optional[str] = None
    net: Decimal
    deposits_applied: Decimal
    balance: Decimal
    refund_due: Decimal
