"""
Best-effort recovery of a structured bill from payloads that carry no
usable ITEMS_JSON array (records written by older clients, or arrays that
were truncated by the store).

Token grammar (case-insensitive, each label matched independently)::

    token  := LABEL [ "Charges" | "Charge" | "Fee" | "Fees" ] ":" [ "₹" | "Rs" | "Rs." | "INR" ] NUMBER
    LABEL  := Admission | Stay | Service | Services | Discount | Tax | Net
    NUMBER := digits, optional thousands commas, optional decimals

Stay rows may also carry a descriptor such as ``ICU - Room Stay (3 days)``,
which gives the room type and day count.

Fallback chain, in order:

1. charge-category tokens (Admission / Stay / Services) found:
   one aggregate row per category, discount and tax from their tokens;
2. nothing found: one opaque "Treatment Charges" row equal to the stored
   amount, so the bill still balances.

The reconciliation policy then decides whether the stored amount or the
recovered categories win when they disagree.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from ipd_billing.core.config import settings
from ipd_billing.schemas.billing import AdmissionItem, ServiceItem, StayItem, StaySegment
from ipd_billing.services.billing_engine import ADMISSION_LABEL, net_total, stay_label
from ipd_billing.services.billing_math import D, ZERO, money, try_decimal
from ipd_billing.services.room_type import (
    RoomType,
    canonical_rates,
    match_room_type,
    normalize_room_type,
)
from ipd_billing.utils.timezone import today_ist

logger = logging.getLogger(__name__)

OPAQUE_LABEL = "Treatment Charges"
SERVICES_LABEL = "Services"


class ReconciliationPolicy(str, Enum):
    CATEGORIES = "categories"
    STORED_AMOUNT = "stored_amount"

    @classmethod
    def from_settings(cls) -> "ReconciliationPolicy":
        try:
            return cls(settings.LEGACY_RECONCILIATION)
        except ValueError:
            return cls.CATEGORIES


class ReconstructionSource(str, Enum):
    STRUCTURED = "STRUCTURED"
    LEGACY_TOKENS = "LEGACY_TOKENS"
    LEGACY_OPAQUE = "LEGACY_OPAQUE"


# ============================================================
# Token scanner
# ============================================================
_NUMBER = r"[-\s]*(?:(?:₹|rs\.?|inr)[-\s]*)?(\d[\d,]*(?:\.\d+)?)"
_SUFFIX = r"(?:\s+(?:charges?|fees?|amount|total))?"

_TOKEN_PATTERNS = {
    "admission": re.compile(r"(?<![a-z])admission" + _SUFFIX + r"\s*:" + _NUMBER, re.I),
    "stay": re.compile(r"(?<![a-z])stay" + _SUFFIX + r"\s*:" + _NUMBER, re.I),
    "services": re.compile(r"(?<![a-z])services?" + _SUFFIX + r"\s*:" + _NUMBER, re.I),
    "discount": re.compile(r"(?<![a-z])discount" + _SUFFIX + r"\s*:" + _NUMBER, re.I),
    "tax": re.compile(r"(?<![a-z])tax" + _SUFFIX + r"\s*:" + _NUMBER, re.I),
    "net": re.compile(r"(?<![a-z])net" + _SUFFIX + r"\s*:" + _NUMBER, re.I),
}

_STAY_DAYS = re.compile(r"room stay\s*\(\s*(\d+)\s*days?\s*\)", re.I)
# room name in the text just before a "Room Stay (n days)" marker
_ROOM_BEFORE = re.compile(r"([a-z][a-z _/]*?)\s*[-–]\s*$", re.I)
_ROOM_WINDOW = 40

CHARGE_CATEGORIES = ("admission", "stay", "services")


@dataclass
class SummaryTokens:
    admission: Optional[Decimal] = None
    stay: Optional[Decimal] = None
    services: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    net: Optional[Decimal] = None

    @property
    def matched(self) -> List[str]:
        return [k for k in _TOKEN_PATTERNS if getattr(self, k) is not None]

    @property
    def has_charge_category(self) -> bool:
        return any(getattr(self, k) is not None for k in CHARGE_CATEGORIES)

    def value(self, name: str) -> Decimal:
        v = getattr(self, name)
        return money(v) if v is not None else ZERO


def scan_summary_tokens(text: Optional[str]) -> SummaryTokens:
    """Independent optional match per label; a missing token never blocks others."""
    tokens = SummaryTokens()
    if not isinstance(text, str) or not text:
        return tokens
    for name, pattern in _TOKEN_PATTERNS.items():
        m = pattern.search(text)
        if not m:
            continue
        value, _ = try_decimal(m.group(1))
        if value is not None:
            setattr(tokens, name, value)
    return tokens


def find_stay_descriptor(text: Optional[str]) -> Tuple[Optional[RoomType], Optional[int]]:
    """(room type, days) from "<room> - Room Stay (<n> days)"; either may be None."""
    if not isinstance(text, str):
        return None, None
    m = _STAY_DAYS.search(text)
    if not m:
        return match_room_type(text), None
    window = text[max(0, m.start() - _ROOM_WINDOW):m.start()]
    named = _ROOM_BEFORE.search(window)
    room = match_room_type(named.group(1)) if named else None
    days = int(m.group(1))
    return room or match_room_type(window), (days if days > 0 else None)


# ============================================================
# Rate reconstruction
# ============================================================
def split_daily_rate(room_type: RoomType, per_day,
                     tolerance_pct: Optional[float] = None) -> Tuple[dict, bool]:
    """
    Four per-day components summing exactly to ``per_day``.
    Close to the canonical tariff -> canonical split (residual on bed);
    otherwise every component scaled by per_day / canonical sum.
    Returns (rates, scaled).
    """
    per_day = money(per_day)
    canon = canonical_rates(room_type)
    tol = Decimal(str(settings.LEGACY_RATE_TOLERANCE_PCT if tolerance_pct is None else tolerance_pct))

    if abs(per_day - canon.total) <= canon.total * tol / Decimal("100"):
        nursing, rmo, doctor = canon.nursing, canon.rmo, canon.doctor
        scaled = False
    else:
        factor = per_day / canon.total
        nursing = money(canon.nursing * factor)
        rmo = money(canon.rmo * factor)
        doctor = money(canon.doctor * factor)
        scaled = True

    bed = per_day - nursing - rmo - doctor
    return {
        "bed_rate": money(bed),
        "nursing_rate": money(nursing),
        "rmo_rate": money(rmo),
        "doctor_rate": money(doctor),
    }, scaled


def _infer_days(stay_total: Decimal, room_type: RoomType,
                descriptor_days: Optional[int]) -> int:
    if descriptor_days:
        return descriptor_days
    canon = canonical_rates(room_type).total
    if canon > 0 and stay_total >= canon and stay_total % canon == 0:
        return int(stay_total / canon)
    return 1


def reconstruct_stay(stay_total, text: Optional[str] = None,
                     reference_date: Optional[date] = None,
                     notes: Optional[List[str]] = None) -> StayItem:
    """Single aggregate stay row whose segment total equals ``stay_total``."""
    notes = notes if notes is not None else []
    stay_total = money(stay_total)
    described_type, descriptor_days = find_stay_descriptor(text)
    room_type = described_type or normalize_room_type(settings.BILLING_DEFAULT_ROOM_TYPE)

    days = _infer_days(stay_total, room_type, descriptor_days)
    per_day = money(stay_total / days)
    if per_day * days != stay_total:
        notes.append(f"stay total {stay_total} not divisible by {days} days; billed as 1 day")
        days = 1
        per_day = stay_total

    rates, scaled = split_daily_rate(room_type, per_day)
    if scaled:
        notes.append(f"{room_type.value} rates scaled to {per_day}/day")

    end = reference_date or today_ist()
    segment = StaySegment(
        room_type=room_type,
        start_date=end - timedelta(days=days),
        end_date=end,
        **rates,
    )
    return StayItem(label=stay_label(room_type, days),
                    quantity=Decimal(days),
                    unit_rate=per_day,
                    total=stay_total,
                    segment=segment)


# ============================================================
# Reconstruction
# ============================================================
@dataclass
class ReconstructedBill:
    line_items: list
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    source: ReconstructionSource = ReconstructionSource.LEGACY_OPAQUE
    tokens: SummaryTokens = field(default_factory=SummaryTokens)
    notes: List[str] = field(default_factory=list)


def _opaque(amount: Decimal, tokens: SummaryTokens, notes: List[str]) -> ReconstructedBill:
    notes.append("no category tokens; single opaque charge")
    item = ServiceItem(label=OPAQUE_LABEL,
                       quantity=Decimal("1"),
                       unit_rate=amount,
                       total=amount)
    return ReconstructedBill(line_items=[item],
                             source=ReconstructionSource.LEGACY_OPAQUE,
                             tokens=tokens,
                             notes=notes)


def _from_tokens(text: str, tokens: SummaryTokens,
                 reference_date: Optional[date], notes: List[str]) -> ReconstructedBill:
    items: list = []
    admission = tokens.value("admission")
    if admission > 0:
        items.append(
            AdmissionItem(label=ADMISSION_LABEL,
                          quantity=Decimal("1"),
                          unit_rate=admission,
                          total=admission))
    stay = tokens.value("stay")
    if stay > 0:
        items.append(reconstruct_stay(stay, text, reference_date, notes))
    services = tokens.value("services")
    if services > 0:
        items.append(
            ServiceItem(label=SERVICES_LABEL,
                        quantity=Decimal("1"),
                        unit_rate=services,
                        total=services))
    return ReconstructedBill(line_items=items,
                             discount=tokens.value("discount"),
                             tax=tokens.value("tax"),
                             source=ReconstructionSource.LEGACY_TOKENS,
                             tokens=tokens,
                             notes=notes)


def _reconcile(bill: ReconstructedBill, stored: Decimal,
               policy: ReconciliationPolicy) -> None:
    totals = {"ADMISSION": ZERO, "STAY": ZERO, "SERVICE": ZERO}
    for it in bill.line_items:
        totals[it.category] += it.total
    gross = totals["ADMISSION"] + totals["STAY"] + totals["SERVICE"]
    net = net_total(gross, bill.discount, bill.tax)
    if net == stored:
        return

    if policy == ReconciliationPolicy.CATEGORIES:
        bill.notes.append(f"recovered net {net} differs from stored amount {stored}")
        return

    # back-calculate the admission fee so the bill ties to the stored amount
    needed = money(stored - totals["STAY"] - totals["SERVICE"] + bill.discount - bill.tax)
    if needed < 0:
        bill.notes.append(f"stored amount {stored} below recovered charges; admission fee clamped to 0")
        needed = ZERO
    else:
        bill.notes.append(f"admission fee back-calculated to {needed} from stored amount {stored}")

    rest = [it for it in bill.line_items if it.category != "ADMISSION"]
    if needed > 0:
        rest.insert(0, AdmissionItem(label=ADMISSION_LABEL,
                                     quantity=Decimal("1"),
                                     unit_rate=needed,
                                     total=needed))
    bill.line_items = rest


def reconstruct(text: Optional[str],
                stored_amount=None,
                *,
                reference_date: Optional[date] = None,
                policy: Optional[ReconciliationPolicy] = None) -> ReconstructedBill:
    """
    Structured bill from a payload without a usable items array.
    Never raises; the worst case is a single opaque row equal to the
    stored amount.
    """
    policy = policy or ReconciliationPolicy.from_settings()
    text = text if isinstance(text, str) else ""
    tokens = scan_summary_tokens(text)

    stored: Optional[Decimal] = None
    if stored_amount is not None:
        stored = money(max(ZERO, D(stored_amount)))

    notes: List[str] = []
    if not tokens.has_charge_category:
        amount = stored if stored is not None else tokens.value("net")
        return _opaque(amount, tokens, notes)

    try:
        bill = _from_tokens(text, tokens, reference_date, notes)
    except Exception:
        logger.exception("Legacy token reconstruction failed; using opaque charge")
        amount = stored if stored is not None else tokens.value("net")
        return _opaque(amount, SummaryTokens(), [])

    if not bill.line_items:
        # tokens present but all zero
        amount = stored if stored is not None else ZERO
        if amount > 0:
            return _opaque(amount, tokens, notes)
        return bill

    if stored is not None:
        _reconcile(bill, stored, policy)
    return bill
