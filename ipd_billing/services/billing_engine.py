from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from ipd_billing.schemas.billing import (
    AdmissionItem,
    BillCharges,
    BillSnapshot,
    BillStatus,
    ChargeCategory,
    ServiceItem,
    StayItem,
    StaySegment,
)
from ipd_billing.services.billing_math import D, ZERO, money, try_decimal
from ipd_billing.services.room_type import room_label
from ipd_billing.utils.timezone import parse_date

logger = logging.getLogger(__name__)

ADMISSION_LABEL = "Admission Fee"


@dataclass
class CalculationAnomaly:
    """A numeric input that could not be used as-is and was clamped to 0."""

    where: str
    field: str
    raw: Any
    reason: str

    def __str__(self) -> str:
        return f"{self.where}.{self.field}: {self.reason} ({self.raw!r})"


@dataclass
class BillComputation:
    snapshot: BillSnapshot
    anomalies: List[CalculationAnomaly] = field(default_factory=list)

    def log_anomalies(self, context: str = "") -> None:
        for a in self.anomalies:
            logger.warning("Calculation anomaly %s%s", f"[{context}] " if context else "", a)


# -------------------------
# small helpers
# -------------------------
def _amount(x, where: str, name: str,
            anomalies: Optional[List[CalculationAnomaly]]) -> Decimal:
    """Non-negative finite Decimal; anything else becomes 0 and is reported."""
    value, reason = try_decimal(x)
    if value is None:
        if reason != "missing" and anomalies is not None:
            anomalies.append(CalculationAnomaly(where, name, x, reason))
        return ZERO
    if value < 0:
        if anomalies is not None:
            anomalies.append(CalculationAnomaly(where, name, x, "negative"))
        return ZERO
    return value


def _as_datetime(x) -> Optional[datetime]:
    if isinstance(x, datetime):
        if x.tzinfo is not None:
            x = x.astimezone(timezone.utc).replace(tzinfo=None)
        return x
    if isinstance(x, date):
        return datetime(x.year, x.month, x.day)
    if isinstance(x, str) and "T" in x:
        try:
            return _as_datetime(datetime.fromisoformat(x.strip().replace("Z", "+00:00")))
        except ValueError:
            pass
    d = parse_date(x)
    return datetime(d.year, d.month, d.day) if d else None


# -------------------------
# public API: pure calculations
# -------------------------
def stay_days(start, end) -> int:
    """
    ceil(|end - start|) in days, never less than 1.
    Missing/unparseable dates bill a single day.
    """
    s = _as_datetime(start)
    e = _as_datetime(end)
    if s is None or e is None:
        return 1
    seconds = abs((e - s).total_seconds())
    return max(1, math.ceil(seconds / 86400))


def clean_segment(segment: StaySegment,
                  anomalies: Optional[List[CalculationAnomaly]] = None,
                  where: str = "stay") -> StaySegment:
    """Copy of the segment with every rate coerced to a usable amount."""
    return segment.model_copy(
        update={
            "bed_rate": _amount(segment.bed_rate, where, "bed_rate", anomalies),
            "nursing_rate": _amount(segment.nursing_rate, where, "nursing_rate", anomalies),
            "rmo_rate": _amount(segment.rmo_rate, where, "rmo_rate", anomalies),
            "doctor_rate": _amount(segment.doctor_rate, where, "doctor_rate", anomalies),
        })


def stay_segment_total(segment: StaySegment,
                       anomalies: Optional[List[CalculationAnomaly]] = None,
                       where: str = "stay") -> Decimal:
    seg = clean_segment(segment, anomalies, where)
    days = stay_days(seg.start_date, seg.end_date)
    # billed per day at the rounded rate, so total == days x unit_rate
    return money(money(seg.daily_rate) * days)


def service_total(service,
                  anomalies: Optional[List[CalculationAnomaly]] = None,
                  where: str = "service") -> Decimal:
    """unit price x max(1, quantity). Works for ServiceCharge and ServiceItem."""
    raw_price = getattr(service, "unit_price", None)
    if raw_price is None:
        raw_price = getattr(service, "unit_rate", None)
    unit = _amount(raw_price, where, "unit_price", anomalies)
    qty = _amount(getattr(service, "quantity", None), where, "quantity", anomalies)
    return money(unit * max(Decimal("1"), qty))


def gross_total(admission_fee,
                stay_segments: Iterable[StaySegment] = (),
                services: Iterable[Any] = (),
                anomalies: Optional[List[CalculationAnomaly]] = None) -> Decimal:
    gross = _amount(admission_fee, "admission", "fee", anomalies)
    for i, seg in enumerate(stay_segments):
        gross += stay_segment_total(seg, anomalies, f"stay[{i}]")
    for i, svc in enumerate(services):
        gross += service_total(svc, anomalies, f"service[{i}]")
    return money(gross)


def net_total(gross, discount, tax,
              anomalies: Optional[List[CalculationAnomaly]] = None) -> Decimal:
    g = _amount(gross, "bill", "gross", anomalies)
    d = _amount(discount, "bill", "discount", anomalies)
    t = _amount(tax, "bill", "tax", anomalies)
    return money(max(ZERO, g - d + t))


def balance(net, deposits_sum) -> Decimal:
    """May be negative: a refund is owed."""
    return money(D(net) - D(deposits_sum))


def stay_label(room_type, days: int) -> str:
    return f"{room_label(room_type)} - Room Stay ({days} {'day' if days == 1 else 'days'})"


# -------------------------
# bill assembly
# -------------------------
def admission_item(fee, anomalies: Optional[List[CalculationAnomaly]] = None) -> Optional[AdmissionItem]:
    fee = _amount(fee, "admission", "fee", anomalies)
    if fee <= 0:
        return None
    return AdmissionItem(label=ADMISSION_LABEL,
                         quantity=Decimal("1"),
                         unit_rate=money(fee),
                         total=money(fee))


def stay_item(segment: StaySegment,
              anomalies: Optional[List[CalculationAnomaly]] = None,
              where: str = "stay") -> StayItem:
    clean = clean_segment(segment, anomalies, where)
    days = stay_days(clean.start_date, clean.end_date)
    rate = money(clean.daily_rate)
    return StayItem(label=stay_label(clean.room_type, days),
                    quantity=Decimal(days),
                    unit_rate=rate,
                    total=money(rate * days),
                    segment=clean)


def service_item(name: Optional[str], unit_price, quantity=1,
                 anomalies: Optional[List[CalculationAnomaly]] = None,
                 where: str = "service") -> ServiceItem:
    unit = _amount(unit_price, where, "unit_price", anomalies)
    qty = max(Decimal("1"), _amount(quantity, where, "quantity", anomalies))
    return ServiceItem(label=(name or "").strip() or "Service",
                       quantity=qty,
                       unit_rate=money(unit),
                       total=money(unit * qty))


def build_line_items(charges: BillCharges,
                     anomalies: Optional[List[CalculationAnomaly]] = None) -> list:
    items: list = []
    adm = admission_item(charges.admission_fee, anomalies)
    if adm is not None:
        items.append(adm)
    for i, seg in enumerate(charges.stay_segments):
        items.append(stay_item(seg, anomalies, f"stay[{i}]"))
    for i, svc in enumerate(charges.services):
        items.append(service_item(svc.name, svc.unit_price, svc.quantity, anomalies, f"service[{i}]"))
    return items


def _recompute_item(item, index: int, anomalies: List[CalculationAnomaly]):
    where = f"line[{index}]"
    if item.category == ChargeCategory.STAY:
        seg = clean_segment(item.segment, anomalies, where)
        days = stay_days(seg.start_date, seg.end_date)
        rate = money(seg.daily_rate)
        updated = {
            "segment": seg,
            "quantity": Decimal(days),
            "unit_rate": rate,
            "total": money(rate * days),
        }
    else:
        unit = _amount(item.unit_rate, where, "unit_rate", anomalies)
        qty = max(Decimal("1"), _amount(item.quantity, where, "quantity", anomalies))
        updated = {
            "quantity": qty,
            "unit_rate": money(unit),
            "total": money(unit * qty),
        }

    stored, _ = try_decimal(item.total)
    if stored is not None and money(stored) != updated["total"]:
        anomalies.append(
            CalculationAnomaly(where, "total", item.total,
                               f"stored total differs from recomputed {updated['total']}"))
    return item.model_copy(update=updated, deep=True)


def summarize(line_items: Sequence,
              *,
              discount=ZERO,
              tax=ZERO,
              deposits_sum=ZERO,
              patient_ref: Optional[str] = None,
              billing_date: Optional[date] = None,
              payment_mode: str = "CASH",
              status: BillStatus = BillStatus.DRAFT,
              anomalies: Optional[List[CalculationAnomaly]] = None) -> BillComputation:
    """
    Rebuild a snapshot from line items. Every row total is re-derived
    from its own quantity/rate (or stay segment); the snapshot gets
    its own copies of the rows.
    """
    anomalies = anomalies if anomalies is not None else []
    items = [_recompute_item(it, i, anomalies) for i, it in enumerate(line_items)]

    admission_fee = money(sum((it.total for it in items if it.category == ChargeCategory.ADMISSION), ZERO))
    stay_total = money(sum((it.total for it in items if it.category == ChargeCategory.STAY), ZERO))
    services_total = money(sum((it.total for it in items if it.category == ChargeCategory.SERVICE), ZERO))

    disc = money(_amount(discount, "bill", "discount", anomalies))
    tx = money(_amount(tax, "bill", "tax", anomalies))
    gross = money(admission_fee + stay_total + services_total)
    net = net_total(gross, disc, tx)
    deposits = money(D(deposits_sum))
    bal = balance(net, deposits)

    snapshot = BillSnapshot(
        patient_ref=patient_ref,
        billing_date=billing_date,
        line_items=items,
        admission_fee=admission_fee,
        stay_total=stay_total,
        services_total=services_total,
        discount=disc,
        tax=tx,
        gross=gross,
        net=net,
        deposits_applied=deposits,
        balance=bal,
        refund_due=money(max(ZERO, -bal)),
        payment_mode=payment_mode,
        status=status,
    )
    return BillComputation(snapshot=snapshot, anomalies=anomalies)


def compute_bill(charges: BillCharges,
                 deposits_sum=ZERO,
                 status: BillStatus = BillStatus.DRAFT) -> BillComputation:
    anomalies: List[CalculationAnomaly] = []
    items = build_line_items(charges, anomalies)
    return summarize(
        items,
        discount=charges.discount,
        tax=charges.tax,
        deposits_sum=deposits_sum,
        patient_ref=charges.patient_ref,
        billing_date=charges.billing_date,
        payment_mode=charges.payment_mode,
        status=status,
        anomalies=anomalies,
    )
