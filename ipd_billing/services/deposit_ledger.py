# FILE: ipd_billing/services/deposit_ledger.py
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ipd_billing.core.config import settings
from ipd_billing.models.ledger import INACTIVE_STATUSES, RecordKind, RecordStatus
from ipd_billing.schemas.billing import normalize_payment_mode
from ipd_billing.schemas.deposits import (
    DepositEntry,
    DepositResult,
    DepositSummary,
    DepositUpdate,
)
from ipd_billing.schemas.ledger import LedgerRecordIn, PersistedRecord
from ipd_billing.services.billing_engine import balance
from ipd_billing.services.billing_errors import RecordNotFoundError, ValidationError
from ipd_billing.services.billing_math import ZERO, format_amount, money, try_decimal
from ipd_billing.services.billing_numbers import receipt_number
from ipd_billing.services.ledger_store import LedgerStore, delete_with_fallback
from ipd_billing.utils.timezone import ist_date, parse_date, today_ist

logger = logging.getLogger(__name__)


class DateSource(str, Enum):
    """Where a deposit's date came from, most authoritative first."""

    OVERRIDE = "OVERRIDE"
    RECORD_DATE = "RECORD_DATE"
    CREATED_AT = "CREATED_AT"
    TODAY = "TODAY"


def resolve_deposit_date(record: PersistedRecord,
                         override=None,
                         today: Optional[date] = None) -> Tuple[date, DateSource]:
    """
    Precedence:
      1. explicit override captured in the current editing session
      2. the record's own stored date
      3. the record's creation timestamp (IST calendar day)
      4. today
    """
    d = parse_date(override)
    if d:
        return d, DateSource.OVERRIDE

    d = parse_date(getattr(record, "record_date", None))
    if d:
        return d, DateSource.RECORD_DATE

    created = getattr(record, "created_at", None)
    d = ist_date(created) if isinstance(created, datetime) else parse_date(created)
    if d:
        return d, DateSource.CREATED_AT

    return (today or today_ist()), DateSource.TODAY


def sum_deposits(deposits: Iterable[DepositEntry]) -> Decimal:
    """Total of all non-deleted deposit amounts."""
    return money(sum((d.amount for d in deposits if d.status not in INACTIVE_STATUSES), ZERO))


def _positive_amount(x) -> Decimal:
    value, reason = try_decimal(x)
    if reason == "out of range":
        raise ValidationError("Deposit amount is too large")
    if value is None or value <= 0:
        raise ValidationError("Deposit amount must be > 0")
    return money(value)


class DepositLedger:
    """
    Deposits (advance payments) recorded against a patient.
    Every write is followed by a fresh read: the store may default or
    normalize fields (dates especially) that the write echo does not show.
    """

    def __init__(self, store: LedgerStore, *, today: Callable[[], date] = today_ist):
        self.store = store
        self._today = today

    # ---------- reads ----------
    def _entry(self, record: PersistedRecord, override=None) -> DepositEntry:
        d, source = resolve_deposit_date(record, override, self._today())
        return DepositEntry(
            id=record.id,
            patient_ref=record.patient_ref,
            amount=money(record.amount),
            deposit_date=d,
            date_source=source.value,
            mode=record.payment_mode,
            reference=record.reference,
            received_by=record.received_by,
            status=record.status,
            created_at=record.created_at,
        )

    def _deposit_record(self, deposit_id: int) -> PersistedRecord:
        rec = self.store.get(deposit_id)
        if not rec or rec.kind != RecordKind.DEPOSIT.value or rec.status in INACTIVE_STATUSES:
            raise RecordNotFoundError("deposit", deposit_id)
        return rec

    def get_deposit(self, deposit_id: int, override=None) -> DepositEntry:
        return self._entry(self._deposit_record(deposit_id), override)

    def list_deposits(self,
                      patient_ref: str,
                      overrides: Optional[Mapping[int, date]] = None) -> List[DepositEntry]:
        overrides = overrides or {}
        records = self.store.list_records(patient_ref, RecordKind.DEPOSIT.value)
        entries = [self._entry(r, overrides.get(r.id)) for r in records]
        entries.sort(key=lambda e: (e.deposit_date, e.id))
        return entries

    def deposits_total(self, patient_ref: str) -> Decimal:
        return sum_deposits(self.list_deposits(patient_ref))

    def summary(self,
                patient_ref: str,
                overrides: Optional[Mapping[int, date]] = None) -> DepositSummary:
        deposits = self.list_deposits(patient_ref, overrides)
        bills = self.store.list_records(patient_ref, RecordKind.BILL.value)

        total_deposits = sum_deposits(deposits)
        total_billed = money(sum((money(b.amount) for b in bills), ZERO))
        bal = balance(total_billed, total_deposits)
        return DepositSummary(
            patient_ref=patient_ref,
            deposit_count=len(deposits),
            total_deposits=total_deposits,
            total_billed=total_billed,
            balance=bal,
            refund_due=money(max(ZERO, -bal)),
        )

    # ---------- writes ----------
    def add_deposit(self,
                    patient_ref: Optional[str],
                    amount,
                    deposit_date: Union[date, str, None],
                    mode: Optional[str] = "CASH",
                    reference: Optional[str] = None,
                    received_by: Optional[str] = None) -> DepositResult:
        patient_ref = (patient_ref or "").strip()
        if not patient_ref:
            raise ValidationError("Patient reference is required")
        amt = _positive_amount(amount)
        # the stored date is always the one the caller chose
        d = parse_date(deposit_date)
        if d is None:
            raise ValidationError("Deposit date is required")

        rec = self.store.insert(
            LedgerRecordIn(
                kind=RecordKind.DEPOSIT.value,
                patient_ref=patient_ref,
                amount=amt,
                status=RecordStatus.COMPLETED.value,
                payment_mode=normalize_payment_mode(mode),
                record_date=d,
                description=f"Deposit: {settings.BILLING_CURRENCY_SYMBOL}{format_amount(amt)}",
                reference=(reference or "").strip() or None,
                received_by=received_by,
            ))
        if not rec.reference:
            self.store.update(rec.id, {"reference": receipt_number(rec.id)})

        logger.info("Deposit %s of %s recorded for %s", rec.id, amt, patient_ref)
        return DepositResult(deposit=self.get_deposit(rec.id),
                             summary=self.summary(patient_ref))

    def edit_deposit(self, deposit_id: int,
                     changes: Union[DepositUpdate, Dict]) -> DepositResult:
        if isinstance(changes, dict):
            changes = DepositUpdate(**changes)
        rec = self._deposit_record(deposit_id)

        data = changes.model_dump(exclude_unset=True)
        fields: Dict = {}
        if "amount" in data:
            fields["amount"] = _positive_amount(data["amount"])
        if "deposit_date" in data:
            d = parse_date(data["deposit_date"])
            if d is None:
                raise ValidationError("Deposit date cannot be cleared")
            fields["record_date"] = d
        if "mode" in data:
            fields["payment_mode"] = normalize_payment_mode(data["mode"])
        if "reference" in data:
            fields["reference"] = (data["reference"] or "").strip() or receipt_number(deposit_id)
        if "received_by" in data:
            fields["received_by"] = data["received_by"]
        if "amount" in fields:
            fields["description"] = f"Deposit: {settings.BILLING_CURRENCY_SYMBOL}{format_amount(fields['amount'])}"

        if fields:
            self.store.update(deposit_id, fields)
            logger.info("Deposit %s updated: %s", deposit_id, sorted(fields))

        return DepositResult(deposit=self.get_deposit(deposit_id),
                             summary=self.summary(rec.patient_ref))

    def delete_deposit(self, deposit_id: int, hard: bool = True) -> DepositResult:
        rec = self._deposit_record(deposit_id)
        how = delete_with_fallback(self.store, deposit_id, hard=hard)
        logger.info("Deposit %s deleted (%s)", deposit_id, how)
        return DepositResult(deposit=None,
                             summary=self.summary(rec.patient_ref),
                             deletion=how)
