# FILE: ipd_billing/services/billing_session.py
"""
IPD bill lifecycle on top of the Ledger Store.

    DRAFT --create--> PENDING --complete--> COMPLETED
    PENDING --update--> PENDING        (re-encode + overwrite, last writer wins)
    PENDING / COMPLETED --delete--> DELETED   (hard, or status flag fallback)

Editing works on an EditableBill: a working copy owned by one editor.
It is recomputed only when the editor asks for it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Union

from ipd_billing.models.ledger import RecordKind, RecordStatus
from ipd_billing.schemas.billing import (
    BillCharges,
    BillEdit,
    BillSnapshot,
    BillStatus,
    ChargeCategory,
    StaySegment,
    normalize_payment_mode,
)
from ipd_billing.schemas.deposits import DepositEntry
from ipd_billing.schemas.ledger import LedgerRecordIn, PersistedRecord
from ipd_billing.services.bill_codec import decode_payload, encode
from ipd_billing.services.billing_engine import (
    BillComputation,
    CalculationAnomaly,
    admission_item,
    balance,
    build_line_items,
    service_item,
    stay_item,
    summarize,
)
from ipd_billing.services.billing_errors import (
    BillStateError,
    RecordNotFoundError,
    ValidationError,
)
from ipd_billing.services.billing_math import ZERO, money
from ipd_billing.services.deposit_ledger import DepositLedger
from ipd_billing.services.ledger_store import LedgerStore, delete_with_fallback
from ipd_billing.services.legacy_reconstructor import (
    ReconciliationPolicy,
    ReconstructionSource,
    reconstruct,
)
from ipd_billing.utils.timezone import ist_date, today_ist

logger = logging.getLogger(__name__)


@dataclass
class CreatedBill:
    id: int
    snapshot: BillSnapshot
    anomalies: List[CalculationAnomaly] = field(default_factory=list)


@dataclass
class BillBalance:
    record_id: int
    patient_ref: str
    net: Decimal
    deposits_applied: Decimal
    balance: Decimal

    @property
    def refund_due(self) -> Decimal:
        return money(max(ZERO, -self.balance))


class EditableBill:
    """
    Working copy of one persisted bill.

    Holds its own deep copies of the line items; two loads of the same
    record never share state. Nothing here recomputes on its own: call
    recompute() after mutating.
    """

    def __init__(self,
                 *,
                 record_id: int,
                 patient_ref: str,
                 status: BillStatus,
                 source: ReconstructionSource,
                 stored_amount: Decimal,
                 line_items: list,
                 discount=ZERO,
                 tax=ZERO,
                 payment_mode: str = "CASH",
                 billing_date: Optional[date] = None,
                 notes: Optional[List[str]] = None):
        self.record_id = record_id
        self.patient_ref = patient_ref
        self.status = status
        self.source = source
        self.stored_amount = money(stored_amount)
        self.line_items = [it.model_copy(deep=True) for it in line_items]
        self.discount = money(discount)
        self.tax = money(tax)
        self.payment_mode = payment_mode
        self.billing_date = billing_date
        self.notes: List[str] = list(notes or [])
        self.deposit_date_overrides: Dict[int, date] = {}
        self.deposits_applied = ZERO
        self.anomalies: List[CalculationAnomaly] = []
        self.snapshot: Optional[BillSnapshot] = None

    # ---------- mutations ----------
    def set_admission_fee(self, amount) -> None:
        rest = [it for it in self.line_items if it.category != ChargeCategory.ADMISSION]
        item = admission_item(amount, self.anomalies)
        self.line_items = ([item] if item is not None else []) + rest

    def add_stay_segment(self, segment: StaySegment) -> None:
        self.line_items.append(stay_item(segment, self.anomalies))

    def add_service(self, name: str, unit_price, quantity=1) -> None:
        self.line_items.append(service_item(name, unit_price, quantity, self.anomalies))

    def remove_item(self, index: int):
        try:
            return self.line_items.pop(index)
        except IndexError:
            raise ValidationError(f"No line item at position {index}")

    def set_adjustments(self, discount=None, tax=None) -> None:
        if discount is not None:
            self.discount = money(discount)
        if tax is not None:
            self.tax = money(tax)

    def set_payment_mode(self, mode: str) -> None:
        self.payment_mode = normalize_payment_mode(mode)

    def override_deposit_date(self, deposit_id: int, value: date) -> None:
        """Session-level date for one deposit; beats the stored date."""
        self.deposit_date_overrides[int(deposit_id)] = value

    # ---------- computation ----------
    def recompute(self, deposits_sum=None) -> BillSnapshot:
        if deposits_sum is not None:
            self.deposits_applied = money(deposits_sum)
        comp = summarize(
            self.line_items,
            discount=self.discount,
            tax=self.tax,
            deposits_sum=self.deposits_applied,
            patient_ref=self.patient_ref,
            billing_date=self.billing_date,
            payment_mode=self.payment_mode,
            status=self.status,
        )
        self.line_items = [it.model_copy(deep=True) for it in comp.snapshot.line_items]
        self.anomalies.extend(comp.anomalies)
        self.snapshot = comp.snapshot
        return comp.snapshot

    def as_edit(self) -> BillEdit:
        return BillEdit(
            line_items=[it.model_copy(deep=True) for it in self.line_items],
            discount=self.discount,
            tax=self.tax,
            payment_mode=self.payment_mode,
            billing_date=self.billing_date,
        )


class BillingSession:
    """Create / load / edit / complete / delete IPD bills."""

    def __init__(self,
                 store: LedgerStore,
                 deposits: Optional[DepositLedger] = None,
                 *,
                 policy: Optional[ReconciliationPolicy] = None,
                 today: Callable[[], date] = today_ist):
        self.store = store
        self.deposits = deposits or DepositLedger(store, today=today)
        self.policy = policy or ReconciliationPolicy.from_settings()
        self._today = today

    # ---------- helpers ----------
    def _bill_record(self, bill_id: int) -> PersistedRecord:
        rec = self.store.get(bill_id)
        if not rec or rec.kind != RecordKind.BILL.value:
            raise RecordNotFoundError("bill", bill_id)
        return rec

    @staticmethod
    def _status(rec: PersistedRecord) -> BillStatus:
        if rec.status in (RecordStatus.DELETED.value, RecordStatus.CANCELLED.value):
            return BillStatus.DELETED
        try:
            return BillStatus(rec.status)
        except ValueError:
            return BillStatus.PENDING

    def _ensure_editable(self, rec: PersistedRecord) -> None:
        status = self._status(rec)
        if status != BillStatus.PENDING:
            raise BillStateError(f"Bill {rec.id} is {status.value}; only PENDING bills can be edited")

    @staticmethod
    def _persist_fields(comp: BillComputation) -> Dict:
        # encode fully before touching the store
        payload = encode(comp.snapshot)
        return {
            "amount": comp.snapshot.net,
            "description": payload,
            "payment_mode": comp.snapshot.payment_mode,
            "record_date": comp.snapshot.billing_date,
        }

    # ---------- create ----------
    def create_bill(self, charges: BillCharges) -> CreatedBill:
        patient_ref = (charges.patient_ref or "").strip()
        if not patient_ref:
            raise ValidationError("Patient reference is required")
        charges = charges.model_copy(update={
            "patient_ref": patient_ref,
            "billing_date": charges.billing_date or self._today(),
        })

        deposits_sum = self.deposits.deposits_total(patient_ref)
        anomalies: List[CalculationAnomaly] = []
        comp = summarize(
            build_line_items(charges, anomalies),
            discount=charges.discount,
            tax=charges.tax,
            deposits_sum=deposits_sum,
            patient_ref=patient_ref,
            billing_date=charges.billing_date,
            payment_mode=charges.payment_mode,
            status=BillStatus.DRAFT,
            anomalies=anomalies,
        )
        comp.log_anomalies(f"new bill {patient_ref}")
        payload = encode(comp.snapshot)

        rec = self.store.insert(
            LedgerRecordIn(
                kind=RecordKind.BILL.value,
                patient_ref=patient_ref,
                amount=comp.snapshot.net,
                status=RecordStatus.PENDING.value,
                payment_mode=comp.snapshot.payment_mode,
                record_date=comp.snapshot.billing_date,
                description=payload,
            ))
        logger.info("Bill %s created for %s: net %s", rec.id, patient_ref, comp.snapshot.net)
        snapshot = comp.snapshot.model_copy(update={"status": BillStatus.PENDING})
        return CreatedBill(id=rec.id, snapshot=snapshot, anomalies=comp.anomalies)

    # ---------- load ----------
    def load_for_edit(self, bill_id: int) -> EditableBill:
        rec = self._bill_record(bill_id)
        if self._status(rec) == BillStatus.DELETED:
            raise BillStateError(f"Bill {bill_id} is deleted")

        decoded = decode_payload(rec.description)
        billing_date = rec.record_date or ist_date(rec.created_at)
        if decoded.structured:
            items = decoded.line_items
            discount = decoded.tokens.value("discount")
            tax = decoded.tokens.value("tax")
            source = ReconstructionSource.STRUCTURED
            notes: List[str] = []
        else:
            logger.info("Bill %s has no structured payload (%s); reconstructing", bill_id, decoded.anomaly)
            rebuilt = reconstruct(rec.description,
                                  rec.amount,
                                  reference_date=billing_date,
                                  policy=self.policy)
            items = rebuilt.line_items
            discount, tax = rebuilt.discount, rebuilt.tax
            source = rebuilt.source
            notes = rebuilt.notes

        editable = EditableBill(
            record_id=rec.id,
            patient_ref=rec.patient_ref,
            status=self._status(rec),
            source=source,
            stored_amount=rec.amount,
            line_items=items,
            discount=discount,
            tax=tax,
            payment_mode=normalize_payment_mode(rec.payment_mode),
            billing_date=billing_date,
            notes=notes,
        )
        snapshot = editable.recompute(self.deposits.deposits_total(rec.patient_ref))
        if snapshot.net != editable.stored_amount:
            editable.notes.append(
                f"recomputed net {snapshot.net} differs from stored amount {editable.stored_amount}")
        for a in editable.anomalies:
            logger.warning("Calculation anomaly [bill %s] %s", bill_id, a)
        return editable

    # ---------- update ----------
    def update_bill(self, bill_id: int,
                    edit: Union[EditableBill, BillEdit, BillCharges]) -> BillComputation:
        rec = self._bill_record(bill_id)
        self._ensure_editable(rec)

        anomalies: List[CalculationAnomaly] = []
        if isinstance(edit, EditableBill):
            if edit.record_id != rec.id:
                raise ValidationError(f"Editable bill belongs to record {edit.record_id}, not {rec.id}")
            edit = edit.as_edit()
        if isinstance(edit, BillCharges):
            items = build_line_items(edit, anomalies)
            discount, tax = edit.discount, edit.tax
            payment_mode = edit.payment_mode
            billing_date = edit.billing_date
        else:
            items = edit.line_items
            discount, tax = edit.discount, edit.tax
            payment_mode = normalize_payment_mode(edit.payment_mode or rec.payment_mode)
            billing_date = edit.billing_date

        deposits_sum = self.deposits.deposits_total(rec.patient_ref)
        comp = summarize(
            items,
            discount=discount,
            tax=tax,
            deposits_sum=deposits_sum,
            patient_ref=rec.patient_ref,
            billing_date=billing_date or rec.record_date or ist_date(rec.created_at),
            payment_mode=payment_mode,
            status=BillStatus.PENDING,
            anomalies=anomalies,
        )
        comp.log_anomalies(f"bill {bill_id}")

        fields = self._persist_fields(comp)
        self.store.update(bill_id, fields)
        logger.info("Bill %s updated: net %s (was %s)", bill_id, comp.snapshot.net, rec.amount)
        return comp

    # ---------- status ----------
    def mark_completed(self, bill_id: int) -> PersistedRecord:
        rec = self._bill_record(bill_id)
        status = self._status(rec)
        if status == BillStatus.DELETED:
            raise BillStateError(f"Bill {bill_id} is deleted")
        if status == BillStatus.COMPLETED:
            return rec
        return self.store.update(bill_id, {"status": RecordStatus.COMPLETED.value})

    def delete_bill(self, bill_id: int, hard: bool = True) -> str:
        self._bill_record(bill_id)
        how = delete_with_fallback(self.store, bill_id, hard=hard)
        logger.info("Bill %s deleted (%s)", bill_id, how)
        return how

    def deposits_for(self, bill: EditableBill) -> List[DepositEntry]:
        """Patient deposits as this editor sees them, session date overrides applied."""
        return self.deposits.list_deposits(bill.patient_ref, bill.deposit_date_overrides)

    # ---------- balance ----------
    def current_balance(self, bill_id: int) -> BillBalance:
        rec = self._bill_record(bill_id)
        deposits_sum = self.deposits.deposits_total(rec.patient_ref)
        net = money(rec.amount)
        return BillBalance(record_id=rec.id,
                           patient_ref=rec.patient_ref,
                           net=net,
                           deposits_applied=deposits_sum,
                           balance=balance(net, deposits_sum))
