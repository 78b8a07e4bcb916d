# FILE: ipd_billing/api/routes_ipd_bills.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ipd_billing.api.deps import get_billing_session
from ipd_billing.api.response import ok
from ipd_billing.schemas.billing import (
    BillBalanceOut,
    BillCharges,
    BillEdit,
    CreatedBillOut,
    EditableBillOut,
)
from ipd_billing.services.billing_session import BillingSession

router = APIRouter(prefix="/ipd/bills", tags=["IPD Billing"])


# ---------- CREATE ----------
@router.post("")
def create_bill(payload: BillCharges,
                session: BillingSession = Depends(get_billing_session)):
    created = session.create_bill(payload)
    out = CreatedBillOut(id=created.id,
                         snapshot=created.snapshot,
                         anomalies=[str(a) for a in created.anomalies])
    return ok(out, status_code=201)


# ---------- LOAD FOR EDIT ----------
@router.get("/{bill_id}/edit")
def load_bill_for_edit(bill_id: int,
                       session: BillingSession = Depends(get_billing_session)):
    bill = session.load_for_edit(bill_id)
    return ok(
        EditableBillOut(
            record_id=bill.record_id,
            patient_ref=bill.patient_ref,
            status=bill.status,
            source=bill.source.value,
            stored_amount=bill.stored_amount,
            snapshot=bill.snapshot,
            notes=bill.notes,
        ))


# ---------- UPDATE ----------
@router.put("/{bill_id}")
def update_bill(bill_id: int,
                payload: BillEdit,
                session: BillingSession = Depends(get_billing_session)):
    comp = session.update_bill(bill_id, payload)
    return ok(
        CreatedBillOut(id=bill_id,
                       snapshot=comp.snapshot,
                       anomalies=[str(a) for a in comp.anomalies]))


# ---------- STATUS ----------
@router.post("/{bill_id}/complete")
def complete_bill(bill_id: int,
                  session: BillingSession = Depends(get_billing_session)):
    rec = session.mark_completed(bill_id)
    return ok({"id": rec.id, "status": rec.status})


@router.delete("/{bill_id}")
def delete_bill(bill_id: int,
                hard: bool = Query(True),
                session: BillingSession = Depends(get_billing_session)):
    how = session.delete_bill(bill_id, hard=hard)
    return ok({"id": bill_id, "deletion": how})


# ---------- BALANCE ----------
@router.get("/{bill_id}/balance")
def bill_balance(bill_id: int,
                 session: BillingSession = Depends(get_billing_session)):
    b = session.current_balance(bill_id)
    return ok(
        BillBalanceOut(record_id=b.record_id,
                       patient_ref=b.patient_ref,
                       net=b.net,
                       deposits_applied=b.deposits_applied,
                       balance=b.balance,
                       refund_due=b.refund_due))
