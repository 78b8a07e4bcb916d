# FILE: ipd_billing/api/routes_ipd_deposits.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ipd_billing.api.deps import get_deposit_ledger
from ipd_billing.api.response import ok
from ipd_billing.schemas.deposits import DepositCreate, DepositUpdate
from ipd_billing.services.deposit_ledger import DepositLedger

router = APIRouter(prefix="/ipd/deposits", tags=["IPD Deposits"])


# ---------- CREATE DEPOSIT ----------
@router.post("")
def create_deposit(payload: DepositCreate,
                   ledger: DepositLedger = Depends(get_deposit_ledger)):
    result = ledger.add_deposit(
        payload.patient_ref,
        payload.amount,
        payload.deposit_date,
        mode=payload.mode,
        reference=payload.reference,
        received_by=payload.received_by,
    )
    return ok(result, status_code=201)


# ---------- EDIT / DELETE ----------
@router.patch("/{deposit_id}")
def edit_deposit(deposit_id: int,
                 payload: DepositUpdate,
                 ledger: DepositLedger = Depends(get_deposit_ledger)):
    return ok(ledger.edit_deposit(deposit_id, payload))


@router.delete("/{deposit_id}")
def delete_deposit(deposit_id: int,
                   hard: bool = Query(True),
                   ledger: DepositLedger = Depends(get_deposit_ledger)):
    return ok(ledger.delete_deposit(deposit_id, hard=hard))


# ---------- LIST BY PATIENT ----------
@router.get("/patient/{patient_ref}")
def list_patient_deposits(patient_ref: str,
                          ledger: DepositLedger = Depends(get_deposit_ledger)):
    deposits = ledger.list_deposits(patient_ref)
    summary = ledger.summary(patient_ref)
    return ok({"items": deposits, "summary": summary}, meta={"count": len(deposits)})
