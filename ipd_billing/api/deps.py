# FILE: ipd_billing/api/deps.py
from __future__ import annotations

from fastapi import Depends

from ipd_billing.db.session import SessionLocal
from ipd_billing.services.billing_session import BillingSession
from ipd_billing.services.deposit_ledger import DepositLedger
from ipd_billing.services.ledger_store import LedgerStore, SqlLedgerStore


# =========================================================
# LEDGER STORE
# =========================================================
def get_ledger_store() -> LedgerStore:
    return SqlLedgerStore(SessionLocal)


# =========================================================
# SERVICES
# =========================================================
def get_deposit_ledger(store: LedgerStore = Depends(get_ledger_store)) -> DepositLedger:
    return DepositLedger(store)


def get_billing_session(
        store: LedgerStore = Depends(get_ledger_store),
        deposits: DepositLedger = Depends(get_deposit_ledger),
) -> BillingSession:
    return BillingSession(store, deposits)
