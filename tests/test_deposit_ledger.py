"""Deposits recorded against a patient, and how their dates are resolved."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from ipd_billing.schemas.ledger import PersistedRecord
from ipd_billing.services.billing_errors import RecordNotFoundError, ValidationError
from ipd_billing.services.deposit_ledger import (
    DateSource,
    DepositLedger,
    resolve_deposit_date,
)
from tests.conftest import FIXED_TODAY, fixed_today

PATIENT = "IP-3001"


def record(**kw) -> PersistedRecord:
    base = dict(id=7, kind="DEPOSIT", patient_ref=PATIENT, amount=Decimal("500"), status="COMPLETED")
    base.update(kw)
    return PersistedRecord(**base)


class TestDatePrecedence:
    def test_override_wins(self):
        rec = record(record_date=date(2025, 3, 1), created_at=datetime(2025, 2, 1, 9, 0))
        assert resolve_deposit_date(rec, date(2025, 3, 5)) == (date(2025, 3, 5), DateSource.OVERRIDE)

    def test_override_as_string(self):
        rec = record(record_date=date(2025, 3, 1))
        assert resolve_deposit_date(rec, "05/03/2025") == (date(2025, 3, 5), DateSource.OVERRIDE)

    def test_record_date_beats_created_at(self):
        rec = record(record_date=date(2025, 3, 1), created_at=datetime(2025, 2, 1, 9, 0))
        assert resolve_deposit_date(rec) == (date(2025, 3, 1), DateSource.RECORD_DATE)

    def test_created_at_is_read_as_ist_day(self):
        # 20:00 UTC is already the next morning in India
        rec = record(created_at=datetime(2025, 3, 9, 20, 0))
        assert resolve_deposit_date(rec) == (date(2025, 3, 10), DateSource.CREATED_AT)

    def test_today_as_last_resort(self):
        rec = record()
        assert resolve_deposit_date(rec, None, FIXED_TODAY) == (FIXED_TODAY, DateSource.TODAY)

    def test_garbage_override_falls_through(self):
        rec = record(record_date=date(2025, 3, 1))
        assert resolve_deposit_date(rec, "someday") == (date(2025, 3, 1), DateSource.RECORD_DATE)


class TestAddDeposit:
    def test_add_updates_sum_and_assigns_receipt(self, ledger):
        first = ledger.add_deposit(PATIENT, 1000, date(2025, 3, 1))
        assert first.summary.total_deposits == Decimal("1000.00")

        second = ledger.add_deposit(PATIENT, "2,500.50", "2025-03-02", mode="upi")
        assert second.summary.total_deposits == Decimal("3500.50")
        assert second.summary.deposit_count == 2
        assert second.deposit.mode == "UPI"
        assert second.deposit.reference == f"DEP{second.deposit.id:06d}"
        assert second.deposit.deposit_date == date(2025, 3, 2)
        assert second.deposit.date_source == DateSource.RECORD_DATE.value

    def test_caller_reference_is_kept(self, ledger):
        res = ledger.add_deposit(PATIENT, 100, date(2025, 3, 1), reference="UTR-77")
        assert res.deposit.reference == "UTR-77"

    @pytest.mark.parametrize("patient,amount,when", [
        ("", 100, date(2025, 3, 1)),
        ("   ", 100, date(2025, 3, 1)),
        (PATIENT, 0, date(2025, 3, 1)),
        (PATIENT, -5, date(2025, 3, 1)),
        (PATIENT, "abc", date(2025, 3, 1)),
        (PATIENT, "9" * 40, date(2025, 3, 1)),
        (PATIENT, 100, None),
        (PATIENT, 100, "not a date"),
    ])
    def test_rejected_before_write(self, ledger, store, patient, amount, when):
        with pytest.raises(ValidationError):
            ledger.add_deposit(patient, amount, when)
        assert store.list_records(PATIENT) == []

    def test_listed_in_date_order(self, ledger):
        ledger.add_deposit(PATIENT, 100, date(2025, 3, 5))
        ledger.add_deposit(PATIENT, 200, date(2025, 3, 1))
        entries = ledger.list_deposits(PATIENT)
        assert [e.amount for e in entries] == [Decimal("200.00"), Decimal("100.00")]

    def test_session_override_reorders_listing(self, ledger):
        a = ledger.add_deposit(PATIENT, 100, date(2025, 3, 1))
        ledger.add_deposit(PATIENT, 200, date(2025, 3, 2))
        entries = ledger.list_deposits(PATIENT, {a.deposit.id: date(2025, 3, 9)})
        assert entries[-1].id == a.deposit.id
        assert entries[-1].date_source == DateSource.OVERRIDE.value


class TestEditDeposit:
    def test_edit_amount_and_date(self, ledger):
        res = ledger.add_deposit(PATIENT, 1000, date(2025, 3, 1))
        edited = ledger.edit_deposit(res.deposit.id, {"amount": 1500, "deposit_date": "2025-03-04"})
        assert edited.deposit.amount == Decimal("1500.00")
        assert edited.deposit.deposit_date == date(2025, 3, 4)
        assert edited.summary.total_deposits == Decimal("1500.00")

    def test_edit_rejects_non_positive_amount(self, ledger):
        res = ledger.add_deposit(PATIENT, 1000, date(2025, 3, 1))
        with pytest.raises(ValidationError):
            ledger.edit_deposit(res.deposit.id, {"amount": 0})
        assert (ledger.get_deposit(res.deposit.id)).amount == Decimal("1000.00")

    def test_edit_unknown(self, ledger):
        with pytest.raises(RecordNotFoundError):
            ledger.edit_deposit(999, {"amount": 10})


class TestDeleteDeposit:
    def test_hard_delete(self, ledger, store):
        keep = ledger.add_deposit(PATIENT, 1000, date(2025, 3, 1))
        gone = ledger.add_deposit(PATIENT, 400, date(2025, 3, 2))
        res = ledger.delete_deposit(gone.deposit.id)
        assert res.deletion == "hard"
        assert res.summary.total_deposits == Decimal("1000.00")
        assert store.get(gone.deposit.id) is None
        assert (ledger.get_deposit(keep.deposit.id)).amount == Decimal("1000.00")

    def test_soft_delete_when_store_refuses(self, soft_store):
        ledger = DepositLedger(soft_store, today=fixed_today)
        ledger.add_deposit(PATIENT, 1000, date(2025, 3, 1))
        gone = ledger.add_deposit(PATIENT, 400, date(2025, 3, 2))

        res = ledger.delete_deposit(gone.deposit.id)
        assert res.deletion == "soft"
        assert res.summary.total_deposits == Decimal("1000.00")
        row = soft_store.get(gone.deposit.id)
        assert row.status == "DELETED"
        with pytest.raises(RecordNotFoundError):
            ledger.get_deposit(gone.deposit.id)

    def test_explicit_soft_delete(self, ledger, store):
        res = ledger.add_deposit(PATIENT, 300, date(2025, 3, 1))
        out = ledger.delete_deposit(res.deposit.id, hard=False)
        assert out.deletion == "soft"
        assert (store.get(res.deposit.id)).status == "DELETED"
