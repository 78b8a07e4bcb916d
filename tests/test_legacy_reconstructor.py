"""Recovery of bills written without a usable ITEMS_JSON array."""

import random
import string
import time
from datetime import date
from decimal import Decimal

import pytest

from ipd_billing.services.legacy_reconstructor import (
    OPAQUE_LABEL,
    ReconciliationPolicy,
    ReconstructionSource,
    find_stay_descriptor,
    reconstruct,
    scan_summary_tokens,
    split_daily_rate,
)
from ipd_billing.services.room_type import RoomType, match_room_type

REF = date(2025, 3, 10)


def totals(bill):
    out = {"ADMISSION": Decimal("0"), "STAY": Decimal("0"), "SERVICE": Decimal("0")}
    for it in bill.line_items:
        out[it.category] += it.total
    return out


class TestTokens:
    def test_scenario_d(self):
        bill = reconstruct("Admission: ₹2000 | Stay: ₹5100 | Discount: ₹500", reference_date=REF)
        t = totals(bill)
        assert bill.source == ReconstructionSource.LEGACY_TOKENS
        assert t["ADMISSION"] == Decimal("2000.00")
        assert t["STAY"] == Decimal("5100.00")
        assert t["SERVICE"] == Decimal("0")
        assert bill.discount == Decimal("500.00")
        assert bill.tax == Decimal("0")

    def test_labels_are_matched_independently(self):
        tokens = scan_summary_tokens("Tax: Rs. 1,250.50 ... admission charges: INR 300")
        assert tokens.tax == Decimal("1250.50")
        assert tokens.admission == Decimal("300")
        assert tokens.stay is None
        assert tokens.matched == ["admission", "tax"]

    def test_stay_row_spans_its_days(self):
        bill = reconstruct("Stay: ₹5400", reference_date=REF)
        stay = bill.line_items[0]
        assert stay.segment.room_type == RoomType.GENERAL_WARD
        assert stay.quantity == 3
        assert stay.segment.end_date == REF
        assert stay.segment.start_date == date(2025, 3, 7)
        assert stay.segment.daily_rate == Decimal("1800.00")

    def test_indivisible_stay_bills_one_day(self):
        bill = reconstruct("Stay: ₹1000 | ICU - Room Stay (3 days)", reference_date=REF)
        stay = bill.line_items[0]
        assert stay.quantity == 1
        assert stay.total == Decimal("1000.00")
        assert any("not divisible" in n for n in bill.notes)


class TestRoomTypeInference:
    def test_scenario_e_icu_from_descriptor(self):
        room, days = find_stay_descriptor("ICU - Room Stay (3 days)")
        assert room == RoomType.ICU
        assert days == 3

    def test_descriptor_drives_reconstruction(self):
        bill = reconstruct("Stay: ₹15300 | ICU - Room Stay (3 days)", reference_date=REF)
        stay = bill.line_items[0]
        assert stay.segment.room_type == RoomType.ICU
        assert stay.quantity == 3
        assert stay.segment.bed_rate == Decimal("3000.00")
        assert stay.label == "ICU - Room Stay (3 days)"

    def test_descriptor_after_other_tokens(self):
        room, days = find_stay_descriptor("Stay: ₹10200 | Private Room - Room Stay (2 days) | Net: ₹10200")
        assert room == RoomType.PRIVATE_ROOM
        assert days == 2

    def test_long_text_without_descriptor_is_fast(self):
        text = "Stay: ₹5100 | " + "a " * 20000
        started = time.perf_counter()
        bill = reconstruct(text, Decimal("5100"), reference_date=REF)
        assert time.perf_counter() - started < 1.0
        assert totals(bill)["STAY"] == Decimal("5100.00")

    def test_long_dash_run_is_fast(self):
        started = time.perf_counter()
        find_stay_descriptor("a" + " -" * 20000 + " Room Stay (2 days)")
        scan_summary_tokens("Stay:" + " -" * 20000)
        assert time.perf_counter() - started < 1.0

    @pytest.mark.parametrize("text,expected", [
        ("Semi-Private Room", RoomType.SEMI_PRIVATE),
        ("PRIVATE_ROOM", RoomType.PRIVATE_ROOM),
        ("deluxe suite", RoomType.DELUXE_ROOM),
        ("General Wards", RoomType.GENERAL_WARD),
        ("Intensive Care Unit", RoomType.ICU),
        ("lobby", None),
    ])
    def test_match_room_type(self, text, expected):
        assert match_room_type(text) == expected


class TestSplitDailyRate:
    def test_canonical_rate(self):
        rates, scaled = split_daily_rate(RoomType.ICU, 5100)
        assert not scaled
        assert rates == {
            "bed_rate": Decimal("3000.00"),
            "nursing_rate": Decimal("800.00"),
            "rmo_rate": Decimal("300.00"),
            "doctor_rate": Decimal("1000.00"),
        }

    def test_near_canonical_puts_residual_on_bed(self):
        rates, scaled = split_daily_rate(RoomType.ICU, 5150)
        assert not scaled
        assert rates["bed_rate"] == Decimal("3050.00")
        assert rates["nursing_rate"] == Decimal("800.00")

    def test_far_from_canonical_scales(self):
        rates, scaled = split_daily_rate(RoomType.ICU, 10200)
        assert scaled
        assert rates["nursing_rate"] == Decimal("1600.00")
        assert rates["doctor_rate"] == Decimal("2000.00")
        assert sum(rates.values()) == Decimal("10200.00")

    def test_awkward_amount_still_sums_exactly(self):
        rates, _ = split_daily_rate(RoomType.SEMI_PRIVATE, Decimal("1234.57"))
        assert sum(rates.values()) == Decimal("1234.57")


class TestOpaque:
    def test_no_tokens_ties_to_stored_amount(self):
        bill = reconstruct("Paid for treatment, see file", Decimal("4200"))
        assert bill.source == ReconstructionSource.LEGACY_OPAQUE
        assert len(bill.line_items) == 1
        assert bill.line_items[0].label == OPAQUE_LABEL
        assert bill.line_items[0].total == Decimal("4200.00")
        assert bill.discount == 0 and bill.tax == 0

    def test_only_discount_token_is_still_opaque(self):
        bill = reconstruct("Discount: ₹100", Decimal("900"))
        assert bill.source == ReconstructionSource.LEGACY_OPAQUE
        assert totals(bill)["SERVICE"] == Decimal("900.00")


class TestReconciliation:
    TEXT = "Admission: ₹2000 | Stay: ₹5100 | Discount: ₹500"

    def test_categories_policy_keeps_recovered_rows(self):
        bill = reconstruct(self.TEXT, Decimal("7000"), reference_date=REF,
                           policy=ReconciliationPolicy.CATEGORIES)
        assert totals(bill)["ADMISSION"] == Decimal("2000.00")
        assert any("differs from stored amount" in n for n in bill.notes)

    def test_stored_amount_policy_back_calculates_admission(self):
        bill = reconstruct(self.TEXT, Decimal("7000"), reference_date=REF,
                           policy=ReconciliationPolicy.STORED_AMOUNT)
        t = totals(bill)
        assert t["ADMISSION"] == Decimal("2400.00")
        assert t["ADMISSION"] + t["STAY"] - bill.discount == Decimal("7000.00")

    def test_stored_amount_below_charges_clamps_admission(self):
        bill = reconstruct(self.TEXT, Decimal("1000"), reference_date=REF,
                           policy=ReconciliationPolicy.STORED_AMOUNT)
        assert totals(bill)["ADMISSION"] == 0
        assert any("clamped" in n for n in bill.notes)

    def test_matching_amount_adds_no_notes(self):
        for policy in ReconciliationPolicy:
            bill = reconstruct(self.TEXT, Decimal("6600"), reference_date=REF, policy=policy)
            assert not any("stored amount" in n for n in bill.notes)


class TestFuzz:
    SAMPLES = [
        None,
        "",
        "|||||",
        "Admission:",
        "Admission: ₹",
        "Stay: ₹-500",
        "Stay: ₹99999999999999999999999",
        "Stay: ₹5100 | Room Stay (0 days)",
        "ITEMS_JSON:[{{{{",
        "Net: 1e400",
        "Admission: ₹1,2,3,4 | Tax: ₹.5",
        "\x00\x01\x02 Stay: ₹12 ￿",
    ]

    @pytest.mark.parametrize("text", SAMPLES)
    def test_known_oddities(self, text):
        bill = reconstruct(text, Decimal("100"))
        assert isinstance(bill.line_items, list)

    def test_random_text(self):
        rng = random.Random(20250310)
        alphabet = string.printable + "₹|:[]{}()"
        words = ["Admission", "Stay", "Services", "Discount", "Tax", "Net", "₹", ":", "|", "ICU", "Room Stay"]
        for _ in range(300):
            parts = [rng.choice(words) if rng.random() < 0.5 else
                     "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 8)))
                     for _ in range(rng.randint(0, 12))]
            bill = reconstruct(" ".join(parts), Decimal(rng.randint(0, 20000)),
                               reference_date=REF)
            for it in bill.line_items:
                assert it.total >= 0

    @pytest.mark.parametrize("text", [
        "Net: ₹" + "9" * 40,
        "Discount: ₹" + "9" * 40,
        "Stay: ₹" + "9" * 40 + " | Net: ₹100",
    ])
    def test_oversized_amounts_without_stored_amount(self, text):
        bill = reconstruct(text, None, reference_date=REF)
        for it in bill.line_items:
            assert it.total < Decimal("1e10")

    def test_oversized_token_is_ignored(self):
        tokens = scan_summary_tokens("Admission: ₹" + "9" * 40 + " | Stay: ₹500")
        assert tokens.admission is None
        assert tokens.stay == Decimal("500")
