"""Bill payload text: summary tokens plus the ITEMS_JSON array."""

from datetime import date
from decimal import Decimal

import pytest

from ipd_billing.schemas.billing import BillCharges, ServiceCharge, StaySegment
from ipd_billing.services.bill_codec import (
    ITEMS_MARKER,
    decode,
    decode_payload,
    encode,
    extract_array,
)
from ipd_billing.services.billing_engine import compute_bill, summarize


def sample_bill(**extra):
    charges = BillCharges(
        patient_ref="IP-2001",
        billing_date=date(2025, 3, 2),
        admission_fee=2000,
        stay_segments=[
            StaySegment(room_type="ICU",
                        start_date=date(2025, 3, 1),
                        end_date=date(2025, 3, 2),
                        bed_rate=3000,
                        nursing_rate=800,
                        rmo_rate=300,
                        doctor_rate=1000),
        ],
        discount=500,
        **extra,
    )
    return compute_bill(charges).snapshot


class TestEncode:
    def test_summary_tokens_precede_items(self):
        text = encode(sample_bill())
        assert text.startswith(
            "Admission: ₹2000 | Stay: ₹5100 | Services: ₹0 | Discount: ₹500 | Tax: ₹0 | Net: ₹6600 | ITEMS_JSON:[")
        assert text.endswith("]")

    def test_fractional_amounts_keep_two_places(self):
        snap = sample_bill(services=[ServiceCharge(name="Dressing", unit_price="120.5")])
        assert "Services: ₹120.50" in encode(snap)


class TestDecode:
    def test_round_trip_recomputes_same_totals(self):
        snap = sample_bill(services=[ServiceCharge(name="CBC", unit_price=450, quantity=2)])
        decoded = decode_payload(encode(snap))
        assert decoded.structured
        again = summarize(decoded.line_items,
                          discount=decoded.tokens.value("discount"),
                          tax=decoded.tokens.value("tax")).snapshot
        assert again.gross == snap.gross
        assert again.net == snap.net
        assert [it.category for it in decoded.line_items] == ["ADMISSION", "STAY", "SERVICE"]
        assert decoded.line_items[1].segment.room_type == "ICU"

    def test_trailing_text_after_array_is_ignored(self):
        text = encode(sample_bill()) + " | Remarks: settled at counter"
        assert len(decode(text)) == 2

    def test_brackets_inside_labels(self):
        snap = sample_bill(services=[ServiceCharge(name='X-Ray [chest] "PA" view', unit_price=700)])
        items = decode(encode(snap))
        assert items[-1].label == 'X-Ray [chest] "PA" view'

    def test_truncated_array_gives_empty(self):
        text = encode(sample_bill())
        decoded = decode_payload(text[:-3])
        assert decoded.line_items == []
        assert decoded.anomaly.reason == "array truncated"

    def test_marker_absent(self):
        decoded = decode_payload("Admission: ₹2000 | Stay: ₹5100")
        assert decoded.line_items == []
        assert decoded.anomaly.reason == "marker absent"
        assert decoded.tokens.value("admission") == Decimal("2000.00")

    @pytest.mark.parametrize("text", [
        None,
        "",
        ITEMS_MARKER,
        ITEMS_MARKER + "[]",
        ITEMS_MARKER + "[{]",
        ITEMS_MARKER + '[{"category": "BOGUS", "label": "x"}]',
        ITEMS_MARKER + "[" * 5000,
        ITEMS_MARKER + '["unterminated]',
    ])
    def test_never_raises(self, text):
        assert decode(text) == []


class TestExtractArray:
    def test_nested(self):
        assert extract_array('[[1],[2]] tail', 0) == "[[1],[2]]"

    def test_escaped_quote_in_string(self):
        assert extract_array(r'["a\"]", 1] x', 0) == r'["a\"]", 1]'

    def test_not_at_bracket(self):
        assert extract_array("abc", 0) is None
