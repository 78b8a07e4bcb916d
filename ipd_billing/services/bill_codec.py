"""
Text payload codec for IPD bills.

The Ledger Store keeps a single free-text field per bill, so the bill is
packed as human-readable summary tokens followed by a machine-readable
line-item array:

    Admission: ₹2000 | Stay: ₹5100 | Services: ₹0 | Discount: ₹500 | Tax: ₹0 | Net: ₹6600 | ITEMS_JSON:[...]

Records written before the array existed only carry the tokens; for those
``decode`` returns an empty list and the caller falls back to
``legacy_reconstructor``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from ipd_billing.core.config import settings
from ipd_billing.schemas.billing import BillSnapshot, ChargeLineItem
from ipd_billing.services.billing_math import format_amount
from ipd_billing.services.legacy_reconstructor import SummaryTokens, scan_summary_tokens

logger = logging.getLogger(__name__)

DELIMITER = " | "
ITEMS_MARKER = "ITEMS_JSON:"

SUMMARY_LABELS = ("Admission", "Stay", "Services", "Discount", "Tax", "Net")

_LINE_ITEMS = TypeAdapter(List[ChargeLineItem])


@dataclass
class DecodeAnomaly:
    reason: str
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.reason}: {self.detail}" if self.detail else self.reason


@dataclass
class DecodedPayload:
    line_items: list = field(default_factory=list)
    tokens: SummaryTokens = field(default_factory=SummaryTokens)
    anomaly: Optional[DecodeAnomaly] = None

    @property
    def structured(self) -> bool:
        return bool(self.line_items)


# -------------------------
# encode
# -------------------------
def summary_tokens(snapshot: BillSnapshot) -> List[str]:
    symbol = settings.BILLING_CURRENCY_SYMBOL
    values = (
        snapshot.admission_fee,
        snapshot.stay_total,
        snapshot.services_total,
        snapshot.discount,
        snapshot.tax,
        snapshot.net,
    )
    return [f"{label}: {symbol}{format_amount(v)}" for label, v in zip(SUMMARY_LABELS, values)]


def encode_items(line_items) -> str:
    rows = _LINE_ITEMS.dump_python(list(line_items), mode="json")
    return json.dumps(rows, ensure_ascii=False, separators=(",", ":"))


def encode(snapshot: BillSnapshot) -> str:
    parts = summary_tokens(snapshot)
    parts.append(ITEMS_MARKER + encode_items(snapshot.line_items))
    return DELIMITER.join(parts)


# -------------------------
# decode
# -------------------------
def extract_array(text: str, start: int) -> Optional[str]:
    """
    Substring from text[start] ("[") to its matching "]".
    Brackets inside JSON strings are skipped. None when the array never closes.
    """
    if start >= len(text) or text[start] != "[":
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _decode_items(text: str):
    idx = text.find(ITEMS_MARKER)
    if idx < 0:
        return [], DecodeAnomaly("marker absent")

    start = idx + len(ITEMS_MARKER)
    while start < len(text) and text[start].isspace():
        start += 1

    raw = extract_array(text, start)
    if raw is None:
        return [], DecodeAnomaly("array truncated", text[start:start + 40])

    try:
        rows = json.loads(raw)
    except (ValueError, RecursionError) as e:
        return [], DecodeAnomaly("invalid json", str(e))

    try:
        items = _LINE_ITEMS.validate_python(rows)
    except ValidationError as e:
        return [], DecodeAnomaly("invalid line items", f"{e.error_count()} error(s)")

    if not items:
        return [], DecodeAnomaly("empty array")
    return items, None


def decode(text: Optional[str]) -> list:
    """
    Line items from the machine-readable section, or [] when it is absent
    or unusable. Never raises.
    """
    return decode_payload(text).line_items


def decode_payload(text: Optional[str]) -> DecodedPayload:
    text = text if isinstance(text, str) else ""
    items, anomaly = _decode_items(text)
    if anomaly is not None:
        logger.debug("Bill payload not decodable (%s)", anomaly)
    return DecodedPayload(line_items=items,
                          tokens=scan_summary_tokens(text),
                          anomaly=anomaly)
