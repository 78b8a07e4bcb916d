from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple


class RoomType(str, Enum):
    GENERAL_WARD = "GENERAL_WARD"
    SEMI_PRIVATE = "SEMI_PRIVATE"
    PRIVATE_ROOM = "PRIVATE_ROOM"
    DELUXE_ROOM = "DELUXE_ROOM"
    ICU = "ICU"


BASELINE_ROOM_TYPE = RoomType.GENERAL_WARD

ROOM_TYPE_LABELS: Dict[RoomType, str] = {
    RoomType.GENERAL_WARD: "General Ward",
    RoomType.SEMI_PRIVATE: "Semi Private Room",
    RoomType.PRIVATE_ROOM: "Private Room",
    RoomType.DELUXE_ROOM: "Deluxe Room",
    RoomType.ICU: "ICU",
}


class DailyRates(NamedTuple):
    bed: Decimal
    nursing: Decimal
    rmo: Decimal
    doctor: Decimal

    @property
    def total(self) -> Decimal:
        return self.bed + self.nursing + self.rmo + self.doctor


# reference per-day tariff (bed, nursing, RMO, doctor)
CANONICAL_DAILY_RATES: Dict[RoomType, DailyRates] = {
    RoomType.GENERAL_WARD: DailyRates(Decimal("1000"), Decimal("200"), Decimal("100"), Decimal("500")),
    RoomType.SEMI_PRIVATE: DailyRates(Decimal("1500"), Decimal("300"), Decimal("150"), Decimal("600")),
    RoomType.PRIVATE_ROOM: DailyRates(Decimal("2500"), Decimal("400"), Decimal("200"), Decimal("800")),
    RoomType.DELUXE_ROOM: DailyRates(Decimal("3500"), Decimal("500"), Decimal("250"), Decimal("1000")),
    RoomType.ICU: DailyRates(Decimal("3000"), Decimal("800"), Decimal("300"), Decimal("1000")),
}

# Checked in order: "semi private" must win over "private",
# and icu before anything that might mention a ward.
_ROOM_TYPE_PATTERNS: List[Tuple[RoomType, str]] = [
    (RoomType.ICU, r"\b(icu|iccu|intensive care( unit)?|critical care)\b"),
    (RoomType.SEMI_PRIVATE, r"\b(semi ?private|semi pvt|twin sharing)\b"),
    (RoomType.DELUXE_ROOM, r"\b(deluxe|delux|dlx|suite)\b"),
    (RoomType.PRIVATE_ROOM, r"\b(private|pvt)\b"),
    (RoomType.GENERAL_WARD, r"\b(general|gen ward|gw|ward)\b"),
]

_PLURALS = {"wards": "ward", "rooms": "room", "icus": "icu", "suites": "suite"}


def _normalize_text(x: Optional[str]) -> str:
    s = (x or "").lower()
    # "SEMI_PRIVATE", "semi-private", "Semi  Private" -> "semi private"
    s = re.sub(r"[^a-z0-9]+", " ", s)
    words = [_PLURALS.get(w, w) for w in s.split()]
    return " ".join(words)


def match_room_type(x: Optional[str]) -> Optional[RoomType]:
    """Room type mentioned in free text, or None when nothing matches."""
    key = _normalize_text(x)
    if not key:
        return None
    for room_type, pattern in _ROOM_TYPE_PATTERNS:
        if re.search(pattern, key):
            return room_type
    return None


def normalize_room_type(x, default: RoomType = BASELINE_ROOM_TYPE) -> RoomType:
    if isinstance(x, RoomType):
        return x
    return match_room_type(x if isinstance(x, str) else None) or default


def room_label(room_type: RoomType) -> str:
    return ROOM_TYPE_LABELS.get(room_type, room_type.value.replace("_", " ").title())


def canonical_rates(room_type: RoomType) -> DailyRates:
    return CANONICAL_DAILY_RATES[room_type]
