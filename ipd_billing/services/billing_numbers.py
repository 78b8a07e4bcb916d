from __future__ import annotations

from typing import Optional

from ipd_billing.core.config import settings


def receipt_number(record_id: int,
                   *,
                   prefix: Optional[str] = None,
                   padding: Optional[int] = None) -> str:
    """Deposit receipt no. derived from the ledger row id, e.g. DEP000042."""
    prefix = settings.DEPOSIT_RECEIPT_PREFIX if prefix is None else prefix
    padding = settings.DEPOSIT_RECEIPT_PADDING if padding is None else padding
    return f"{prefix}{str(int(record_id)).zfill(int(padding))}"
