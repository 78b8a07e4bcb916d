# ipd_billing/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Ledger tables inherit from this."""
    pass
