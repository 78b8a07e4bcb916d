# ipd_billing/db/session.py
from typing import Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ipd_billing.core.config import settings
from ipd_billing.db.base import Base

# ---------- LEDGER DB ENGINES (one per URI) ----------

_engines: Dict[str, Engine] = {}


def get_or_create_engine(db_uri: str) -> Engine:
    eng = _engines.get(db_uri)
    if eng is None:
        kwargs = dict(echo=settings.DB_ECHO, pool_pre_ping=True, future=True)
        if not db_uri.startswith("sqlite"):
            kwargs.update(pool_recycle=280, pool_size=10, max_overflow=20)
        eng = create_engine(db_uri, **kwargs)
        _engines[db_uri] = eng
    return eng


def make_sessionmaker(eng: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=eng,
        future=True,
    )


engine: Engine = get_or_create_engine(settings.database_uri())
SessionLocal = make_sessionmaker(engine)


def init_models(eng: Optional[Engine] = None) -> None:
    """create_all for the ledger tables; safe to run repeatedly."""
    from ipd_billing.models import ledger  # noqa: F401

    Base.metadata.create_all(bind=eng or engine)
