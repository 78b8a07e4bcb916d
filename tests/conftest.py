from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ipd_billing.db.session import init_models, make_sessionmaker
from ipd_billing.services.billing_session import BillingSession
from ipd_billing.services.deposit_ledger import DepositLedger
from ipd_billing.services.ledger_store import SqlLedgerStore

FIXED_TODAY = date(2025, 3, 10)


def fixed_today() -> date:
    return FIXED_TODAY


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    init_models(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def store(session_factory):
    return SqlLedgerStore(session_factory, allow_hard_delete=True)


@pytest.fixture
def soft_store(session_factory):
    """A store that refuses hard deletes."""
    return SqlLedgerStore(session_factory, allow_hard_delete=False)


@pytest.fixture
def ledger(store):
    return DepositLedger(store, today=fixed_today)


@pytest.fixture
def billing(store, ledger):
    return BillingSession(store, ledger, today=fixed_today)
