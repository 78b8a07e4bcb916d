from __future__ import annotations

import abc
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ipd_billing.core.config import settings
from ipd_billing.models.ledger import INACTIVE_STATUSES, LedgerRecord, RecordStatus
from ipd_billing.schemas.ledger import LedgerRecordIn, PersistedRecord
from ipd_billing.services.billing_errors import (
    DeletionRejectedError,
    PersistenceError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "amount",
    "status",
    "payment_mode",
    "record_date",
    "description",
    "reference",
    "received_by",
}


class LedgerStore(abc.ABC):
    """
    The persistence contract billing relies on: rows with an amount, a
    status and one free-text field. Implementations raise PersistenceError
    on I/O failure and DeletionRejectedError when hard deletes are refused.
    """

    @abc.abstractmethod
    def insert(self, record: LedgerRecordIn) -> PersistedRecord:
        ...

    @abc.abstractmethod
    def get(self, record_id: int) -> Optional[PersistedRecord]:
        ...

    @abc.abstractmethod
    def update(self, record_id: int, fields: Dict[str, Any]) -> PersistedRecord:
        ...

    @abc.abstractmethod
    def delete(self, record_id: int) -> None:
        ...

    @abc.abstractmethod
    def list_records(self,
                     patient_ref: str,
                     kind: Optional[str] = None,
                     include_inactive: bool = False) -> List[PersistedRecord]:
        ...


def delete_with_fallback(store: LedgerStore, record_id: int, hard: bool = True) -> str:
    """
    Hard delete when allowed, otherwise flag the row DELETED.
    Returns "hard" or "soft".
    """
    if hard:
        try:
            store.delete(record_id)
            return "hard"
        except DeletionRejectedError:
            logger.warning("Ledger store rejected delete of %s; soft-deleting", record_id)
    store.update(record_id, {"status": RecordStatus.DELETED.value})
    return "soft"


class SqlLedgerStore(LedgerStore):
    """LedgerStore over SQLAlchemy sessions (one session per call)."""

    def __init__(self,
                 session_factory: sessionmaker,
                 *,
                 allow_hard_delete: Optional[bool] = None):
        self._session_factory = session_factory
        self.allow_hard_delete = (settings.LEDGER_ALLOW_HARD_DELETE
                                  if allow_hard_delete is None else allow_hard_delete)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Ledger store I/O failed")
            raise PersistenceError(f"Ledger store unavailable: {e.__class__.__name__}") from e
        finally:
            db.close()

    def insert(self, record: LedgerRecordIn) -> PersistedRecord:
        with self._session() as db:
            row = LedgerRecord(**record.model_dump())
            db.add(row)
            db.commit()
            db.refresh(row)
            return PersistedRecord.model_validate(row)

    def get(self, record_id: int) -> Optional[PersistedRecord]:
        with self._session() as db:
            row = db.get(LedgerRecord, record_id)
            return PersistedRecord.model_validate(row) if row else None

    def update(self, record_id: int, fields: Dict[str, Any]) -> PersistedRecord:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        with self._session() as db:
            row = db.get(LedgerRecord, record_id)
            if not row:
                raise RecordNotFoundError("record", record_id)
            for k, v in fields.items():
                setattr(row, k, v)
            db.commit()
            db.refresh(row)
            return PersistedRecord.model_validate(row)

    def delete(self, record_id: int) -> None:
        if not self.allow_hard_delete:
            raise DeletionRejectedError(f"Hard delete disabled for record {record_id}")

        with self._session() as db:
            row = db.get(LedgerRecord, record_id)
            if not row:
                raise RecordNotFoundError("record", record_id)
            db.delete(row)
            db.commit()

    def list_records(self,
                     patient_ref: str,
                     kind: Optional[str] = None,
                     include_inactive: bool = False) -> List[PersistedRecord]:
        stmt = select(LedgerRecord).where(LedgerRecord.patient_ref == patient_ref)
        if kind:
            stmt = stmt.where(LedgerRecord.kind == kind)
        if not include_inactive:
            stmt = stmt.where(LedgerRecord.status.not_in(INACTIVE_STATUSES))
        stmt = stmt.order_by(LedgerRecord.created_at.asc(), LedgerRecord.id.asc())

        with self._session() as db:
            rows = db.execute(stmt).scalars().all()
            return [PersistedRecord.model_validate(r) for r in rows]
