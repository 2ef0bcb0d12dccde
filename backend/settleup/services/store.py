"""Store interface for groups, expenses and settlement records, plus the SQLAlchemy implementation."""
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settleup import models, schemas
from settleup.exceptions import Conflict, NotFound
from settleup.schemas import SettlementStatus

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class ChangeFeed:
    """In-process observer registry keyed by group id."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, group_id: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners[group_id].append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners.get(group_id, []):
                    self._listeners[group_id].remove(listener)

        return unsubscribe

    def publish(self, group_id: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(group_id, []))
        for listener in listeners:
            try:
                listener(group_id)
            except Exception:
                logger.exception(f"Change listener failed for group {group_id}")


change_feed = ChangeFeed()


class Store(ABC):
    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed if feed is not None else change_feed

    @abstractmethod
    def get_members(self, group_id: str) -> list[schemas.Member]:
        ...

    @abstractmethod
    def get_expenses(self, group_id: str) -> list[schemas.Expense]:
        ...

    @abstractmethod
    def get_settlement_records(self, group_id: str) -> list[schemas.SettlementRecord]:
        ...

    @abstractmethod
    def get_settlement_record(self, record_id: str) -> Optional[schemas.SettlementRecord]:
        ...

    @abstractmethod
    def write_settlement_record(
        self,
        record: schemas.SettlementRecord,
        expected_status: Optional[SettlementStatus] = None,
        expected_version: Optional[int] = None,
    ) -> schemas.SettlementRecord:
        """
        expected_status None: insert, Conflict on duplicate id or guard key.
        Otherwise: update only if the stored status (and version, when given)
        still match, Conflict if not. Publishes the group on success.
        """

    def subscribe(self, group_id: str, on_change: Listener) -> Callable[[], None]:
        return self.feed.subscribe(group_id, on_change)


class SqlAlchemyStore(Store):
    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        super().__init__(feed)
        self.db = db

    def get_members(self, group_id):
        group = self.db.query(models.Group).filter(models.Group.id == group_id).first()
        if not group:
            raise NotFound(f"Group {group_id} not found")
        return [schemas.Member.model_validate(m) for m in group.members]

    def get_expenses(self, group_id):
        rows = (
            self.db.query(models.Expense)
            .filter(models.Expense.group_id == group_id)
            .order_by(models.Expense.created_at, models.Expense.id)
            .all()
        )
        return [schemas.Expense.model_validate(e) for e in rows]

    def get_settlement_records(self, group_id):
        rows = (
            self.db.query(models.SettlementRecord)
            .filter(models.SettlementRecord.group_id == group_id)
            .order_by(models.SettlementRecord.created_at, models.SettlementRecord.id)
            .all()
        )
        return [schemas.SettlementRecord.model_validate(r) for r in rows]

    def get_settlement_record(self, record_id):
        row = self.db.query(models.SettlementRecord).filter(models.SettlementRecord.id == record_id).first()
        return schemas.SettlementRecord.model_validate(row) if row else None

    def write_settlement_record(self, record, expected_status=None, expected_version=None):
        if expected_status is None:
            self._insert(record)
        else:
            self._conditional_update(record, expected_status, expected_version)
        self.feed.publish(record.group_id)
        return self.get_settlement_record(record.id)

    def _insert(self, record: schemas.SettlementRecord) -> None:
        row = models.SettlementRecord(
            id=record.id,
            group_id=record.group_id,
            from_id=record.from_id,
            to_id=record.to_id,
            amount=record.amount.to_decimal(),
            status=record.status.value,
            created_at=record.created_at or datetime.now(timezone.utc),
            settled_at=record.settled_at,
            settled_by=record.settled_by,
            guard_key=record.guard_key,
            version=1,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict(
                f"Settlement record for {record.from_id}->{record.to_id} was already written"
            ) from exc

    def _conditional_update(self, record, expected_status, expected_version) -> None:
        table = models.SettlementRecord
        stmt = update(table).where(table.id == record.id, table.status == expected_status.value)
        if expected_version is not None:
            stmt = stmt.where(table.version == expected_version)
        result = self.db.execute(
            stmt.values(
                status=record.status.value,
                amount=record.amount.to_decimal(),
                settled_at=record.settled_at,
                settled_by=record.settled_by,
                version=table.version + 1,
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise Conflict(f"Settlement record {record.id} is no longer {expected_status.value}")
        self.db.commit()
