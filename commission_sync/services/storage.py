"""Database storage for daily commission snapshots and ledger transactions"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from commission_sync.exceptions import DuplicateSnapshotError
from commission_sync.models.batch import CommissionTotals, SnapshotPage, SnapshotRow
from commission_sync.models.db import DailyCommission, Transaction

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = 'uq_daily_commission_key'
LEDGER_KEY = 'uq_transaction_user_day'

def violates_unique(error: IntegrityError, model, constraint_name: str) -> bool:
    """
    Whether an IntegrityError came from the named unique constraint.

    PostgreSQL reports the constraint name; SQLite only lists the
    constrained columns.
    """
    diag = getattr(error.orig, 'diag', None)
    reported = getattr(diag, 'constraint_name', None)
    if reported:
        return reported == constraint_name

    message = str(error.orig)
    if constraint_name in message:
        return True
    table = model.__table__
    for constraint in table.constraints:
        if constraint.name == constraint_name:
            columns = ', '.join(f'{table.name}.{column.name}' for column in constraint.columns)
            return f'UNIQUE constraint failed: {columns}' in message
    return False

class SnapshotStore:
    """Reads and writes daily_commissions rows"""

    def __init__(self, session: Session):
        if not session:
            raise ValueError("Database session is required")
        self.session = session

    def _find(self, exchange_uid: str, exchange_id: int, target_date: date) -> Optional[DailyCommission]:
        return self.session.query(DailyCommission).filter_by(
            exchange_uid=exchange_uid,
            exchange_id=exchange_id,
            date=target_date
        ).first()

    def exists(self, exchange_uid: str, exchange_id: int, target_date: date) -> bool:
        try:
            return self._find(exchange_uid, exchange_id, target_date) is not None
        except SQLAlchemyError as e:
            logger.error(f"Database error checking snapshot {exchange_uid}/{target_date}: {e}")
            raise

    def upsert_pending(self, values: Dict[str, Any]) -> DailyCommission:
        """
        Create or overwrite the pending row for (exchange_uid, exchange_id, date).

        Raises:
            DuplicateSnapshotError: If the key already has a finalized row
        """
        values = {**values, 'updated_at': datetime.utcnow()}
        try:
            snapshot = self._write_pending(values)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if not violates_unique(e, DailyCommission, SNAPSHOT_KEY):
                logger.error(f"Database error upserting snapshot {values['exchange_uid']}: {e}")
                raise
            # Row appeared between lookup and insert; overwrite it instead
            try:
                snapshot = self._write_pending(values)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(f"Database error upserting snapshot {values['exchange_uid']}: {e}")
                raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error upserting snapshot {values['exchange_uid']}: {e}")
            raise
        return snapshot

    def _write_pending(self, values: Dict[str, Any]) -> DailyCommission:
        snapshot = self._find(values['exchange_uid'], values['exchange_id'], values['date'])
        if snapshot and snapshot.is_finalized:
            raise DuplicateSnapshotError(
                f"Snapshot for {values['exchange_uid']} on {values['date']} is already finalized"
            )
        if snapshot:
            for key, value in values.items():
                setattr(snapshot, key, value)
        else:
            snapshot = DailyCommission(**values)
            self.session.add(snapshot)
        self.session.flush()
        return snapshot

    def insert_finalized(self, values: Dict[str, Any]) -> DailyCommission:
        """
        Insert a finalized row. Past-date rows are write-once.

        Raises:
            DuplicateSnapshotError: If the key already has a row
        """
        snapshot = DailyCommission(**{**values, 'updated_at': datetime.utcnow()})
        try:
            self.session.add(snapshot)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if violates_unique(e, DailyCommission, SNAPSHOT_KEY):
                raise DuplicateSnapshotError(
                    f"Snapshot already exists for {values['exchange_uid']} on {values['date']}"
                ) from e
            logger.error(f"Database error inserting snapshot {values['exchange_uid']}: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error inserting snapshot {values['exchange_uid']}: {e}")
            raise
        return snapshot

    def list_snapshots(self, exchange_id: Optional[int] = None, target_date: Optional[date] = None,
                       page: int = 1, page_size: int = 100) -> SnapshotPage:
        """Page through snapshots for inspection, newest first"""
        query = self.session.query(DailyCommission)
        if exchange_id is not None:
            query = query.filter(DailyCommission.exchange_id == exchange_id)
        if target_date is not None:
            query = query.filter(DailyCommission.date == target_date)

        total = query.count()
        rows = query.order_by(
            DailyCommission.date.desc(), DailyCommission.created_at.desc(), DailyCommission.id.desc()
        ).offset((page - 1) * page_size).limit(page_size).all()

        return SnapshotPage(
            data=[SnapshotRow.model_validate(row) for row in rows],
            total=total,
            page=page,
            limit=page_size
        )

    def user_totals(self, user_id: int, exchange_id: Optional[int] = None) -> CommissionTotals:
        """Sum of finalized and pending commissions for a user"""
        query = self.session.query(
            func.coalesce(func.sum(DailyCommission.commissions), 0.0),
            func.coalesce(func.sum(DailyCommission.commissions_pending), 0.0)
        ).filter(DailyCommission.user_id == user_id)
        if exchange_id is not None:
            query = query.filter(DailyCommission.exchange_id == exchange_id)

        finalized, pending = query.one()
        return CommissionTotals(
            total=float(finalized) + float(pending),
            finalized=float(finalized),
            pending=float(pending)
        )

    def user_daily(self, user_id: int, exchange_id: Optional[int] = None,
                   start_date: Optional[date] = None, end_date: Optional[date] = None,
                   page: int = 1, limit: int = 30) -> List[SnapshotRow]:
        query = self.session.query(DailyCommission).filter(DailyCommission.user_id == user_id)
        if exchange_id is not None:
            query = query.filter(DailyCommission.exchange_id == exchange_id)
        if start_date is not None:
            query = query.filter(DailyCommission.date >= start_date)
        if end_date is not None:
            query = query.filter(DailyCommission.date <= end_date)

        rows = query.order_by(DailyCommission.date.desc()).offset((page - 1) * limit).limit(limit).all()
        return [SnapshotRow.model_validate(row) for row in rows]

    def latest(self, exchange_id: int) -> Optional[DailyCommission]:
        """Most recent snapshot row for an exchange"""
        return self.session.query(DailyCommission).filter_by(
            exchange_id=exchange_id
        ).order_by(DailyCommission.date.desc()).first()

class LedgerSink:
    """Append-only writer for realized commission transactions"""

    def __init__(self, session: Session):
        if not session:
            raise ValueError("Database session is required")
        self.session = session

    def exists(self, user_id: int, exchange_id: int, transaction_date: date) -> bool:
        try:
            return self.session.query(Transaction.id).filter_by(
                user_id=user_id,
                exchange_id=exchange_id,
                transaction_date=transaction_date
            ).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Database error checking transaction for user {user_id}: {e}")
            raise

    def append(self, transaction: Transaction) -> bool:
        """
        Store a transaction. Returns False when one already exists for
        the same user, exchange and date.
        """
        try:
            self.session.add(transaction)
            self.session.commit()
            logger.info(
                f"Recorded {transaction.commission_amount} commission for user {transaction.user_id} "
                f"on {transaction.transaction_date}"
            )
            return True
        except IntegrityError as e:
            self.session.rollback()
            if not violates_unique(e, Transaction, LEDGER_KEY):
                logger.error(f"Database error storing transaction for user {transaction.user_id}: {e}")
                raise
            logger.info(f"Transaction already recorded for user {transaction.user_id} on {transaction.transaction_date}")
            return False
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error storing transaction for user {transaction.user_id}: {e}")
            raise
