import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.errors import StorageError
from app.models import Transaction, TransactionStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "status",
    "merchant_request_id",
    "checkout_request_id",
    "result_code",
    "result_desc",
})


class TransactionStore:
    """Durable record of payment attempts.

    Each call runs in its own session. Any SQLAlchemy failure is rolled back
    and surfaces as StorageError; a missing row is reported as None.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str):
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Storage failure during %s: %s", operation, exc)
            raise StorageError(f"{operation} failed") from exc
        finally:
            db.close()

    def create(self, order_id: str, phone_number: str, amount: float,
               status: TransactionStatus = TransactionStatus.PENDING) -> Transaction:
        with self._session("create") as db:
            txn = Transaction(
                order_id=order_id,
                phone_number=phone_number,
                amount=amount,
                status=TransactionStatus(status).value,
            )
            db.add(txn)
            db.commit()
            db.refresh(txn)
            return txn

    def find_by_checkout_request_id(self, checkout_request_id: str) -> Optional[Transaction]:
        if not checkout_request_id:
            return None
        with self._session("find_by_checkout_request_id") as db:
            return (
                db.query(Transaction)
                .filter_by(checkout_request_id=checkout_request_id)
                .order_by(Transaction.id.desc())
                .first()
            )

    def update_by_order_id(self, order_id: str, **fields) -> Optional[Transaction]:
        # order ids are not unique; the newest attempt is the one being initiated
        with self._session("update_by_order_id") as db:
            txn = (
                db.query(Transaction)
                .filter_by(order_id=order_id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .first()
            )
            return self._apply(db, txn, fields)

    def update_by_checkout_request_id(self, checkout_request_id: str, expected_status=None,
                                      **fields) -> Optional[Transaction]:
        """Set fields on the row a callback refers to.

        With `expected_status` the write is a single conditional UPDATE, so of
        two concurrent writers only the one that still sees that status wins.
        Returns None when no row matched.
        """
        values = self._check_fields(fields)
        with self._session("update_by_checkout_request_id") as db:
            query = db.query(Transaction).filter_by(checkout_request_id=checkout_request_id)
            if expected_status is not None:
                query = query.filter_by(status=TransactionStatus(expected_status).value)

            if not query.update(values, synchronize_session=False):
                db.rollback()
                return None
            db.commit()
            return (
                db.query(Transaction)
                .filter_by(checkout_request_id=checkout_request_id)
                .order_by(Transaction.id.desc())
                .first()
            )

    def list_recent(self, limit: int = 50) -> List[Transaction]:
        with self._session("list_recent") as db:
            return (
                db.query(Transaction)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .limit(limit)
                .all()
            )

    @staticmethod
    def _check_fields(fields):
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update transaction fields: {sorted(unknown)}")
        values = dict(fields)
        if "status" in values:
            values["status"] = TransactionStatus(values["status"]).value
        return values

    @classmethod
    def _apply(cls, db, txn, fields):
        values = cls._check_fields(fields)
        if txn is None:
            return None

        for name, value in values.items():
            setattr(txn, name, value)
        db.commit()
        db.refresh(txn)
        return txn
