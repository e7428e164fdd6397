import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String
from app.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class TransactionStatus(str, enum.Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, index=True, nullable=False)      # caller reference, not unique
    phone_number = Column(String, nullable=False)              # as supplied by the caller
    amount = Column(Float, nullable=False)
    status = Column(String, nullable=False, default=TransactionStatus.PENDING.value)

    merchant_request_id = Column(String, nullable=True)
    checkout_request_id = Column(String, index=True, nullable=True)  # callback correlation key
    result_code = Column(String, nullable=True)
    result_desc = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Transaction {self.order_id} {self.status} checkout={self.checkout_request_id}>"
