import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.models import TransactionStatus

logger = logging.getLogger(__name__)

SUCCESS_RESULT_CODE = "0"


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


@dataclass(frozen=True)
class CallbackEnvelope:
    """The parts of a gateway callback we act on. Every field is optional;
    anything absent or of the wrong shape reads as None."""

    merchant_request_id: Optional[str] = None
    checkout_request_id: Optional[str] = None
    result_code: Optional[str] = None
    result_desc: Optional[str] = None

    @classmethod
    def parse(cls, payload: Any) -> "CallbackEnvelope":
        stk = _as_dict(_as_dict(_as_dict(payload).get("Body")).get("stkCallback"))
        return cls(
            merchant_request_id=_as_str(stk.get("MerchantRequestID")),
            checkout_request_id=_as_str(stk.get("CheckoutRequestID")),
            result_code=_as_str(stk.get("ResultCode")),
            result_desc=_as_str(stk.get("ResultDesc")),
        )

    @property
    def succeeded(self) -> bool:
        return self.result_code == SUCCESS_RESULT_CODE


class ReconcileOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"


class CallbackReconciler:
    def __init__(self, store):
        self.store = store

    def reconcile(self, payload: Any) -> ReconcileOutcome:
        """Finalize the transaction a callback refers to.

        Unknown checkout ids and callbacks for already-finalized transactions
        are logged and otherwise ignored. StorageError propagates.
        """
        envelope = CallbackEnvelope.parse(payload)
        checkout_id = envelope.checkout_request_id

        txn = self.store.find_by_checkout_request_id(checkout_id)
        if txn is None:
            logger.warning("Callback for unknown checkout request %r ignored", checkout_id)
            return ReconcileOutcome.IGNORED

        if TransactionStatus(txn.status).is_terminal:
            logger.info(
                "Callback for checkout %s ignored: transaction already %s",
                checkout_id, txn.status,
            )
            return ReconcileOutcome.DUPLICATE

        status = TransactionStatus.SUCCESS if envelope.succeeded else TransactionStatus.FAILED
        updated = self.store.update_by_checkout_request_id(
            checkout_id,
            expected_status=TransactionStatus.PENDING,
            status=status,
            result_code=envelope.result_code,
            result_desc=envelope.result_desc,
        )
        if updated is None:
            logger.info("Callback for checkout %s ignored: finalized concurrently", checkout_id)
            return ReconcileOutcome.DUPLICATE

        logger.info(
            "Transaction for order %s (checkout %s) finalized as %s: %s %s",
            txn.order_id, checkout_id, status.value, envelope.result_code, envelope.result_desc,
        )
        return ReconcileOutcome.SUCCESS if status is TransactionStatus.SUCCESS else ReconcileOutcome.FAILED
