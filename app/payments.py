"""Push-payment initiation.

The pending row is written before the gateway is asked to prompt the payer,
so a rejection or transport failure after that point leaves an orphaned
Pending row without a checkout request id. Nothing ever finalizes it.
"""
import logging
from dataclasses import dataclass

from app.errors import GatewayRejectedError, MissingFieldsError
from app.models import TransactionStatus

logger = logging.getLogger(__name__)


@dataclass
class InitiateResult:
    order_id: str
    merchant_request_id: str
    checkout_request_id: str
    description: str = ""


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


class PaymentInitiator:
    def __init__(self, store, gateway):
        self.store = store
        self.gateway = gateway

    def initiate(self, order_id, phone_number, amount) -> InitiateResult:
        if any(_is_missing(v) for v in (order_id, phone_number, amount)):
            raise MissingFieldsError("orderId, phoneNumber and amount are required")

        # GatewayAuthError propagates before anything is stored
        token = self.gateway.get_access_token()
        timestamp = self.gateway.timestamp()

        txn = self.store.create(order_id, phone_number, amount, TransactionStatus.PENDING)
        logger.info("Created pending transaction %s for order %s", txn.id, order_id)

        ack = self.gateway.stk_push(order_id, phone_number, amount, token, timestamp)

        if not ack.accepted or not ack.checkout_request_id:
            logger.warning(
                "STK push for order %s rejected: code=%s desc=%s",
                order_id, ack.response_code, ack.description,
            )
            raise GatewayRejectedError(
                f"Gateway rejected STK push for order {order_id}", response_code=ack.response_code
            )

        self.store.update_by_order_id(
            order_id,
            merchant_request_id=ack.merchant_request_id,
            checkout_request_id=ack.checkout_request_id,
        )
        logger.info(
            "STK push accepted for order %s: merchant=%s checkout=%s",
            order_id, ack.merchant_request_id, ack.checkout_request_id,
        )
        return InitiateResult(
            order_id=order_id,
            merchant_request_id=ack.merchant_request_id,
            checkout_request_id=ack.checkout_request_id,
            description=ack.description or "",
        )
