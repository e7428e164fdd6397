import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.context import AppContext
from app.errors import PaymentServiceError, StorageError
from app.schemas import StkPushRequest, serialize_transaction

logger = logging.getLogger(__name__)

router = APIRouter()

TRANSACTION_LIST_LIMIT = 50

CALLBACK_ACCEPTED = {"ResultCode": 0, "ResultDesc": "Accepted"}
CALLBACK_ERROR = {"ResultCode": 1, "ResultDesc": "Error"}


def get_context(request: Request) -> AppContext:
    return request.app.state.context


@router.get("/")
def health_check(ctx: AppContext = Depends(get_context)):
    return {"status": "ok", "environment": ctx.settings.environment}


@router.post("/stk-push")
def stk_push(body: Optional[StkPushRequest] = None, ctx: AppContext = Depends(get_context)):
    body = body or StkPushRequest()
    try:
        result = ctx.initiator.initiate(body.order_id, body.phone_number, body.amount)
    except PaymentServiceError as exc:
        logger.error("STK push for order %s failed: %s: %s", body.order_id, type(exc).__name__, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"rescode": "1", "resmsg": exc.public_message},
        )

    return {
        "rescode": "0",
        "resmsg": "STK push sent successfully",
        "CheckoutRequestID": result.checkout_request_id,
    }


@router.post("/callback")
async def mpesa_callback(request: Request, ctx: AppContext = Depends(get_context)):
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        logger.warning("Callback body is not valid JSON: %r", raw[:200])
        payload = None

    try:
        outcome = await run_in_threadpool(ctx.reconciler.reconcile, payload)
    except StorageError as exc:
        logger.error("Callback processing failed: %s", exc)
        return JSONResponse(status_code=500, content=CALLBACK_ERROR)

    logger.info("Callback processed: %s", outcome.value)
    return CALLBACK_ACCEPTED


@router.get("/transactions")
def list_transactions(ctx: AppContext = Depends(get_context)):
    try:
        transactions = ctx.store.list_recent(TRANSACTION_LIST_LIMIT)
    except StorageError as exc:
        logger.error("Error fetching transactions: %s", exc)
        return JSONResponse(status_code=500, content={"message": "Failed to fetch transactions"})

    return {"data": [serialize_transaction(t) for t in transactions]}


@router.get("/transactions/{checkout_request_id}")
def get_transaction(checkout_request_id: str, ctx: AppContext = Depends(get_context)):
    try:
        txn = ctx.store.find_by_checkout_request_id(checkout_request_id)
    except StorageError as exc:
        logger.error("Error fetching transaction %s: %s", checkout_request_id, exc)
        return JSONResponse(status_code=500, content={"message": "Failed to fetch transaction"})

    if txn is None:
        return JSONResponse(status_code=404, content={"message": "Transaction not found"})
    return {"data": serialize_transaction(txn)}
