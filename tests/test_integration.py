from app.mpesa_service import MpesaClient


def _gateway_response(mocker, body, status_code=200):
    resp = mocker.Mock()
    resp.status_code = status_code
    resp.json.return_value = body
    return resp


def test_full_payment_lifecycle_integration(client, store, gateway, settings, mocker):
    """
    Test the full lifecycle:
    1. STK push (API -> DB + gateway mocked)
    2. Callback success (gateway -> API -> DB)
    3. Listing reflects the final status
    """

    # --- 1. STK PUSH ---
    response = client.post(
        "/stk-push",
        json={"orderId": "ORD1", "phoneNumber": "+254700000000", "amount": 10}
    )

    assert response.status_code == 200
    assert response.json()["CheckoutRequestID"] == "C1"

    txn = store.find_by_checkout_request_id("C1")
    assert txn.status == "Pending"
    assert txn.merchant_request_id == "M1"

    # --- 2. CALLBACK ---
    callback = {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "M1",
                "CheckoutRequestID": "C1",
                "ResultCode": "0",
                "ResultDesc": "Success",
                "CallbackMetadata": {"Item": [{"Name": "Amount", "Value": 10}]},
            }
        }
    }
    callback_response = client.post("/callback", json=callback)

    assert callback_response.status_code == 200
    assert callback_response.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    # --- 3. LISTING ---
    [listed] = client.get("/transactions").json()["data"]
    assert listed["status"] == "Success"
    assert listed["resultCode"] == "0"
    assert listed["resultDesc"] == "Success"
    assert listed["checkoutRequestId"] == "C1"


def test_outbound_phone_stripped_but_stored_as_given(settings, session_factory, mocker):
    """The gateway sees the number without '+', the stored row keeps the caller's form."""
    from fastapi.testclient import TestClient
    from app.main import create_app

    mocker.patch("app.mpesa_service.requests.get", return_value=_gateway_response(
        mocker, {"access_token": "tok", "expires_in": "3599"}))
    post = mocker.patch("app.mpesa_service.requests.post", return_value=_gateway_response(mocker, {
        "MerchantRequestID": "M1", "CheckoutRequestID": "C1",
        "ResponseCode": "0", "ResponseDescription": "Success. Request accepted for processing",
    }))

    app = create_app(settings, gateway=MpesaClient(settings), session_factory=session_factory)
    with TestClient(app) as c:
        response = c.post("/stk-push", json={"orderId": "ORD1", "phoneNumber": "+254700000000", "amount": 10})
        stored = c.get("/transactions/C1").json()["data"]

    assert response.json()["CheckoutRequestID"] == "C1"
    assert post.call_args.kwargs["json"]["PartyA"] == "254700000000"
    assert post.call_args.kwargs["json"]["PhoneNumber"] == "254700000000"
    assert stored["phoneNumber"] == "+254700000000"


def test_rejected_push_never_gets_correlated(client, gateway, store):
    from app.mpesa_service import StkPushAck

    gateway.stk_push.return_value = StkPushAck(accepted=False, response_code="1")
    client.post("/stk-push", json={"orderId": "ORD9", "phoneNumber": "254700000000", "amount": 10})

    client.post("/callback", json={"Body": {"stkCallback": {"CheckoutRequestID": "C1", "ResultCode": "0"}}})

    [txn] = store.list_recent()
    assert txn.order_id == "ORD9"
    assert txn.status == "Pending"
    assert txn.checkout_request_id is None
