class PaymentServiceError(Exception):
    """Base error. `public_message` is safe to return to clients; the
    exception text itself may carry detail meant only for the log."""

    status_code = 500
    public_message = "Internal server error"


class MissingFieldsError(PaymentServiceError):
    status_code = 400
    public_message = "Missing required fields"


class GatewayAuthError(PaymentServiceError):
    status_code = 500
    public_message = "Failed to initiate STK push"


class GatewayTransportError(PaymentServiceError):
    status_code = 500
    public_message = "Failed to initiate STK push"


class GatewayRejectedError(PaymentServiceError):
    status_code = 400
    public_message = "STK push request was rejected by the gateway"

    def __init__(self, message, response_code=None):
        super().__init__(message)
        self.response_code = response_code


class StorageError(PaymentServiceError):
    status_code = 500
    public_message = "Storage unavailable"
