import base64
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import requests
from requests.auth import HTTPBasicAuth

from app.config import Settings
from app.errors import GatewayAuthError, GatewayTransportError

logger = logging.getLogger(__name__)

ACCEPTED_RESPONSE_CODE = "0"
TRANSACTION_TYPE = "CustomerPayBillOnline"
DEFAULT_TOKEN_TTL = 3599
TOKEN_EXPIRY_MARGIN = 60


class AccessTokenProvider:
    """Fetches OAuth client-credential tokens from the gateway and keeps the
    current one until shortly before it expires."""

    def __init__(self, consumer_key: str, consumer_secret: str, base_url: str,
                 timeout: float = 30.0, clock=time.monotonic):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get_access_token(self) -> str:
        with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token

            token, ttl = self._fetch()
            self._token = token
            self._expires_at = self._clock() + max(ttl - TOKEN_EXPIRY_MARGIN, 0)
            return token

    def invalidate(self):
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _fetch(self):
        url = f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials"
        try:
            response = requests.get(
                url,
                auth=HTTPBasicAuth(self.consumer_key, self.consumer_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("M-Pesa OAuth request failed: %s", exc)
            raise GatewayAuthError("OAuth request failed") from exc

        if response.status_code != 200:
            logger.error("M-Pesa OAuth error: status=%s body=%s", response.status_code, response.text)
            raise GatewayAuthError(f"OAuth returned status {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("M-Pesa OAuth returned non-JSON body: %s", response.text)
            raise GatewayAuthError("OAuth returned non-JSON body") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("M-Pesa OAuth JSON missing access_token: %s", data)
            raise GatewayAuthError("OAuth response missing access_token")

        try:
            ttl = int(data.get("expires_in", DEFAULT_TOKEN_TTL))
        except (TypeError, ValueError):
            ttl = DEFAULT_TOKEN_TTL
        return token, ttl


@dataclass
class StkPushAck:
    accepted: bool
    response_code: Optional[str] = None
    merchant_request_id: Optional[str] = None
    checkout_request_id: Optional[str] = None
    description: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Dict[str, Any]) -> "StkPushAck":
        code = body.get("ResponseCode")
        if code is None:
            code = body.get("errorCode")
        code = str(code) if code is not None else None
        checkout_id = body.get("CheckoutRequestID") or None
        return cls(
            # an acceptance without a correlation id can never be finalized
            accepted=code == ACCEPTED_RESPONSE_CODE and checkout_id is not None,
            response_code=code,
            merchant_request_id=body.get("MerchantRequestID"),
            checkout_request_id=checkout_id,
            description=body.get("ResponseDescription") or body.get("errorMessage"),
            raw=body,
        )


def strip_plus(phone_number: str) -> str:
    return phone_number[1:] if phone_number.startswith("+") else phone_number


def gateway_amount(amount):
    if isinstance(amount, float) and amount.is_integer():
        return int(amount)
    return amount


class MpesaClient:
    def __init__(self, settings: Settings, token_provider: Optional[AccessTokenProvider] = None):
        self.settings = settings
        self.base_url = settings.base_url
        self.token_provider = token_provider or AccessTokenProvider(
            settings.consumer_key,
            settings.consumer_secret,
            settings.base_url,
            timeout=settings.timeout,
        )
        self._tz = ZoneInfo(settings.timezone)

    def get_access_token(self) -> str:
        return self.token_provider.get_access_token()

    def timestamp(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(self._tz)
        return now.astimezone(self._tz).strftime("%Y%m%d%H%M%S")

    def password(self, timestamp: str) -> str:
        raw = f"{self.settings.shortcode}{self.settings.passkey}{timestamp}".encode("utf-8")
        return base64.b64encode(raw).decode("utf-8")

    def build_stk_payload(self, order_id: str, phone_number: str, amount, timestamp: str) -> Dict[str, Any]:
        phone = strip_plus(phone_number)
        return {
            "BusinessShortCode": self.settings.shortcode,
            "Password": self.password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": gateway_amount(amount),
            "PartyA": phone,
            "PartyB": self.settings.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.settings.callback_url,
            "AccountReference": order_id,
            "TransactionDesc": f"Payment for order {order_id}",
        }

    def stk_push(self, order_id: str, phone_number: str, amount, token: str, timestamp: str) -> StkPushAck:
        payload = self.build_stk_payload(order_id, phone_number, amount, timestamp)
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

        try:
            response = requests.post(
                f"{self.base_url}/mpesa/stkpush/v1/processrequest",
                json=payload,
                headers=headers,
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            logger.error("STK push request for order %s failed: %s", order_id, exc)
            raise GatewayTransportError(f"STK push transport failure for order {order_id}") from exc

        if response.status_code == 401:
            # cached token was revoked early
            self.token_provider.invalidate()
            logger.error("STK push for order %s unauthorized: %s", order_id, response.text)
            raise GatewayAuthError(f"STK push for order {order_id} returned 401")

        # Error payloads (errorCode/errorMessage) come back with 4xx/5xx statuses
        try:
            body = response.json()
        except ValueError as exc:
            logger.error("STK push for order %s returned non-JSON body: status=%s body=%s",
                         order_id, response.status_code, response.text)
            raise GatewayTransportError(f"STK push returned status {response.status_code}") from exc

        if not isinstance(body, dict):
            logger.error("STK push for order %s returned unexpected body: %s", order_id, body)
            raise GatewayTransportError("STK push returned unexpected body")

        return StkPushAck.from_body(body)
