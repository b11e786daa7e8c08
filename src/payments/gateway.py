import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union

import httpx

from src.exceptions import GatewayRejected, GatewayTimeout, GatewayUnavailable
from src.payments.schemas import (
    GatewayInitialization, GatewayRefund, GatewayStatus, GatewayVerification
)

logger = logging.getLogger(__name__)

# Paystack transaction statuses grouped by what they mean locally
_SUCCESS_STATUSES = {"success", "paid"}
_FAILED_STATUSES = {"failed", "abandoned", "reversed"}
_PENDING_STATUSES = {"ongoing", "pending", "processing", "queued"}


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (naira) to minor units (kobo)"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Union[int, str]) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class PaystackGateway:
    """Thin client for the Paystack REST API.

    Every call has a bounded timeout. Failures surface as
    ``GatewayTimeout`` (retry later, outcome unknown), ``GatewayUnavailable``
    (could not reach the gateway or it errored) or ``GatewayRejected`` (the
    gateway refused the request).
    """

    name = "paystack"

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
        )

    def initialize(
        self,
        amount: Decimal,
        currency: str,
        email: str,
        callback_url: str,
        reference: str
    ) -> GatewayInitialization:
        """Start a transaction and return the checkout URL"""
        logger.info("Initializing Paystack payment %s", reference)

        body = self._call("POST", "/transaction/initialize", json={
            "email": email,
            "amount": to_minor_units(amount),
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
        })
        data = body.get("data") or {}

        if not data.get("authorization_url"):
            raise GatewayRejected("Gateway did not return an authorization URL")

        return GatewayInitialization(
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code"),
            reference=data.get("reference") or reference,
        )

    def verify(self, reference: str) -> GatewayVerification:
        """Ask the gateway for the canonical status of a reference"""
        logger.info("Verifying Paystack payment %s", reference)

        response = self._send("GET", f"/transaction/verify/{reference}")
        if response.status_code == 404:
            return GatewayVerification(reference=reference, status=GatewayStatus.UNKNOWN)

        payload = self._json(response)
        if response.status_code == 400 and "not found" in str(payload.get("message", "")).lower():
            return GatewayVerification(reference=reference, status=GatewayStatus.UNKNOWN, payload=payload)

        self._raise_for_rejection(response, payload)

        data = payload.get("data") or {}
        raw_status = str(data.get("status", "")).lower()

        if raw_status in _SUCCESS_STATUSES:
            status = GatewayStatus.SUCCESS
        elif raw_status in _FAILED_STATUSES:
            status = GatewayStatus.FAILED
        elif raw_status in _PENDING_STATUSES:
            status = GatewayStatus.PENDING
        else:
            logger.warning("Unrecognized Paystack status %r for %s", raw_status, reference)
            status = GatewayStatus.PENDING

        return GatewayVerification(reference=reference, status=status, payload=data)

    def refund(self, reference: str, amount: Decimal) -> GatewayRefund:
        """Refund a settled transaction; returns only once the gateway accepts it"""
        logger.info("Processing Paystack refund for %s", reference)

        body = self._call("POST", "/refund", json={
            "transaction": reference,
            "amount": to_minor_units(amount),
        })
        data = body.get("data") or {}
        status = str(data.get("status", "pending")).lower()

        if status == "failed":
            raise GatewayRejected(f"Refund for {reference} was declined by the gateway")

        refund_reference = data.get("id") or data.get("reference")
        return GatewayRefund(
            reference=str(refund_reference) if refund_reference is not None else None,
            status=status,
            payload=data,
        )

    def verify_signature(self, raw_body: bytes, signature: str) -> bool:
        """Check an ``x-paystack-signature`` header against the raw request body.

        The HMAC has to be computed over the bytes exactly as received;
        re-serialized JSON does not reproduce them.
        """
        if not self.secret_key or not signature:
            return False

        # Header values arrive latin-1 decoded; a hex digest is always ASCII
        if not signature.isascii():
            return False

        expected = hmac.new(self.secret_key.encode(), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self._send(method, path, **kwargs)
        payload = self._json(response)
        self._raise_for_rejection(response, payload)
        return payload

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        if not self.secret_key:
            raise GatewayUnavailable("Payment gateway is not configured")

        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Paystack %s %s timed out: %s", method, path, e)
            raise GatewayTimeout("Payment gateway timed out")
        except httpx.TransportError as e:
            logger.error("Paystack %s %s failed: %s", method, path, e)
            raise GatewayUnavailable("Payment gateway is unreachable")

        if response.status_code >= 500:
            logger.error("Paystack %s %s returned %s", method, path, response.status_code)
            raise GatewayUnavailable(f"Payment gateway error ({response.status_code})")

        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            raise GatewayUnavailable("Payment gateway returned an unreadable response")
        if not isinstance(payload, dict):
            raise GatewayUnavailable("Payment gateway returned an unexpected response")
        return payload

    @staticmethod
    def _raise_for_rejection(response: httpx.Response, payload: Dict[str, Any]) -> None:
        if response.status_code >= 400 or payload.get("status") is False:
            message = payload.get("message") or f"HTTP {response.status_code}"
            raise GatewayRejected(f"Payment gateway rejected the request: {message}")
