import hashlib
import json
import logging
import uuid
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.exceptions import PaymentAmountMismatch, SignatureInvalid, UnknownReference
from src.models import WebhookEvent
from src.payments.gateway import PaystackGateway
from src.payments.payment_service import PaymentService
from src.payments.schemas import GatewayStatus

logger = logging.getLogger(__name__)

class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    MALFORMED = "malformed"
    UNKNOWN_REFERENCE = "unknown_reference"
    AMOUNT_MISMATCH = "amount_mismatch"
    ERROR = "error"

class WebhookProcessor:
    """Accepts push notifications from the payment gateway.

    Only a signature failure is reported back as an error. Everything else,
    including events we do not handle and events we fail to process, is
    acknowledged so the gateway does not keep redelivering it.
    """

    SUCCESS_EVENTS = ("charge.success",)

    def __init__(
        self,
        db: Session,
        gateway: PaystackGateway,
        payment_service: PaymentService,
        allow_unsigned: bool = False
    ):
        self.db = db
        self.gateway = gateway
        self.payment_service = payment_service
        self.allow_unsigned = allow_unsigned

    def ingest(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        """Authenticate, dedupe and dispatch one webhook delivery"""

        self._authenticate(raw_body, signature)

        event_key = hashlib.sha256(raw_body).hexdigest()
        try:
            if self.db.query(WebhookEvent.id).filter(WebhookEvent.event_key == event_key).first():
                logger.info("Duplicate webhook delivery %s acknowledged", event_key[:12])
                return WebhookOutcome.DUPLICATE

            event_type, reference, outcome = self._dispatch(raw_body)
            if outcome is None:
                # Not recorded, so a redelivery is processed again
                return WebhookOutcome.ERROR

            self._record(event_key, event_type, reference, outcome)
        except Exception:
            logger.exception("Failed to ingest webhook delivery %s", event_key[:12])
            self.db.rollback()
            return WebhookOutcome.ERROR

        return outcome

    def _dispatch(self, raw_body: bytes) -> Tuple[Optional[str], Optional[str], Optional[WebhookOutcome]]:
        """Parse one delivery and apply it; returns (event type, reference, outcome)"""

        try:
            event = json.loads(raw_body)
        except ValueError:
            logger.warning("Webhook body is not valid JSON")
            return None, None, WebhookOutcome.MALFORMED

        if not isinstance(event, dict):
            logger.warning("Webhook body is not a JSON object")
            return None, None, WebhookOutcome.MALFORMED

        event_type = str(event.get("event") or event.get("type") or "unknown")
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        reference = data.get("reference")

        logger.info("Payment webhook received: %s (%r)", event_type, reference)

        if not any(name in event_type.lower() for name in self.SUCCESS_EVENTS):
            return event_type, None, WebhookOutcome.IGNORED

        if not isinstance(reference, str) or not reference:
            logger.warning("%s webhook without a usable reference: %r", event_type, reference)
            return event_type, None, WebhookOutcome.MALFORMED

        try:
            result = self.payment_service.apply_gateway_result(reference, GatewayStatus.SUCCESS, data)
        except UnknownReference:
            logger.warning("Webhook for unknown payment reference %s", reference)
            return event_type, reference, WebhookOutcome.UNKNOWN_REFERENCE
        except PaymentAmountMismatch as e:
            logger.error("Webhook for %s rejected: %s", reference, e.message)
            return event_type, reference, WebhookOutcome.AMOUNT_MISMATCH
        except Exception:
            logger.exception("Failed to process %s webhook for %s", event_type, reference)
            self.db.rollback()
            return event_type, reference, None

        outcome = WebhookOutcome.APPLIED if result.transitioned else WebhookOutcome.UNCHANGED
        return event_type, reference, outcome

    def _authenticate(self, raw_body: bytes, signature: Optional[str]) -> None:
        if signature:
            if not self.gateway.verify_signature(raw_body, signature):
                logger.warning("Invalid Paystack webhook signature")
                raise SignatureInvalid("Invalid signature")
            return

        if not self.allow_unsigned:
            logger.warning("Unsigned webhook rejected")
            raise SignatureInvalid("Missing signature")

        logger.info("Accepting unsigned webhook (WEBHOOK_ALLOW_UNSIGNED is set)")

    def _record(self, event_key: str, event_type: Optional[str], reference: Optional[str], outcome: WebhookOutcome) -> None:
        self.db.add(WebhookEvent(
            id=str(uuid.uuid4()),
            event_key=event_key,
            event_type=event_type[:100] if event_type else None,
            reference=reference[:40] if reference else None,
            outcome=outcome.value,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same body recorded it first
            self.db.rollback()
