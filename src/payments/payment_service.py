import logging
import secrets
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.auth.schemas import AuthenticatedPrincipal
from src.bookings.schemas import BookingStatus
from src.config import settings
from src.exceptions import (
    GatewayError, GatewayTimeout, InvalidStateTransition, NotFound,
    PaymentAmountMismatch, UnknownReference, ValidationError
)
from src.models import Booking, Payment
from src.payments.gateway import PaystackGateway, from_minor_units
from src.payments.notifications import PaymentNotifier
from src.payments.schemas import (
    GatewayStatus, OPEN_PAYMENT_STATUSES, PaymentMethod, PaymentStatus,
    RefundStatus, SETTLED_PAYMENT_STATUSES
)

logger = logging.getLogger(__name__)


def generate_transaction_reference(now: Optional[datetime] = None) -> str:
    """Build a reference of the form ``PAY-YYYYMMDD-HHMMSS-XXXXXXXX``"""
    now = now or datetime.now(timezone.utc)
    return f"PAY-{now:%Y%m%d}-{now:%H%M%S}-{secrets.token_hex(4).upper()}"


class ReconciliationResult(NamedTuple):
    payment: Payment
    transitioned: bool


class PaymentService:
    """Keeps local payment state consistent with the gateway.

    ``apply_gateway_result`` is the only place a payment's settlement status
    changes. Both the client verify path and the webhook path call it, in
    either order and any number of times; each transition is a
    compare-and-set on the current status so at most one caller wins.
    """

    REFERENCE_ATTEMPTS = 5
    HISTORY_LIMIT = 100

    def __init__(
        self,
        db: Session,
        gateway: PaystackGateway,
        notifier: Optional[PaymentNotifier] = None
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier or PaymentNotifier()

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------
    def record_initialization(
        self,
        principal: AuthenticatedPrincipal,
        booking_id: str,
        amount: Optional[Decimal] = None,
        method: PaymentMethod = PaymentMethod.CARD
    ) -> Payment:
        """Create a pending payment with a fresh transaction reference"""

        booking = self.db.get(Booking, booking_id)
        if not booking or not principal.can_access(booking.user_id):
            raise NotFound("Booking not found")

        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidStateTransition(f"Booking cannot be paid for. Status: {booking.status}")

        if amount is None:
            amount = booking.total_price
        elif Decimal(amount) != Decimal(booking.total_price):
            raise ValidationError(
                f"Payment amount {amount} does not match booking total {booking.total_price}"
            )

        for _ in range(self.REFERENCE_ATTEMPTS):
            payment = Payment(
                id=str(uuid.uuid4()),
                transaction_reference=generate_transaction_reference(),
                booking_id=booking.id,
                user_id=booking.user_id,
                amount=amount,
                currency=booking.currency,
                gateway=PaystackGateway.name,
                payment_method=method.value,
                status=PaymentStatus.PENDING.value,
                initiated_at=datetime.now(timezone.utc),
            )
            self.db.add(payment)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning("Transaction reference collision, regenerating")
                continue

            logger.info("Recorded payment %s for booking %s", payment.transaction_reference, booking_id)
            return payment

        raise RuntimeError("Could not allocate a unique transaction reference")

    def initialize_payment(
        self,
        principal: AuthenticatedPrincipal,
        booking_id: str,
        method: PaymentMethod,
        email: str,
        amount: Optional[Decimal] = None,
        callback_url: Optional[str] = None
    ) -> Payment:
        """Record a payment and open a checkout session at the gateway"""

        payment = self.record_initialization(principal, booking_id, amount, method)
        reference = payment.transaction_reference
        callback_url = callback_url or f"{settings.payment_callback_base}/{reference}"

        try:
            initialization = self.gateway.initialize(
                payment.amount, payment.currency, email, callback_url, reference
            )
        except GatewayTimeout:
            # The gateway may or may not have opened the transaction
            logger.warning("Gateway timed out initializing %s; left pending", reference)
            raise
        except GatewayError as e:
            self._transition(
                reference,
                (PaymentStatus.PENDING,),
                status=PaymentStatus.FAILED.value,
                failed_at=datetime.now(timezone.utc),
                failure_reason=e.message,
            )
            self.db.commit()
            logger.warning("Payment %s failed to initialize: %s", reference, e.message)
            raise

        self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id)
            .values(
                authorization_url=initialization.authorization_url,
                access_code=initialization.access_code,
            )
            .execution_options(synchronize_session=False)
        )
        self._transition(reference, (PaymentStatus.PENDING,), status=PaymentStatus.PROCESSING.value)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def apply_gateway_result(
        self,
        reference: str,
        gateway_status: GatewayStatus,
        gateway_payload: Optional[Dict[str, Any]] = None
    ) -> ReconciliationResult:
        """Move a payment to the status the gateway reports.

        Settled payments (success, refunded, cancelled) never change here, so
        a stale or duplicated failure cannot undo a success. A late success
        may still supersede a recorded failure.
        """

        gateway_status = GatewayStatus(gateway_status)
        payload = gateway_payload or {}

        payment = self._get_by_reference(reference)
        if payment is None:
            raise UnknownReference(f"No payment with reference {reference}")

        if PaymentStatus(payment.status) in SETTLED_PAYMENT_STATUSES:
            logger.info("Payment %s already %s; ignoring %s", reference, payment.status, gateway_status.value)
            return ReconciliationResult(payment, False)

        if gateway_status in (GatewayStatus.PENDING, GatewayStatus.UNKNOWN):
            return ReconciliationResult(payment, False)

        now = datetime.now(timezone.utc)

        if gateway_status == GatewayStatus.SUCCESS:
            self._check_settlement_amount(payment, payload)
            gateway_reference = payload.get("id") or payload.get("reference")
            transitioned = self._transition(
                reference,
                OPEN_PAYMENT_STATUSES + (PaymentStatus.FAILED,),
                status=PaymentStatus.SUCCESS.value,
                completed_at=now,
                failure_reason=None,
                gateway_reference=str(gateway_reference) if gateway_reference is not None else payment.gateway_reference,
                gateway_response=payload,
            )
        else:
            transitioned = self._transition(
                reference,
                OPEN_PAYMENT_STATUSES,
                status=PaymentStatus.FAILED.value,
                failed_at=now,
                failure_reason=payload.get("gateway_response") or payload.get("message") or "Payment failed at gateway",
                gateway_response=payload,
            )

        self.db.commit()
        self.db.refresh(payment)

        if not transitioned:
            return ReconciliationResult(payment, False)

        logger.info("Payment %s is now %s", reference, payment.status)

        if payment.status == PaymentStatus.SUCCESS.value:
            self._notify_once(payment)

        return ReconciliationResult(payment, True)

    def verify_payment(
        self,
        principal: AuthenticatedPrincipal,
        reference: str
    ) -> Tuple[Payment, Optional[GatewayStatus]]:
        """Reconcile a payment with the gateway on the client's request.

        Returns the payment and the status the gateway reported, or ``None``
        when the payment was already settled and the gateway was not asked.
        """

        payment = self._get_by_reference(reference)
        if payment is None or not principal.can_access(payment.user_id):
            raise NotFound("Payment not found")

        if PaymentStatus(payment.status) in SETTLED_PAYMENT_STATUSES:
            return payment, None

        verification = self.gateway.verify(reference)

        if verification.status in (GatewayStatus.SUCCESS, GatewayStatus.FAILED):
            payment = self.apply_gateway_result(reference, verification.status, verification.payload).payment

        return payment, verification.status

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------
    def refund(self, principal: AuthenticatedPrincipal, payment_id: str, reason: str) -> Payment:
        """Refund a successful payment once the gateway confirms it"""

        payment = self.db.get(Payment, payment_id)
        if not payment or not principal.can_access(payment.user_id):
            raise NotFound("Payment not found")

        if payment.status != PaymentStatus.SUCCESS.value:
            raise InvalidStateTransition(
                f"Only successful payments can be refunded. Status: {payment.status}"
            )

        claimed = self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PaymentStatus.SUCCESS.value,
                or_(
                    Payment.refund_status.is_(None),
                    Payment.refund_status.in_([RefundStatus.FAILED.value, RefundStatus.PENDING.value]),
                ),
            )
            .values(refund_status=RefundStatus.PROCESSING.value, refund_reason=reason)
            .execution_options(synchronize_session=False)
        ).rowcount

        if not claimed:
            self.db.rollback()
            raise InvalidStateTransition("A refund is already in progress for this payment")

        self.db.commit()
        logger.info("Refund requested for payment %s", payment.transaction_reference)

        try:
            result = self.gateway.refund(
                payment.gateway_reference or payment.transaction_reference,
                payment.amount
            )
        except GatewayTimeout:
            # Outcome unknown; a retry is allowed and the gateway dedupes it
            self._set_refund_status(payment_id, RefundStatus.PENDING)
            raise
        except GatewayError:
            self._set_refund_status(payment_id, RefundStatus.FAILED)
            raise

        self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PaymentStatus.SUCCESS.value,
                Payment.refund_status == RefundStatus.PROCESSING.value,
            )
            .values(
                status=PaymentStatus.REFUNDED.value,
                refund_status=RefundStatus.COMPLETED.value,
                refund_reference=result.reference,
                refund_amount=payment.amount,
                refunded_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(payment)

        logger.info("Payment %s refunded (%s)", payment.transaction_reference, result.reference)
        return payment

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_payments(self, principal: AuthenticatedPrincipal) -> List[Payment]:
        """Get payment history for the principal, newest first"""
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == principal.id)
            .order_by(Payment.initiated_at.desc())
            .limit(self.HISTORY_LIMIT)
            .all()
        )

    def _get_by_reference(self, reference: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.transaction_reference == reference).first()

    def _transition(self, reference: str, from_statuses: Iterable[PaymentStatus], **values) -> bool:
        """Compare-and-set: apply ``values`` only while status is in ``from_statuses``"""
        updated = self.db.execute(
            update(Payment)
            .where(
                Payment.transaction_reference == reference,
                Payment.status.in_([s.value for s in from_statuses]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount
        return updated == 1

    def _check_settlement_amount(self, payment: Payment, payload: Dict[str, Any]) -> None:
        if payload.get("amount") is not None:
            settled = from_minor_units(payload["amount"])
            if settled != Decimal(payment.amount):
                logger.warning(
                    "Payment %s settled %s but %s was expected",
                    payment.transaction_reference, settled, payment.amount
                )
                raise PaymentAmountMismatch(
                    f"Gateway settled {settled} for payment of {payment.amount}"
                )

        currency = payload.get("currency")
        if currency and str(currency).upper() != payment.currency:
            raise PaymentAmountMismatch(
                f"Gateway settled in {currency} for payment in {payment.currency}"
            )

    def _notify_once(self, payment: Payment) -> bool:
        claimed = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.notification_attempted_at.is_(None))
            .values(notification_attempted_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        ).rowcount
        self.db.commit()

        if not claimed:
            return False

        try:
            self.notifier.notify_payment_success(payment)
        except Exception as e:
            logger.exception("Notification for payment %s failed", payment.transaction_reference)
            self.db.execute(
                update(Payment)
                .where(Payment.id == payment.id)
                .values(notification_error=str(e))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

        return True

    def _set_refund_status(self, payment_id: str, refund_status: RefundStatus) -> None:
        self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.refund_status == RefundStatus.PROCESSING.value)
            .values(refund_status=refund_status.value)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
