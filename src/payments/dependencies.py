from functools import lru_cache

from src.config import settings
from src.payments.gateway import PaystackGateway
from src.payments.notifications import PaymentNotifier

@lru_cache()
def get_payment_gateway() -> PaystackGateway:
    """Shared gateway client (keeps one connection pool per process)"""
    return PaystackGateway(
        secret_key=settings.PAYSTACK_SECRET_KEY,
        base_url=settings.PAYSTACK_BASE_URL,
        timeout=settings.PAYSTACK_TIMEOUT_SECONDS,
    )

def get_payment_notifier() -> PaymentNotifier:
    return PaymentNotifier()
