"""
Payments Module

Payment initialization, verification, refunds and webhook ingestion against
the Paystack gateway.

Key Components:
- gateway.py: PaystackGateway, the HTTP boundary (initialize, verify, refund,
  webhook signatures)
- payment_service.py: PaymentService, reconciles gateway results with local
  payment records through a single compare-and-set transition
- webhook.py: WebhookProcessor, authenticates and dedupes gateway events
- notifications.py: hand-off to the email/SMS collaborator
- router.py: FastAPI endpoints
- schemas.py: Pydantic models and payment enumerations
"""

from .router import router
from .gateway import PaystackGateway
from .payment_service import PaymentService, ReconciliationResult, generate_transaction_reference
from .webhook import WebhookProcessor, WebhookOutcome
from .schemas import GatewayStatus, PaymentMethod, PaymentStatus, RefundStatus

__all__ = [
    "router",
    "PaystackGateway",
    "PaymentService",
    "ReconciliationResult",
    "generate_transaction_reference",
    "WebhookProcessor",
    "WebhookOutcome",
    "GatewayStatus",
    "PaymentMethod",
    "PaymentStatus",
    "RefundStatus",
]
