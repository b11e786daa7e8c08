import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from typing import List, Optional

from src.auth.dependencies import get_current_principal
from src.auth.schemas import AuthenticatedPrincipal
from src.config import settings
from src.database import get_db
from src.exceptions import SignatureInvalid, TransportError, to_http_exception
from src.payments.dependencies import get_payment_gateway, get_payment_notifier
from src.payments.gateway import PaystackGateway
from src.payments.notifications import PaymentNotifier
from src.payments.payment_service import PaymentService
from src.payments.schemas import (
    PaymentInitializeRequest, PaymentInitializeResponse, PaymentResponse,
    PaymentVerifyResponse, RefundRecord, RefundRequest, RefundResponse, WebhookAck
)
from src.payments.webhook import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter()

def get_payment_service(
    db: Session = Depends(get_db),
    gateway: PaystackGateway = Depends(get_payment_gateway),
    notifier: PaymentNotifier = Depends(get_payment_notifier)
) -> PaymentService:
    return PaymentService(db, gateway, notifier)

@router.post("/initialize", response_model=PaymentInitializeResponse)
def initialize_payment(
    request: PaymentInitializeRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Initialize payment for a booking and return the checkout URL"""

    logger.info("Initializing payment for booking %s", request.booking_id)

    try:
        payment = payment_service.initialize_payment(
            principal,
            request.booking_id,
            request.payment_method,
            request.email,
            amount=request.amount
        )
    except TransportError as e:
        raise to_http_exception(e)

    return PaymentInitializeResponse(
        payment_id=payment.id,
        payment_url=payment.authorization_url,
        reference=payment.transaction_reference,
        access_code=payment.access_code
    )

@router.get("/verify/{reference}", response_model=PaymentVerifyResponse)
def verify_payment(
    reference: str,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Verify payment status with the gateway"""

    try:
        payment, gateway_status = payment_service.verify_payment(principal, reference)
    except TransportError as e:
        raise to_http_exception(e)

    return PaymentVerifyResponse(
        reference=reference,
        status=payment.status,
        gateway_status=gateway_status
    )

@router.post("/webhook", response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    gateway: PaystackGateway = Depends(get_payment_gateway),
    notifier: PaymentNotifier = Depends(get_payment_notifier)
):
    """Webhook endpoint for the payment gateway.

    Reads the raw body so the signature is checked against the exact bytes
    the gateway signed.
    """

    raw_body = await request.body()
    processor = WebhookProcessor(
        db,
        gateway,
        PaymentService(db, gateway, notifier),
        allow_unsigned=settings.WEBHOOK_ALLOW_UNSIGNED
    )

    try:
        outcome = await run_in_threadpool(processor.ingest, raw_body, x_paystack_signature)
    except SignatureInvalid as e:
        raise to_http_exception(e)

    return WebhookAck(outcome=outcome.value)

@router.get("", response_model=List[PaymentResponse])
def get_payment_history(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Get payment history for the current user"""
    return payment_service.list_payments(principal)

@router.post("/{payment_id}/refund", response_model=RefundResponse)
def request_refund(
    payment_id: str,
    request: RefundRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Refund a successful payment through the gateway"""

    logger.info("Refund requested for payment %s", payment_id)

    try:
        payment = payment_service.refund(principal, payment_id, request.reason)
    except TransportError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Refund for payment %s failed", payment_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process refund: {str(e)}"
        )

    return RefundResponse(
        payment_id=payment.id,
        status=payment.status,
        refund=RefundRecord.model_validate(payment)
    )
