from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

# Statuses a gateway result may still move away from
OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)
# Statuses no gateway result may change
SETTLED_PAYMENT_STATUSES = (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED, PaymentStatus.CANCELLED)

class PaymentMethod(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    USSD = "ussd"
    MOBILE_MONEY = "mobile_money"

class GatewayStatus(str, Enum):
    """Canonical status reported by the gateway for a reference"""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    UNKNOWN = "unknown"

class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

# Gateway results
class GatewayInitialization(BaseModel):
    authorization_url: str
    access_code: Optional[str] = None
    reference: str

class GatewayVerification(BaseModel):
    reference: str
    status: GatewayStatus
    payload: Dict[str, Any] = {}

class GatewayRefund(BaseModel):
    reference: Optional[str] = None
    status: str
    payload: Dict[str, Any] = {}

# Request Models
class PaymentInitializeRequest(BaseModel):
    booking_id: str
    payment_method: PaymentMethod = PaymentMethod.CARD
    amount: Optional[Decimal] = Field(None, gt=0)
    email: EmailStr

class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1)

# Response Models
class PaymentInitializeResponse(BaseModel):
    payment_id: str
    payment_url: str
    reference: str
    access_code: Optional[str] = None

class PaymentVerifyResponse(BaseModel):
    reference: str
    status: PaymentStatus
    gateway_status: Optional[GatewayStatus] = None  # None when already settled locally

class RefundRecord(BaseModel):
    refund_reference: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_reason: Optional[str] = None
    refund_status: Optional[RefundStatus] = None
    refunded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RefundResponse(BaseModel):
    payment_id: str
    status: PaymentStatus
    refund: RefundRecord

class PaymentResponse(BaseModel):
    """Payment record as exposed to its owner"""
    id: str
    booking_id: str
    transaction_reference: str
    amount: Decimal
    currency: str
    gateway: str
    payment_method: PaymentMethod
    status: PaymentStatus
    initiated_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refund_status: Optional[RefundStatus] = None
    refunded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class WebhookAck(BaseModel):
    status: str = "ok"
    outcome: str
