from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

# Booking Request Models
class BookingCreateRequest(BaseModel):
    """Request to book seats on a vehicle"""
    vehicle_id: str
    seat_count: int = Field(..., gt=0, description="Number of seats to reserve")

class BookingCancellationRequest(BaseModel):
    """Request to cancel a booking"""
    cancellation_reason: Optional[str] = None

# Booking Response Models
class BookingResponse(BaseModel):
    """Booking details"""
    id: str
    booking_reference: str
    user_id: str
    vehicle_id: str
    seat_count: int
    price_per_seat: Decimal
    total_price: Decimal
    currency: str
    status: BookingStatus
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BookingCancellation(BaseModel):
    booking: BookingResponse
    seats_released: int
