"""
Booking Module

Books seats on fleet vehicles. Every booking passes through the seat
inventory ledger:

- pending: written before any seat is touched
- confirmed: the ledger granted the reservation
- rejected: not enough seats (kept for audit)
- cancelled: seats returned to the ledger exactly once

Key Components:
- booking_service.py: booking workflow on top of SeatInventoryLedger
- router.py: FastAPI endpoints for creating, listing and cancelling bookings
- schemas.py: Pydantic models for booking data structures
"""

from .router import router
from .booking_service import BookingService
from .schemas import (
    BookingCreateRequest, BookingResponse, BookingCancellationRequest,
    BookingCancellation, BookingStatus
)

__all__ = [
    "router",
    "BookingService",
    "BookingCreateRequest",
    "BookingResponse",
    "BookingCancellationRequest",
    "BookingCancellation",
    "BookingStatus"
]
