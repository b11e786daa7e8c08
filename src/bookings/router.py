import logging

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from src.auth.dependencies import get_current_principal
from src.auth.schemas import AuthenticatedPrincipal
from src.database import get_db
from src.bookings.schemas import (
    BookingCreateRequest, BookingResponse, BookingCancellationRequest, BookingCancellation
)
from src.bookings.booking_service import BookingService
from src.exceptions import InsufficientInventory, TransportError, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()

# Booking Management Endpoints
@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Book seats on a vehicle"""

    booking_service = BookingService(db)

    try:
        return booking_service.create_booking(principal, request.vehicle_id, request.seat_count)
    except InsufficientInventory as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"message": e.message, "booking_id": e.booking_id}
        )
    except TransportError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to create booking")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create booking: {str(e)}"
        )

@router.get("", response_model=List[BookingResponse])
def list_bookings(
    limit: int = Query(50, ge=1, le=100, description="Maximum results"),
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get all bookings for the current user"""

    booking_service = BookingService(db)
    return booking_service.list_bookings(principal, limit=limit)

@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get booking details by ID"""

    booking_service = BookingService(db)

    try:
        return booking_service.get_booking(principal, booking_id)
    except TransportError as e:
        raise to_http_exception(e)

@router.post("/{booking_id}/cancel", response_model=BookingCancellation)
def cancel_booking(
    booking_id: str,
    cancellation: Optional[BookingCancellationRequest] = None,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Cancel a booking and release its seats"""

    booking_service = BookingService(db)
    reason = cancellation.cancellation_reason if cancellation else None

    try:
        booking, released = booking_service.cancel_booking(principal, booking_id, reason)
    except TransportError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to cancel booking %s", booking_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to cancel booking: {str(e)}"
        )

    return BookingCancellation(
        booking=BookingResponse.model_validate(booking),
        seats_released=released
    )
