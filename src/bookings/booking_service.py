import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.auth.schemas import AuthenticatedPrincipal
from src.bookings.schemas import BookingStatus
from src.config import settings
from src.exceptions import (
    AlreadyCancelled, InsufficientInventory, InvalidStateTransition, NotFound,
    TransportError, ValidationError
)
from src.fleet.inventory import SeatInventoryLedger
from src.models import Booking, Vehicle

logger = logging.getLogger(__name__)

class BookingService:
    """Service for booking seats against the inventory ledger.

    A booking is written as ``pending`` before any seat is touched, then
    becomes ``confirmed`` once the ledger grants the reservation, or
    ``rejected`` (kept for audit) when it does not.
    """

    REFERENCE_ATTEMPTS = 5

    def __init__(self, db: Session, ledger: Optional[SeatInventoryLedger] = None):
        self.db = db
        self.ledger = ledger or SeatInventoryLedger(db)

    def create_booking(
        self,
        principal: AuthenticatedPrincipal,
        vehicle_id: str,
        seat_count: int
    ) -> Booking:
        """Reserve seats on a vehicle and confirm the booking"""

        if seat_count <= 0:
            raise ValidationError("Seat count must be greater than zero")

        if seat_count > settings.MAX_SEATS_PER_BOOKING:
            raise ValidationError(f"Maximum {settings.MAX_SEATS_PER_BOOKING} seats per booking")

        vehicle = self.db.get(Vehicle, vehicle_id)
        if not vehicle:
            raise NotFound("Vehicle not found")

        booking = self._persist_pending(principal, vehicle, seat_count)

        try:
            reservation = self.ledger.reserve_seats(vehicle_id, seat_count)
        except InsufficientInventory as e:
            self._reject(booking, e.message)
            e.booking_id = booking.id
            raise
        except TransportError as e:
            self._reject(booking, e.message)
            raise

        booking.status = BookingStatus.CONFIRMED.value
        booking.reservation_id = reservation.id
        booking.confirmed_at = datetime.now(timezone.utc)

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.ledger.release_seats(vehicle_id, reservation.id)
            raise

        self.db.refresh(booking)
        logger.info(
            "Booking %s confirmed: %s seat(s) on vehicle %s for user %s",
            booking.booking_reference, seat_count, vehicle_id, principal.id
        )
        return booking

    def cancel_booking(
        self,
        principal: AuthenticatedPrincipal,
        booking_id: str,
        reason: Optional[str] = None
    ) -> Tuple[Booking, int]:
        """Cancel a confirmed booking and return its seats exactly once"""

        booking = self.get_booking(principal, booking_id)

        if booking.status == BookingStatus.CANCELLED.value:
            # A retried cancel completes a release interrupted earlier; the
            # handle makes this a no-op when the seats are already back
            if booking.reservation_id:
                self.ledger.release_seats(booking.vehicle_id, booking.reservation_id)
            raise AlreadyCancelled("Booking is already cancelled")

        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidStateTransition(f"Booking cannot be cancelled. Status: {booking.status}")

        updated = self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
            .values(
                status=BookingStatus.CANCELLED.value,
                cancelled_at=datetime.now(timezone.utc),
                cancellation_reason=reason,
            )
            .execution_options(synchronize_session=False)
        ).rowcount

        if updated == 0:
            self.db.rollback()
            raise AlreadyCancelled("Booking is already cancelled")

        self.db.commit()

        released = 0
        if booking.reservation_id:
            released = self.ledger.release_seats(booking.vehicle_id, booking.reservation_id)

        self.db.refresh(booking)
        logger.info("Booking %s cancelled, %s seat(s) released", booking.booking_reference, released)
        return booking, released

    def get_booking(self, principal: AuthenticatedPrincipal, booking_id: str) -> Booking:
        """Get a booking visible to the principal"""
        booking = self.db.get(Booking, booking_id)
        if not booking or not principal.can_access(booking.user_id):
            raise NotFound("Booking not found")
        return booking

    def list_bookings(self, principal: AuthenticatedPrincipal, limit: int = 50) -> List[Booking]:
        """Get all bookings for the principal, newest first"""
        return (
            self.db.query(Booking)
            .filter(Booking.user_id == principal.id)
            .order_by(Booking.created_at.desc())
            .limit(limit)
            .all()
        )

    def _persist_pending(self, principal: AuthenticatedPrincipal, vehicle: Vehicle, seat_count: int) -> Booking:
        for _ in range(self.REFERENCE_ATTEMPTS):
            booking = Booking(
                id=str(uuid.uuid4()),
                booking_reference=self._generate_booking_reference(),
                user_id=principal.id,
                vehicle_id=vehicle.id,
                seat_count=seat_count,
                price_per_seat=vehicle.price_per_seat,
                total_price=vehicle.price_per_seat * seat_count,
                currency=vehicle.currency,
                status=BookingStatus.PENDING.value,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(booking)
            try:
                self.db.commit()
                return booking
            except IntegrityError:
                self.db.rollback()

        raise RuntimeError("Could not allocate a unique booking reference")

    def _reject(self, booking: Booking, reason: str) -> None:
        booking.status = BookingStatus.REJECTED.value
        booking.rejection_reason = reason
        self.db.commit()
        logger.warning("Booking %s rejected: %s", booking.booking_reference, reason)

    def _generate_booking_reference(self) -> str:
        """Generate human-readable booking reference"""
        return f"TRK{secrets.token_hex(4).upper()}"
