import logging
import threading
import uuid
import weakref
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from src.exceptions import InsufficientInventory, NotFound, ValidationError
from src.fleet.schemas import ReservationStatus, VehicleStatus
from src.models import Seat, SeatReservation, Vehicle

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
# Entries disappear once no caller holds the lock
_vehicle_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()


def _vehicle_lock(vehicle_id: str) -> threading.Lock:
    with _locks_guard:
        lock = _vehicle_locks.get(vehicle_id)
        if lock is None:
            lock = _vehicle_locks[vehicle_id] = threading.Lock()
        return lock


class SeatInventoryLedger:
    """Authoritative source of seat availability per vehicle.

    Availability is never stored as a counter: it is the number of Seat rows
    with ``is_available`` set. A reservation flips a batch of seats with a
    conditional UPDATE and links them to a SeatReservation handle; release
    flips the handle from held to released exactly once.

    Callers in this process are serialized per vehicle by a lock, and
    separate processes by ``SELECT ... FOR UPDATE`` on the vehicle row plus
    the compare-and-set on each seat.
    """

    RESERVE_ATTEMPTS = 3

    def __init__(self, db: Session):
        self.db = db

    def available_seats(self, vehicle_id: str) -> int:
        """Count currently available seats for a vehicle"""
        return self.db.execute(
            select(func.count(Seat.id)).where(
                Seat.vehicle_id == vehicle_id,
                Seat.is_available.is_(True),
            )
        ).scalar_one()

    def reserve_seats(self, vehicle_id: str, count: int) -> SeatReservation:
        """Atomically take ``count`` seats, or raise InsufficientInventory"""

        if count <= 0:
            raise ValidationError("Seat count must be greater than zero")

        with _vehicle_lock(vehicle_id):
            for attempt in range(1, self.RESERVE_ATTEMPTS + 1):
                try:
                    reservation = self._try_reserve(vehicle_id, count)
                except Exception:
                    self.db.rollback()
                    raise

                if reservation is not None:
                    self.db.commit()
                    logger.info(
                        "Reserved %s seat(s) on vehicle %s (reservation %s)",
                        count, vehicle_id, reservation.id
                    )
                    return reservation

                # Another writer took some of the candidate seats first
                self.db.rollback()
                logger.debug("Seat reservation race on vehicle %s, attempt %s", vehicle_id, attempt)

        raise InsufficientInventory(f"Could not reserve {count} seat(s) on vehicle {vehicle_id}")

    def release_seats(self, vehicle_id: str, reservation_id: str) -> int:
        """Return the seats held by a reservation handle.

        Returns the number of seats made available again; releasing a handle
        that was already released returns 0 and changes nothing.
        """

        with _vehicle_lock(vehicle_id):
            try:
                claimed = self.db.execute(
                    update(SeatReservation)
                    .where(
                        SeatReservation.id == reservation_id,
                        SeatReservation.vehicle_id == vehicle_id,
                        SeatReservation.status == ReservationStatus.HELD.value,
                    )
                    .values(
                        status=ReservationStatus.RELEASED.value,
                        released_at=datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount

                if claimed == 0:
                    reservation = self.db.get(SeatReservation, reservation_id)
                    if reservation is None or reservation.vehicle_id != vehicle_id:
                        raise NotFound("Reservation not found")
                    self.db.commit()
                    logger.info("Reservation %s already released", reservation_id)
                    return 0

                freed = self.db.execute(
                    update(Seat)
                    .where(Seat.reservation_id == reservation_id)
                    .values(is_available=True, reservation_id=None)
                    .execution_options(synchronize_session=False)
                ).rowcount
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("Released %s seat(s) on vehicle %s (reservation %s)", freed, vehicle_id, reservation_id)
        return freed

    def _try_reserve(self, vehicle_id: str, count: int):
        vehicle = self.db.execute(
            select(Vehicle).where(Vehicle.id == vehicle_id).with_for_update()
        ).scalars().first()

        if vehicle is None:
            raise NotFound("Vehicle not found")

        if vehicle.status != VehicleStatus.ACTIVE.value:
            raise ValidationError(f"Vehicle is not accepting bookings. Status: {vehicle.status}")

        seat_ids = self.db.execute(
            select(Seat.id)
            .where(Seat.vehicle_id == vehicle_id, Seat.is_available.is_(True))
            .order_by(Seat.position)
            .limit(count)
        ).scalars().all()

        if len(seat_ids) < count:
            raise InsufficientInventory(
                f"Requested {count} seat(s) but only {len(seat_ids)} available"
            )

        reservation = SeatReservation(
            id=str(uuid.uuid4()),
            vehicle_id=vehicle_id,
            seat_count=count,
            status=ReservationStatus.HELD.value,
        )
        self.db.add(reservation)
        self.db.flush()

        taken = self.db.execute(
            update(Seat)
            .where(Seat.id.in_(seat_ids), Seat.is_available.is_(True))
            .values(is_available=False, reservation_id=reservation.id)
            .execution_options(synchronize_session=False)
        ).rowcount

        if taken != count:
            return None

        return reservation
