import threading

import pytest

from src.database import SessionLocal
from src.exceptions import InsufficientInventory, NotFound, ValidationError
from src.fleet.inventory import SeatInventoryLedger, _vehicle_locks
from src.fleet.schemas import SeatType, VehicleStatus
from src.fleet.service import VehicleService, generate_seats


def test_generate_seats_fills_rows_of_four_with_remainder_last():
    seats = generate_seats("v-1", 10)

    assert [s.seat_number for s in seats] == [
        "1A", "1B", "1C", "1D", "2A", "2B", "2C", "2D", "3A", "3B"
    ]
    assert [s.position for s in seats] == list(range(10))
    assert all(s.is_available for s in seats)


def test_generate_seats_uses_requested_type():
    seats = generate_seats("v-1", 3, SeatType.VIP)
    assert {s.seat_type for s in seats} == {"vip"}


def test_registered_vehicle_has_one_seat_per_unit_of_capacity(db, make_vehicle):
    vehicle = make_vehicle(capacity=14)

    assert len(vehicle.seats) == 14
    assert SeatInventoryLedger(db).available_seats(vehicle.id) == 14


def test_reserve_decrements_derived_availability(db, make_vehicle):
    vehicle = make_vehicle(capacity=4)
    ledger = SeatInventoryLedger(db)

    reservation = ledger.reserve_seats(vehicle.id, 3)

    assert reservation.seat_count == 3
    assert reservation.status == "held"
    assert ledger.available_seats(vehicle.id) == 1


def test_reserve_more_than_available_fails_without_side_effects(db, make_vehicle):
    vehicle = make_vehicle(capacity=2)
    ledger = SeatInventoryLedger(db)
    ledger.reserve_seats(vehicle.id, 1)

    with pytest.raises(InsufficientInventory):
        ledger.reserve_seats(vehicle.id, 2)

    assert ledger.available_seats(vehicle.id) == 1


def test_reserve_rejects_non_positive_count(db, make_vehicle):
    vehicle = make_vehicle()
    with pytest.raises(ValidationError):
        SeatInventoryLedger(db).reserve_seats(vehicle.id, 0)


def test_reserve_unknown_vehicle(db):
    with pytest.raises(NotFound):
        SeatInventoryLedger(db).reserve_seats("missing", 1)


def test_reserve_on_vehicle_under_maintenance(db, make_vehicle, company):
    vehicle = make_vehicle()
    VehicleService.update_status(db, company, vehicle.id, VehicleStatus.UNDER_MAINTENANCE)

    with pytest.raises(ValidationError):
        SeatInventoryLedger(db).reserve_seats(vehicle.id, 1)


def test_release_is_idempotent_per_reservation(db, make_vehicle):
    vehicle = make_vehicle(capacity=4)
    ledger = SeatInventoryLedger(db)
    reservation = ledger.reserve_seats(vehicle.id, 2)

    assert ledger.release_seats(vehicle.id, reservation.id) == 2
    assert ledger.release_seats(vehicle.id, reservation.id) == 0
    assert ledger.available_seats(vehicle.id) == 4


def test_release_unknown_reservation(db, make_vehicle):
    vehicle = make_vehicle()
    with pytest.raises(NotFound):
        SeatInventoryLedger(db).release_seats(vehicle.id, "no-such-handle")


def test_concurrent_reservations_never_exceed_capacity(make_vehicle):
    capacity = 5
    vehicle_id = make_vehicle(capacity=capacity).id
    attempts = 12
    granted = []
    rejected = []
    start = threading.Barrier(attempts)

    def attempt():
        session = SessionLocal()
        try:
            start.wait()
            SeatInventoryLedger(session).reserve_seats(vehicle_id, 1)
            granted.append(1)
        except InsufficientInventory:
            rejected.append(1)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(granted) == capacity
    assert len(rejected) == attempts - capacity

    session = SessionLocal()
    try:
        assert SeatInventoryLedger(session).available_seats(vehicle_id) == 0
    finally:
        session.close()


def test_vehicle_locks_are_dropped_when_idle(db, make_vehicle):
    vehicle = make_vehicle(capacity=2)
    ledger = SeatInventoryLedger(db)

    reservation = ledger.reserve_seats(vehicle.id, 1)
    ledger.release_seats(vehicle.id, reservation.id)

    assert vehicle.id not in _vehicle_locks
