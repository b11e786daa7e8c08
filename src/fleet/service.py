import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from src.auth.schemas import AuthenticatedPrincipal
from src.config import settings
from src.exceptions import NotFound, ValidationError
from src.fleet.inventory import SeatInventoryLedger
from src.fleet.schemas import (
    MaintenanceCreate, MaintenanceRecordResponse, SeatResponse, SeatType,
    VehicleCreate, VehicleResponse, VehicleStatus
)
from src.models import MaintenanceRecord, Seat, Vehicle

logger = logging.getLogger(__name__)

SEATS_PER_ROW = 4
SEAT_TAGS = ["A", "B", "C", "D"]


def generate_seats(vehicle_id: str, capacity: int, seat_type: SeatType = SeatType.REGULAR) -> List[Seat]:
    """Lay out ``capacity`` seats four to a row (2 either side of the aisle).

    The last row holds the remainder, so a 10-seater ends with ``3A``/``3B``.
    """
    seats = []
    rows = -(-capacity // SEATS_PER_ROW)

    for row in range(rows):
        seats_in_row = capacity - row * SEATS_PER_ROW if row == rows - 1 else SEATS_PER_ROW
        for column in range(seats_in_row):
            seats.append(Seat(
                id=str(uuid.uuid4()),
                vehicle_id=vehicle_id,
                seat_number=f"{row + 1}{SEAT_TAGS[column]}",
                position=len(seats),
                seat_type=seat_type.value,
                is_available=True,
            ))

    return seats


class VehicleService:
    @staticmethod
    def register_vehicle(db: Session, principal: AuthenticatedPrincipal, data: VehicleCreate) -> Vehicle:
        """Register a vehicle for a company and generate its seats"""
        company_id = principal.id
        if data.company_id and data.company_id != principal.id:
            if not principal.is_admin:
                raise ValidationError("Cannot register vehicles for another company")
            company_id = data.company_id

        vehicle_id = str(uuid.uuid4())
        vehicle = Vehicle(
            id=vehicle_id,
            company_id=company_id,
            registration_number=data.registration_number,
            make=data.make,
            model=data.model,
            year=data.year,
            capacity=data.capacity,
            vehicle_type=data.vehicle_type.value,
            status=VehicleStatus.ACTIVE.value,
            price_per_seat=data.price_per_seat,
            currency=data.currency.value if data.currency else settings.DEFAULT_CURRENCY,
        )
        vehicle.seats = generate_seats(vehicle_id, data.capacity, data.seat_type)

        try:
            db.add(vehicle)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError("Registration number already exists")

        db.refresh(vehicle)
        logger.info("Registered vehicle %s for company %s with %s seats", vehicle.id, company_id, data.capacity)
        return vehicle

    @staticmethod
    def get_vehicle(db: Session, vehicle_id: str) -> Optional[Vehicle]:
        """Get vehicle by ID with its seats"""
        return db.query(Vehicle).options(
            selectinload(Vehicle.seats)
        ).filter(Vehicle.id == vehicle_id).first()

    @staticmethod
    def update_status(
        db: Session,
        principal: AuthenticatedPrincipal,
        vehicle_id: str,
        status: VehicleStatus
    ) -> Vehicle:
        """Activate, deactivate or flag a vehicle for maintenance"""
        vehicle = VehicleService.get_vehicle(db, vehicle_id)
        if not vehicle or not principal.can_access(vehicle.company_id):
            raise NotFound("Vehicle not found")

        vehicle.status = status.value
        db.commit()
        db.refresh(vehicle)
        logger.info("Vehicle %s status set to %s", vehicle_id, status.value)
        return vehicle

    @staticmethod
    def log_maintenance(
        db: Session,
        principal: AuthenticatedPrincipal,
        vehicle_id: str,
        data: MaintenanceCreate
    ) -> Vehicle:
        """Record a maintenance job and take the vehicle out of service"""
        vehicle = VehicleService.get_vehicle(db, vehicle_id)
        if not vehicle or not principal.can_access(vehicle.company_id):
            raise NotFound("Vehicle not found")

        start_date = data.start_date or datetime.now(timezone.utc)
        vehicle.maintenance_records.append(MaintenanceRecord(
            id=str(uuid.uuid4()),
            description=data.description,
            start_date=start_date,
            expected_completion=data.expected_completion,
            cost=data.cost,
            performed_by=data.performed_by,
        ))
        vehicle.status = VehicleStatus.UNDER_MAINTENANCE.value
        vehicle.last_maintenance_date = start_date

        db.commit()
        db.refresh(vehicle)
        logger.info("Maintenance logged for vehicle %s: %s", vehicle_id, data.description)
        return vehicle

    @staticmethod
    def to_response(db: Session, vehicle: Vehicle) -> VehicleResponse:
        return VehicleResponse(
            id=vehicle.id,
            company_id=vehicle.company_id,
            registration_number=vehicle.registration_number,
            make=vehicle.make,
            model=vehicle.model,
            year=vehicle.year,
            capacity=vehicle.capacity,
            vehicle_type=vehicle.vehicle_type,
            status=vehicle.status,
            price_per_seat=vehicle.price_per_seat,
            currency=vehicle.currency,
            available_seats=SeatInventoryLedger(db).available_seats(vehicle.id),
            seats=[SeatResponse.model_validate(seat) for seat in vehicle.seats],
            last_maintenance_date=vehicle.last_maintenance_date,
            maintenance_history=[
                MaintenanceRecordResponse.model_validate(record) for record in vehicle.maintenance_records
            ],
            created_at=vehicle.created_at,
        )
