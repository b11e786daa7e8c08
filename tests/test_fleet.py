from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from src.auth.schemas import AuthenticatedPrincipal, Role
from src.exceptions import NotFound, ValidationError
from src.fleet.inventory import SeatInventoryLedger
from src.fleet.schemas import Currency, MaintenanceCreate, VehicleCreate
from src.fleet.service import VehicleService
from tests.conftest import auth_headers

VEHICLE = {
    "registration_number": "KJA-101-AB",
    "make": "Toyota",
    "model": "Coaster",
    "capacity": 8,
    "price_per_seat": "3000.00",
}


def test_vehicle_currency_defaults_and_normalizes(db, company):
    default = VehicleService.register_vehicle(db, company, VehicleCreate(**VEHICLE))
    dollars = VehicleService.register_vehicle(
        db, company, VehicleCreate(**{**VEHICLE, "registration_number": "KJA-102-AB", "currency": "usd"})
    )

    assert default.currency == "NGN"
    assert dollars.currency == Currency.USD.value


def test_vehicle_with_unsupported_currency_is_rejected():
    with pytest.raises(SchemaValidationError):
        VehicleCreate(**{**VEHICLE, "currency": "XYZ"})


def test_vehicle_api_rejects_unsupported_currency(client, company):
    response = client.post("/api/v1/vehicles", json={**VEHICLE, "currency": "XYZ"}, headers=auth_headers(company))
    assert response.status_code == 422


def test_duplicate_registration_is_rejected(db, company):
    VehicleService.register_vehicle(db, company, VehicleCreate(**VEHICLE))
    with pytest.raises(ValidationError):
        VehicleService.register_vehicle(db, company, VehicleCreate(**{**VEHICLE, "registration_number": "kja-101-ab"}))


def test_log_maintenance_records_job_and_stops_bookings(db, make_vehicle, company, booking_service, rider):
    vehicle = make_vehicle(capacity=4)
    start = datetime(2026, 10, 20, 8, 0, tzinfo=timezone.utc)

    updated = VehicleService.log_maintenance(db, company, vehicle.id, MaintenanceCreate(
        description="Brake pads replaced",
        start_date=start,
        expected_completion=start + timedelta(days=2),
        cost=Decimal("45000.00"),
        performed_by="Ojota Motors",
    ))

    assert updated.status == "under_maintenance"
    assert len(updated.maintenance_records) == 1
    assert updated.maintenance_records[0].description == "Brake pads replaced"
    assert updated.last_maintenance_date is not None

    with pytest.raises(ValidationError):
        booking_service.create_booking(rider, vehicle.id, 1)
    assert SeatInventoryLedger(db).available_seats(vehicle.id) == 4


def test_log_maintenance_on_another_companys_vehicle(db, make_vehicle):
    vehicle = make_vehicle()
    stranger = AuthenticatedPrincipal(id="company-2", role=Role.COMPANY)

    with pytest.raises(NotFound):
        VehicleService.log_maintenance(db, stranger, vehicle.id, MaintenanceCreate(description="Oil change"))


def test_maintenance_cannot_finish_before_it_starts():
    start = datetime(2026, 10, 20, tzinfo=timezone.utc)
    with pytest.raises(SchemaValidationError):
        MaintenanceCreate(description="Tyres", start_date=start, expected_completion=start - timedelta(hours=1))


def test_maintenance_api(client, make_vehicle, company, rider):
    vehicle = make_vehicle()

    response = client.post(
        f"/api/v1/vehicles/{vehicle.id}/maintenance",
        json={"description": "Engine service", "cost": "12000.00"},
        headers=auth_headers(company)
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "under_maintenance"
    assert [record["description"] for record in body["maintenance_history"]] == ["Engine service"]

    response = client.post(
        f"/api/v1/vehicles/{vehicle.id}/maintenance",
        json={"description": "Engine service"},
        headers=auth_headers(rider)
    )
    assert response.status_code == 403
