from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from src.auth.dependencies import get_current_principal, require_fleet_manager
from src.auth.schemas import AuthenticatedPrincipal
from src.database import get_db
from src.exceptions import TransportError, to_http_exception
from src.fleet.schemas import MaintenanceCreate, VehicleCreate, VehicleResponse, VehicleStatusUpdate
from src.fleet.service import VehicleService

router = APIRouter()

@router.post("", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
def register_vehicle(
    data: VehicleCreate,
    principal: AuthenticatedPrincipal = Depends(require_fleet_manager),
    db: Session = Depends(get_db)
):
    """Register a vehicle and generate its seats"""
    try:
        vehicle = VehicleService.register_vehicle(db, principal, data)
    except TransportError as e:
        raise to_http_exception(e)

    return VehicleService.to_response(db, vehicle)

@router.get("/{vehicle_id}", response_model=VehicleResponse)
def get_vehicle(
    vehicle_id: str,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get vehicle details with current seat availability"""
    vehicle = VehicleService.get_vehicle(db, vehicle_id)

    if not vehicle:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Vehicle not found"
        )

    return VehicleService.to_response(db, vehicle)

@router.patch("/{vehicle_id}/status", response_model=VehicleResponse)
def update_vehicle_status(
    vehicle_id: str,
    update: VehicleStatusUpdate,
    principal: AuthenticatedPrincipal = Depends(require_fleet_manager),
    db: Session = Depends(get_db)
):
    """Change a vehicle's operating status"""
    try:
        vehicle = VehicleService.update_status(db, principal, vehicle_id, update.status)
    except TransportError as e:
        raise to_http_exception(e)

    return VehicleService.to_response(db, vehicle)

@router.post("/{vehicle_id}/maintenance", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
def log_maintenance(
    vehicle_id: str,
    data: MaintenanceCreate,
    principal: AuthenticatedPrincipal = Depends(require_fleet_manager),
    db: Session = Depends(get_db)
):
    """Log maintenance on a vehicle and stop it taking bookings"""
    try:
        vehicle = VehicleService.log_maintenance(db, principal, vehicle_id, data)
    except TransportError as e:
        raise to_http_exception(e)

    return VehicleService.to_response(db, vehicle)
