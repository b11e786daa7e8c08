"""
Fleet & Seat Inventory Module

Vehicle registration and the seat inventory ledger that every booking goes
through.

Key Components:
- inventory.py: SeatInventoryLedger, atomic reserve/release of seats
- service.py: vehicle registration, seat layout generation, status changes,
  maintenance logging
- router.py: FastAPI endpoints for vehicles
- schemas.py: Pydantic models and fleet enumerations
"""

from .router import router
from .inventory import SeatInventoryLedger
from .service import VehicleService, generate_seats
from .schemas import Currency, MaintenanceCreate, VehicleCreate, VehicleResponse, VehicleStatus, SeatType

__all__ = [
    "router",
    "SeatInventoryLedger",
    "VehicleService",
    "generate_seats",
    "Currency",
    "MaintenanceCreate",
    "VehicleCreate",
    "VehicleResponse",
    "VehicleStatus",
    "SeatType",
]
