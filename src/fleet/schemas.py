from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class VehicleStatus(str, Enum):
    """Vehicle status enumeration"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDER_MAINTENANCE = "under_maintenance"

class VehicleType(str, Enum):
    STANDARD = "standard"
    LUXURY = "luxury"
    MINI = "mini"

class SeatType(str, Enum):
    REGULAR = "regular"
    VIP = "vip"
    SLEEPER = "sleeper"

class Currency(str, Enum):
    """Currencies the payment gateway settles in"""
    NGN = "NGN"
    USD = "USD"
    GBP = "GBP"
    EUR = "EUR"

class ReservationStatus(str, Enum):
    HELD = "held"
    RELEASED = "released"

# Request Models
class VehicleCreate(BaseModel):
    """Register a vehicle; seats are generated from the capacity"""
    registration_number: str = Field(..., min_length=2, max_length=32)
    make: str
    model: str
    year: Optional[int] = Field(None, ge=2000)
    capacity: int = Field(..., ge=1, le=100)
    vehicle_type: VehicleType = VehicleType.STANDARD
    seat_type: SeatType = SeatType.REGULAR
    price_per_seat: Decimal = Field(..., gt=0)
    currency: Optional[Currency] = None
    company_id: Optional[str] = None  # Admins may register on behalf of a company

    @validator('registration_number')
    def normalize_registration(cls, v):
        return v.strip().upper()

    @validator('currency', pre=True)
    def normalize_currency(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

class VehicleStatusUpdate(BaseModel):
    status: VehicleStatus

class MaintenanceCreate(BaseModel):
    """Log a maintenance job; the vehicle stops taking bookings"""
    description: str = Field(..., min_length=1)
    start_date: Optional[datetime] = None
    expected_completion: Optional[datetime] = None
    cost: Optional[Decimal] = Field(None, ge=0)
    performed_by: Optional[str] = Field(None, max_length=200)

    @validator('expected_completion')
    def completion_after_start(cls, v, values):
        start = values.get('start_date')
        if v and start and (v.tzinfo is None) == (start.tzinfo is None) and v < start:
            raise ValueError('Expected completion cannot be before the start date')
        return v

# Response Models
class SeatResponse(BaseModel):
    seat_number: str
    seat_type: SeatType
    is_available: bool

    class Config:
        from_attributes = True

class MaintenanceRecordResponse(BaseModel):
    id: str
    description: str
    start_date: datetime
    expected_completion: Optional[datetime] = None
    cost: Optional[Decimal] = None
    performed_by: Optional[str] = None

    class Config:
        from_attributes = True

class VehicleResponse(BaseModel):
    """Vehicle with its derived seat availability"""
    id: str
    company_id: str
    registration_number: str
    make: str
    model: str
    year: Optional[int] = None
    capacity: int
    vehicle_type: VehicleType
    status: VehicleStatus
    price_per_seat: Decimal
    currency: str
    available_seats: int
    seats: List[SeatResponse]
    last_maintenance_date: Optional[datetime] = None
    maintenance_history: List[MaintenanceRecordResponse] = []
    created_at: Optional[datetime] = None
