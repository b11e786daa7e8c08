from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Numeric, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database import Base

# ================================
# Fleet & Seat Inventory
# ================================
class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, index=True)
    company_id = Column(String(36), nullable=False, index=True)
    registration_number = Column(String(32), unique=True, nullable=False)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer)
    capacity = Column(Integer, nullable=False)
    vehicle_type = Column(String(20), nullable=False, default="standard")
    status = Column(String(30), nullable=False, default="active", index=True)
    price_per_seat = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    last_maintenance_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    seats = relationship("Seat", back_populates="vehicle", order_by="Seat.position", cascade="all, delete-orphan")
    maintenance_records = relationship(
        "MaintenanceRecord", back_populates="vehicle", order_by="MaintenanceRecord.start_date", cascade="all, delete-orphan"
    )
    reservations = relationship("SeatReservation", back_populates="vehicle")
    bookings = relationship("Booking", back_populates="vehicle")

class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id = Column(String(36), primary_key=True, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    expected_completion = Column(DateTime(timezone=True))
    cost = Column(Numeric(10, 2))
    performed_by = Column(String(200))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    vehicle = relationship("Vehicle", back_populates="maintenance_records")

class Seat(Base):
    __tablename__ = "seats"

    id = Column(String(36), primary_key=True, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    seat_number = Column(String(8), nullable=False)
    position = Column(Integer, nullable=False)
    seat_type = Column(String(20), nullable=False, default="regular")
    is_available = Column(Boolean, nullable=False, default=True, index=True)
    reservation_id = Column(String(36), ForeignKey("seat_reservations.id"), nullable=True, index=True)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="seats")
    reservation = relationship("SeatReservation", back_populates="seats")

class SeatReservation(Base):
    __tablename__ = "seat_reservations"

    id = Column(String(36), primary_key=True, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    seat_count = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="held")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    released_at = Column(DateTime(timezone=True))

    # Relationships
    vehicle = relationship("Vehicle", back_populates="reservations")
    seats = relationship("Seat", back_populates="reservation")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, index=True)
    booking_reference = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    seat_count = Column(Integer, nullable=False)
    price_per_seat = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    reservation_id = Column(String(36), ForeignKey("seat_reservations.id"), nullable=True)
    rejection_reason = Column(Text)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    vehicle = relationship("Vehicle", back_populates="bookings")
    reservation = relationship("SeatReservation")
    payments = relationship("Payment", back_populates="booking")

# ================================
# Payments
# ================================
class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, index=True)
    transaction_reference = Column(String(40), unique=True, nullable=False, index=True)
    # Not unique: a booking may be settled by several payments
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="NGN")
    gateway = Column(String(20), nullable=False, default="paystack")
    payment_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)

    gateway_reference = Column(String(100), index=True)
    gateway_response = Column(JSON)
    authorization_url = Column(String(500))
    access_code = Column(String(100))

    initiated_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))
    failed_at = Column(DateTime(timezone=True))
    failure_reason = Column(Text)

    # Refund
    refund_reference = Column(String(100))
    refund_amount = Column(Numeric(10, 2))
    refund_reason = Column(Text)
    refund_status = Column(String(20))
    refunded_at = Column(DateTime(timezone=True))

    # Notification tracking
    notification_attempted_at = Column(DateTime(timezone=True))
    notification_error = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="payments")

class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, index=True)
    event_key = Column(String(64), unique=True, nullable=False, index=True)
    event_type = Column(String(100))
    reference = Column(String(40), index=True)
    outcome = Column(String(30), nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now())
