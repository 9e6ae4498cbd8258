from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base
from .dates import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="guest")  # admin, director, guest
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    rooms = relationship("Room", back_populates="location")


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False)
    # rates are stored in minor currency units (cents)
    flat_rate = Column(Integer, nullable=True)
    hourly_rate = Column(Integer, nullable=True)
    attendee_rate = Column(Integer, nullable=True)
    facilities = Column(JSON, nullable=False, default=list)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    location = relationship("Location", back_populates="rooms")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    # ordered list of room bookings: room_id, room_name, cost_type, cost, requested_facilities
    rooms = Column(JSON, nullable=False, default=list)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    order_number = Column(Integer, nullable=False, unique=True)
    purpose = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=True)
    customer_organization = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    membership_number = Column(String, nullable=True)
    attendees_count = Column(Integer, nullable=False, default=1)
    agreed_cost = Column(Integer, nullable=False, default=0)
    final_revenue = Column(Integer, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class OrderNumberCounter(Base):
    """Single-row high-water mark so order numbers are never handed out twice."""

    __tablename__ = "order_number_counter"

    id = Column(Integer, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    # no FK constraint: rows outlive the appointment they describe
    appointment_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String, nullable=False)
    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    changed_fields = Column(JSON, nullable=False, default=list)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User")
