from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class AppointmentStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    finished = "finished"


class CostType(str, Enum):
    flat = "flat"
    hourly = "hourly"
    per_attendee = "per_attendee"


# ----- Users -----
class UserBase(BaseModel):
    name: str
    username: str
    email: EmailStr
    role: str = "guest"   # admin, director, guest


class UserCreate(UserBase):
    password: str


class UserOut(UserBase):
    id: int

    class Config:
        from_attributes = True


# ----- Locations -----
class LocationBase(BaseModel):
    name: str
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class LocationCreate(LocationBase):
    pass


class LocationUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class LocationOut(LocationBase):
    id: int

    class Config:
        from_attributes = True


# ----- Rooms -----
class RoomBase(BaseModel):
    name: str
    location_id: int
    description: Optional[str] = None
    capacity: int = Field(..., ge=0)
    flat_rate: Optional[int] = Field(None, ge=0)
    hourly_rate: Optional[int] = Field(None, ge=0)
    attendee_rate: Optional[int] = Field(None, ge=0)
    facilities: List[str] = []
    active: bool = True


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = None
    location_id: Optional[int] = None
    description: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=0)
    flat_rate: Optional[int] = Field(None, ge=0)
    hourly_rate: Optional[int] = Field(None, ge=0)
    attendee_rate: Optional[int] = Field(None, ge=0)
    facilities: Optional[List[str]] = None
    active: Optional[bool] = None


class RoomOut(RoomBase):
    id: int

    class Config:
        from_attributes = True


# ----- Appointments -----
class RoomBooking(BaseModel):
    """Per-room slice of an appointment. ``cost`` is in minor currency units."""

    room_id: int
    room_name: str = ""
    cost_type: CostType = CostType.flat
    cost: int = Field(0, ge=0)
    requested_facilities: List[str] = []

    @field_validator("requested_facilities")
    @classmethod
    def _unique_facilities(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class RoomBookingIn(BaseModel):
    room_id: int
    room_name: Optional[str] = None
    cost_type: CostType = CostType.flat
    # quoted from the room's rates when omitted
    cost: Optional[int] = Field(None, ge=0)
    requested_facilities: List[str] = []


class AppointmentCreate(BaseModel):
    title: str
    rooms: List[RoomBookingIn] = Field(..., min_length=1)
    # parsed by the repository so a bad value is reported as a 400 with its field
    start_time: Any = None
    end_time: Any = None
    status: AppointmentStatus = AppointmentStatus.pending
    purpose: Optional[str] = None
    description: Optional[str] = None
    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    customer_organization: Optional[str] = None
    notes: Optional[str] = None
    membership_number: Optional[str] = None
    attendees_count: int = Field(1, ge=0)
    agreed_cost: Optional[int] = Field(None, ge=0)


class AppointmentUpdate(BaseModel):
    title: Optional[str] = None
    rooms: Optional[List[RoomBookingIn]] = Field(None, min_length=1)
    # unparsable values keep the stored date instead of failing the update
    start_time: Any = None
    end_time: Any = None
    status: Optional[AppointmentStatus] = None
    purpose: Optional[str] = None
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    customer_organization: Optional[str] = None
    notes: Optional[str] = None
    membership_number: Optional[str] = None
    attendees_count: Optional[int] = Field(None, ge=0)
    agreed_cost: Optional[int] = Field(None, ge=0)
    final_revenue: Optional[int] = Field(None, ge=0)
    rejection_reason: Optional[str] = None


class FinishRequest(BaseModel):
    final_revenue: int = Field(..., ge=0)


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class Appointment(BaseModel):
    """Full appointment snapshot, the unit that is stored, diffed and audited."""

    id: int
    title: str
    user_id: int
    rooms: List[RoomBooking]
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    order_number: int
    purpose: Optional[str] = None
    description: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    customer_organization: Optional[str] = None
    notes: Optional[str] = None
    membership_number: Optional[str] = None
    attendees_count: int
    agreed_cost: int
    final_revenue: Optional[int] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RoomSlot(BaseModel):
    """Occupancy of a room as shown in availability views, without customer details."""

    id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus

    class Config:
        from_attributes = True


class AuditEntry(BaseModel):
    id: int
    appointment_id: int
    user_id: int
    user_name: Optional[str] = None
    action: str
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    changed_fields: List[str] = []
    # field -> {"old_value": ..., "new_value": ...}
    details: Dict[str, Dict[str, Any]] = {}
    created_at: datetime


# ----- Auth -----
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    username: Optional[str] = None
    role: Optional[str] = None


# ----- Stats -----
class BookingCounts(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0
    finished: int = 0


class RoomMetrics(BaseModel):
    id: int
    name: str
    location_id: int
    location_name: str
    active: bool
    monthly_hours: float
    monthly_revenue: int
    monthly_utilization: float
    ytd_hours: float
    ytd_revenue: int
    ytd_utilization: float
    monthly_bookings: int
    avg_revenue_per_booking: float
    bookings: BookingCounts


class LocationMetrics(BaseModel):
    id: int
    name: str
    room_count: int
    monthly_hours: float
    monthly_revenue: int
    monthly_utilization: float
    ytd_hours: float
    ytd_revenue: int
    ytd_utilization: float
    monthly_bookings: int
    avg_revenue_per_booking: float
    bookings: BookingCounts


class ReportWindowOut(BaseModel):
    start: datetime
    end: datetime
    days: float


class StatsOut(BaseModel):
    month: ReportWindowOut
    year_to_date: ReportWindowOut
    hours_per_day: float
    total_appointments: int
    active_rooms: int
    total_users: int
    status_counts: BookingCounts
    active_bookings: List[Appointment]
    pending_bookings: List[Appointment]
    room_metrics: List[RoomMetrics]
    location_metrics: List[LocationMetrics]
    total_monthly_hours: float
    total_monthly_revenue: int
    total_ytd_revenue: int
