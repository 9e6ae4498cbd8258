"""
Utilization and revenue reporting over time windows.

Hours are clipped to the window, revenue is counted for bookings that start
inside the window. Utilization is booked hours over nominally available
hours (``hours_per_day`` per room per day) and is not clamped: overlapping
bookings can push it past 100%.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List

from . import schemas
from .attribution import revenue_for_room

logger = logging.getLogger(__name__)

REPORTABLE_STATUSES = (schemas.AppointmentStatus.approved, schemas.AppointmentStatus.finished)


@dataclass(frozen=True)
class ReportWindow:
    """Half-open reporting interval ``[start, end)``."""

    start: datetime
    end: datetime

    @property
    def days(self) -> float:
        return max((self.end - self.start).total_seconds(), 0) / 86400

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def to_schema(self) -> schemas.ReportWindowOut:
        return schemas.ReportWindowOut(start=self.start, end=self.end, days=self.days)


def month_window(as_of: datetime) -> ReportWindow:
    start = datetime(as_of.year, as_of.month, 1)
    if as_of.month == 12:
        end = datetime(as_of.year + 1, 1, 1)
    else:
        end = datetime(as_of.year, as_of.month + 1, 1)
    return ReportWindow(start, end)


def year_to_date_window(as_of: datetime) -> ReportWindow:
    # [1 January, as_of)
    return ReportWindow(datetime(as_of.year, 1, 1), as_of)


def overlaps(start: datetime, end: datetime, window: ReportWindow) -> bool:
    return start <= window.end and end >= window.start


def clipped_hours(start: datetime, end: datetime, window: ReportWindow) -> float:
    """Hours of ``[start, end]`` that fall inside ``window``."""
    if not overlaps(start, end, window):
        return 0.0
    clipped_start = max(start, window.start)
    clipped_end = min(end, window.end)
    return max((clipped_end - clipped_start).total_seconds(), 0) / 3600


def utilization(hours: float, hours_per_day: float, window: ReportWindow, room_count: int = 1) -> float:
    available = hours_per_day * window.days * room_count
    if available <= 0:
        return 0.0
    return hours / available * 100


def count_by_status(appointments: Iterable[schemas.Appointment]) -> schemas.BookingCounts:
    counts = schemas.BookingCounts()
    for appointment in appointments:
        counts.total += 1
        status = schemas.AppointmentStatus(appointment.status).value
        setattr(counts, status, getattr(counts, status) + 1)
    return counts


def add_counts(parts: Iterable[schemas.BookingCounts]) -> schemas.BookingCounts:
    total = schemas.BookingCounts()
    for part in parts:
        for field in schemas.BookingCounts.model_fields:
            setattr(total, field, getattr(total, field) + getattr(part, field))
    return total


def _books_room(appointment: schemas.Appointment, room_id: int) -> bool:
    return any(booking.room_id == room_id for booking in appointment.rooms)


def room_metrics(
    room,
    location_name: str,
    appointments: List[schemas.Appointment],
    month: ReportWindow,
    ytd: ReportWindow,
    hours_per_day: float,
) -> schemas.RoomMetrics:
    """
    Metrics for one room. ``room`` is anything with ``id``, ``name``,
    ``location_id`` and ``active`` attributes.
    """
    room_appointments = [a for a in appointments if _books_room(a, room.id)]
    reportable = [a for a in room_appointments if a.status in REPORTABLE_STATUSES]

    monthly_hours = sum(clipped_hours(a.start_time, a.end_time, month) for a in reportable)
    ytd_hours = sum(clipped_hours(a.start_time, a.end_time, ytd) for a in reportable)

    monthly = [a for a in reportable if month.contains(a.start_time)]
    monthly_revenue = sum(revenue_for_room(a, room.id) for a in monthly)
    ytd_revenue = sum(revenue_for_room(a, room.id) for a in reportable if ytd.contains(a.start_time))

    return schemas.RoomMetrics(
        id=room.id,
        name=room.name,
        location_id=room.location_id,
        location_name=location_name,
        active=bool(room.active),
        monthly_hours=monthly_hours,
        monthly_revenue=monthly_revenue,
        monthly_utilization=utilization(monthly_hours, hours_per_day, month),
        ytd_hours=ytd_hours,
        ytd_revenue=ytd_revenue,
        ytd_utilization=utilization(ytd_hours, hours_per_day, ytd),
        monthly_bookings=len(monthly),
        avg_revenue_per_booking=monthly_revenue / len(monthly) if monthly else 0,
        bookings=count_by_status(room_appointments),
    )


def location_metrics(
    location,
    rooms: List[schemas.RoomMetrics],
    month: ReportWindow,
    ytd: ReportWindow,
    hours_per_day: float,
) -> schemas.LocationMetrics:
    """Aggregate the metrics of a location's active rooms."""
    active = [r for r in rooms if r.location_id == location.id and r.active]
    monthly_hours = sum(r.monthly_hours for r in active)
    ytd_hours = sum(r.ytd_hours for r in active)
    monthly_revenue = sum(r.monthly_revenue for r in active)
    monthly_bookings = sum(r.monthly_bookings for r in active)

    return schemas.LocationMetrics(
        id=location.id,
        name=location.name,
        room_count=len(active),
        monthly_hours=monthly_hours,
        monthly_revenue=monthly_revenue,
        monthly_utilization=utilization(monthly_hours, hours_per_day, month, len(active)),
        ytd_hours=ytd_hours,
        ytd_revenue=sum(r.ytd_revenue for r in active),
        ytd_utilization=utilization(ytd_hours, hours_per_day, ytd, len(active)),
        monthly_bookings=monthly_bookings,
        avg_revenue_per_booking=monthly_revenue / monthly_bookings if monthly_bookings else 0,
        bookings=add_counts(r.bookings for r in active),
    )


def build_stats(
    appointments: List[schemas.Appointment],
    rooms: list,
    locations: list,
    total_users: int,
    hours_per_day: float,
    as_of: datetime,
) -> schemas.StatsOut:
    """Assemble the full statistics report for the month containing ``as_of``."""
    month = month_window(as_of)
    ytd = year_to_date_window(as_of)
    location_names: Dict[int, str] = {location.id: location.name for location in locations}

    per_room = [
        room_metrics(
            room,
            location_names.get(room.location_id, "Unknown Location"),
            appointments,
            month,
            ytd,
            hours_per_day,
        )
        for room in rooms
    ]
    per_location = [location_metrics(location, per_room, month, ytd, hours_per_day) for location in locations]

    active_bookings = sorted(
        (a for a in appointments if a.status == schemas.AppointmentStatus.approved and a.end_time >= as_of),
        key=lambda a: a.start_time,
    )
    pending_bookings = sorted(
        (a for a in appointments if a.status == schemas.AppointmentStatus.pending),
        key=lambda a: a.start_time,
    )

    logger.info(
        f"Stats computed for {month.start:%Y-%m}: {len(appointments)} appointments, "
        f"{len(per_room)} rooms, {len(per_location)} locations"
    )
    return schemas.StatsOut(
        month=month.to_schema(),
        year_to_date=ytd.to_schema(),
        hours_per_day=hours_per_day,
        total_appointments=len(appointments),
        active_rooms=sum(1 for room in rooms if room.active),
        total_users=total_users,
        status_counts=count_by_status(appointments),
        active_bookings=active_bookings,
        pending_bookings=pending_bookings,
        room_metrics=per_room,
        location_metrics=per_location,
        total_monthly_hours=sum(r.monthly_hours for r in per_room),
        total_monthly_revenue=sum(r.monthly_revenue for r in per_room),
        total_ytd_revenue=sum(r.ytd_revenue for r in per_room),
    )
