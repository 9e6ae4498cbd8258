"""
Unit tests for utilization and revenue reporting.
"""
from datetime import datetime
from types import SimpleNamespace

import pytest

from reservations import schemas
from reservations.analytics import (
    ReportWindow,
    build_stats,
    clipped_hours,
    location_metrics,
    month_window,
    room_metrics,
    utilization,
    year_to_date_window,
)

AS_OF = datetime(2025, 6, 15, 12, 0)


def _appointment(appointment_id, room_ids, start, end, status="approved", cost=1000, final_revenue=None):
    rooms = [schemas.RoomBooking(room_id=room_id, room_name=f"Room {room_id}", cost=cost) for room_id in room_ids]
    return schemas.Appointment(
        id=appointment_id,
        title=f"Booking {appointment_id}",
        user_id=1,
        rooms=rooms,
        start_time=start,
        end_time=end,
        status=status,
        order_number=appointment_id,
        customer_name="Alice",
        customer_email="alice@example.com",
        attendees_count=2,
        agreed_cost=cost * len(rooms),
        final_revenue=final_revenue,
        created_at=datetime(2025, 1, 1),
        updated_at=datetime(2025, 1, 1),
    )


def _room(room_id, location_id=1, active=True):
    return SimpleNamespace(id=room_id, name=f"Room {room_id}", location_id=location_id, active=active)


class TestWindows:
    """Tests for reporting windows."""

    def test_month_window(self):
        window = month_window(AS_OF)
        assert window.start == datetime(2025, 6, 1)
        assert window.end == datetime(2025, 7, 1)
        assert window.days == 30

    def test_december_rolls_over(self):
        window = month_window(datetime(2025, 12, 31, 23))
        assert window.end == datetime(2026, 1, 1)

    def test_year_to_date_ends_at_as_of(self):
        """Test the year-to-date window runs from January 1 up to the report date."""
        ytd = year_to_date_window(AS_OF)
        assert ytd.start == datetime(2025, 1, 1)
        assert ytd.end == AS_OF
        assert ytd.days == pytest.approx(165.5)


class TestClipping:
    """Tests for clipping booked hours to a window."""

    def test_booking_inside_window(self):
        window = month_window(AS_OF)
        assert clipped_hours(datetime(2025, 6, 10, 9), datetime(2025, 6, 10, 12), window) == 3

    def test_booking_outside_window(self):
        window = month_window(AS_OF)
        assert clipped_hours(datetime(2025, 4, 10, 9), datetime(2025, 4, 10, 12), window) == 0

    def test_adjacent_windows_partition_hours(self):
        """Test a booking spanning two months is split without loss or double counting."""
        start = datetime(2025, 5, 31, 22)
        end = datetime(2025, 6, 1, 2)
        may = month_window(datetime(2025, 5, 20))
        june = month_window(datetime(2025, 6, 20))

        assert clipped_hours(start, end, may) == 2
        assert clipped_hours(start, end, june) == 2
        assert clipped_hours(start, end, may) + clipped_hours(start, end, june) == 4


class TestUtilization:
    """Tests for utilization percentages."""

    def test_single_booking_utilization(self):
        """Test a 3-hour booking in a 30-day, 12-hour/day window."""
        appointment = _appointment(1, [1], datetime(2025, 6, 10, 9), datetime(2025, 6, 10, 12))
        metrics = room_metrics(
            _room(1), "Main", [appointment], month_window(AS_OF), year_to_date_window(AS_OF), 12
        )
        assert metrics.monthly_hours == 3
        assert metrics.monthly_utilization == pytest.approx(3 / (12 * 30) * 100)
        assert metrics.monthly_utilization == pytest.approx(0.8333, abs=1e-4)

    def test_utilization_is_not_clamped(self):
        """Test overlapping bookings can push utilization past 100%."""
        whole_month = _appointment(1, [1], datetime(2025, 6, 1), datetime(2025, 7, 1))
        metrics = room_metrics(
            _room(1), "Main", [whole_month], month_window(AS_OF), year_to_date_window(AS_OF), 12
        )
        assert metrics.monthly_hours == 720
        assert metrics.monthly_utilization == pytest.approx(200.0)

    def test_empty_window(self):
        window = ReportWindow(datetime(2025, 6, 1), datetime(2025, 6, 1))
        assert utilization(10, 12, window) == 0.0

    def test_pending_and_rejected_do_not_count(self):
        """Test only approved and finished bookings contribute hours and revenue."""
        appointments = [
            _appointment(1, [1], datetime(2025, 6, 2, 9), datetime(2025, 6, 2, 10), status="pending"),
            _appointment(2, [1], datetime(2025, 6, 3, 9), datetime(2025, 6, 3, 10), status="rejected"),
            _appointment(3, [1], datetime(2025, 6, 4, 9), datetime(2025, 6, 4, 10), status="finished",
                         final_revenue=1200),
        ]
        metrics = room_metrics(_room(1), "Main", appointments, month_window(AS_OF), year_to_date_window(AS_OF), 12)
        assert metrics.monthly_hours == 1
        assert metrics.monthly_revenue == 1200
        assert metrics.monthly_bookings == 1
        assert metrics.bookings.total == 3
        assert metrics.bookings.pending == 1
        assert metrics.bookings.rejected == 1
        assert metrics.bookings.finished == 1

    def test_revenue_counted_in_start_month(self):
        """Test revenue belongs to the window the booking starts in."""
        spanning = _appointment(1, [1], datetime(2025, 5, 31, 22), datetime(2025, 6, 1, 2), cost=4000)
        june = room_metrics(_room(1), "Main", [spanning], month_window(AS_OF), year_to_date_window(AS_OF), 12)
        assert june.monthly_hours == 2
        assert june.monthly_revenue == 0
        assert june.ytd_revenue == 4000

    def test_later_in_month_not_yet_in_year_to_date(self):
        """Test a booking after the report date counts towards the month only."""
        upcoming = _appointment(1, [1], datetime(2025, 6, 20, 9), datetime(2025, 6, 20, 12), cost=3000)
        metrics = room_metrics(_room(1), "Main", [upcoming], month_window(AS_OF), year_to_date_window(AS_OF), 12)
        assert metrics.monthly_hours == 3
        assert metrics.monthly_revenue == 3000
        assert metrics.ytd_hours == 0
        assert metrics.ytd_revenue == 0
        assert metrics.ytd_utilization == 0.0


class TestLocationMetrics:
    """Tests for per-location aggregation."""

    def test_location_without_rooms(self):
        """Test a location with no rooms reports zero utilization."""
        location = SimpleNamespace(id=2, name="Empty Wing")
        metrics = location_metrics(location, [], month_window(AS_OF), year_to_date_window(AS_OF), 12)
        assert metrics.room_count == 0
        assert metrics.monthly_utilization == 0.0
        assert metrics.avg_revenue_per_booking == 0

    def test_inactive_rooms_are_left_out(self):
        """Test aggregates cover active rooms only."""
        month, ytd = month_window(AS_OF), year_to_date_window(AS_OF)
        appointments = [
            _appointment(1, [1], datetime(2025, 6, 10, 9), datetime(2025, 6, 10, 15), cost=3000),
            _appointment(2, [2], datetime(2025, 6, 11, 9), datetime(2025, 6, 11, 15), cost=9000),
        ]
        per_room = [
            room_metrics(_room(1), "Main", appointments, month, ytd, 12),
            room_metrics(_room(2, active=False), "Main", appointments, month, ytd, 12),
        ]
        metrics = location_metrics(SimpleNamespace(id=1, name="Main"), per_room, month, ytd, 12)

        assert metrics.room_count == 1
        assert metrics.monthly_hours == 6
        assert metrics.monthly_revenue == 3000
        assert metrics.monthly_utilization == pytest.approx(6 / (12 * 30) * 100)
        assert metrics.avg_revenue_per_booking == 3000


class TestBuildStats:
    """Tests for the assembled statistics report."""

    def test_report(self):
        locations = [SimpleNamespace(id=1, name="Main")]
        rooms = [_room(1), _room(2)]
        appointments = [
            _appointment(1, [1, 2], datetime(2025, 6, 10, 9), datetime(2025, 6, 10, 12),
                         status="finished", cost=5000, final_revenue=8000),
            _appointment(2, [1], datetime(2025, 6, 20, 9), datetime(2025, 6, 20, 10)),
            _appointment(3, [2], datetime(2025, 6, 18, 9), datetime(2025, 6, 18, 10), status="pending"),
            _appointment(4, [2], datetime(2025, 6, 16, 9), datetime(2025, 6, 16, 10), status="pending"),
        ]

        stats = build_stats(appointments, rooms, locations, total_users=5, hours_per_day=12, as_of=AS_OF)

        assert stats.total_appointments == 4
        assert stats.active_rooms == 2
        assert stats.total_users == 5
        assert stats.status_counts.pending == 2
        assert [a.id for a in stats.active_bookings] == [2]
        assert [a.id for a in stats.pending_bookings] == [4, 3]
        assert stats.total_monthly_revenue == 8000 + 1000
        assert stats.total_monthly_hours == 3 + 3 + 1
        assert stats.month.days == 30
        assert stats.location_metrics[0].room_count == 2
        assert stats.room_metrics[0].location_name == "Main"
