"""
Derivation of per-room revenue for reporting.

Nothing here is persisted: the attributed amounts are recomputed from the
appointment on every query so the stored room costs stay the only source of
truth.
"""
import math
from typing import Dict, List

from . import schemas


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def total_original_cost(rooms: List[schemas.RoomBooking]) -> int:
    return sum(room.cost for room in rooms)


def _even_split(amount: int, count: int) -> List[int]:
    # leftover minor units go to the first rooms so the parts add up exactly
    share, remainder = divmod(amount, count)
    return [share + (1 if index < remainder else 0) for index in range(count)]


def split_revenue(final_revenue: int, rooms: List[schemas.RoomBooking]) -> List[int]:
    """
    Split ``final_revenue`` across ``rooms`` in proportion to their original cost.

    - a single room receives the whole amount;
    - otherwise each room gets ``final_revenue * cost / total`` rounded to the
      nearest minor unit;
    - when no room carries a cost the amount is split evenly.
    """
    if not rooms:
        return []
    if len(rooms) == 1:
        return [final_revenue]

    total = total_original_cost(rooms)
    if total <= 0:
        return _even_split(final_revenue, len(rooms))
    return [round_half_up(final_revenue * (room.cost / total)) for room in rooms]


def attributed_revenue(appointment: schemas.Appointment) -> Dict[int, int]:
    """Reporting revenue per room id for one appointment."""
    status = appointment.status
    if status == schemas.AppointmentStatus.finished and appointment.final_revenue is not None:
        amounts = split_revenue(appointment.final_revenue, appointment.rooms)
    else:
        amounts = [room.cost for room in appointment.rooms]

    revenue: Dict[int, int] = {}
    for room, amount in zip(appointment.rooms, amounts):
        revenue[room.room_id] = revenue.get(room.room_id, 0) + amount
    return revenue


def revenue_for_room(appointment: schemas.Appointment, room_id: int) -> int:
    return attributed_revenue(appointment).get(room_id, 0)
