import math
from datetime import datetime

from . import models, schemas


def quote_room_cost(
    room: models.Room,
    cost_type: schemas.CostType,
    start_time: datetime,
    end_time: datetime,
    attendees_count: int,
) -> int:
    """Price a room booking from the room's rates, in minor currency units."""
    if cost_type == schemas.CostType.hourly:
        hours = max((end_time - start_time).total_seconds(), 0) / 3600
        return math.ceil((room.hourly_rate or 0) * hours)
    if cost_type == schemas.CostType.per_attendee:
        return (room.attendee_rate or 0) * attendees_count
    return room.flat_rate or 0
