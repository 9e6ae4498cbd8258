from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import schemas, models
from ..dates import parse_datetime
from ..deps import get_db, get_repository, require_roles, get_current_user
from ..repository import AppointmentRepository

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _ensure_location(db: Session, location_id: int) -> None:
    if not db.get(models.Location, location_id):
        raise HTTPException(status_code=404, detail="Location not found")


@router.post("/", response_model=schemas.RoomOut, status_code=201)
def create_room(
    room_in: schemas.RoomCreate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_roles("admin")),
):
    """
    Create a new room inside an existing location. *(Admin-only)*

    Raises
    ------
    HTTPException
        - 404 if the location does not exist.
    """
    _ensure_location(db, room_in.location_id)
    room = models.Room(**room_in.model_dump())
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@router.get("/", response_model=List[schemas.RoomOut])
def list_rooms(
    db: Session = Depends(get_db),
    _: models.User = Depends(get_current_user),
    location_id: Optional[int] = None,
    min_capacity: Optional[int] = None,
    only_active: bool = False,
):
    """
    List rooms with optional filters.

    Parameters
    ----------
    location_id : int, optional
        Only rooms of this location.
    min_capacity : int, optional
        Minimum room capacity.
    only_active : bool, optional
        If True, inactive rooms are left out.
    """
    query = db.query(models.Room)

    if location_id is not None:
        query = query.filter(models.Room.location_id == location_id)
    if min_capacity is not None:
        query = query.filter(models.Room.capacity >= min_capacity)
    if only_active:
        query = query.filter(models.Room.active == True)  # noqa: E712

    return query.all()


@router.get("/{room_id}", response_model=schemas.RoomOut)
def get_room(room_id: int, db: Session = Depends(get_db), _: models.User = Depends(get_current_user)):
    room = db.get(models.Room, room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@router.patch("/{room_id}", response_model=schemas.RoomOut)
@router.put("/{room_id}", response_model=schemas.RoomOut, include_in_schema=False)
def update_room(
    room_id: int,
    room_update: schemas.RoomUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_roles("admin")),
):
    """
    Update details of an existing room. *(Admin-only)*

    Rooms can be deactivated instead of deleted to keep them out of the
    location aggregates while preserving their booking history.
    """
    room = db.get(models.Room, room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    data = room_update.model_dump(exclude_unset=True)
    if data.get("location_id") is not None:
        _ensure_location(db, data["location_id"])
    for field, value in data.items():
        setattr(room, field, value)
    db.commit()
    db.refresh(room)
    return room


@router.delete("/{room_id}", status_code=204)
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_roles("admin")),
):
    room = db.get(models.Room, room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    db.delete(room)
    db.commit()


@router.get("/{room_id}/appointments", response_model=List[schemas.RoomSlot])
def list_room_appointments(
    room_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_rejected: bool = False,
    db: Session = Depends(get_db),
    repo: AppointmentRepository = Depends(get_repository),
    _: models.User = Depends(get_current_user),
):
    """
    Bookings of a room for availability views, ordered by start time.

    Parameters
    ----------
    start, end : datetime, optional
        Only bookings starting within ``[start, end]``. Both or neither.
    include_rejected : bool, optional
        Rejected bookings are left out unless this is True.

    Raises
    ------
    HTTPException
        - 400 if only one of ``start`` and ``end`` is given.
        - 404 if the room does not exist.
    """
    if not db.get(models.Room, room_id):
        raise HTTPException(status_code=404, detail="Room not found")
    if (start is None) != (end is None):
        raise HTTPException(status_code=400, detail="Both start and end are required for a date range")

    if start is not None:
        in_range = repo.list_by_date_range(parse_datetime(start), parse_datetime(end))
        appointments = [a for a in in_range if any(r.room_id == room_id for r in a.rooms)]
    else:
        appointments = repo.list_by_room(room_id)

    if not include_rejected:
        appointments = [a for a in appointments if a.status != schemas.AppointmentStatus.rejected]
    return sorted(appointments, key=lambda a: a.start_time)
