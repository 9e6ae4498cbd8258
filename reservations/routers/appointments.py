from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from .. import models, schemas
from ..dates import parse_datetime
from ..deps import get_current_user, get_db, get_notifier, get_repository, is_staff, require_roles
from ..exceptions import ForbiddenError, NotFoundError
from ..notifications import NotificationDispatcher, dispatch
from ..pricing import quote_room_cost
from ..repository import AppointmentRepository

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _get_appointment(repo: AppointmentRepository, appointment_id: int) -> schemas.Appointment:
    appointment = repo.get(appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment", appointment_id)
    return appointment


def _ensure_can_access(user: models.User, appointment: schemas.Appointment) -> None:
    if not is_staff(user) and appointment.user_id != user.id:
        raise ForbiddenError("You can only access your own appointments")


def _try_parse(value, fallback: Optional[datetime] = None) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except ValueError:
        return fallback


def _resolve_rooms(
    db: Session,
    bookings: List[schemas.RoomBookingIn],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
    attendees_count: int,
) -> List[schemas.RoomBooking]:
    """
    Check every booked room exists, fill in its name and quote a cost when
    the booking does not carry one.
    """
    resolved = []
    for booking in bookings:
        room = db.get(models.Room, booking.room_id)
        if not room:
            raise HTTPException(status_code=404, detail=f"Room {booking.room_id} not found")
        cost = booking.cost
        if cost is None:
            cost = 0
            if start_time and end_time:
                cost = quote_room_cost(room, booking.cost_type, start_time, end_time, attendees_count)
        resolved.append(
            schemas.RoomBooking(
                room_id=room.id,
                room_name=booking.room_name or room.name,
                cost_type=booking.cost_type,
                cost=cost,
                requested_facilities=booking.requested_facilities,
            )
        )
    return resolved


@router.get("/", response_model=List[schemas.Appointment])
def list_appointments(
    user_id: Optional[int] = None,
    room_id: Optional[int] = None,
    status: Optional[schemas.AppointmentStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    repo: AppointmentRepository = Depends(get_repository),
    current_user: models.User = Depends(get_current_user),
):
    """
    List appointments.

    - Admins and directors see **all** appointments and may filter by
      ``user_id``, ``room_id``, ``status`` and a start-time range.
    - Guests see **only their own** appointments.
    """
    if not is_staff(current_user):
        if user_id is not None and user_id != current_user.id:
            raise ForbiddenError("You can only view your own appointments")
        user_id = current_user.id

    if start is not None and end is not None:
        appointments = repo.list_by_date_range(parse_datetime(start), parse_datetime(end))
    elif status is not None:
        appointments = repo.list_by_status(status)
    elif user_id is not None:
        appointments = repo.list_by_user(user_id)
    elif room_id is not None:
        appointments = repo.list_by_room(room_id)
    else:
        appointments = repo.list_all()

    if user_id is not None:
        appointments = [a for a in appointments if a.user_id == user_id]
    if room_id is not None:
        appointments = [a for a in appointments if any(r.room_id == room_id for r in a.rooms)]
    if status is not None:
        appointments = [a for a in appointments if a.status == status]
    return appointments


@router.post("/", response_model=schemas.Appointment, status_code=201)
def create_appointment(
    appointment_in: schemas.AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    repo: AppointmentRepository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: models.User = Depends(get_current_user),
):
    """
    Create an appointment for the current user.

    Raises
    ------
    ValidationError
        - 400 if ``start_time`` or ``end_time`` is missing or unparsable.
    HTTPException
        - 404 if a booked room does not exist.
    """
    data = appointment_in.model_dump()
    data["rooms"] = _resolve_rooms(
        db,
        appointment_in.rooms,
        _try_parse(appointment_in.start_time),
        _try_parse(appointment_in.end_time),
        appointment_in.attendees_count,
    )
    appointment = repo.create(data, actor_id=current_user.id)

    actor = schemas.UserOut.model_validate(current_user)
    background_tasks.add_task(dispatch, notifier, "appointment_created", appointment, actor)
    return appointment


@router.get("/{appointment_id}", response_model=schemas.Appointment)
def get_appointment(
    appointment_id: int,
    repo: AppointmentRepository = Depends(get_repository),
    current_user: models.User = Depends(get_current_user),
):
    appointment = _get_appointment(repo, appointment_id)
    _ensure_can_access(current_user, appointment)
    return appointment


@router.patch("/{appointment_id}", response_model=schemas.Appointment)
@router.put("/{appointment_id}", response_model=schemas.Appointment, include_in_schema=False)
def update_appointment(
    appointment_id: int,
    appointment_update: schemas.AppointmentUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    repo: AppointmentRepository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: models.User = Depends(get_current_user),
):
    """
    Partially update an appointment (owner, admin or director).

    Unparsable ``start_time``/``end_time`` values keep the stored dates.
    Every changed field is recorded in the audit trail. Only admins and
    directors may finish an appointment or touch its final revenue.
    """
    before = _get_appointment(repo, appointment_id)
    _ensure_can_access(current_user, before)

    changes = appointment_update.model_dump(exclude_unset=True)
    if not is_staff(current_user) and (
        "final_revenue" in changes or changes.get("status") == schemas.AppointmentStatus.finished
    ):
        raise ForbiddenError("Only admins and directors can finish appointments")
    if changes.get("rooms") is not None:
        changes["rooms"] = _resolve_rooms(
            db,
            appointment_update.rooms,
            _try_parse(changes.get("start_time"), before.start_time),
            _try_parse(changes.get("end_time"), before.end_time),
            before.attendees_count if changes.get("attendees_count") is None else changes["attendees_count"],
        )

    after = repo.update(appointment_id, changes, actor_id=current_user.id)
    if after is None:
        raise NotFoundError("Appointment", appointment_id)

    actor = schemas.UserOut.model_validate(current_user)
    if after.status != before.status:
        background_tasks.add_task(
            dispatch, notifier, "appointment_status_changed", after, actor, before.status.value
        )
    else:
        background_tasks.add_task(dispatch, notifier, "appointment_updated", after, actor, before)
    return after


@router.put("/{appointment_id}/finish", response_model=schemas.Appointment)
def finish_appointment(
    appointment_id: int,
    finish_in: schemas.FinishRequest,
    background_tasks: BackgroundTasks,
    repo: AppointmentRepository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: models.User = Depends(require_roles("admin", "director")),
):
    """
    Mark an approved appointment as finished with its final revenue.

    Raises
    ------
    ValidationError
        - 400 if the appointment is not approved.
    """
    before = _get_appointment(repo, appointment_id)
    after = repo.finish(appointment_id, finish_in.final_revenue, actor_id=current_user.id)
    if after is None:
        raise NotFoundError("Appointment", appointment_id)

    actor = schemas.UserOut.model_validate(current_user)
    background_tasks.add_task(dispatch, notifier, "appointment_status_changed", after, actor, before.status.value)
    return after


@router.put("/{appointment_id}/reject", response_model=schemas.Appointment)
def reject_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    reject_in: Optional[schemas.RejectRequest] = None,
    repo: AppointmentRepository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: models.User = Depends(get_current_user),
):
    """Reject an appointment, storing the reason (or a placeholder when none is given)."""
    before = _get_appointment(repo, appointment_id)
    _ensure_can_access(current_user, before)

    reason = reject_in.reason if reject_in else None
    after = repo.reject(appointment_id, reason, actor_id=current_user.id)
    if after is None:
        raise NotFoundError("Appointment", appointment_id)

    actor = schemas.UserOut.model_validate(current_user)
    background_tasks.add_task(dispatch, notifier, "appointment_status_changed", after, actor, before.status.value)
    return after


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: int,
    repo: AppointmentRepository = Depends(get_repository),
    current_user: models.User = Depends(get_current_user),
):
    """Delete an appointment (owner, admin or director)."""
    appointment = _get_appointment(repo, appointment_id)
    _ensure_can_access(current_user, appointment)

    if not repo.delete(appointment_id, actor_id=current_user.id):
        raise NotFoundError("Appointment", appointment_id)
    return Response(status_code=204)


@router.get("/{appointment_id}/audit", response_model=List[schemas.AuditEntry])
def get_audit_trail(
    appointment_id: int,
    repo: AppointmentRepository = Depends(get_repository),
    current_user: models.User = Depends(get_current_user),
):
    """Audit entries of an appointment, newest first, with the acting user's name."""
    appointment = _get_appointment(repo, appointment_id)
    _ensure_can_access(current_user, appointment)
    return repo.audit_trail(appointment_id)
