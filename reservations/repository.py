"""
Appointment persistence with a field-level audit trail.

:class:`AppointmentRepository` owns the lifecycle rules (order numbers, date
handling, status transitions, diffing and audit rows) and delegates storage
to a handful of primitives implemented by :class:`SqlAppointmentRepository`
and :class:`InMemoryAppointmentRepository`.
"""
import abc
import logging
import warnings
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .audit import diff_snapshots, snapshot
from .dates import parse_datetime, utcnow
from .exceptions import TransientDateParseWarning, ValidationError

logger = logging.getLogger(__name__)

NO_REASON_PROVIDED = "No reason provided"
DATE_FIELDS = ("start_time", "end_time")
# never written through update()
READ_ONLY_FIELDS = frozenset({"id", "order_number", "user_id", "created_at", "updated_at"})
ORDER_NUMBER_ATTEMPTS = 3

Status = schemas.AppointmentStatus


def _normalise_rooms(rooms) -> List[Dict[str, Any]]:
    normalised = []
    for room in rooms:
        if isinstance(room, schemas.RoomBooking):
            booking = room
        elif isinstance(room, dict):
            booking = schemas.RoomBooking.model_validate(room)
        else:
            booking = schemas.RoomBooking.model_validate(room.model_dump())
        normalised.append(booking.model_dump(mode="json"))
    return normalised


def _status_value(value) -> str:
    try:
        return Status(value).value
    except ValueError:
        raise ValidationError("status", f"Unknown status: {value}") from None


class AppointmentRepository(abc.ABC):

    # ----- storage primitives -----
    @abc.abstractmethod
    def get(self, appointment_id: int) -> Optional[schemas.Appointment]:
        ...

    @abc.abstractmethod
    def list_all(self) -> List[schemas.Appointment]:
        """All appointments, newest start time first."""

    @abc.abstractmethod
    def audit_trail(self, appointment_id: int) -> List[schemas.AuditEntry]:
        """Audit entries of an appointment, newest first."""

    @abc.abstractmethod
    def _insert(self, values: Dict[str, Any]) -> schemas.Appointment:
        """Store a new appointment, assigning its order number."""

    @abc.abstractmethod
    def _write(self, appointment_id: int, values: Dict[str, Any]) -> Optional[schemas.Appointment]:
        ...

    @abc.abstractmethod
    def _remove(self, appointment_id: int) -> bool:
        ...

    @abc.abstractmethod
    def _append_audit(self, values: Dict[str, Any]) -> None:
        ...

    # ----- queries -----
    def list_by_user(self, user_id: int) -> List[schemas.Appointment]:
        return [a for a in self.list_all() if a.user_id == user_id]

    def list_by_room(self, room_id: int) -> List[schemas.Appointment]:
        return [a for a in self.list_all() if any(r.room_id == room_id for r in a.rooms)]

    def list_by_date_range(self, start: datetime, end: datetime) -> List[schemas.Appointment]:
        """Appointments whose start time falls within ``[start, end]``."""
        return [a for a in self.list_all() if start <= a.start_time <= end]

    def list_by_status(self, status) -> List[schemas.Appointment]:
        status = _status_value(status)
        return [a for a in self.list_all() if a.status == status]

    # ----- lifecycle -----
    def create(self, data: Dict[str, Any], actor_id: Optional[int] = None) -> schemas.Appointment:
        """
        Create an appointment and write its ``create`` audit row.

        ``start_time`` and ``end_time`` are required; a missing or unparsable
        value raises :class:`ValidationError` naming the field.
        """
        values = {key: value for key, value in data.items() if key not in READ_ONLY_FIELDS}
        for field in DATE_FIELDS:
            raw = values.get(field)
            if raw is None or raw == "":
                raise ValidationError(field, f"Missing required {field} field")
            try:
                values[field] = parse_datetime(raw)
            except ValueError:
                raise ValidationError(field, f"Invalid {field} value: {raw}")

        user_id = actor_id if actor_id is not None else data.get("user_id")
        if user_id is None:
            raise ValidationError("user_id", "An appointment needs a creating user")
        values["user_id"] = user_id

        values["rooms"] = _normalise_rooms(values.get("rooms") or [])
        if not values["rooms"]:
            raise ValidationError("rooms", "At least one room is required")
        if values.get("agreed_cost") is None:
            values["agreed_cost"] = sum(room["cost"] for room in values["rooms"])

        values["status"] = _status_value(values.get("status") or Status.pending)
        if values["status"] == Status.finished.value:
            raise ValidationError("status", "An appointment cannot be created as finished")
        values["final_revenue"] = None
        if values["status"] != Status.rejected.value:
            values["rejection_reason"] = None
        elif not values.get("rejection_reason"):
            values["rejection_reason"] = NO_REASON_PROVIDED

        now = utcnow()
        values["created_at"] = now
        values["updated_at"] = now

        appointment = self._insert(values)
        logger.info(f"Appointment {appointment.id} created with order number {appointment.order_number}")
        self._record(
            appointment_id=appointment.id,
            user_id=user_id,
            action="create",
            old_data=None,
            new_data=snapshot(appointment),
            changed_fields=[],
            details={},
        )
        return appointment

    def update(
        self,
        appointment_id: int,
        changes: Dict[str, Any],
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
    ) -> Optional[schemas.Appointment]:
        """
        Apply a partial update and audit the resulting field changes.

        Returns ``None`` when the appointment does not exist. Unparsable dates
        keep their stored value (a :class:`TransientDateParseWarning` is
        emitted and logged). No audit row is written when nothing changed.
        """
        before = self.get(appointment_id)
        if before is None:
            return None

        values = {key: value for key, value in changes.items() if key not in READ_ONLY_FIELDS}
        for field in DATE_FIELDS:
            if field not in values:
                continue
            try:
                values[field] = parse_datetime(values[field])
            except ValueError:
                retained = getattr(before, field)
                message = (
                    f"Could not parse {field}={values[field]!r} for appointment {appointment_id}; "
                    f"keeping {retained.isoformat()}"
                )
                logger.warning(message)
                warnings.warn(message, TransientDateParseWarning, stacklevel=2)
                values[field] = retained

        if "rooms" in values:
            values["rooms"] = _normalise_rooms(values["rooms"] or [])
            if not values["rooms"]:
                raise ValidationError("rooms", "At least one room is required")
            if values.get("agreed_cost") is None:
                values["agreed_cost"] = sum(room["cost"] for room in values["rooms"])

        self._apply_status_rules(before, values)
        values["updated_at"] = utcnow()

        after = self._write(appointment_id, values)
        if after is None:
            return None

        changed_fields, details = diff_snapshots(snapshot(before), snapshot(after))
        if not changed_fields:
            logger.info(f"No changes detected for appointment {appointment_id}, no audit log created")
            return after

        if action is None:
            action = f"status-changed-to-{after.status.value}" if "status" in changed_fields else "update"
        self._record(
            appointment_id=appointment_id,
            user_id=actor_id if actor_id is not None else before.user_id,
            action=action,
            old_data=snapshot(before),
            new_data=snapshot(after),
            changed_fields=changed_fields,
            details=details,
        )
        logger.info(f"Appointment {appointment_id} updated ({action}): {', '.join(changed_fields)}")
        return after

    def finish(self, appointment_id: int, final_revenue: int, actor_id: Optional[int] = None):
        return self.update(
            appointment_id,
            {"status": Status.finished, "final_revenue": final_revenue},
            actor_id=actor_id,
            action="status-changed-to-finished",
        )

    def reject(self, appointment_id: int, reason: Optional[str] = None, actor_id: Optional[int] = None):
        return self.update(
            appointment_id,
            {"status": Status.rejected, "rejection_reason": reason or NO_REASON_PROVIDED},
            actor_id=actor_id,
            action="status-changed-to-rejected",
        )

    def delete(self, appointment_id: int, actor_id: Optional[int] = None) -> bool:
        """Delete an appointment. Returns ``False`` when it did not exist."""
        before = self.get(appointment_id)
        if before is None:
            return False
        if not self._remove(appointment_id):
            return False

        logger.info(f"Appointment {appointment_id} deleted")
        if actor_id is not None:
            self._record(
                appointment_id=appointment_id,
                user_id=actor_id,
                action="delete",
                old_data=snapshot(before),
                new_data=None,
                changed_fields=[],
                details={},
            )
        return True

    # ----- helpers -----
    def _apply_status_rules(self, before: schemas.Appointment, values: Dict[str, Any]) -> None:
        if values.get("status") is not None:
            values["status"] = _status_value(values["status"])
        else:
            values.pop("status", None)
        status = values.get("status", before.status.value)

        if values.get("status") == Status.finished.value:
            if before.status != Status.approved:
                raise ValidationError(
                    "status",
                    f"Only approved appointments can be finished (current status: {before.status.value})",
                )
            if values.get("final_revenue") is None:
                raise ValidationError("final_revenue", "A final revenue is required to finish an appointment")
        elif status == Status.finished.value:
            # final revenue is fixed by the finish transition
            if values.get("final_revenue", before.final_revenue) != before.final_revenue:
                raise ValidationError(
                    "final_revenue", "The final revenue of a finished appointment cannot be changed"
                )
            values.pop("final_revenue", None)
        elif "final_revenue" in values or before.final_revenue is not None:
            values["final_revenue"] = None

        if status == Status.rejected.value:
            kept = before.rejection_reason if before.status == Status.rejected else None
            if not values.get("rejection_reason", kept):
                values["rejection_reason"] = NO_REASON_PROVIDED
        elif "rejection_reason" in values or before.rejection_reason is not None:
            values["rejection_reason"] = None

    def _record(self, **values) -> None:
        # the mutation is already committed; a lost audit row is logged, not raised
        try:
            self._append_audit(values)
        except Exception:
            logger.exception(
                f"Failed to write '{values['action']}' audit log for appointment {values['appointment_id']}"
            )


class SqlAppointmentRepository(AppointmentRepository):
    """Appointment repository backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, appointment_id: int) -> Optional[schemas.Appointment]:
        row = self.db.get(models.Appointment, appointment_id)
        return schemas.Appointment.model_validate(row) if row else None

    def list_all(self) -> List[schemas.Appointment]:
        rows = self.db.query(models.Appointment).order_by(models.Appointment.start_time.desc()).all()
        return [schemas.Appointment.model_validate(row) for row in rows]

    def list_by_user(self, user_id: int) -> List[schemas.Appointment]:
        rows = self.db.query(models.Appointment).filter(models.Appointment.user_id == user_id).all()
        return [schemas.Appointment.model_validate(row) for row in rows]

    def list_by_status(self, status) -> List[schemas.Appointment]:
        rows = self.db.query(models.Appointment).filter(models.Appointment.status == _status_value(status)).all()
        return [schemas.Appointment.model_validate(row) for row in rows]

    def list_by_date_range(self, start: datetime, end: datetime) -> List[schemas.Appointment]:
        rows = self.db.query(models.Appointment).filter(
            models.Appointment.start_time >= start,
            models.Appointment.start_time <= end,
        ).all()
        return [schemas.Appointment.model_validate(row) for row in rows]

    def audit_trail(self, appointment_id: int) -> List[schemas.AuditEntry]:
        rows = (
            self.db.query(models.AuditLog, models.User.name)
            .outerjoin(models.User, models.AuditLog.user_id == models.User.id)
            .filter(models.AuditLog.appointment_id == appointment_id)
            .order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
            .all()
        )
        return [
            schemas.AuditEntry(
                id=log.id,
                appointment_id=log.appointment_id,
                user_id=log.user_id,
                user_name=user_name,
                action=log.action,
                old_data=log.old_data,
                new_data=log.new_data,
                changed_fields=log.changed_fields or [],
                details=log.details or {},
                created_at=log.created_at,
            )
            for log, user_name in rows
        ]

    def _next_order_number(self) -> int:
        counter = self.db.get(models.OrderNumberCounter, 1)
        if counter is None:
            counter = models.OrderNumberCounter(id=1, value=0)
            self.db.add(counter)
        highest = self.db.query(func.coalesce(func.max(models.Appointment.order_number), 0)).scalar()
        counter.value = max(counter.value or 0, highest) + 1
        return counter.value

    def _insert(self, values: Dict[str, Any]) -> schemas.Appointment:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            row = models.Appointment(**values, order_number=self._next_order_number())
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Order number collision on attempt {attempt}, retrying")
                continue
            self.db.refresh(row)
            return schemas.Appointment.model_validate(row)

    def _write(self, appointment_id: int, values: Dict[str, Any]) -> Optional[schemas.Appointment]:
        row = self.db.get(models.Appointment, appointment_id)
        if row is None:
            return None
        for field, value in values.items():
            setattr(row, field, value)
        self.db.commit()
        self.db.refresh(row)
        return schemas.Appointment.model_validate(row)

    def _remove(self, appointment_id: int) -> bool:
        row = self.db.get(models.Appointment, appointment_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    def _append_audit(self, values: Dict[str, Any]) -> None:
        try:
            self.db.add(models.AuditLog(**values, created_at=utcnow()))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise


class InMemoryAppointmentRepository(AppointmentRepository):
    """Dictionary-backed repository for tests and tooling."""

    def __init__(self, user_names: Optional[Dict[int, str]] = None):
        self.user_names = dict(user_names or {})
        self._appointments: Dict[int, schemas.Appointment] = {}
        self._audit_logs: List[schemas.AuditEntry] = []
        self._last_id = 0
        self._last_order_number = 0

    def get(self, appointment_id: int) -> Optional[schemas.Appointment]:
        appointment = self._appointments.get(appointment_id)
        return appointment.model_copy(deep=True) if appointment else None

    def list_all(self) -> List[schemas.Appointment]:
        appointments = sorted(self._appointments.values(), key=lambda a: a.start_time, reverse=True)
        return [a.model_copy(deep=True) for a in appointments]

    def audit_trail(self, appointment_id: int) -> List[schemas.AuditEntry]:
        entries = [e for e in self._audit_logs if e.appointment_id == appointment_id]
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return [e.model_copy(update={"user_name": self.user_names.get(e.user_id)}) for e in entries]

    def _insert(self, values: Dict[str, Any]) -> schemas.Appointment:
        self._last_id += 1
        self._last_order_number += 1
        appointment = schemas.Appointment.model_validate(
            {**values, "id": self._last_id, "order_number": self._last_order_number}
        )
        self._appointments[appointment.id] = appointment
        return appointment.model_copy(deep=True)

    def _write(self, appointment_id: int, values: Dict[str, Any]) -> Optional[schemas.Appointment]:
        current = self._appointments.get(appointment_id)
        if current is None:
            return None
        merged = {**current.model_dump(), **values}
        updated = schemas.Appointment.model_validate(merged)
        self._appointments[appointment_id] = updated
        return updated.model_copy(deep=True)

    def _remove(self, appointment_id: int) -> bool:
        return self._appointments.pop(appointment_id, None) is not None

    def _append_audit(self, values: Dict[str, Any]) -> None:
        self._audit_logs.append(
            schemas.AuditEntry(id=len(self._audit_logs) + 1, created_at=utcnow(), **values)
        )
