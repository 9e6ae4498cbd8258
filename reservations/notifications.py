"""
Appointment notifications.

Delivery itself lives behind :class:`NotificationDispatcher`. Callers go
through :func:`dispatch`, which never raises: a failed or refused
notification is logged and reported as ``False``.
"""
import abc
import logging
from typing import Optional

from pybreaker import CircuitBreakerError

from . import schemas
from .circuit_breaker import notification_circuit_breaker

logger = logging.getLogger(__name__)


class NotificationDispatcher(abc.ABC):

    @abc.abstractmethod
    def appointment_created(self, appointment: schemas.Appointment, actor: schemas.UserOut) -> bool:
        ...

    @abc.abstractmethod
    def appointment_updated(
        self,
        appointment: schemas.Appointment,
        actor: schemas.UserOut,
        previous: schemas.Appointment,
    ) -> bool:
        ...

    @abc.abstractmethod
    def appointment_status_changed(
        self,
        appointment: schemas.Appointment,
        actor: schemas.UserOut,
        previous_status: str,
    ) -> bool:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Records notifications in the log instead of sending them."""

    def appointment_created(self, appointment, actor):
        logger.info(
            f"Notify {appointment.customer_email}: appointment #{appointment.order_number} "
            f"'{appointment.title}' created by {actor.username}"
        )
        return True

    def appointment_updated(self, appointment, actor, previous):
        logger.info(
            f"Notify {appointment.customer_email}: appointment #{appointment.order_number} "
            f"updated by {actor.username}"
        )
        return True

    def appointment_status_changed(self, appointment, actor, previous_status):
        logger.info(
            f"Notify {appointment.customer_email}: appointment #{appointment.order_number} "
            f"changed from {previous_status} to {appointment.status.value} by {actor.username}"
        )
        return True


def dispatch(dispatcher: Optional[NotificationDispatcher], event: str, *args) -> bool:
    """
    Call ``dispatcher.<event>(*args)`` behind the circuit breaker.

    Never raises; returns whether the notification was accepted.
    """
    if dispatcher is None:
        return False

    @notification_circuit_breaker
    def _send():
        return getattr(dispatcher, event)(*args)

    try:
        sent = _send()
    except CircuitBreakerError:
        logger.warning(f"Notification '{event}' skipped: dispatcher circuit is open")
        return False
    except Exception as e:
        logger.error(f"Notification '{event}' failed: {e}")
        return False

    if not sent:
        logger.warning(f"Notification '{event}' was not delivered")
    return bool(sent)
