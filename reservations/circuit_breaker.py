from pybreaker import CircuitBreaker

from .config import NOTIFY_BREAKER_FAIL_MAX, NOTIFY_BREAKER_RESET_TIMEOUT

# Guards calls into the notification dispatcher (mail backend)
notification_circuit_breaker = CircuitBreaker(
    fail_max=NOTIFY_BREAKER_FAIL_MAX,
    reset_timeout=NOTIFY_BREAKER_RESET_TIMEOUT,
    name="notification_dispatcher_breaker",
)
