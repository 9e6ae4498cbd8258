import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded

from .config import LOG_LEVEL, RATE_LIMIT, RATE_LIMIT_ENABLED
from .database import Base, engine
from .routers import users, locations, rooms, appointments, stats
from .error_handlers import register_exception_handlers

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# -----------------------------------------
# Create DB tables
# -----------------------------------------
Base.metadata.create_all(bind=engine)

# -----------------------------------------
# Rate Limiter, per client IP
# -----------------------------------------
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[RATE_LIMIT],
    enabled=RATE_LIMIT_ENABLED,
)

app = FastAPI(
    title="Room Reservations Backend",
    version="0.1.0",
    description="Rooms, locations and appointments with an audit trail and utilization reporting.",
)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

register_exception_handlers(app)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please try again later.",
            "error": "too_many_requests",
            "path": str(request.url.path),
        },
    )


# -----------------------------------------
# Routers (normal + versioned /api/v1)
# -----------------------------------------
ROUTERS = (users.router, locations.router, rooms.router, appointments.router, stats.router)

for router in ROUTERS:
    app.include_router(router)

for router in ROUTERS:
    app.include_router(router, prefix="/api/v1")

logger.info(f"Room Reservations API ready (rate limit {RATE_LIMIT}, enabled={RATE_LIMIT_ENABLED})")


@app.get("/health", tags=["health"])
def health_check():
    return {"status": "ok"}
