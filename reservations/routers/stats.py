from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..analytics import build_stats
from ..config import HOURS_PER_DAY
from ..dates import parse_datetime, utcnow
from ..deps import get_db, get_repository, require_roles
from ..repository import AppointmentRepository

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=schemas.StatsOut)
def get_stats(
    as_of: Optional[datetime] = None,
    db: Session = Depends(get_db),
    repo: AppointmentRepository = Depends(get_repository),
    _: models.User = Depends(require_roles("admin", "director")),
):
    """
    Utilization and revenue report. *(Admin / Director)*

    Covers the calendar month containing ``as_of`` (default: now) and the
    year to date up to the end of that month.
    """
    as_of = parse_datetime(as_of) if as_of is not None else utcnow()
    rooms = db.query(models.Room).order_by(models.Room.id).all()
    locations = db.query(models.Location).order_by(models.Location.name).all()
    total_users = db.query(models.User).count()

    return build_stats(
        appointments=repo.list_all(),
        rooms=rooms,
        locations=locations,
        total_users=total_users,
        hours_per_day=HOURS_PER_DAY,
        as_of=as_of,
    )
