from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import schemas, models
from ..deps import get_db, get_current_user, require_roles

router = APIRouter(prefix="/locations", tags=["locations"])


def _get_location(db: Session, location_id: int) -> models.Location:
    location = db.get(models.Location, location_id)
    if not location:
        raise HTTPException(status_code=404, detail="Location not found")
    return location


@router.post("/", response_model=schemas.LocationOut, status_code=201)
def create_location(
    location_in: schemas.LocationCreate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_roles("admin")),
):
    """Create a location (building or area). *(Admin-only)*"""
    location = models.Location(**location_in.model_dump())
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


@router.get("/", response_model=List[schemas.LocationOut])
def list_locations(db: Session = Depends(get_db), _: models.User = Depends(get_current_user)):
    return db.query(models.Location).order_by(models.Location.name).all()


@router.get("/{location_id}", response_model=schemas.LocationOut)
def get_location(location_id: int, db: Session = Depends(get_db), _: models.User = Depends(get_current_user)):
    return _get_location(db, location_id)


@router.patch("/{location_id}", response_model=schemas.LocationOut)
@router.put("/{location_id}", response_model=schemas.LocationOut, include_in_schema=False)
def update_location(
    location_id: int,
    location_update: schemas.LocationUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_roles("admin")),
):
    """Update name, description or coordinates of a location. *(Admin-only)*"""
    location = _get_location(db, location_id)
    for field, value in location_update.model_dump(exclude_unset=True).items():
        setattr(location, field, value)
    db.commit()
    db.refresh(location)
    return location


@router.delete("/{location_id}", status_code=204)
def delete_location(
    location_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_roles("admin")),
):
    """
    Delete a location. *(Admin-only)*

    Raises
    ------
    HTTPException
        - 400 while rooms still belong to the location.
        - 404 if the location does not exist.
    """
    location = _get_location(db, location_id)
    has_rooms = db.query(models.Room).filter(models.Room.location_id == location_id).first()
    if has_rooms:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete location with associated rooms. Delete the rooms first.",
        )
    db.delete(location)
    db.commit()


@router.get("/{location_id}/rooms", response_model=List[schemas.RoomOut])
def list_location_rooms(
    location_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(get_current_user),
):
    _get_location(db, location_id)
    return db.query(models.Room).filter(models.Room.location_id == location_id).all()
