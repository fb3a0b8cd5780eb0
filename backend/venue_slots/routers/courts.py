# backend/venue_slots/routers/courts.py
# Directory data for slot generation: PATCH = 405, DELETE = 405

import json

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.generated import Courts as DBCourts
from ..schemas.courts import CourtCreate, CourtRead
from ..services.slots.directory import court_info_from_row

router = APIRouter(prefix="/courts", tags=["courts"])


def _to_read(obj: DBCourts) -> CourtRead:
    info = court_info_from_row(obj)
    return CourtRead(
        id=obj.id,
        venue_id=obj.venue_id,
        owner_id=obj.owner_id,
        name=obj.name,
        sport=obj.sport,
        price_per_hour=obj.price_per_hour,
        peak_hour_pricing=info.peak_hour_pricing,
        availability=info.availability,
        maintenance=info.maintenance,
        is_active=bool(obj.is_active),
    )


@router.get("/", response_model=list[CourtRead])
def list_courts(db: Session = Depends(get_db)):
    return [_to_read(c) for c in db.query(DBCourts).order_by(DBCourts.id).all()]


@router.get("/{id}", response_model=CourtRead)
def get_court(id: int, db: Session = Depends(get_db)):
    obj = db.get(DBCourts, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return _to_read(obj)


@router.post("/", response_model=CourtRead, status_code=status.HTTP_201_CREATED)
def create_court(
    data: CourtCreate,
    db: Session = Depends(get_db),
):
    obj = DBCourts(
        venue_id=data.venue_id,
        owner_id=data.owner_id,
        name=data.name,
        sport=data.sport,
        price_per_hour=data.price_per_hour,
        peak_hour_pricing=json.dumps(data.peak_hour_pricing.model_dump()),
        availability=json.dumps({day: s.model_dump() for day, s in data.availability.items()}),
        maintenance=json.dumps(data.maintenance.model_dump()),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _to_read(obj)


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
