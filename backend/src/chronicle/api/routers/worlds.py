from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from chronicle.api.schemas import EventOut, RebuildOut, RebuildRequest, WorldCreate, WorldOut
from chronicle.core.ledger.dispatcher import dispatch
from chronicle.core.ledger.events import EventIn, EventScope, EventType
from chronicle.core.ledger.replay import rebuild
from chronicle.core.ledger.store import list_events
from chronicle.db.deps import get_db
from chronicle.db.models import World

router = APIRouter(prefix="/worlds", tags=["worlds"])


@router.post("", response_model=WorldOut, status_code=201)
def create_world(payload: WorldCreate, db: Session = Depends(get_db)):
    world_id = str(uuid.uuid4())
    dispatch(
        db,
        EventIn(
            type=EventType.WORLD_CREATED,
            world_id=world_id,
            entity_id=world_id,
            scope=EventScope.MACRO,
            payload={
                "title": payload.title,
                "description": payload.description,
                "coverImage": payload.cover_image,
            },
        ),
    )
    return WorldOut.model_validate(db.get(World, world_id))


@router.get("/{world_id}", response_model=WorldOut)
def get_world(world_id: str, db: Session = Depends(get_db)):
    obj = db.get(World, world_id)
    if not obj:
        raise HTTPException(status_code=404, detail="World not found")
    return WorldOut.model_validate(obj)


@router.get("/{world_id}/events", response_model=list[EventOut])
def get_world_events(
    world_id: str,
    types: Optional[List[str]] = Query(default=None, alias="type"),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    if not db.get(World, world_id):
        raise HTTPException(status_code=404, detail="World not found")
    return [EventOut.model_validate(e) for e in list_events(db, world_id, types=types, limit=limit)]


@router.post("/{world_id}/rebuild", response_model=RebuildOut)
def rebuild_world(
    world_id: str,
    payload: Optional[RebuildRequest] = None,
    db: Session = Depends(get_db),
):
    if not db.get(World, world_id):
        raise HTTPException(status_code=404, detail="World not found")

    report = rebuild(db, world_id, corrupt=bool(payload and payload.corrupt))
    world = db.get(World, world_id)
    return RebuildOut(
        world_id=report.world_id,
        events_applied=report.events_applied,
        title=world.title,
    )
