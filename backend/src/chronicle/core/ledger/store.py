"""Append-only ledger access.

The ledger owns event identity (UUID4 hex) and ordering. ``ts`` is strictly
increasing per world: when the clock has not moved past the world's latest
event the new event gets ``latest + 1us``, so ``(ts, id)`` order is append
order.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from chronicle.core.errors import ValidationError
from chronicle.db.models import WorldEvent

from .events import EventIn

_TICK = timedelta(microseconds=1)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def latest_ts(db: Session, world_id: str) -> Optional[datetime]:
    value = db.query(func.max(WorldEvent.ts)).filter(WorldEvent.world_id == world_id).scalar()
    return _as_utc(value) if value is not None else None


def next_ts(db: Session, world_id: str) -> datetime:
    now = _utcnow()
    last = latest_ts(db, world_id)
    if last is not None and now <= last:
        return last + _TICK
    return now


def append(db: Session, event: EventIn, payload: Dict[str, Any]) -> WorldEvent:
    """Insert one ledger row inside the caller's transaction and flush it."""
    if not event.world_id:
        raise ValidationError(f"Event {event.type.value} requires a world_id.")
    row = WorldEvent(
        id=uuid.uuid4().hex,
        world_id=event.world_id,
        campaign_id=event.campaign_id,
        combat_id=event.combat_id,
        session_id=event.session_id,
        type=event.type.value,
        scope=event.scope.value,
        visibility=event.visibility.value,
        ts=next_ts(db, event.world_id),
        actor_id=event.actor_id,
        target_id=event.entity_id,
        payload=payload,
    )
    db.add(row)
    db.flush()
    return row


def list_events(
    db: Session,
    world_id: str,
    *,
    types: Optional[List[str]] = None,
    limit: Optional[int] = None,
) -> List[WorldEvent]:
    """Events of a world in replay order ``(ts asc, id asc)``."""
    q = db.query(WorldEvent).filter(WorldEvent.world_id == world_id)
    if types:
        q = q.filter(WorldEvent.type.in_(types))
    q = q.order_by(WorldEvent.ts.asc(), WorldEvent.id.asc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()
