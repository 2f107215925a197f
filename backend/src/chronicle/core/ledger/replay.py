"""Rebuild a world's projections from its ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from chronicle.core.errors import NotFoundError, ReplayFailure
from chronicle.core.projections import apply_event
from chronicle.db.models import Campaign, Character, World

from .store import list_events

logger = logging.getLogger(__name__)

CORRUPTED_TITLE = "CORRUPTED_TITLE"
CORRUPTED_DESCRIPTION = "CORRUPTED_DESCRIPTION"
CORRUPTED_CAMPAIGN_NAME = "CORRUPTED_CAMPAIGN"
CORRUPTED_CHARACTER_NAME = "CORRUPTED_CHARACTER"


@dataclass(frozen=True)
class ReplayReport:
    world_id: str
    events_applied: int


def corrupt_projections(db: Session, world_id: str) -> None:
    """Overwrite projected names with markers. Does not commit."""
    world = db.get(World, world_id)
    if world is None:
        raise NotFoundError("World", world_id)

    world.title = CORRUPTED_TITLE
    world.description = CORRUPTED_DESCRIPTION
    for campaign in db.query(Campaign).filter(Campaign.world_id == world_id):
        campaign.name = CORRUPTED_CAMPAIGN_NAME
    for character in db.query(Character).filter(Character.world_id == world_id):
        character.name = CORRUPTED_CHARACTER_NAME
    db.flush()


def rebuild(db: Session, world_id: str, *, corrupt: bool = False) -> ReplayReport:
    """Re-apply every event of ``world_id`` in ``(ts, id)`` order and commit.

    The first projector failure rolls the whole rebuild back (including the
    optional corruption step) and raises :class:`ReplayFailure`.
    """
    if corrupt:
        try:
            corrupt_projections(db, world_id)
        except Exception:
            db.rollback()
            raise

    events = list_events(db, world_id)
    logger.info("rebuilding world %s from %d events", world_id, len(events))

    applied = 0
    for event in events:
        try:
            apply_event(db, event)
        except Exception as exc:
            event_id, event_type = event.id, event.type
            db.rollback()
            logger.error("replay of world %s stopped at %s (%s)", world_id, event_id, event_type)
            raise ReplayFailure(event_id, event_type, exc) from exc
        applied += 1

    db.commit()
    logger.info("rebuilt world %s (%d events applied)", world_id, applied)
    return ReplayReport(world_id=world_id, events_applied=applied)
