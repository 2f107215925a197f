"""Projectors: one idempotent handler per event type.

Every handler takes the session and the stored ledger row and upserts the
projection rows keyed by ids carried in the event, so applying an event a
second time leaves the state unchanged. Handlers never commit.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict

from sqlalchemy.orm import Session

from chronicle.core.ledger.events import EventType
from chronicle.db.models import WorldEvent

from .campaign import apply_campaign_created
from .character import apply_character_created, apply_character_updated
from .combat import (
    apply_combat_ended,
    apply_combat_started,
    apply_combatants_cleared,
    apply_initiative,
    apply_override,
    apply_resolution,
    apply_turn,
)
from .conditions import apply_condition_applied, apply_condition_removed
from .world import apply_world_created

logger = logging.getLogger(__name__)

Projector = Callable[[Session, WorldEvent], None]

PROJECTORS: Dict[str, Projector] = {
    EventType.WORLD_CREATED.value: apply_world_created,
    EventType.CAMPAIGN_CREATED.value: apply_campaign_created,
    EventType.CHARACTER_CREATED.value: apply_character_created,
    EventType.CHARACTER_UPDATED.value: apply_character_updated,
    EventType.COMBAT_STARTED.value: apply_combat_started,
    EventType.COMBAT_ENDED.value: apply_combat_ended,
    EventType.INITIATIVE.value: apply_initiative,
    EventType.COMBATANTS_CLEARED.value: apply_combatants_cleared,
    EventType.TURN.value: apply_turn,
    EventType.ATTACK.value: apply_resolution,
    EventType.SPELL.value: apply_resolution,
    EventType.SKILL.value: apply_resolution,
    EventType.OVERRIDE.value: apply_override,
    EventType.CONDITION_APPLIED.value: apply_condition_applied,
    EventType.CONDITION_REMOVED.value: apply_condition_removed,
}


def apply_event(db: Session, event: WorldEvent) -> None:
    handler = PROJECTORS.get(event.type)
    if handler is None:
        logger.debug("no projector for %s (event %s)", event.type, event.id)
        return
    handler(db, event)
    db.flush()
