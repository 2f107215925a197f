"""Single write path for the ledger.

``dispatch`` validates an :class:`EventIn`, creates any shell row the ledger
row needs for its foreign keys, appends the event and runs its projector,
all inside the caller's session. Nothing else in the package inserts into
``world_events``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from chronicle.core.errors import NotFoundError, ValidationError
from chronicle.core.projections import apply_event
from chronicle.core.projections.campaign import ensure_campaign_shell, unique_room_code
from chronicle.core.projections.world import ensure_world_shell
from chronicle.db.models import Campaign, World, WorldEvent

from . import store
from .events import CREATION_TYPES, PAYLOAD_MODELS, EventIn, EventType

logger = logging.getLogger(__name__)

# types whose projector addresses the entity through entity_id
_ENTITY_TYPES = frozenset(
    {EventType.CAMPAIGN_CREATED, EventType.CHARACTER_CREATED, EventType.CHARACTER_UPDATED}
)
_COMBAT_TYPES = frozenset(
    {
        EventType.COMBAT_STARTED,
        EventType.COMBAT_ENDED,
        EventType.INITIATIVE,
        EventType.COMBATANTS_CLEARED,
        EventType.TURN,
        EventType.ATTACK,
        EventType.SPELL,
        EventType.SKILL,
        EventType.CONDITION_APPLIED,
        EventType.CONDITION_REMOVED,
    }
)


def validate_event(event: EventIn) -> Dict[str, Any]:
    """Check the envelope and payload; return the normalized camelCase payload.

    Touches no database state.
    """
    kind = event.type.value
    if event.type in CREATION_TYPES and event.payload is None:
        raise ValidationError(f"Event {kind} requires a payload.")
    if not event.world_id:
        raise ValidationError(f"Event {kind} requires a world_id.")
    if event.type in _ENTITY_TYPES and not event.entity_id:
        raise ValidationError(f"Event {kind} requires an entity_id.")
    if event.type in _COMBAT_TYPES and not event.combat_id:
        raise ValidationError(f"Event {kind} requires a combat_id.")
    if event.type is EventType.COMBAT_STARTED and not event.campaign_id:
        raise ValidationError(f"Event {kind} requires a campaign_id.")

    model = PAYLOAD_MODELS[event.type]
    try:
        parsed = model.model_validate(event.payload or {})
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {kind} payload: {exc}") from exc
    return parsed.to_payload()


def _require_parents(db: Session, event: EventIn) -> None:
    if event.type is not EventType.WORLD_CREATED and db.get(World, event.world_id) is None:
        raise NotFoundError("World", event.world_id)
    if (
        event.campaign_id
        and event.type is not EventType.CAMPAIGN_CREATED
        and db.get(Campaign, event.campaign_id) is None
    ):
        raise NotFoundError("Campaign", event.campaign_id)


def dispatch(db: Session, event: EventIn, *, commit: bool = True) -> WorldEvent:
    """Append ``event`` and project it in one transaction.

    With ``commit=False`` the caller commits; on failure the session is rolled
    back either way and the error re-raised.
    """
    payload = validate_event(event)

    if event.type is EventType.CAMPAIGN_CREATED and not event.campaign_id:
        event = event.model_copy(update={"campaign_id": event.entity_id})

    try:
        _require_parents(db, event)
        if event.type is EventType.WORLD_CREATED:
            ensure_world_shell(db, event.world_id)
        elif event.type is EventType.CAMPAIGN_CREATED:
            if not payload.get("roomCode"):
                payload["roomCode"] = unique_room_code(db)
            ensure_campaign_shell(db, event.entity_id, event.world_id, payload["roomCode"])

        row = store.append(db, event, payload)
        apply_event(db, row)
        if commit:
            db.commit()
    except Exception:
        logger.warning(
            "dispatch of %s for world %s failed; rolled back",
            event.type.value,
            event.world_id,
            exc_info=True,
        )
        db.rollback()
        raise

    logger.debug("dispatched %s %s (world %s)", row.type, row.id, row.world_id)
    return row
