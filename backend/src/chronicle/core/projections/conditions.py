from __future__ import annotations

from sqlalchemy.orm import Session

from chronicle.core.ledger.events import ConditionAppliedPayload, ConditionRemovedPayload
from chronicle.db.models import AppliedCondition, WorldEvent

from .combat import require_combat, require_combatant, upsert_applied_condition


def apply_condition_applied(db: Session, event: WorldEvent) -> None:
    payload = ConditionAppliedPayload.model_validate(event.payload)
    combat = require_combat(db, event.combat_id)
    target = require_combatant(db, payload.target_id)
    upsert_applied_condition(
        db,
        applied_condition_id=payload.applied_condition_id,
        combat_id=combat.id,
        target_combatant_id=target.id,
        condition_id=payload.condition_id,
        source_event_id=event.id,
        expires_at_turn=payload.expires_at_turn,
    )


def apply_condition_removed(db: Session, event: WorldEvent) -> None:
    payload = ConditionRemovedPayload.model_validate(event.payload)
    if not payload.applied_condition_ids:
        return
    # ids already gone are skipped, so a second pass is a no-op
    db.query(AppliedCondition).filter(
        AppliedCondition.id.in_(payload.applied_condition_ids)
    ).delete(synchronize_session="fetch")
