from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from chronicle.core.errors import NotFoundError
from chronicle.core.ledger.events import (
    CombatEndedPayload,
    CombatStartedPayload,
    CombatantsClearedPayload,
    InitiativePayload,
    OverridePayload,
    ResolutionPayload,
    TurnPayload,
)
from chronicle.db.models import AppliedCondition, Campaign, Combat, Combatant, Condition, WorldEvent


def require_combat(db: Session, combat_id: Optional[str]) -> Combat:
    combat = db.get(Combat, combat_id) if combat_id else None
    if combat is None:
        raise NotFoundError("Combat", combat_id)
    return combat


def require_combatant(db: Session, combatant_id: Optional[str]) -> Combatant:
    combatant = db.get(Combatant, combatant_id) if combatant_id else None
    if combatant is None:
        raise NotFoundError("Combatant", combatant_id)
    return combatant


def upsert_applied_condition(
    db: Session,
    *,
    applied_condition_id: str,
    combat_id: str,
    target_combatant_id: str,
    condition_id: str,
    source_event_id: str,
    expires_at_turn: Optional[int] = None,
) -> AppliedCondition:
    if db.get(Condition, condition_id) is None:
        raise NotFoundError("Condition", condition_id)

    row = db.get(AppliedCondition, applied_condition_id)
    if row is None:
        row = AppliedCondition(id=applied_condition_id)
        db.add(row)
    row.combat_id = combat_id
    row.target_combatant_id = target_combatant_id
    row.condition_id = condition_id
    row.source_event_id = source_event_id
    row.expires_at_turn = expires_at_turn
    return row


def apply_combat_started(db: Session, event: WorldEvent) -> None:
    payload = CombatStartedPayload.model_validate(event.payload)
    if not event.campaign_id or db.get(Campaign, event.campaign_id) is None:
        raise NotFoundError("Campaign", event.campaign_id)
    if not event.combat_id:
        raise NotFoundError("Combat", event.combat_id)

    combat = db.get(Combat, event.combat_id)
    if combat is None:
        combat = Combat(id=event.combat_id, campaign_id=event.campaign_id)
        db.add(combat)
    combat.is_active = True
    combat.round = payload.round
    combat.turn_index = 0


def apply_combat_ended(db: Session, event: WorldEvent) -> None:
    payload = CombatEndedPayload.model_validate(event.payload)
    combat = require_combat(db, event.combat_id)
    combat.is_active = False
    combat.round = payload.duration_rounds


def _clear_combatants(db: Session, combat_id: str, keep: Optional[str] = None) -> None:
    db.query(AppliedCondition).filter(
        AppliedCondition.combat_id == combat_id
    ).delete(synchronize_session="fetch")
    q = db.query(Combatant).filter(Combatant.combat_id == combat_id)
    if keep is not None:
        q = q.filter(Combatant.id != keep)
    q.delete(synchronize_session="fetch")
    db.flush()


def apply_combatants_cleared(db: Session, event: WorldEvent) -> None:
    CombatantsClearedPayload.model_validate(event.payload)
    combat = require_combat(db, event.combat_id)
    _clear_combatants(db, combat.id)


def apply_initiative(db: Session, event: WorldEvent) -> None:
    payload = InitiativePayload.model_validate(event.payload)
    combat = require_combat(db, event.combat_id)

    if payload.reset:
        _clear_combatants(db, combat.id, keep=payload.combatant_id)

    combatant = db.get(Combatant, payload.combatant_id)
    if combatant is None:
        combatant = Combatant(id=payload.combatant_id)
        db.add(combatant)
    combatant.combat_id = combat.id
    combatant.kind = payload.kind
    combatant.ref_id = payload.ref_id
    combatant.name = payload.name
    combatant.initiative = payload.total
    combatant.order_index = payload.order_index
    combatant.hp_current = payload.hp_current
    combatant.hp_max = payload.hp_max
    combatant.mp_current = payload.mp_current
    combatant.mp_max = payload.mp_max
    combatant.defense = payload.defense
    combatant.attack_bonus = payload.attack_bonus
    combatant.damage_formula = payload.damage_formula


def apply_turn(db: Session, event: WorldEvent) -> None:
    payload = TurnPayload.model_validate(event.payload)
    combat = require_combat(db, event.combat_id)
    combat.round = payload.round
    combat.turn_index = payload.turn_index


def apply_resolution(db: Session, event: WorldEvent) -> None:
    """ATTACK / SPELL / SKILL: write the recorded HP/MP and conditions."""
    payload = ResolutionPayload.model_validate(event.payload)
    combat = require_combat(db, event.combat_id)
    target = require_combatant(db, payload.target_id)
    actor = require_combatant(db, payload.actor_id)

    target.hp_current = payload.hp_after
    actor.mp_current = payload.mp_after

    for ref in payload.conditions_applied:
        upsert_applied_condition(
            db,
            applied_condition_id=ref.applied_condition_id,
            combat_id=combat.id,
            target_combatant_id=target.id,
            condition_id=ref.condition_id,
            source_event_id=event.id,
        )


def apply_override(db: Session, event: WorldEvent) -> None:
    payload = OverridePayload.model_validate(event.payload)
    target = require_combatant(db, payload.target_id)
    target.hp_current = payload.hp_after
    target.mp_current = payload.mp_after
