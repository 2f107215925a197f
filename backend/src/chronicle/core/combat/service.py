"""Combat state machine on top of the dispatcher.

Every operation takes an explicit session and the campaign id, reads the
projections it needs and records its outcome as ledger events. Operations
that emit several events, or mutate rows next to an event, dispatch with
``commit=False`` and commit once at the end.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from chronicle.core.errors import (
    CombatInactiveError,
    InsufficientResourceError,
    NotFoundError,
    ValidationError,
)
from chronicle.core.ledger.dispatcher import dispatch
from chronicle.core.ledger.events import (
    AppliedConditionRef,
    CombatantsClearedPayload,
    ConditionAppliedPayload,
    ConditionRemovedPayload,
    EventIn,
    EventScope,
    EventType,
    EventVisibility,
    InitiativePayload,
    OverridePayload,
    ResolutionPayload,
    TurnPayload,
)
from chronicle.core.rules.base import AttackSpec, ConditionContext, Ruleset
from chronicle.core.rules.dice import Dice, clamp, resolve_rng, roll_d20
from chronicle.core.rules.registry import RulesetRegistry
from chronicle.core.rules.resolution import Action, ActionOutcome, resolve_action
from chronicle.core.schema import CamelModel
from chronicle.db.models import (
    AppliedCondition,
    Campaign,
    Character,
    Combat,
    Combatant,
    Condition,
    WorldEvent,
)

logger = logging.getLogger(__name__)

DEX_KEY = "des"
DEFAULT_HP = 10


class ExtraCombatant(CamelModel):
    """NPC or monster joining the initiative roll without a character row."""

    name: str = Field(min_length=1)
    kind: str = "NPC"
    ref_id: Optional[str] = None
    dex: int = 10
    hp_max: int = Field(default=DEFAULT_HP, ge=0)
    mp_max: int = Field(default=0, ge=0)
    defense: int = 10
    attack_bonus: int = 0
    damage_formula: str = "1d6"


@dataclass
class ActionReport:
    event: WorldEvent
    outcome: ActionOutcome
    actor: Combatant
    target: Combatant
    conditions_applied: List[AppliedConditionRef] = field(default_factory=list)


# ---- lookups ----


def _number(value: Any, fallback: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    return int(value)


def _campaign(db: Session, campaign_id: str) -> Campaign:
    campaign = db.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign", campaign_id)
    return campaign


def _combat_of(db: Session, campaign_id: str) -> Optional[Combat]:
    return db.query(Combat).filter(Combat.campaign_id == campaign_id).first()


def _require_combat(db: Session, campaign_id: str) -> Combat:
    combat = _combat_of(db, campaign_id)
    if combat is None:
        raise NotFoundError("Combat", campaign_id)
    return combat


def _locked_combatant(db: Session, combat_id: str, combatant_id: str) -> Combatant:
    combatant = (
        db.query(Combatant)
        .filter(Combatant.id == combatant_id, Combatant.combat_id == combat_id)
        .with_for_update()
        .first()
    )
    if combatant is None:
        raise NotFoundError("Combatant", combatant_id)
    return combatant


def ordered_combatants(db: Session, combat_id: str) -> List[Combatant]:
    return (
        db.query(Combatant)
        .filter(Combatant.combat_id == combat_id)
        .order_by(Combatant.initiative.desc(), Combatant.order_index.asc())
        .all()
    )


def _condition_entries(db: Session, combat_id: str, combatant_id: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(AppliedCondition)
        .filter(
            AppliedCondition.combat_id == combat_id,
            AppliedCondition.target_combatant_id == combatant_id,
        )
        .all()
    )
    return [
        {
            "id": row.id,
            "conditionId": row.condition_id,
            "condition": {
                "key": row.condition.key,
                "name": row.condition.name,
                "effects": row.condition.effects_json or {},
            },
        }
        for row in rows
    ]


def _find_condition(
    db: Session,
    ruleset_id: str,
    condition_id: Optional[str] = None,
    condition_key: Optional[str] = None,
) -> Condition:
    if condition_id:
        condition = db.get(Condition, condition_id)
        if condition is None:
            raise NotFoundError("Condition", condition_id)
        return condition
    if condition_key:
        condition = (
            db.query(Condition)
            .filter(Condition.ruleset_id == ruleset_id, Condition.key == condition_key)
            .first()
        )
        if condition is None:
            raise NotFoundError("Condition", condition_key)
        return condition
    raise ValidationError("condition_id or condition_key is required")


def _conditions_for(
    db: Session, ruleset_id: str, ids: Sequence[str], keys: Sequence[str]
) -> List[Condition]:
    found: List[Condition] = []
    if ids:
        found.extend(db.query(Condition).filter(Condition.id.in_(list(ids))).all())
    if keys:
        found.extend(
            db.query(Condition)
            .filter(Condition.ruleset_id == ruleset_id, Condition.key.in_(list(keys)))
            .all()
        )
    seen = set()
    unique: List[Condition] = []
    for condition in found:
        if condition.id not in seen:
            seen.add(condition.id)
            unique.append(condition)
    return unique


# ---- lifecycle ----


def get_combat(db: Session, campaign_id: str) -> Optional[Combat]:
    _campaign(db, campaign_id)
    return _combat_of(db, campaign_id)


def start_combat(db: Session, campaign_id: str) -> Combat:
    campaign = _campaign(db, campaign_id)
    combat = _combat_of(db, campaign_id)
    if combat is not None and combat.is_active:
        return combat

    combat_id = combat.id if combat is not None else str(uuid.uuid4())
    dispatch(
        db,
        EventIn(
            type=EventType.COMBAT_STARTED,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat_id,
            scope=EventScope.MACRO,
            payload={"round": 1},
        ),
    )
    logger.info("combat %s started for campaign %s", combat_id, campaign_id)
    return db.get(Combat, combat_id)


def end_combat(db: Session, campaign_id: str) -> Optional[Combat]:
    campaign = _campaign(db, campaign_id)
    combat = _combat_of(db, campaign_id)
    if combat is None:
        return None

    dispatch(
        db,
        EventIn(
            type=EventType.COMBAT_ENDED,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat.id,
            scope=EventScope.MACRO,
            payload={"durationRounds": max(1, combat.round)},
        ),
    )
    logger.info("combat %s ended for campaign %s", combat.id, campaign_id)
    return db.get(Combat, combat.id)


# ---- initiative ----


def _character_entry(ruleset: Ruleset, character: Character) -> Dict[str, Any]:
    sheet = character.sheet_json or {}
    hp_max = _number(sheet.get("pvMax"), DEFAULT_HP)
    mp_max = _number(sheet.get("pmMax"), 0)
    return {
        "kind": "CHARACTER",
        "ref_id": character.id,
        "name": character.name,
        "modifier": ruleset.get_ability_mod(_number(sheet.get(DEX_KEY), 10)),
        "hp_current": hp_max,
        "hp_max": hp_max,
        "mp_current": mp_max,
        "mp_max": mp_max,
        "defense": _number(sheet.get("defenseFinal"), 10),
        "attack_bonus": _number(sheet.get("attackBonus"), 0),
        "damage_formula": sheet.get("damageFormula") or "1d6",
    }


def _extra_entry(ruleset: Ruleset, extra: ExtraCombatant) -> Dict[str, Any]:
    return {
        "kind": extra.kind,
        "ref_id": extra.ref_id,
        "name": extra.name,
        "modifier": ruleset.get_ability_mod(extra.dex),
        "hp_current": extra.hp_max,
        "hp_max": extra.hp_max,
        "mp_current": extra.mp_max,
        "mp_max": extra.mp_max,
        "defense": extra.defense,
        "attack_bonus": extra.attack_bonus,
        "damage_formula": extra.damage_formula,
    }


def roll_initiative(
    db: Session,
    campaign_id: str,
    *,
    registry: RulesetRegistry,
    extras: Sequence[ExtraCombatant] = (),
    rng: Optional[Dice] = None,
) -> List[Combatant]:
    """Replace the combat's combatants with a fresh initiative order.

    Characters of the campaign roll first (by name), then ``extras`` in the
    given order; that order breaks initiative ties.
    """
    campaign = _campaign(db, campaign_id)
    combat = _require_combat(db, campaign_id)
    ruleset = registry.get(campaign.ruleset_id)
    dice = resolve_rng(rng)

    characters = (
        db.query(Character)
        .filter(Character.campaign_id == campaign_id)
        .order_by(Character.name.asc(), Character.id.asc())
        .all()
    )
    entries = [_character_entry(ruleset, c) for c in characters]
    entries.extend(_extra_entry(ruleset, e) for e in extras)

    try:
        if not entries:
            removed = db.query(Combatant).filter(Combatant.combat_id == combat.id).count()
            dispatch(
                db,
                EventIn(
                    type=EventType.COMBATANTS_CLEARED,
                    world_id=campaign.world_id,
                    campaign_id=campaign.id,
                    combat_id=combat.id,
                    payload=CombatantsClearedPayload(removed_count=removed).to_payload(),
                ),
                commit=False,
            )

        for index, entry in enumerate(entries):
            _dispatch_initiative(
                db,
                campaign,
                combat,
                entry,
                dice,
                order_index=index,
                reset=index == 0,
                commit=False,
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    return ordered_combatants(db, combat.id)


def add_combatant(
    db: Session,
    campaign_id: str,
    extra: ExtraCombatant,
    *,
    registry: RulesetRegistry,
    rng: Optional[Dice] = None,
) -> Combatant:
    """Roll initiative for one NPC or monster joining a running combat.

    The existing combatants stay; the newcomer loses initiative ties to them.
    """
    campaign = _campaign(db, campaign_id)
    combat = _require_combat(db, campaign_id)
    if not combat.is_active:
        raise CombatInactiveError(campaign_id)
    ruleset = registry.get(campaign.ruleset_id)

    last = (
        db.query(func.max(Combatant.order_index))
        .filter(Combatant.combat_id == combat.id)
        .scalar()
    )
    order_index = 0 if last is None else last + 1
    event = _dispatch_initiative(
        db,
        campaign,
        combat,
        _extra_entry(ruleset, extra),
        resolve_rng(rng),
        order_index=order_index,
        reset=False,
        commit=True,
    )
    logger.info("%s joined combat %s", extra.name, combat.id)
    return db.get(Combatant, event.target_id)


def _dispatch_initiative(
    db: Session,
    campaign: Campaign,
    combat: Combat,
    entry: Dict[str, Any],
    dice: Dice,
    *,
    order_index: int,
    reset: bool,
    commit: bool,
) -> WorldEvent:
    entry = dict(entry)
    modifier = entry.pop("modifier")
    roll = roll_d20(dice, modifier)
    combatant_id = str(uuid.uuid4())
    payload = InitiativePayload(
        combatant_id=combatant_id,
        roll=roll.d20,
        modifier=modifier,
        total=roll.total,
        order_index=order_index,
        reset=reset,
        **entry,
    )
    return dispatch(
        db,
        EventIn(
            type=EventType.INITIATIVE,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat.id,
            entity_id=combatant_id,
            payload=payload.to_payload(),
        ),
        commit=commit,
    )


# ---- turns ----


def _step_turn(db: Session, campaign_id: str, step: int) -> Combat:
    campaign = _campaign(db, campaign_id)
    combat = _require_combat(db, campaign_id)
    if not combat.is_active:
        raise CombatInactiveError(campaign_id)

    combatants = ordered_combatants(db, combat.id)
    total = len(combatants) or 1
    turn_index = combat.turn_index
    round_ = combat.round

    if step > 0:
        turn_index = (turn_index + 1) % total
        if turn_index == 0:
            round_ += 1
    else:
        turn_index = (turn_index - 1) % total
        if turn_index == total - 1:
            round_ = max(1, round_ - 1)

    active = combatants[turn_index] if combatants else None
    payload = TurnPayload(
        round=round_,
        turn_index=turn_index,
        combatant_id=active.id if active else None,
        actor_name=active.name if active else None,
        actor_id=active.ref_id if active else None,
    )
    dispatch(
        db,
        EventIn(
            type=EventType.TURN,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat.id,
            actor_id=active.id if active else None,
            payload=payload.to_payload(),
        ),
    )
    return db.get(Combat, combat.id)


def next_turn(db: Session, campaign_id: str) -> Combat:
    return _step_turn(db, campaign_id, 1)


def previous_turn(db: Session, campaign_id: str) -> Combat:
    return _step_turn(db, campaign_id, -1)


# ---- actions ----


def _fallback_attack(combatant: Combatant) -> AttackSpec:
    return AttackSpec(
        name=combatant.name,
        bonus=combatant.attack_bonus,
        damage=combatant.damage_formula,
        crit_range=20,
        crit_multiplier=2,
    )


def resolve_combat_action(
    db: Session,
    campaign_id: str,
    action: Action,
    *,
    registry: RulesetRegistry,
    rng: Optional[Dice] = None,
) -> ActionReport:
    """Roll ``action``, apply HP/MP and record the ATTACK/SPELL/SKILL event."""
    campaign = _campaign(db, campaign_id)
    combat = _require_combat(db, campaign_id)
    ruleset = registry.get(campaign.ruleset_id)

    try:
        actor = _locked_combatant(db, combat.id, action.actor_id)
        target = _locked_combatant(db, combat.id, action.target_id)

        sheet: Dict[str, Any] = {}
        fallback = None
        if actor.kind == "CHARACTER" and actor.ref_id:
            character = db.get(Character, actor.ref_id)
            sheet = dict(character.sheet_json or {}) if character else {}
        elif actor.kind != "CHARACTER":
            fallback = _fallback_attack(actor)

        context = ConditionContext(
            actor_conditions=_condition_entries(db, combat.id, actor.id),
            target_conditions=_condition_entries(db, combat.id, target.id),
        )
        outcome = resolve_action(
            ruleset,
            action,
            sheet,
            context,
            fallback_attack=fallback,
            target_defense=target.defense if action.check_defense else None,
            rng=rng,
        )

        if outcome.cost_mp > 0 and actor.mp_current < outcome.cost_mp:
            raise InsufficientResourceError("MP", outcome.cost_mp, actor.mp_current)

        hp_before = target.hp_current
        mp_before = actor.mp_current
        damage = max(0, outcome.damage.total) if outcome.damage is not None else 0

        target.hp_current = clamp(hp_before - damage, 0, target.hp_max)
        actor.mp_current = clamp(actor.mp_current - outcome.cost_mp, 0, actor.mp_max)

        keys = list(action.condition_keys) + [
            e["conditionKey"] for e in outcome.effects_applied if e.get("conditionKey")
        ]
        refs = [
            AppliedConditionRef(
                applied_condition_id=str(uuid.uuid4()),
                condition_id=c.id,
                key=c.key,
                name=c.name,
            )
            for c in _conditions_for(db, ruleset.id, action.condition_ids, keys)
        ]

        payload = ResolutionPayload(
            kind=outcome.kind,
            actor_id=actor.id,
            actor_name=actor.name,
            target_id=target.id,
            target_name=target.name,
            to_hit=outcome.to_hit.to_payload() if outcome.to_hit else None,
            hit=outcome.hit,
            is_crit=outcome.is_crit,
            damage=outcome.damage.to_payload() if outcome.damage else None,
            damage_formula=action.damage_formula,
            attack_id=outcome.attack_id,
            attack_name=outcome.attack_name,
            spell_id=outcome.spell_id,
            spell_name=outcome.spell_name,
            skill_id=outcome.skill_id,
            skill_name=outcome.skill_name,
            cost_mp=outcome.cost_mp,
            delta_hp=target.hp_current - hp_before,
            hp_before=hp_before,
            hp_after=target.hp_current,
            mp_before=mp_before,
            mp_after=actor.mp_current,
            conditions_applied=refs,
        )
        event = dispatch(
            db,
            EventIn(
                type=EventType(outcome.kind),
                world_id=campaign.world_id,
                campaign_id=campaign.id,
                combat_id=combat.id,
                actor_id=actor.id,
                entity_id=target.id,
                visibility=EventVisibility(action.visibility),
                payload=payload.to_payload(),
            ),
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "%s %s -> %s: hit=%s damage=%s",
        outcome.kind,
        payload.actor_name,
        payload.target_name,
        outcome.hit,
        -payload.delta_hp,
    )
    return ActionReport(
        event=event,
        outcome=outcome,
        actor=db.get(Combatant, payload.actor_id),
        target=db.get(Combatant, payload.target_id),
        conditions_applied=refs,
    )


def apply_delta(
    db: Session,
    campaign_id: str,
    target_id: str,
    *,
    delta_hp: int = 0,
    delta_mp: int = 0,
    note: Optional[str] = None,
    visibility: EventVisibility = EventVisibility.MASTER,
) -> Combatant:
    """Manual HP/MP adjustment by the game master, clamped to ``[0, max]``."""
    campaign = _campaign(db, campaign_id)
    combat = _require_combat(db, campaign_id)
    target = _locked_combatant(db, combat.id, target_id)

    payload = OverridePayload(
        target_id=target.id,
        delta_hp=delta_hp,
        delta_mp=delta_mp,
        hp_before=target.hp_current,
        hp_after=clamp(target.hp_current + delta_hp, 0, target.hp_max),
        mp_before=target.mp_current,
        mp_after=clamp(target.mp_current + delta_mp, 0, target.mp_max),
        note=note,
    )
    dispatch(
        db,
        EventIn(
            type=EventType.OVERRIDE,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat.id,
            entity_id=target.id,
            visibility=visibility,
            payload=payload.to_payload(),
        ),
    )
    return db.get(Combatant, target_id)


# ---- conditions ----


def _combat_by_id(db: Session, combat_id: str) -> Combat:
    combat = db.get(Combat, combat_id)
    if combat is None:
        raise NotFoundError("Combat", combat_id)
    return combat


def apply_condition(
    db: Session,
    combat_id: str,
    target_id: str,
    *,
    condition_id: Optional[str] = None,
    condition_key: Optional[str] = None,
    expires_at_turn: Optional[int] = None,
    visibility: EventVisibility = EventVisibility.MASTER,
) -> AppliedCondition:
    combat = _combat_by_id(db, combat_id)
    campaign = _campaign(db, combat.campaign_id)
    target = _locked_combatant(db, combat.id, target_id)
    condition = _find_condition(db, campaign.ruleset_id, condition_id, condition_key)

    applied_id = str(uuid.uuid4())
    payload = ConditionAppliedPayload(
        applied_condition_id=applied_id,
        target_id=target.id,
        target_name=target.name,
        condition_id=condition.id,
        condition_key=condition.key,
        condition_name=condition.name,
        expires_at_turn=expires_at_turn,
    )
    dispatch(
        db,
        EventIn(
            type=EventType.CONDITION_APPLIED,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat.id,
            entity_id=target.id,
            visibility=visibility,
            payload=payload.to_payload(),
        ),
    )
    return db.get(AppliedCondition, applied_id)


def remove_condition(
    db: Session,
    combat_id: str,
    *,
    target_id: Optional[str] = None,
    applied_condition_id: Optional[str] = None,
    condition_id: Optional[str] = None,
    condition_key: Optional[str] = None,
    visibility: EventVisibility = EventVisibility.MASTER,
) -> int:
    """Remove one applied condition by id, or every match on ``target_id``.

    Returns the number of rows removed; raises NotFoundError when nothing
    matches.
    """
    combat = _combat_by_id(db, combat_id)
    campaign = _campaign(db, combat.campaign_id)

    if applied_condition_id:
        row = db.get(AppliedCondition, applied_condition_id)
        if row is None or row.combat_id != combat.id:
            raise NotFoundError("AppliedCondition", applied_condition_id)
        rows = [row]
    else:
        if not target_id:
            raise ValidationError("target_id or applied_condition_id is required")
        q = db.query(AppliedCondition).filter(
            AppliedCondition.combat_id == combat.id,
            AppliedCondition.target_combatant_id == target_id,
        )
        if condition_id or condition_key:
            condition = _find_condition(db, campaign.ruleset_id, condition_id, condition_key)
            q = q.filter(AppliedCondition.condition_id == condition.id)
        rows = q.all()

    if not rows:
        raise NotFoundError("AppliedCondition", target_id)

    first = rows[0]
    target = db.get(Combatant, first.target_combatant_id)
    payload = ConditionRemovedPayload(
        target_id=first.target_combatant_id,
        target_name=target.name if target else None,
        condition_id=first.condition_id,
        condition_key=first.condition.key,
        condition_name=first.condition.name,
        applied_condition_ids=[r.id for r in rows],
        removed_count=len(rows),
    )
    dispatch(
        db,
        EventIn(
            type=EventType.CONDITION_REMOVED,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            combat_id=combat.id,
            entity_id=first.target_combatant_id,
            visibility=visibility,
            payload=payload.to_payload(),
        ),
    )
    return payload.removed_count
