from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from chronicle.core.schema import CamelModel


class EventType(str, Enum):
    WORLD_CREATED = "WORLD_CREATED"
    CAMPAIGN_CREATED = "CAMPAIGN_CREATED"
    CHARACTER_CREATED = "CHARACTER_CREATED"
    CHARACTER_UPDATED = "CHARACTER_UPDATED"
    COMBAT_STARTED = "COMBAT_STARTED"
    COMBAT_ENDED = "COMBAT_ENDED"
    INITIATIVE = "INITIATIVE"
    COMBATANTS_CLEARED = "COMBATANTS_CLEARED"
    TURN = "TURN"
    ATTACK = "ATTACK"
    SPELL = "SPELL"
    SKILL = "SKILL"
    OVERRIDE = "OVERRIDE"
    CONDITION_APPLIED = "CONDITION_APPLIED"
    CONDITION_REMOVED = "CONDITION_REMOVED"
    NOTE = "NOTE"


class EventScope(str, Enum):
    MICRO = "MICRO"
    MACRO = "MACRO"


class EventVisibility(str, Enum):
    MASTER = "MASTER"
    PLAYERS = "PLAYERS"


# event types that describe the entity they create; payload + world id are mandatory
CREATION_TYPES = frozenset(
    {EventType.WORLD_CREATED, EventType.CAMPAIGN_CREATED, EventType.CHARACTER_CREATED}
)


class EventIn(BaseModel):
    """Write contract accepted by the dispatcher.

    ``entity_id`` names the entity the event is about and is stored as the
    ledger row's ``target_id``.
    """

    model_config = ConfigDict(extra="forbid", use_enum_values=False)

    type: EventType
    world_id: Optional[str] = None
    campaign_id: Optional[str] = None
    combat_id: Optional[str] = None
    session_id: Optional[str] = None
    entity_id: Optional[str] = None
    actor_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    visibility: EventVisibility = EventVisibility.PLAYERS
    scope: EventScope = EventScope.MICRO


# ---- payloads: one model per event type ----


class _Payload(CamelModel):
    model_config = ConfigDict(extra="ignore")


class WorldCreatedPayload(_Payload):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    cover_image: Optional[str] = None


class CampaignCreatedPayload(_Payload):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    system: str = "TORMENTA_20"
    ruleset_id: str = "tormenta20"
    # filled by the dispatcher when absent so replays keep the same code
    room_code: Optional[str] = None


class CharacterCreatedPayload(_Payload):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    ancestry: str = "Humano"
    class_name: str = "Guerreiro"
    role: str = "Combatente"
    level: int = 1
    avatar_url: Optional[str] = None
    sheet: Dict[str, Any] = Field(default_factory=dict)


class CharacterUpdatedPayload(_Payload):
    name: Optional[str] = None
    description: Optional[str] = None
    ancestry: Optional[str] = None
    class_name: Optional[str] = None
    role: Optional[str] = None
    level: Optional[int] = None
    avatar_url: Optional[str] = None
    sheet: Optional[Dict[str, Any]] = None


class CombatStartedPayload(_Payload):
    round: int = 1


class CombatEndedPayload(_Payload):
    duration_rounds: int = Field(ge=1)


class InitiativePayload(_Payload):
    combatant_id: str
    kind: str = "CHARACTER"
    ref_id: Optional[str] = None
    name: str
    roll: int
    modifier: int = 0
    total: int
    order_index: int = 0
    hp_current: int = 0
    hp_max: int = 0
    mp_current: int = 0
    mp_max: int = 0
    defense: int = 10
    attack_bonus: int = 0
    damage_formula: str = "1d6"
    # first roll of a batch: drop the combat's previous combatants
    reset: bool = False


class CombatantsClearedPayload(_Payload):
    removed_count: int = Field(default=0, ge=0)


class TurnPayload(_Payload):
    round: int = Field(ge=1)
    turn_index: int = Field(ge=0)
    combatant_id: Optional[str] = None
    actor_name: Optional[str] = None
    actor_id: Optional[str] = None


class AppliedConditionRef(_Payload):
    applied_condition_id: str
    condition_id: str
    key: str
    name: str


class ResolutionPayload(_Payload):
    """ATTACK / SPELL / SKILL narrative record, including HP/MP before/after."""

    kind: str
    actor_id: str
    actor_name: str
    target_id: str
    target_name: str
    to_hit: Optional[Dict[str, Any]] = None
    hit: bool = True
    is_crit: bool = False
    damage: Optional[Dict[str, Any]] = None
    damage_formula: Optional[str] = None
    attack_id: Optional[str] = None
    attack_name: Optional[str] = None
    spell_id: Optional[str] = None
    spell_name: Optional[str] = None
    skill_id: Optional[str] = None
    skill_name: Optional[str] = None
    cost_mp: int = 0
    delta_hp: int = 0
    hp_before: int
    hp_after: int
    mp_before: int
    mp_after: int
    conditions_applied: List[AppliedConditionRef] = Field(default_factory=list)


class OverridePayload(_Payload):
    target_id: str
    delta_hp: int = 0
    delta_mp: int = 0
    hp_before: int
    hp_after: int
    mp_before: int
    mp_after: int
    note: Optional[str] = None


class ConditionAppliedPayload(_Payload):
    applied_condition_id: str
    target_id: str
    target_name: Optional[str] = None
    condition_id: str
    condition_key: str
    condition_name: str
    expires_at_turn: Optional[int] = None


class ConditionRemovedPayload(_Payload):
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    condition_id: Optional[str] = None
    condition_key: Optional[str] = None
    condition_name: Optional[str] = None
    applied_condition_ids: List[str] = Field(default_factory=list)
    removed_count: int = 0


class NotePayload(_Payload):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None


PAYLOAD_MODELS: Dict[EventType, Type[_Payload]] = {
    EventType.WORLD_CREATED: WorldCreatedPayload,
    EventType.CAMPAIGN_CREATED: CampaignCreatedPayload,
    EventType.CHARACTER_CREATED: CharacterCreatedPayload,
    EventType.CHARACTER_UPDATED: CharacterUpdatedPayload,
    EventType.COMBAT_STARTED: CombatStartedPayload,
    EventType.COMBAT_ENDED: CombatEndedPayload,
    EventType.INITIATIVE: InitiativePayload,
    EventType.COMBATANTS_CLEARED: CombatantsClearedPayload,
    EventType.TURN: TurnPayload,
    EventType.ATTACK: ResolutionPayload,
    EventType.SPELL: ResolutionPayload,
    EventType.SKILL: ResolutionPayload,
    EventType.OVERRIDE: OverridePayload,
    EventType.CONDITION_APPLIED: ConditionAppliedPayload,
    EventType.CONDITION_REMOVED: ConditionRemovedPayload,
    EventType.NOTE: NotePayload,
}


def payload_model(event_type: str) -> Optional[Type[_Payload]]:
    try:
        return PAYLOAD_MODELS[EventType(event_type)]
    except ValueError:
        return None
