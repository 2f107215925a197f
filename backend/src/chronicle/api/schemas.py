from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from chronicle.core.combat import ExtraCombatant

Visibility = Literal["MASTER", "PLAYERS"]


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---- worlds ----


class WorldCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    description: Optional[str] = None
    cover_image: Optional[str] = None


class WorldOut(_Out):
    id: str
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EventOut(_Out):
    id: str
    world_id: str
    campaign_id: Optional[str] = None
    combat_id: Optional[str] = None
    session_id: Optional[str] = None
    type: str
    scope: str
    visibility: str
    ts: datetime
    actor_id: Optional[str] = None
    target_id: Optional[str] = None
    payload: Dict[str, Any]


class RebuildRequest(BaseModel):
    corrupt: bool = False


class RebuildOut(BaseModel):
    world_id: str
    events_applied: int
    title: str


# ---- campaigns / characters ----


class CampaignCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    system: str = "TORMENTA_20"
    ruleset_id: str = "tormenta20"


class CampaignOut(_Out):
    id: str
    world_id: str
    name: str
    description: Optional[str] = None
    system: str
    ruleset_id: str
    room_code: str


class CharacterCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    ancestry: str = "Humano"
    class_name: str = "Guerreiro"
    role: str = "Combatente"
    level: int = Field(default=1, ge=1)
    avatar_url: Optional[str] = None
    sheet: Dict[str, Any] = Field(default_factory=dict)


class CharacterSheetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sheet: Dict[str, Any]


class CharacterOut(_Out):
    id: str
    world_id: str
    campaign_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    ancestry: str
    class_name: str
    role: str
    level: int
    avatar_url: Optional[str] = None
    sheet_json: Dict[str, Any] = Field(default_factory=dict)


# ---- combat ----


class CombatantOut(_Out):
    id: str
    kind: str
    ref_id: Optional[str] = None
    name: str
    initiative: int
    order_index: int
    hp_current: int
    hp_max: int
    mp_current: int
    mp_max: int
    defense: int
    attack_bonus: int
    damage_formula: str


class CombatOut(_Out):
    id: str
    campaign_id: str
    is_active: bool
    round: int
    turn_index: int
    combatants: List[CombatantOut] = Field(default_factory=list)


class InitiativeRequest(BaseModel):
    extras: List[ExtraCombatant] = Field(default_factory=list)


class TurnRequest(BaseModel):
    direction: Literal["next", "prev"] = "next"


class ActionOut(BaseModel):
    event_id: str
    outcome: Dict[str, Any]
    actor: CombatantOut
    target: CombatantOut
    conditions_applied: List[Dict[str, Any]] = Field(default_factory=list)


class ApplyDeltaRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_id: str
    delta_hp: int = 0
    delta_mp: int = 0
    note: Optional[str] = None
    visibility: Visibility = "MASTER"


# ---- conditions ----


class ConditionApplyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_combatant_id: str
    condition_id: Optional[str] = None
    condition_key: Optional[str] = None
    expires_at_turn: Optional[int] = None
    visibility: Visibility = "MASTER"


class AppliedConditionOut(_Out):
    id: str
    combat_id: str
    target_combatant_id: str
    condition_id: str
    source_event_id: Optional[str] = None
    expires_at_turn: Optional[int] = None


class ConditionRemoveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_combatant_id: Optional[str] = None
    applied_condition_id: Optional[str] = None
    condition_id: Optional[str] = None
    condition_key: Optional[str] = None
    visibility: Visibility = "MASTER"


class ConditionRemoveOut(BaseModel):
    removed: int
