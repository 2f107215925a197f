from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional, Protocol

from pydantic import ConfigDict, Field

from chronicle.core.schema import CamelModel

from .dice import Dice

ActionType = Literal["ATTACK", "SKILL", "SPELL"]

Sheet = Mapping[str, Any]


# --- sheet entries (attack/skill/spell definitions on a character sheet) ---


class _SheetEntry(CamelModel):
    model_config = ConfigDict(extra="ignore")


class AttackSpec(_SheetEntry):
    id: Optional[str] = None
    name: str = "Ataque"
    ability: str = "for"
    # used when the sheet has no score for `ability`
    ability_score: Optional[int] = None
    bonus: Optional[int] = None
    damage: Optional[str] = None
    crit_range: Optional[int] = None
    crit_multiplier: Optional[int] = None
    type: str = ""


class SkillSpec(_SheetEntry):
    id: Optional[str] = None
    name: str = "Pericia"
    ability: str = "int"
    trained: bool = False
    ranks: int = 0
    bonus: int = 0
    misc: int = 0


class SpellSpec(_SheetEntry):
    id: Optional[str] = None
    name: str = "Magia"
    circle: str = ""
    cost: int = 0
    ability: str = "int"
    type: str = "attack"  # "attack" | "save"
    formula: str = ""
    cd: int = 0
    effects_applied: List[Any] = Field(default_factory=list)


# --- condition resolver io ---


class ConditionContext(CamelModel):
    actor_conditions: List[Dict[str, Any]] = Field(default_factory=list)
    target_conditions: List[Dict[str, Any]] = Field(default_factory=list)
    action_type: Optional[ActionType] = None


class ConditionModifiers(CamelModel):
    attack_mod: int = 0
    skill_mod: int = 0
    spell_mod: int = 0
    damage_mod: int = 0
    cost_mp_mod: int = 0
    dc_mod: int = 0
    notes: List[str] = Field(default_factory=list)


# --- results ---


class CheckResult(CamelModel):
    d20: int
    modifier: int
    total: int
    breakdown: str = ""


class AttackResult(CheckResult):
    is_nat20: bool = False
    is_nat1: bool = False
    is_crit_threat: bool = False
    attack_name: Optional[str] = None


class DamageResult(CamelModel):
    total: int
    detail: str
    rolls: List[int] = Field(default_factory=list)
    is_crit: bool = False
    attack_name: Optional[str] = None
    damage_type: Optional[str] = None


class SpellResult(CamelModel):
    check: CheckResult
    damage: Optional[DamageResult] = None
    cost_mp: int = 0
    effects_applied: List[Dict[str, Any]] = Field(default_factory=list)
    breakdown: str = ""


class Ruleset(Protocol):
    """Game-system strategy consumed by the resolution engine.

    Implementations are registered in a :class:`RulesetRegistry`; every
    ``compute_*`` is pure apart from the dice it draws from ``rng``.
    """

    id: str
    name: str
    abilities: List[Dict[str, Any]]  # [{key, label, order}]
    resources: List[Dict[str, Any]]  # [{key, label, order}]
    conditions: List[Dict[str, Any]]  # catalog seeds [{key, name, modifiers}]

    def get_ability_mod(self, score: int) -> int: ...

    def compute_attack(
        self,
        sheet: Sheet,
        attack: Optional[AttackSpec],
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> AttackResult: ...

    def compute_damage(
        self,
        sheet: Sheet,
        attack: Optional[AttackSpec],
        is_crit: bool,
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> DamageResult: ...

    def compute_skill_check(
        self,
        sheet: Sheet,
        skill: Optional[SkillSpec],
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> CheckResult: ...

    def compute_spell(
        self,
        sheet: Sheet,
        spell: Optional[SpellSpec],
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> SpellResult: ...

    def apply_conditions_modifiers(self, context: ConditionContext) -> ConditionModifiers: ...

    def validate_sheet(self, sheet: Sheet) -> Dict[str, Any]: ...
