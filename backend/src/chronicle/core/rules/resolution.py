from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import ConfigDict, Field, TypeAdapter

from chronicle.core.errors import ValidationError
from chronicle.core.schema import CamelModel

from .base import (
    AttackResult,
    AttackSpec,
    CheckResult,
    ConditionContext,
    DamageResult,
    Ruleset,
    Sheet,
    SkillSpec,
    SpellSpec,
)
from .dice import Dice, resolve_rng, roll_d20, roll_formula, signed

Visibility = Literal["MASTER", "PLAYERS"]


# --- commands ---


class ActionBase(CamelModel):
    model_config = ConfigDict(extra="forbid")

    actor_id: str
    target_id: str
    # False: ignore the sheet and roll with to_hit_mod / damage_formula
    use_sheet: bool = True
    to_hit_mod: int = 0
    damage_formula: Optional[str] = None
    # compare the roll with the target's defense; damage lands only on a hit
    check_defense: bool = False
    condition_keys: List[str] = Field(default_factory=list)
    condition_ids: List[str] = Field(default_factory=list)
    visibility: Visibility = "PLAYERS"


class AttackAction(ActionBase):
    kind: Literal["ATTACK"] = "ATTACK"
    attack_id: Optional[str] = None


class SpellAction(ActionBase):
    kind: Literal["SPELL"] = "SPELL"
    spell_id: Optional[str] = None
    cost_mp: int = 0


class SkillAction(ActionBase):
    kind: Literal["SKILL"] = "SKILL"
    skill_id: Optional[str] = None


Action = Annotated[
    Union[AttackAction, SpellAction, SkillAction], Field(discriminator="kind")
]

action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


# --- outcome ---


class ActionOutcome(CamelModel):
    kind: Literal["ATTACK", "SPELL", "SKILL"]
    to_hit: Optional[Union[AttackResult, CheckResult]] = None
    hit: bool = True
    is_crit: bool = False
    damage: Optional[DamageResult] = None
    cost_mp: int = 0
    effects_applied: List[Dict[str, Any]] = Field(default_factory=list)

    attack_id: Optional[str] = None
    attack_name: Optional[str] = None
    spell_id: Optional[str] = None
    spell_name: Optional[str] = None
    skill_id: Optional[str] = None
    skill_name: Optional[str] = None


def _pick(entries: Sequence[Any], wanted: Optional[str]) -> Optional[Mapping[str, Any]]:
    items = [e for e in entries or () if isinstance(e, Mapping)]
    if wanted:
        for entry in items:
            if entry.get("id") == wanted or entry.get("name") == wanted:
                return entry
    return items[0] if items else None


def _lands(roll: AttackResult, target_defense: Optional[int]) -> bool:
    if target_defense is None:
        return True
    if roll.is_nat20:
        return True
    if roll.is_nat1:
        return False
    return roll.total >= target_defense


def _resolve_attack(
    ruleset: Ruleset,
    action: AttackAction,
    sheet: Sheet,
    context: ConditionContext,
    *,
    fallback_attack: Optional[AttackSpec],
    target_defense: Optional[int],
    rng: Dice,
) -> ActionOutcome:
    if fallback_attack is not None:
        attack: Optional[AttackSpec] = fallback_attack
        attack_sheet: Sheet = {}
    else:
        raw = _pick(sheet.get("attacks") or [], action.attack_id)
        attack = AttackSpec.model_validate(raw) if raw is not None else None
        attack_sheet = sheet

    if action.use_sheet and attack is not None:
        to_hit = ruleset.compute_attack(attack_sheet, attack, context, rng=rng)
        hit = _lands(to_hit, target_defense)
        is_crit = hit and to_hit.is_crit_threat
        damage = (
            ruleset.compute_damage(attack_sheet, attack, is_crit, context, rng=rng)
            if hit
            else None
        )
    else:
        mods = ruleset.apply_conditions_modifiers(
            context.model_copy(update={"action_type": "ATTACK"})
        )
        modifier = action.to_hit_mod + mods.attack_mod
        roll = roll_d20(rng, modifier)
        to_hit = AttackResult(
            d20=roll.d20,
            modifier=modifier,
            total=roll.total,
            is_nat20=roll.is_nat20,
            is_nat1=roll.is_nat1,
            is_crit_threat=roll.is_nat20,
            breakdown=f"d20={roll.d20} + {modifier} = {roll.total}",
            attack_name=attack.name if attack else None,
        )
        hit = _lands(to_hit, target_defense)
        is_crit = hit and to_hit.is_crit_threat
        damage = None
        if hit:
            raw_roll = roll_formula(rng, action.damage_formula or "1d6")
            adjusted = raw_roll.total + mods.damage_mod
            damage = DamageResult(
                total=adjusted * 2 if is_crit else adjusted,
                detail=raw_roll.detail + (signed(mods.damage_mod) if mods.damage_mod else ""),
                rolls=raw_roll.rolls,
                is_crit=is_crit,
            )

    return ActionOutcome(
        kind="ATTACK",
        to_hit=to_hit,
        hit=hit,
        is_crit=is_crit,
        damage=damage,
        attack_id=attack.id if attack else None,
        attack_name=attack.name if attack else None,
    )


def _resolve_spell(
    ruleset: Ruleset,
    action: SpellAction,
    sheet: Sheet,
    context: ConditionContext,
    *,
    rng: Dice,
) -> ActionOutcome:
    raw = _pick(sheet.get("spells") or [], action.spell_id)
    spell = SpellSpec.model_validate(raw) if raw is not None else None

    if action.use_sheet and spell is not None:
        result = ruleset.compute_spell(sheet, spell, context, rng=rng)
        return ActionOutcome(
            kind="SPELL",
            to_hit=result.check,
            damage=result.damage,
            cost_mp=result.cost_mp,
            effects_applied=result.effects_applied,
            spell_id=spell.id,
            spell_name=spell.name,
        )

    mods = ruleset.apply_conditions_modifiers(
        context.model_copy(update={"action_type": "SPELL"})
    )
    modifier = action.to_hit_mod + mods.spell_mod
    roll = roll_d20(rng, modifier)
    damage = None
    if action.damage_formula:
        raw_roll = roll_formula(rng, action.damage_formula)
        damage = DamageResult(
            total=raw_roll.total + mods.damage_mod,
            detail=raw_roll.detail + (signed(mods.damage_mod) if mods.damage_mod else ""),
            rolls=raw_roll.rolls,
        )
    return ActionOutcome(
        kind="SPELL",
        to_hit=CheckResult(
            d20=roll.d20,
            modifier=modifier,
            total=roll.total,
            breakdown=f"d20={roll.d20} + {modifier} = {roll.total}",
        ),
        damage=damage,
        cost_mp=max(0, action.cost_mp + mods.cost_mp_mod),
        spell_id=spell.id if spell else None,
        spell_name=spell.name if spell else None,
    )


def _resolve_skill(
    ruleset: Ruleset,
    action: SkillAction,
    sheet: Sheet,
    context: ConditionContext,
    *,
    rng: Dice,
) -> ActionOutcome:
    raw = _pick(sheet.get("skills") or [], action.skill_id)
    skill = SkillSpec.model_validate(raw) if raw is not None else None

    if action.use_sheet and skill is not None:
        check = ruleset.compute_skill_check(sheet, skill, context, rng=rng)
    else:
        mods = ruleset.apply_conditions_modifiers(
            context.model_copy(update={"action_type": "SKILL"})
        )
        modifier = action.to_hit_mod + mods.skill_mod
        roll = roll_d20(rng, modifier)
        check = CheckResult(
            d20=roll.d20,
            modifier=modifier,
            total=roll.total,
            breakdown=f"d20={roll.d20} + {modifier} = {roll.total}",
        )

    return ActionOutcome(
        kind="SKILL",
        to_hit=check,
        skill_id=skill.id if skill else None,
        skill_name=skill.name if skill else None,
    )


def resolve_action(
    ruleset: Ruleset,
    action: Action,
    sheet: Optional[Sheet] = None,
    context: Optional[ConditionContext] = None,
    *,
    fallback_attack: Optional[AttackSpec] = None,
    target_defense: Optional[int] = None,
    rng: Optional[Dice] = None,
) -> ActionOutcome:
    """Roll one combat action. Pure apart from the dice.

    ``fallback_attack`` stands in for the sheet when the actor is an NPC or
    monster. With ``target_defense=None`` attacks always land.
    """
    sheet = sheet or {}
    context = context or ConditionContext()
    dice = resolve_rng(rng)

    if isinstance(action, AttackAction):
        return _resolve_attack(
            ruleset,
            action,
            sheet,
            context,
            fallback_attack=fallback_attack,
            target_defense=target_defense,
            rng=dice,
        )
    if isinstance(action, SpellAction):
        return _resolve_spell(ruleset, action, sheet, context, rng=dice)
    if isinstance(action, SkillAction):
        return _resolve_skill(ruleset, action, sheet, context, rng=dice)
    raise ValidationError(f"Unsupported action: {action!r}")
