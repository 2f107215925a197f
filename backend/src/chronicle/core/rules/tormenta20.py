from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .base import (
    AttackResult,
    AttackSpec,
    CheckResult,
    ConditionContext,
    ConditionModifiers,
    DamageResult,
    Sheet,
    SkillSpec,
    SpellResult,
    SpellSpec,
)
from .conditions import resolve_condition_modifiers
from .dice import Dice, resolve_rng, roll_d20, roll_formula, signed

DEFAULT_DAMAGE_FORMULA = "1d6"
DEFAULT_CRIT_RANGE = 20
DEFAULT_CRIT_MULTIPLIER = 2


def ability_mod(score: int) -> int:
    return (score - 10) // 2


def _number_or(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return int(value)
    return fallback


def _text_or(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _with_notes(text: str, mods: ConditionModifiers) -> str:
    if not mods.notes:
        return text
    return f"{text} ({', '.join(mods.notes)})"


class Tormenta20Ruleset:
    id = "tormenta20"
    name = "Tormenta 20"

    abilities: List[Dict[str, Any]] = [
        {"key": "for", "label": "Forca", "order": 1},
        {"key": "des", "label": "Destreza", "order": 2},
        {"key": "con", "label": "Constituicao", "order": 3},
        {"key": "int", "label": "Inteligencia", "order": 4},
        {"key": "sab", "label": "Sabedoria", "order": 5},
        {"key": "car", "label": "Carisma", "order": 6},
    ]

    resources: List[Dict[str, Any]] = [
        {"key": "pv", "label": "Pontos de Vida", "order": 1},
        {"key": "pm", "label": "Pontos de Mana", "order": 2},
    ]

    conditions: List[Dict[str, Any]] = [
        {"key": "abalado", "name": "Abalado", "modifiers": {"attack": -2, "skill": -2}},
        {"key": "apavorado", "name": "Apavorado", "modifiers": {"attack": -5, "skill": -5}},
        {"key": "cego", "name": "Cego", "modifiers": {"attack": -2, "defense": -5}},
        {"key": "desprevenido", "name": "Desprevenido", "modifiers": {"defense": -5}},
        {"key": "enfraquecido", "name": "Enfraquecido", "modifiers": {"damage": -2}},
        {"key": "frustrado", "name": "Frustrado", "modifiers": {"skill": -2, "spell": -2}},
        {"key": "vulneravel", "name": "Vulneravel", "modifiers": {"defense": -2}},
    ]

    def get_ability_mod(self, score: int) -> int:
        return ability_mod(score)

    def apply_conditions_modifiers(self, context: ConditionContext) -> ConditionModifiers:
        return resolve_condition_modifiers(context)

    def _modifiers(
        self, context: Optional[ConditionContext], action_type: str
    ) -> ConditionModifiers:
        ctx = context or ConditionContext()
        return self.apply_conditions_modifiers(
            ctx.model_copy(update={"action_type": action_type})
        )

    def _score(self, sheet: Sheet, key: str, fallback: int = 10) -> int:
        return _number_or(sheet.get(key), fallback)

    def compute_attack(
        self,
        sheet: Sheet,
        attack: Optional[AttackSpec],
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> AttackResult:
        attack = attack or AttackSpec()

        if isinstance(sheet.get(attack.ability), (int, float)):
            score = self._score(sheet, attack.ability)
        elif attack.ability_score is not None:
            score = attack.ability_score
        else:
            score = self._score(sheet, "for")

        bonus = (
            attack.bonus
            if attack.bonus is not None
            else _number_or(sheet.get("attackBonus"), 0)
        )
        mods = self._modifiers(context, "ATTACK")
        modifier = ability_mod(score) + bonus + mods.attack_mod

        roll = roll_d20(resolve_rng(rng), modifier)
        crit_range = (
            attack.crit_range
            if attack.crit_range is not None
            else _number_or(sheet.get("critRange"), DEFAULT_CRIT_RANGE)
        )

        return AttackResult(
            d20=roll.d20,
            modifier=modifier,
            total=roll.total,
            is_nat20=roll.is_nat20,
            is_nat1=roll.is_nat1,
            is_crit_threat=roll.d20 >= crit_range,
            breakdown=_with_notes(f"d20={roll.d20} + {modifier} = {roll.total}", mods),
            attack_name=attack.name,
        )

    def compute_damage(
        self,
        sheet: Sheet,
        attack: Optional[AttackSpec],
        is_crit: bool,
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> DamageResult:
        attack = attack or AttackSpec()
        formula = _text_or(
            attack.damage, _text_or(sheet.get("damageFormula"), DEFAULT_DAMAGE_FORMULA)
        )
        multiplier = (
            attack.crit_multiplier
            if attack.crit_multiplier is not None
            else _number_or(sheet.get("critMultiplier"), DEFAULT_CRIT_MULTIPLIER)
        )

        mods = self._modifiers(context, "ATTACK")
        roll = roll_formula(resolve_rng(rng), formula)
        adjusted = roll.total + mods.damage_mod
        detail = roll.detail + (signed(mods.damage_mod) if mods.damage_mod else "")

        return DamageResult(
            total=adjusted * multiplier if is_crit else adjusted,
            detail=detail,
            rolls=roll.rolls,
            is_crit=is_crit,
            attack_name=attack.name,
            damage_type=attack.type or None,
        )

    def compute_skill_check(
        self,
        sheet: Sheet,
        skill: Optional[SkillSpec],
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> CheckResult:
        skill = skill or SkillSpec()
        base = (
            ability_mod(self._score(sheet, skill.ability))
            + skill.bonus
            + skill.misc
            + skill.ranks
            + (2 if skill.trained else 0)
        )
        mods = self._modifiers(context, "SKILL")
        modifier = base + mods.skill_mod
        roll = roll_d20(resolve_rng(rng), modifier)
        return CheckResult(
            d20=roll.d20,
            modifier=modifier,
            total=roll.total,
            breakdown=_with_notes(f"d20={roll.d20} + {modifier} = {roll.total}", mods),
        )

    def compute_spell(
        self,
        sheet: Sheet,
        spell: Optional[SpellSpec],
        context: Optional[ConditionContext] = None,
        *,
        rng: Optional[Dice] = None,
    ) -> SpellResult:
        spell = spell or SpellSpec()
        dice = resolve_rng(rng)
        mods = self._modifiers(context, "SPELL")

        cost_mp = max(0, spell.cost + mods.cost_mp_mod)

        if spell.type.strip().lower() == "save":
            dc = spell.cd + mods.dc_mod
            check = CheckResult(d20=0, modifier=mods.dc_mod, total=dc, breakdown=f"CD {dc}")
        else:
            modifier = ability_mod(self._score(sheet, spell.ability)) + mods.spell_mod
            roll = roll_d20(dice, modifier)
            check = CheckResult(
                d20=roll.d20,
                modifier=modifier,
                total=roll.total,
                breakdown=_with_notes(f"d20={roll.d20} + {modifier} = {roll.total}", mods),
            )

        damage = None
        if spell.formula.strip():
            roll = roll_formula(dice, spell.formula)
            damage = DamageResult(
                total=roll.total + mods.damage_mod,
                detail=roll.detail + (signed(mods.damage_mod) if mods.damage_mod else ""),
                rolls=roll.rolls,
                attack_name=spell.name,
            )

        effects = [
            {"conditionKey": entry} if isinstance(entry, str) else dict(entry)
            for entry in spell.effects_applied
            if isinstance(entry, (str, Mapping))
        ]

        return SpellResult(
            check=check,
            damage=damage,
            cost_mp=cost_mp,
            effects_applied=effects,
            breakdown=check.breakdown,
        )

    def validate_sheet(self, sheet: Sheet) -> Dict[str, Any]:
        """Fill defaults for a raw sheet dict without touching unknown keys."""
        safe = dict(sheet or {})
        safe["sheetRulesetId"] = _text_or(safe.get("sheetRulesetId"), self.id)
        safe["level"] = _number_or(safe.get("level"), 1)
        for ability in self.abilities:
            safe[ability["key"]] = _number_or(safe.get(ability["key"]), 10)

        for key in ("pvCurrent", "pvMax", "pmCurrent", "pmMax", "attackBonus"):
            safe[key] = _number_or(safe.get(key), 0)
        safe["damageFormula"] = _text_or(safe.get("damageFormula"), DEFAULT_DAMAGE_FORMULA)
        safe["critRange"] = _number_or(safe.get("critRange"), DEFAULT_CRIT_RANGE)
        safe["critMultiplier"] = _number_or(safe.get("critMultiplier"), DEFAULT_CRIT_MULTIPLIER)
        safe["defenseFinal"] = _number_or(safe.get("defenseFinal"), 10)

        safe["attacks"] = [
            AttackSpec.model_validate(a).model_dump(by_alias=True, exclude_none=True)
            for a in safe.get("attacks") or []
            if isinstance(a, Mapping)
        ]
        safe["skills"] = [
            SkillSpec.model_validate(s).model_dump(by_alias=True, exclude_none=True)
            for s in safe.get("skills") or []
            if isinstance(s, Mapping)
        ]
        safe["spells"] = [
            SpellSpec.model_validate(s).model_dump(by_alias=True, exclude_none=True)
            for s in safe.get("spells") or []
            if isinstance(s, Mapping)
        ]
        return safe
