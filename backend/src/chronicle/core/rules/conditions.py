"""Condition resolver: turns active status effects into roll deltas.

An entry is whatever the combat layer loaded for an applied condition. The
modifiers may sit at ``entry["modifiers"]``, ``entry["effects"]["modifiers"]``
or ``entry["condition"]["effects"]["modifiers"]``; missing or non-numeric
values count as zero.

Actor-side keys: ``attack``, ``skill``, ``spell``, ``damage``, ``costMp``,
``dc``. Target-side keys: ``defense`` (subtracted from the attacker's roll)
and ``damageTaken`` (added to the damage the target receives).

The resolver only returns deltas; callers add them to their own modifiers.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from .base import ConditionContext, ConditionModifiers
from .dice import signed

_MOD_KEYS = ("attack", "skill", "spell", "damage", "costMp", "dc", "defense", "damageTaken")


def _number_or_zero(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _modifier_block(entry: Mapping[str, Any]) -> Mapping[str, Any]:
    for holder in (entry.get("condition"), entry):
        if not isinstance(holder, Mapping):
            continue
        effects = holder.get("effects")
        if isinstance(effects, Mapping):
            mods = effects.get("modifiers", effects)
            if isinstance(mods, Mapping):
                return mods
        mods = holder.get("modifiers")
        if isinstance(mods, Mapping):
            return mods
    return {}


def extract_modifiers(entry: Mapping[str, Any]) -> Dict[str, int]:
    block = _modifier_block(entry)
    return {key: _number_or_zero(block.get(key)) for key in _MOD_KEYS}


def sum_modifiers(entries: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    acc = {key: 0 for key in _MOD_KEYS}
    for entry in entries or ():
        for key, value in extract_modifiers(entry).items():
            acc[key] += value
    return acc


def resolve_condition_modifiers(context: ConditionContext) -> ConditionModifiers:
    actor = sum_modifiers(context.actor_conditions)
    target = sum_modifiers(context.target_conditions)

    attack_mod = actor["attack"] - target["defense"]
    damage_mod = actor["damage"] + target["damageTaken"]

    notes: list[str] = []
    if attack_mod:
        notes.append(f"Ataque {signed(attack_mod)}")
    if actor["skill"]:
        notes.append(f"Pericia {signed(actor['skill'])}")
    if actor["spell"]:
        notes.append(f"Magia {signed(actor['spell'])}")
    if damage_mod:
        notes.append(f"Dano {signed(damage_mod)}")
    if actor["costMp"]:
        notes.append(f"PM {signed(actor['costMp'])}")

    return ConditionModifiers(
        attack_mod=attack_mod,
        skill_mod=actor["skill"],
        spell_mod=actor["spell"],
        damage_mod=damage_mod,
        cost_mp_mod=actor["costMp"],
        dc_mod=actor["dc"],
        notes=notes,
    )
