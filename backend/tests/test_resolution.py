import pytest
from pydantic import ValidationError as PydanticValidationError

from chronicle.core.rules.base import AttackSpec
from chronicle.core.rules.resolution import (
    AttackAction,
    SkillAction,
    SpellAction,
    action_adapter,
    resolve_action,
)
from chronicle.core.rules.tormenta20 import Tormenta20Ruleset

SHEET = {
    "for": 16,
    "attacks": [
        {"id": "adaga", "name": "Adaga", "damage": "1d4"},
        {"id": "espada", "name": "Espada", "damage": "1d8+3"},
    ],
    "skills": [{"id": "atletismo", "name": "Atletismo", "ability": "for", "trained": True}],
    "spells": [{"id": "raio", "name": "Raio", "cost": 2, "formula": "2d6"}],
}


def _attack(**kw):
    return AttackAction(actor_id="a", target_id="b", **kw)


def test_action_adapter_discriminates_on_kind():
    action = action_adapter.validate_python({"kind": "SPELL", "actorId": "a", "targetId": "b", "spellId": "raio"})
    assert isinstance(action, SpellAction)
    assert action.spell_id == "raio"

    with pytest.raises(PydanticValidationError):
        action_adapter.validate_python({"kind": "DANCE", "actorId": "a", "targetId": "b"})


def test_sheet_attack_picked_by_id_and_hits(fixed_dice):
    outcome = resolve_action(
        Tormenta20Ruleset(), _attack(attack_id="espada"), SHEET, target_defense=15, rng=fixed_dice(12, 5)
    )
    assert outcome.attack_name == "Espada"
    assert outcome.to_hit.total == 15
    assert outcome.hit is True
    assert outcome.is_crit is False
    assert outcome.damage.total == 8


def test_natural_one_misses_against_defense(fixed_dice):
    outcome = resolve_action(
        Tormenta20Ruleset(), _attack(attack_id="espada"), SHEET, target_defense=2, rng=fixed_dice(1)
    )
    assert outcome.hit is False
    assert outcome.damage is None


def test_attack_without_defense_always_deals_damage(fixed_dice):
    outcome = resolve_action(
        Tormenta20Ruleset(), _attack(attack_id="espada"), SHEET, rng=fixed_dice(1, 2)
    )
    assert outcome.hit is True
    assert outcome.is_crit is False
    assert outcome.damage.total == 5


def test_natural_twenty_hits_and_crits(fixed_dice):
    outcome = resolve_action(
        Tormenta20Ruleset(), _attack(attack_id="espada"), SHEET, target_defense=40, rng=fixed_dice(20, 8)
    )
    assert outcome.hit is True
    assert outcome.is_crit is True
    assert outcome.damage.total == 22


def test_crit_threat_without_hit_is_not_a_crit(fixed_dice):
    sheet = {"for": 10, "attacks": [{"name": "Foice", "critRange": 18, "damage": "1d4"}]}
    outcome = resolve_action(Tormenta20Ruleset(), _attack(), sheet, target_defense=25, rng=fixed_dice(18))
    assert outcome.to_hit.is_crit_threat is True
    assert outcome.hit is False
    assert outcome.is_crit is False


def test_manual_attack_uses_modifier_and_formula(fixed_dice):
    action = _attack(use_sheet=False, to_hit_mod=3, damage_formula="2d4")
    outcome = resolve_action(Tormenta20Ruleset(), action, SHEET, target_defense=12, rng=fixed_dice(10, 2, 3))
    assert outcome.to_hit.total == 13
    assert outcome.damage.total == 5


def test_fallback_attack_for_monsters(fixed_dice):
    claw = AttackSpec(name="Garra", bonus=4, damage="1d6+1", crit_range=20, crit_multiplier=2)
    outcome = resolve_action(
        Tormenta20Ruleset(), _attack(), {}, fallback_attack=claw, target_defense=15, rng=fixed_dice(11, 3)
    )
    assert outcome.attack_name == "Garra"
    assert outcome.to_hit.total == 15
    assert outcome.damage.total == 4


def test_spell_from_sheet(fixed_dice):
    action = SpellAction(actor_id="a", target_id="b", spell_id="raio")
    outcome = resolve_action(Tormenta20Ruleset(), action, SHEET, rng=fixed_dice(9, 3, 4))
    assert outcome.kind == "SPELL"
    assert outcome.cost_mp == 2
    assert outcome.damage.total == 7
    assert outcome.spell_name == "Raio"


def test_manual_spell_cost_from_action(fixed_dice):
    action = SpellAction(actor_id="a", target_id="b", use_sheet=False, cost_mp=3, damage_formula="1d6")
    outcome = resolve_action(Tormenta20Ruleset(), action, {}, rng=fixed_dice(5, 6))
    assert outcome.cost_mp == 3
    assert outcome.damage.total == 6


def test_skill_check_from_sheet(fixed_dice):
    action = SkillAction(actor_id="a", target_id="a", skill_id="atletismo")
    outcome = resolve_action(Tormenta20Ruleset(), action, SHEET, rng=fixed_dice(10))
    # for 16 (+3) + trained 2
    assert outcome.to_hit.total == 15
    assert outcome.damage is None
    assert outcome.skill_name == "Atletismo"
