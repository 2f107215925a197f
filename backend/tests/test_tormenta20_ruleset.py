from chronicle.core.rules.base import AttackSpec, ConditionContext, SkillSpec, SpellSpec
from chronicle.core.rules.tormenta20 import Tormenta20Ruleset, ability_mod

SHEET = {"for": 14, "int": 16}
SWORD = AttackSpec.model_validate({"name": "Espada", "damage": "1d6+2", "critRange": 19})


def test_ability_mod():
    assert ability_mod(10) == 0
    assert ability_mod(14) == 2
    assert ability_mod(9) == -1
    assert Tormenta20Ruleset().get_ability_mod(18) == 4


def test_crit_threat_uses_attack_crit_range(fixed_dice):
    ruleset = Tormenta20Ruleset()
    dice = fixed_dice(19, 20, 18)

    r19 = ruleset.compute_attack(SHEET, SWORD, rng=dice)
    r20 = ruleset.compute_attack(SHEET, SWORD, rng=dice)
    r18 = ruleset.compute_attack(SHEET, SWORD, rng=dice)

    assert r19.is_crit_threat is True
    assert r20.is_crit_threat is True
    assert r18.is_crit_threat is False
    assert r19.modifier == 2
    assert r19.total == 21
    assert r19.attack_name == "Espada"


def test_damage_crit_multiplies_total(fixed_dice):
    ruleset = Tormenta20Ruleset()
    damage = ruleset.compute_damage(SHEET, SWORD, True, rng=fixed_dice(4))
    assert damage.total == 12
    assert damage.is_crit is True
    assert damage.detail == "4+2"

    normal = ruleset.compute_damage(SHEET, SWORD, False, rng=fixed_dice(4))
    assert normal.total == 6


def test_attack_reads_sheet_fallbacks(fixed_dice):
    ruleset = Tormenta20Ruleset()
    sheet = {"for": 12, "attackBonus": 3, "critRange": 18, "damageFormula": "1d8"}

    roll = ruleset.compute_attack(sheet, None, rng=fixed_dice(18))
    assert roll.modifier == 4
    assert roll.is_crit_threat is True

    damage = ruleset.compute_damage(sheet, None, False, rng=fixed_dice(7))
    assert damage.total == 7


def test_conditions_change_attack_and_breakdown(fixed_dice):
    ruleset = Tormenta20Ruleset()
    context = ConditionContext(actor_conditions=[{"modifiers": {"attack": -2}}])
    roll = ruleset.compute_attack(SHEET, SWORD, context, rng=fixed_dice(10))
    assert roll.modifier == 0
    assert "Ataque -2" in roll.breakdown


def test_skill_check_trained_bonus(fixed_dice):
    ruleset = Tormenta20Ruleset()
    skill = SkillSpec(name="Misticismo", ability="int", trained=True, ranks=1, bonus=1)
    check = ruleset.compute_skill_check(SHEET, skill, rng=fixed_dice(10))
    # int 16 (+3) + bonus 1 + ranks 1 + trained 2
    assert check.modifier == 7
    assert check.total == 17


def test_save_spell_reports_dc_and_effects(fixed_dice):
    ruleset = Tormenta20Ruleset()
    spell = SpellSpec.model_validate(
        {"name": "Medo", "type": "save", "cd": 15, "cost": 1, "effectsApplied": ["abalado"]}
    )
    result = ruleset.compute_spell(SHEET, spell, rng=fixed_dice())
    assert result.check.total == 15
    assert result.breakdown == "CD 15"
    assert result.damage is None
    assert result.cost_mp == 1
    assert result.effects_applied == [{"conditionKey": "abalado"}]


def test_spell_cost_never_negative(fixed_dice):
    ruleset = Tormenta20Ruleset()
    spell = SpellSpec(name="Luz", cost=1, formula="1d4")
    context = ConditionContext(actor_conditions=[{"modifiers": {"costMp": -3}}])
    result = ruleset.compute_spell(SHEET, spell, context, rng=fixed_dice(12, 3))
    assert result.cost_mp == 0
    assert result.check.modifier == 3
    assert result.damage.total == 3


def test_validate_sheet_fills_defaults_and_keeps_unknown_keys():
    safe = Tormenta20Ruleset().validate_sheet({"for": 15, "notes": "x", "attacks": [{"name": "Arco"}, 3]})
    assert safe["sheetRulesetId"] == "tormenta20"
    assert safe["for"] == 15
    assert safe["des"] == 10
    assert safe["pvMax"] == 0
    assert safe["critRange"] == 20
    assert safe["critMultiplier"] == 2
    assert safe["damageFormula"] == "1d6"
    assert safe["notes"] == "x"
    assert [a["name"] for a in safe["attacks"]] == ["Arco"]
