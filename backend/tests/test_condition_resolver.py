import copy

from chronicle.core.rules.base import ConditionContext
from chronicle.core.rules.conditions import extract_modifiers, resolve_condition_modifiers, sum_modifiers


def test_extract_modifiers_accepts_known_shapes():
    flat = {"modifiers": {"attack": -2}}
    nested = {"effects": {"modifiers": {"skill": -1}}}
    applied = {"condition": {"effects": {"modifiers": {"defense": -5}}}}

    assert extract_modifiers(flat)["attack"] == -2
    assert extract_modifiers(nested)["skill"] == -1
    assert extract_modifiers(applied)["defense"] == -5


def test_non_numeric_values_count_as_zero():
    mods = extract_modifiers({"modifiers": {"attack": "lots", "damage": True, "spell": 2.0}})
    assert mods["attack"] == 0
    assert mods["damage"] == 0
    assert mods["spell"] == 2


def test_sum_modifiers_adds_entries():
    total = sum_modifiers([{"modifiers": {"attack": -2}}, {"modifiers": {"attack": -5, "dc": 1}}])
    assert total["attack"] == -7
    assert total["dc"] == 1


def test_target_defense_and_damage_taken():
    actor = [{"modifiers": {"attack": -2, "damage": 1}}]
    target = [
        {"condition": {"effects": {"modifiers": {"defense": -5}}}},
        {"modifiers": {"damageTaken": 2}},
    ]
    before = copy.deepcopy((actor, target))

    mods = resolve_condition_modifiers(
        ConditionContext(actor_conditions=actor, target_conditions=target)
    )

    assert mods.attack_mod == 3
    assert mods.damage_mod == 3
    assert mods.notes == ["Ataque +3", "Dano +3"]
    assert (actor, target) == before


def test_empty_context_has_no_modifiers():
    mods = resolve_condition_modifiers(ConditionContext())
    assert mods.attack_mod == 0
    assert mods.cost_mp_mod == 0
    assert mods.notes == []
