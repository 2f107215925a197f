from .service import (
    ActionReport,
    ExtraCombatant,
    add_combatant,
    apply_condition,
    apply_delta,
    end_combat,
    get_combat,
    next_turn,
    ordered_combatants,
    previous_turn,
    remove_condition,
    resolve_combat_action,
    roll_initiative,
    start_combat,
)

__all__ = [
    "ActionReport",
    "ExtraCombatant",
    "add_combatant",
    "apply_condition",
    "apply_delta",
    "end_combat",
    "get_combat",
    "next_turn",
    "ordered_combatants",
    "previous_turn",
    "remove_condition",
    "resolve_combat_action",
    "roll_initiative",
    "start_combat",
]
