import pytest

from chronicle.core.combat import (
    ExtraCombatant,
    add_combatant,
    apply_condition,
    next_turn,
    resolve_combat_action,
    roll_initiative,
    start_combat,
)
from chronicle.core.errors import NotFoundError, ReplayFailure
from chronicle.core.ledger import store
from chronicle.core.ledger.events import EventIn, EventType
from chronicle.core.ledger.replay import (
    CORRUPTED_CAMPAIGN_NAME,
    CORRUPTED_TITLE,
    corrupt_projections,
    rebuild,
)
from chronicle.core.rules.resolution import AttackAction
from chronicle.db.models import AppliedCondition, Campaign, Character, Combat, Combatant, World


def _snapshot(db, world_id):
    world = db.get(World, world_id)
    campaigns = db.query(Campaign).filter(Campaign.world_id == world_id).order_by(Campaign.id).all()
    characters = db.query(Character).filter(Character.world_id == world_id).order_by(Character.id).all()
    combats = db.query(Combat).order_by(Combat.id).all()
    combatants = db.query(Combatant).order_by(Combatant.id).all()
    applied = db.query(AppliedCondition).order_by(AppliedCondition.id).all()
    return {
        "world": (world.title, world.description),
        "campaigns": [(c.id, c.name, c.room_code, c.ruleset_id) for c in campaigns],
        "characters": [(c.id, c.name, c.level, c.sheet_json) for c in characters],
        "combats": [(c.id, c.is_active, c.round, c.turn_index) for c in combats],
        "combatants": [
            (c.id, c.name, c.initiative, c.order_index, c.hp_current, c.mp_current) for c in combatants
        ],
        "applied": [(a.id, a.target_combatant_id, a.condition_id) for a in applied],
    }


def test_arton_saga_corrupt_and_rebuild(db, make_world, make_campaign, make_character):
    world_id = make_world("Arton", "Continente de Arton")
    campaign_id = make_campaign(world_id, "Saga")
    make_character(world_id, campaign_id, "Aria")

    corrupt_projections(db, world_id)
    db.commit()
    assert db.get(World, world_id).title == CORRUPTED_TITLE
    assert db.get(Campaign, campaign_id).name == CORRUPTED_CAMPAIGN_NAME

    report = rebuild(db, world_id)

    assert report.world_id == world_id
    assert report.events_applied == 3
    assert db.get(World, world_id).title == "Arton"
    assert db.get(World, world_id).description == "Continente de Arton"
    assert db.get(Campaign, campaign_id).name == "Saga"
    assert [c.name for c in db.query(Character).all()] == ["Aria"]


def test_replay_reproduces_incremental_state(
    db, registry, fixed_dice, make_world, make_campaign, make_character
):
    world_id = make_world()
    campaign_id = make_campaign(world_id)
    aria_ref = make_character(
        world_id,
        campaign_id,
        "Aria",
        {"des": 14, "for": 16, "pvMax": 20, "defenseFinal": 15,
         "attacks": [{"id": "espada", "name": "Espada", "damage": "1d8+3"}]},
    )

    combat = start_combat(db, campaign_id)
    order = roll_initiative(
        db,
        campaign_id,
        registry=registry,
        extras=[ExtraCombatant(name="Goblin", kind="MONSTER", dex=12, hp_max=9, defense=13)],
        rng=fixed_dice(10, 11),
    )
    aria = next(c for c in order if c.ref_id == aria_ref)
    goblin = next(c for c in order if c.name == "Goblin")
    aria_id, goblin_id = aria.id, goblin.id

    resolve_combat_action(
        db,
        campaign_id,
        AttackAction(actor_id=aria_id, target_id=goblin_id, attack_id="espada"),
        registry=registry,
        rng=fixed_dice(12, 2),
    )
    apply_condition(db, combat.id, goblin_id, condition_key="abalado")
    next_turn(db, campaign_id)

    incremental = _snapshot(db, world_id)
    assert incremental["combatants"]
    assert dict((c[0], c[4]) for c in incremental["combatants"])[goblin_id] == 4

    rebuild(db, world_id, corrupt=True)

    assert _snapshot(db, world_id) == incremental


def test_replay_failure_rolls_back_everything(db, make_world):
    world_id = make_world()
    # bypass the dispatcher to plant an event whose projector cannot succeed
    bad = store.append(
        db,
        EventIn(type=EventType.CHARACTER_UPDATED, world_id=world_id, entity_id="ghost"),
        {"name": "Nobody"},
    )
    bad_id = bad.id
    db.commit()

    with pytest.raises(ReplayFailure) as exc:
        rebuild(db, world_id, corrupt=True)

    assert exc.value.event_id == bad_id
    assert exc.value.event_type == "CHARACTER_UPDATED"
    assert isinstance(exc.value.cause, NotFoundError)
    # the corruption step was part of the aborted transaction
    assert db.get(World, world_id).title == "Arton"


def test_rebuild_unknown_world_with_corrupt_flag(db):
    with pytest.raises(NotFoundError):
        rebuild(db, "nope", corrupt=True)


def test_rebuild_empty_world_applies_nothing(db):
    report = rebuild(db, "nope")
    assert report.events_applied == 0


def test_replay_keeps_combatants_cleared_by_empty_reroll(db, registry, fixed_dice, make_world, make_campaign):
    world_id = make_world()
    campaign_id = make_campaign(world_id)
    combat = start_combat(db, campaign_id)
    roll_initiative(db, campaign_id, registry=registry, extras=[ExtraCombatant(name="Goblin")], rng=fixed_dice(7))
    apply_condition(db, combat.id, db.query(Combatant).one().id, condition_key="abalado")

    assert roll_initiative(db, campaign_id, registry=registry) == []
    assert [e.type for e in store.list_events(db, world_id)][-1] == "COMBATANTS_CLEARED"

    rebuild(db, world_id, corrupt=True)

    assert db.query(Combatant).all() == []
    assert db.query(AppliedCondition).all() == []


def test_replay_keeps_combatant_added_mid_fight(db, registry, fixed_dice, make_world, make_campaign):
    world_id = make_world()
    campaign_id = make_campaign(world_id)
    start_combat(db, campaign_id)
    roll_initiative(db, campaign_id, registry=registry, extras=[ExtraCombatant(name="Goblin")], rng=fixed_dice(7))
    add_combatant(db, campaign_id, ExtraCombatant(name="Ogro", hp_max=30), registry=registry, rng=fixed_dice(15))
    incremental = _snapshot(db, world_id)

    rebuild(db, world_id, corrupt=True)

    assert _snapshot(db, world_id) == incremental
    assert sorted(c[1] for c in incremental["combatants"]) == ["Goblin", "Ogro"]
