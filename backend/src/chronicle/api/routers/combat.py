from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from chronicle.api.deps import get_registry
from chronicle.api.schemas import (
    ActionOut,
    ApplyDeltaRequest,
    CombatantOut,
    CombatOut,
    InitiativeRequest,
    TurnRequest,
)
from chronicle.core import combat as combat_service
from chronicle.core.combat import ExtraCombatant
from chronicle.core.errors import ValidationError
from chronicle.core.ledger.events import EventVisibility
from chronicle.core.rules.registry import RulesetRegistry
from chronicle.core.rules.resolution import action_adapter
from chronicle.db.deps import get_db

router = APIRouter(prefix="/campaigns/{campaign_id}/combat", tags=["combat"])


def _combat_out(db: Session, combat) -> Optional[CombatOut]:
    if combat is None:
        return None
    combatants = combat_service.ordered_combatants(db, combat.id)
    return CombatOut(
        id=combat.id,
        campaign_id=combat.campaign_id,
        is_active=combat.is_active,
        round=combat.round,
        turn_index=combat.turn_index,
        combatants=[CombatantOut.model_validate(c) for c in combatants],
    )


@router.get("", response_model=Optional[CombatOut])
def get_combat(campaign_id: str, db: Session = Depends(get_db)):
    return _combat_out(db, combat_service.get_combat(db, campaign_id))


@router.post("", response_model=CombatOut)
def start_combat(campaign_id: str, db: Session = Depends(get_db)):
    return _combat_out(db, combat_service.start_combat(db, campaign_id))


@router.delete("", response_model=Optional[CombatOut])
def end_combat(campaign_id: str, db: Session = Depends(get_db)):
    return _combat_out(db, combat_service.end_combat(db, campaign_id))


@router.post("/initiative", response_model=CombatOut)
def roll_initiative(
    campaign_id: str,
    payload: Optional[InitiativeRequest] = None,
    db: Session = Depends(get_db),
    registry: RulesetRegistry = Depends(get_registry),
):
    combat_service.roll_initiative(
        db,
        campaign_id,
        registry=registry,
        extras=payload.extras if payload else (),
    )
    return _combat_out(db, combat_service.get_combat(db, campaign_id))


@router.post("/combatants", response_model=CombatantOut, status_code=201)
def add_combatant(
    campaign_id: str,
    payload: ExtraCombatant,
    db: Session = Depends(get_db),
    registry: RulesetRegistry = Depends(get_registry),
):
    combatant = combat_service.add_combatant(db, campaign_id, payload, registry=registry)
    return CombatantOut.model_validate(combatant)


@router.post("/turn", response_model=CombatOut)
def advance_turn(
    campaign_id: str,
    payload: Optional[TurnRequest] = None,
    db: Session = Depends(get_db),
):
    if payload is not None and payload.direction == "prev":
        combat = combat_service.previous_turn(db, campaign_id)
    else:
        combat = combat_service.next_turn(db, campaign_id)
    return _combat_out(db, combat)


@router.post("/action", response_model=ActionOut)
def combat_action(
    campaign_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    registry: RulesetRegistry = Depends(get_registry),
):
    try:
        action = action_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid action: {exc}") from exc

    report = combat_service.resolve_combat_action(db, campaign_id, action, registry=registry)
    return ActionOut(
        event_id=report.event.id,
        outcome=report.outcome.to_payload(),
        actor=CombatantOut.model_validate(report.actor),
        target=CombatantOut.model_validate(report.target),
        conditions_applied=[ref.to_payload() for ref in report.conditions_applied],
    )


@router.post("/apply", response_model=CombatantOut)
def apply_delta(campaign_id: str, payload: ApplyDeltaRequest, db: Session = Depends(get_db)):
    target = combat_service.apply_delta(
        db,
        campaign_id,
        payload.target_id,
        delta_hp=payload.delta_hp,
        delta_mp=payload.delta_mp,
        note=payload.note,
        visibility=EventVisibility(payload.visibility),
    )
    return CombatantOut.model_validate(target)
