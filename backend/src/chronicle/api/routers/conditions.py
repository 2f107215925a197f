from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from chronicle.api.schemas import (
    AppliedConditionOut,
    ConditionApplyRequest,
    ConditionRemoveOut,
    ConditionRemoveRequest,
)
from chronicle.core import combat as combat_service
from chronicle.core.ledger.events import EventVisibility
from chronicle.db.deps import get_db

router = APIRouter(prefix="/combat/{combat_id}/conditions", tags=["conditions"])


@router.post("/apply", response_model=AppliedConditionOut, status_code=201)
def apply_condition(combat_id: str, payload: ConditionApplyRequest, db: Session = Depends(get_db)):
    applied = combat_service.apply_condition(
        db,
        combat_id,
        payload.target_combatant_id,
        condition_id=payload.condition_id,
        condition_key=payload.condition_key,
        expires_at_turn=payload.expires_at_turn,
        visibility=EventVisibility(payload.visibility),
    )
    return AppliedConditionOut.model_validate(applied)


@router.post("/remove", response_model=ConditionRemoveOut)
def remove_condition(combat_id: str, payload: ConditionRemoveRequest, db: Session = Depends(get_db)):
    removed = combat_service.remove_condition(
        db,
        combat_id,
        target_id=payload.target_combatant_id,
        applied_condition_id=payload.applied_condition_id,
        condition_id=payload.condition_id,
        condition_key=payload.condition_key,
        visibility=EventVisibility(payload.visibility),
    )
    return ConditionRemoveOut(removed=removed)
