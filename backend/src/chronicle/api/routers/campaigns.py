from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from chronicle.api.deps import get_registry
from chronicle.api.schemas import (
    CampaignCreate,
    CampaignOut,
    CharacterCreate,
    CharacterOut,
    CharacterSheetUpdate,
)
from chronicle.core.ledger.dispatcher import dispatch
from chronicle.core.ledger.events import EventIn, EventScope, EventType
from chronicle.core.rules.registry import RulesetRegistry
from chronicle.db.deps import get_db
from chronicle.db.models import Campaign, Character, World

router = APIRouter(tags=["campaigns"])


@router.post("/worlds/{world_id}/campaigns", response_model=CampaignOut, status_code=201)
def create_campaign(world_id: str, payload: CampaignCreate, db: Session = Depends(get_db)):
    if not db.get(World, world_id):
        raise HTTPException(status_code=404, detail="World not found")

    campaign_id = str(uuid.uuid4())
    dispatch(
        db,
        EventIn(
            type=EventType.CAMPAIGN_CREATED,
            world_id=world_id,
            campaign_id=campaign_id,
            entity_id=campaign_id,
            scope=EventScope.MACRO,
            payload={
                "name": payload.name,
                "description": payload.description,
                "system": payload.system,
                "rulesetId": payload.ruleset_id,
            },
        ),
    )
    return CampaignOut.model_validate(db.get(Campaign, campaign_id))


@router.get("/campaigns/{campaign_id}", response_model=CampaignOut)
def get_campaign(campaign_id: str, db: Session = Depends(get_db)):
    obj = db.get(Campaign, campaign_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return CampaignOut.model_validate(obj)


@router.post("/campaigns/{campaign_id}/characters", response_model=CharacterOut, status_code=201)
def create_character(campaign_id: str, payload: CharacterCreate, db: Session = Depends(get_db)):
    campaign = db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")

    character_id = str(uuid.uuid4())
    dispatch(
        db,
        EventIn(
            type=EventType.CHARACTER_CREATED,
            world_id=campaign.world_id,
            campaign_id=campaign.id,
            entity_id=character_id,
            payload={
                "name": payload.name,
                "description": payload.description,
                "ancestry": payload.ancestry,
                "className": payload.class_name,
                "role": payload.role,
                "level": payload.level,
                "avatarUrl": payload.avatar_url,
                "sheet": payload.sheet,
            },
        ),
    )
    return CharacterOut.model_validate(db.get(Character, character_id))


@router.get("/campaigns/{campaign_id}/characters", response_model=list[CharacterOut])
def list_characters(campaign_id: str, db: Session = Depends(get_db)):
    if not db.get(Campaign, campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    items = (
        db.query(Character)
        .filter(Character.campaign_id == campaign_id)
        .order_by(Character.name.asc(), Character.id.asc())
        .all()
    )
    return [CharacterOut.model_validate(c) for c in items]


@router.put("/characters/{character_id}/sheet", response_model=CharacterOut)
def update_character_sheet(
    character_id: str,
    payload: CharacterSheetUpdate,
    db: Session = Depends(get_db),
    registry: RulesetRegistry = Depends(get_registry),
):
    character = db.get(Character, character_id)
    if not character:
        raise HTTPException(status_code=404, detail="Character not found")

    campaign = db.get(Campaign, character.campaign_id) if character.campaign_id else None
    ruleset = registry.get(campaign.ruleset_id if campaign else None)
    sheet = ruleset.validate_sheet({**(character.sheet_json or {}), **payload.sheet})

    dispatch(
        db,
        EventIn(
            type=EventType.CHARACTER_UPDATED,
            world_id=character.world_id,
            campaign_id=character.campaign_id,
            entity_id=character.id,
            payload={"sheet": sheet},
        ),
    )
    db.refresh(character)
    return CharacterOut.model_validate(character)
