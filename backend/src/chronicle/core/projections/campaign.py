from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from chronicle.core.errors import ChronicleError, ValidationError
from chronicle.core.ledger.events import CampaignCreatedPayload
from chronicle.core.rules.dice import Dice, resolve_rng
from chronicle.db.models import Campaign, WorldEvent

PENDING_CAMPAIGN_NAME = "Pending..."

# no 0/O, 1/I
ROOM_CODE_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_room_code(length: int = 6, rng: Optional[Dice] = None) -> str:
    dice = resolve_rng(rng)
    return "".join(
        ROOM_CODE_CHARS[dice.randint(0, len(ROOM_CODE_CHARS) - 1)] for _ in range(length)
    )


def unique_room_code(db: Session, attempts: int = 10, rng: Optional[Dice] = None) -> str:
    for _ in range(attempts):
        code = generate_room_code(rng=rng)
        exists = db.query(Campaign.id).filter(Campaign.room_code == code).first()
        if not exists:
            return code
    raise ChronicleError("Could not generate a unique room code for the campaign")


def ensure_campaign_shell(db: Session, campaign_id: str, world_id: str, room_code: str) -> None:
    if db.get(Campaign, campaign_id) is not None:
        return
    db.add(
        Campaign(
            id=campaign_id,
            world_id=world_id,
            name=PENDING_CAMPAIGN_NAME,
            room_code=room_code,
        )
    )
    db.flush()


def apply_campaign_created(db: Session, event: WorldEvent) -> None:
    payload = CampaignCreatedPayload.model_validate(event.payload)
    campaign_id = event.target_id
    if not campaign_id:
        raise ValidationError("Campaign id (entity_id) is required for CAMPAIGN_CREATED")

    campaign = db.get(Campaign, campaign_id)
    if campaign is None:
        campaign = Campaign(
            id=campaign_id,
            world_id=event.world_id,
            room_code=payload.room_code or unique_room_code(db),
        )
        db.add(campaign)
    elif payload.room_code:
        campaign.room_code = payload.room_code

    campaign.name = payload.name
    campaign.description = payload.description
    campaign.system = payload.system
    campaign.ruleset_id = payload.ruleset_id
