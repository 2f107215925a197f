from __future__ import annotations

from sqlalchemy.orm import Session

from chronicle.core.errors import NotFoundError, ValidationError
from chronicle.core.ledger.events import CharacterCreatedPayload, CharacterUpdatedPayload
from chronicle.db.models import Campaign, Character, WorldEvent


def apply_character_created(db: Session, event: WorldEvent) -> None:
    payload = CharacterCreatedPayload.model_validate(event.payload)
    character_id = event.target_id
    if not character_id:
        raise ValidationError("Character id (entity_id) is required for CHARACTER_CREATED")

    if event.campaign_id and db.get(Campaign, event.campaign_id) is None:
        raise NotFoundError("Campaign", event.campaign_id)

    character = db.get(Character, character_id)
    if character is None:
        character = Character(id=character_id, world_id=event.world_id)
        db.add(character)

    character.campaign_id = event.campaign_id
    character.name = payload.name
    character.description = payload.description
    character.ancestry = payload.ancestry or "Humano"
    character.class_name = payload.class_name or "Guerreiro"
    character.role = payload.role or "Combatente"
    character.level = payload.level
    character.avatar_url = payload.avatar_url
    character.sheet_json = dict(payload.sheet)


def apply_character_updated(db: Session, event: WorldEvent) -> None:
    payload = CharacterUpdatedPayload.model_validate(event.payload)
    character = db.get(Character, event.target_id) if event.target_id else None
    if character is None:
        raise NotFoundError("Character", event.target_id)

    for field in ("name", "description", "ancestry", "class_name", "role", "level", "avatar_url"):
        value = getattr(payload, field)
        if value is not None:
            setattr(character, field, value)

    if payload.sheet is not None:
        # shallow merge: keys in the event win, other keys are kept
        character.sheet_json = {**(character.sheet_json or {}), **payload.sheet}
