from __future__ import annotations

from sqlalchemy.orm import Session

from chronicle.core.ledger.events import WorldCreatedPayload
from chronicle.db.models import World, WorldEvent

PENDING_WORLD_TITLE = "Pending Initialization..."


def ensure_world_shell(db: Session, world_id: str) -> None:
    """Placeholder row so the ledger row's foreign key resolves; the
    WORLD_CREATED projector overwrites it right after."""
    if db.get(World, world_id) is not None:
        return
    db.add(World(id=world_id, title=PENDING_WORLD_TITLE))
    db.flush()


def apply_world_created(db: Session, event: WorldEvent) -> None:
    payload = WorldCreatedPayload.model_validate(event.payload)

    world = db.get(World, event.world_id)
    if world is None:
        world = World(id=event.world_id)
        db.add(world)

    world.title = payload.title
    world.description = payload.description
    world.cover_image = payload.cover_image
