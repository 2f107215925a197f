from __future__ import annotations

from sqlalchemy.orm import Session

from chronicle.core.rules.registry import RulesetRegistry

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .base import Base
from .session import engine


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def seed_conditions(db: Session, registry: RulesetRegistry) -> int:
    """Insert the condition catalog of every registered ruleset.

    Existing ``(ruleset_id, key)`` rows are left alone. Returns the number of
    rows created.
    """
    created = 0
    for ruleset_id in registry.ids():
        ruleset = registry.get(ruleset_id)
        for entry in ruleset.conditions:
            exists = (
                db.query(models.Condition)
                .filter(
                    models.Condition.ruleset_id == ruleset.id,
                    models.Condition.key == entry["key"],
                )
                .first()
            )
            if exists:
                continue
            db.add(
                models.Condition(
                    ruleset_id=ruleset.id,
                    key=entry["key"],
                    name=entry["name"],
                    effects_json={"modifiers": dict(entry.get("modifiers", {}))},
                )
            )
            created += 1
    db.commit()
    return created
