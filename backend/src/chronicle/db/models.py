from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ---- ledger ----


class WorldEvent(Base):
    """Ledger row. Written once by the dispatcher, never updated."""

    __tablename__ = "world_events"
    __table_args__ = (Index("ix_world_events_world_order", "world_id", "ts", "id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    world_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("worlds.id"), nullable=False
    )
    campaign_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("campaigns.id"), nullable=True, index=True
    )
    # combat rows are created by the projector of the event that names them
    combat_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    scope: Mapped[str] = mapped_column(String(10), nullable=False, default="MICRO")
    visibility: Mapped[str] = mapped_column(String(10), nullable=False, default="PLAYERS")
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    target_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


# ---- projections ----


class World(_Timestamps, Base):
    __tablename__ = "worlds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    campaigns: Mapped[list["Campaign"]] = relationship(back_populates="world")


class Campaign(_Timestamps, Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    world_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("worlds.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    system: Mapped[str] = mapped_column(String(40), nullable=False, default="TORMENTA_20")
    ruleset_id: Mapped[str] = mapped_column(String(40), nullable=False, default="tormenta20")
    room_code: Mapped[str] = mapped_column(String(12), nullable=False, unique=True)

    world: Mapped[World] = relationship(back_populates="campaigns")
    combat: Mapped[Optional["Combat"]] = relationship(back_populates="campaign")


class Character(_Timestamps, Base):
    __tablename__ = "characters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    world_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("worlds.id"), nullable=False, index=True
    )
    campaign_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("campaigns.id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ancestry: Mapped[str] = mapped_column(String(80), nullable=False, default="Humano")
    class_name: Mapped[str] = mapped_column(String(80), nullable=False, default="Guerreiro")
    role: Mapped[str] = mapped_column(String(80), nullable=False, default="Combatente")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # sheet: ability scores (for/des/...), pvMax/pmMax, attacks/skills/spells
    sheet_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class Combat(_Timestamps, Base):
    __tablename__ = "combats"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    campaign_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("campaigns.id"), nullable=False, unique=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    turn_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    campaign: Mapped[Campaign] = relationship(back_populates="combat")
    combatants: Mapped[list["Combatant"]] = relationship(
        back_populates="combat",
        order_by=lambda: [Combatant.initiative.desc(), Combatant.order_index],
    )


class Combatant(Base):
    __tablename__ = "combatants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    combat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("combats.id"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # CHARACTER|NPC|MONSTER
    # non-owning pointer to the source character/npc
    ref_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    initiative: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # insertion order of the initiative roll; tie-break for equal initiative
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    hp_current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hp_max: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mp_current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mp_max: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    defense: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    attack_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    damage_formula: Mapped[str] = mapped_column(String(60), nullable=False, default="1d6")

    combat: Mapped[Combat] = relationship(back_populates="combatants")


class Condition(Base):
    """Catalog entry, seeded per ruleset. Not a projection."""

    __tablename__ = "conditions"
    __table_args__ = (UniqueConstraint("ruleset_id", "key", name="uq_condition_ruleset_key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ruleset_id: Mapped[str] = mapped_column(String(40), nullable=False)
    key: Mapped[str] = mapped_column(String(60), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    effects_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class AppliedCondition(Base):
    __tablename__ = "applied_conditions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    combat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("combats.id"), nullable=False, index=True
    )
    target_combatant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("combatants.id"), nullable=False, index=True
    )
    condition_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conditions.id"), nullable=False
    )
    source_event_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    expires_at_turn: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    condition: Mapped[Condition] = relationship()
