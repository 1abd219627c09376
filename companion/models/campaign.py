"""
Campaign Models

Campaign, Player, NPC and SoundMapping.
"""

from typing import List, Optional

from sqlalchemy import String, Integer, ForeignKey, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from companion.models.base import Base, IdMixin, TimestampMixin


class Campaign(Base, IdMixin, TimestampMixin):
    __tablename__ = "campaigns"

    user_id: Mapped[str] = mapped_column(String(64), index=True)  # owner
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    world_context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    players: Mapped[List["Player"]] = relationship(
        back_populates="campaign", cascade="all, delete-orphan", order_by="Player.created_at"
    )
    npcs: Mapped[List["Npc"]] = relationship(back_populates="campaign", cascade="all, delete-orphan")
    sound_mappings: Mapped[List["SoundMapping"]] = relationship(
        back_populates="campaign", cascade="all, delete-orphan", order_by="SoundMapping.position"
    )
    sessions: Mapped[List["GameSession"]] = relationship(back_populates="campaign", cascade="all, delete-orphan")


class Player(Base, IdMixin, TimestampMixin):
    __tablename__ = "players"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), index=True)
    player_name: Mapped[str] = mapped_column(String(100))
    character_name: Mapped[str] = mapped_column(String(100))
    character_class: Mapped[Optional[str]] = mapped_column("class", String(50), nullable=True)
    race: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    max_hp: Mapped[int] = mapped_column(Integer, default=10)
    current_hp: Mapped[int] = mapped_column(Integer, default=10)

    campaign: Mapped["Campaign"] = relationship(back_populates="players")


class Npc(Base, IdMixin, TimestampMixin):
    __tablename__ = "npcs"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    speech_patterns: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    campaign: Mapped["Campaign"] = relationship(back_populates="npcs")


class SoundMapping(Base, IdMixin, TimestampMixin):
    __tablename__ = "sound_mappings"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    trigger_type: Mapped[str] = mapped_column(String(20))  # keyword, scene, manual
    trigger_value: Mapped[str] = mapped_column(String(500))
    audio_file: Mapped[str] = mapped_column(String(500))
    volume: Mapped[int] = mapped_column(Integer, default=80)  # 0-100
    loop: Mapped[bool] = mapped_column(Boolean, default=False)
    crossfade_duration: Mapped[int] = mapped_column(Integer, default=1000)  # ms
    position: Mapped[int] = mapped_column(Integer, default=0)

    campaign: Mapped["Campaign"] = relationship(back_populates="sound_mappings")
