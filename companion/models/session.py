"""
Session Models

GameSession and HealthEvent.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import String, Integer, ForeignKey, DateTime, Boolean, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from companion.models.base import Base, IdMixin, TimestampMixin


class GameSession(Base, IdMixin, TimestampMixin):
    __tablename__ = "game_sessions"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), index=True)
    session_number: Mapped[int] = mapped_column(Integer, default=1)
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft, in_progress, completed

    # Ordered list of camelCase segment dicts
    transcript: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    recap: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    campaign: Mapped["Campaign"] = relationship(back_populates="sessions")
    health_events: Mapped[List["HealthEvent"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class HealthEvent(Base, IdMixin):
    __tablename__ = "health_events"

    session_id: Mapped[str] = mapped_column(ForeignKey("game_sessions.id", ondelete="CASCADE"), index=True)
    player_id: Mapped[str] = mapped_column(ForeignKey("players.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(20))  # damage, healing, status
    value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status_effect: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)

    session: Mapped["GameSession"] = relationship(back_populates="health_events")
    player: Mapped["Player"] = relationship()
