"""
Session Repository

Persistence used by the live pipeline. Every call opens its own short-lived
AsyncSession, so background tasks never share one.
"""

from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from companion.core.errors import NotFoundError, SessionOperationError
from companion.core.logging import get_logger
from companion.infra.db import AsyncSessionLocal
from companion.live.health import apply_health_delta
from companion.models.campaign import Campaign, Player
from companion.models.session import GameSession, HealthEvent
from companion.schemas.campaign import CampaignContext, NpcInfo, PlayerInfo, SoundMappingInfo
from companion.schemas.health import HealthEventRead, PlayerUpdated
from companion.schemas.transcript import TranscriptSegment

logger = get_logger(__name__)


class SessionRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def load_session_with_campaign(self, session_id: str) -> Optional[CampaignContext]:
        stmt = (
            select(GameSession)
            .options(
                selectinload(GameSession.campaign).selectinload(Campaign.players),
                selectinload(GameSession.campaign).selectinload(Campaign.npcs),
                selectinload(GameSession.campaign).selectinload(Campaign.sound_mappings),
            )
            .where(GameSession.id == session_id)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            game_session = result.scalars().first()
            if game_session is None:
                return None

            campaign = game_session.campaign
            return CampaignContext(
                session_id=game_session.id,
                campaign_id=campaign.id,
                owner_id=campaign.user_id,
                name=campaign.name,
                description=campaign.description,
                world_context=campaign.world_context,
                players=[PlayerInfo.model_validate(p) for p in campaign.players],
                npcs=[NpcInfo.model_validate(n) for n in campaign.npcs],
                sound_mappings=[SoundMappingInfo.model_validate(m) for m in campaign.sound_mappings],
            )

    async def owns_session(self, session_id: str, user_id: str) -> bool:
        stmt = (
            select(Campaign.user_id)
            .join(GameSession, GameSession.campaign_id == Campaign.id)
            .where(GameSession.id == session_id)
        )
        async with self.session_factory() as db:
            owner = (await db.execute(stmt)).scalar_one_or_none()
        return owner is not None and owner == user_id

    async def save_transcript(self, session_id: str, segments: list[dict[str, Any]]) -> bool:
        """
        Overwrite the stored transcript. Returns False on a database error so
        the caller can retry on its next tick.
        """
        try:
            async with self.session_factory() as db:
                await db.execute(
                    update(GameSession)
                    .where(GameSession.id == session_id)
                    .values(transcript=segments)
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save transcript for session {session_id}: {e}")
            return False
        return True

    async def load_transcript(self, session_id: str) -> list[TranscriptSegment]:
        async with self.session_factory() as db:
            game_session = await db.get(GameSession, session_id)
            if game_session is None:
                raise NotFoundError("Session not found")
            raw = game_session.transcript or []
        return [TranscriptSegment.model_validate(item) for item in raw]

    async def mark_session_status(self, session_id: str, status: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(GameSession).where(GameSession.id == session_id).values(status=status)
            )
            await db.commit()

    async def save_recap(self, session_id: str, recap: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(GameSession).where(GameSession.id == session_id).values(recap=recap)
            )
            await db.commit()

    async def update_player_hp(self, player_id: str, new_hp: int) -> None:
        async with self.session_factory() as db:
            player = await db.get(Player, player_id)
            if player is None:
                raise NotFoundError("Player not found")
            player.current_hp = max(0, min(player.max_hp, new_hp))
            await db.commit()

    async def create_health_event(
        self,
        session_id: str,
        player_id: str,
        event_type: str,
        value: Optional[int],
        status_effect: Optional[str],
        description: str,
    ) -> HealthEventRead:
        async with self.session_factory() as db:
            event = HealthEvent(
                session_id=session_id,
                player_id=player_id,
                type=event_type,
                value=value,
                status_effect=status_effect,
                description=description,
                confirmed=False,
                resolved=False,
            )
            db.add(event)
            await db.commit()
            await db.refresh(event)
            return HealthEventRead.model_validate(event)

    async def resolve_health_event(
        self,
        session_id: str,
        event_id: str,
        confirmed: bool,
        modified_value: Optional[int] = None,
    ) -> Optional[PlayerUpdated]:
        """
        Confirm or reject a pending event in one transaction.

        A confirmed event with a value applies the delta to the player's HP and
        returns the new HP; a rejection never touches HP and returns None.
        """
        async with self.session_factory() as db:
            event = await db.get(HealthEvent, event_id)
            if event is None or event.session_id != session_id:
                raise NotFoundError("Health event not found")
            if event.resolved:
                raise SessionOperationError("Health event already resolved")

            event.confirmed = confirmed
            event.resolved = True
            if modified_value is not None:
                event.value = modified_value

            updated: Optional[PlayerUpdated] = None
            if confirmed and event.value is not None:
                player = await db.get(Player, event.player_id)
                if player is None:
                    raise NotFoundError("Player not found")
                player.current_hp = apply_health_delta(
                    event.type, event.value, player.current_hp, player.max_hp
                )
                updated = PlayerUpdated(player_id=player.id, current_hp=player.current_hp)

            await db.commit()
            return updated
