"""
Conftest
"""

from typing import Any, AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from companion.infra.db import get_db
from companion.infra.redis import get_redis
from companion.live.orchestrator import SessionOrchestrator
from companion.live.ws.publisher import SessionEventPublisher
from companion.main import create_app
from companion.models.base import Base
from companion.models.campaign import Campaign, Npc, Player, SoundMapping
from companion.models.session import GameSession
from companion.schemas.campaign import CampaignContext, NpcInfo, PlayerInfo, SoundMappingInfo
from companion.services.audio.catalogs.freesound import FreesoundClient
from companion.services.audio.catalogs.jamendo import JamendoClient
from companion.services.audio.catalogs.tabletop import TabletopCatalog
from companion.services.session_repository import SessionRepository
from tests.fakes import FakeClock, FakeLLM, FakeRedis

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def campaign() -> CampaignContext:
    return CampaignContext(
        session_id="session-1",
        campaign_id="campaign-1",
        owner_id="user-1",
        name="Curse of Strahd",
        description="Gothic horror in Barovia",
        world_context="Barovia, Vallaki, Castle Ravenloft",
        players=[
            PlayerInfo(
                id="player-thorin",
                player_name="Mike",
                character_name="Thorin",
                character_class="Fighter",
                race="Dwarf",
                max_hp=45,
                current_hp=30,
            ),
            PlayerInfo(
                id="player-elara",
                player_name="Sarah",
                character_name="Elara",
                character_class="Cleric",
                race="Elf",
                max_hp=32,
                current_hp=32,
            ),
        ],
        npcs=[NpcInfo(id="npc-strahd", name="Strahd", description="The vampire lord")],
        sound_mappings=[
            SoundMappingInfo(
                id="m-battle",
                name="Battle drums",
                trigger_type="keyword",
                trigger_value="battle|fight",
                audio_file="drums.mp3",
            ),
            SoundMappingInfo(
                id="m-combat",
                name="Combat music",
                trigger_type="scene",
                trigger_value="combat",
                audio_file="combat.mp3",
            ),
            SoundMappingInfo(
                id="m-tavern",
                name="Tavern",
                trigger_type="scene",
                trigger_value="tavern",
                audio_file="tavern.mp3",
            ),
            SoundMappingInfo(
                id="m-bell",
                name="Church bell",
                trigger_type="manual",
                trigger_value="bell",
                audio_file="bell.mp3",
            ),
        ],
    )


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def seeded(session_factory) -> dict[str, Any]:
    """One campaign owned by user-1 with two players and one draft session"""
    async with session_factory() as db:
        campaign = Campaign(
            user_id="user-1",
            name="Curse of Strahd",
            description="Gothic horror in Barovia",
            world_context="Barovia",
        )
        db.add(campaign)
        await db.flush()

        thorin = Player(
            campaign_id=campaign.id,
            player_name="Mike",
            character_name="Thorin",
            character_class="Fighter",
            race="Dwarf",
            max_hp=45,
            current_hp=30,
        )
        elara = Player(
            campaign_id=campaign.id,
            player_name="Sarah",
            character_name="Elara",
            max_hp=32,
            current_hp=32,
        )
        db.add_all([thorin, elara])
        db.add(Npc(campaign_id=campaign.id, name="Strahd", description="The vampire lord"))
        db.add_all(
            [
                SoundMapping(
                    campaign_id=campaign.id,
                    name="Combat music",
                    trigger_type="scene",
                    trigger_value="combat",
                    audio_file="combat.mp3",
                    position=1,
                ),
                SoundMapping(
                    campaign_id=campaign.id,
                    name="Battle drums",
                    trigger_type="keyword",
                    trigger_value="battle",
                    audio_file="drums.mp3",
                    position=0,
                ),
            ]
        )
        game_session = GameSession(campaign_id=campaign.id, session_number=1, title="Into the Mists")
        db.add(game_session)
        await db.commit()

        return {
            "campaign_id": campaign.id,
            "session_id": game_session.id,
            "thorin_id": thorin.id,
            "elara_id": elara.id,
        }


@pytest.fixture
def redis_client() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def orchestrator(session_factory, clock) -> SessionOrchestrator:
    return SessionOrchestrator(
        repository=SessionRepository(session_factory),
        llm=FakeLLM(),
        tabletop=TabletopCatalog(url="https://tta.test/data"),
        jamendo=JamendoClient(client_id=""),
        freesound=FreesoundClient(api_key="fs-key"),
        publisher=SessionEventPublisher(enabled=False),
        clock=clock,
    )


@pytest.fixture
async def client(session_factory, redis_client, orchestrator) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(orchestrator)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        yield redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
