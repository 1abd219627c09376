"""
Session repository tests against an in-memory database
"""

import pytest

from companion.core.errors import NotFoundError, SessionOperationError
from companion.models.campaign import Player
from companion.models.session import GameSession, HealthEvent
from companion.schemas.transcript import TranscriptSegment
from companion.services.session_repository import SessionRepository


@pytest.mark.asyncio
async def test_load_session_with_campaign(session_factory, seeded):
    repo = SessionRepository(session_factory)

    context = await repo.load_session_with_campaign(seeded["session_id"])

    assert context.session_id == seeded["session_id"]
    assert context.owner_id == "user-1"
    assert {p.character_name for p in context.players} == {"Thorin", "Elara"}
    assert [n.name for n in context.npcs] == ["Strahd"]
    assert [m.trigger_type for m in context.sound_mappings] == ["keyword", "scene"]

    assert await repo.load_session_with_campaign("missing") is None


@pytest.mark.asyncio
async def test_owns_session(session_factory, seeded):
    repo = SessionRepository(session_factory)
    assert await repo.owns_session(seeded["session_id"], "user-1")
    assert not await repo.owns_session(seeded["session_id"], "user-2")
    assert not await repo.owns_session("missing", "user-1")


@pytest.mark.asyncio
async def test_transcript_round_trip_and_status(session_factory, seeded):
    repo = SessionRepository(session_factory)
    session_id = seeded["session_id"]
    segment = TranscriptSegment(speaker_label="Speaker A", speaker_name="DM", text="You wake in Barovia.")

    assert await repo.save_transcript(session_id, [segment.to_wire()])
    await repo.mark_session_status(session_id, "completed")
    await repo.save_recap(session_id, "The party woke in Barovia.")

    loaded = await repo.load_transcript(session_id)
    assert loaded == [segment]

    async with session_factory() as db:
        row = await db.get(GameSession, session_id)
        assert row.status == "completed"
        assert row.recap == "The party woke in Barovia."
        assert row.transcript[0]["speakerLabel"] == "Speaker A"

    with pytest.raises(NotFoundError):
        await repo.load_transcript("missing")


@pytest.mark.asyncio
async def test_update_player_hp_clamps(session_factory, seeded):
    repo = SessionRepository(session_factory)

    await repo.update_player_hp(seeded["thorin_id"], 99)
    async with session_factory() as db:
        assert (await db.get(Player, seeded["thorin_id"])).current_hp == 45

    with pytest.raises(NotFoundError):
        await repo.update_player_hp("missing", 1)


@pytest.mark.asyncio
async def test_confirm_with_modified_value_applies_damage(session_factory, seeded):
    repo = SessionRepository(session_factory)
    session_id = seeded["session_id"]

    event = await repo.create_health_event(
        session_id, seeded["thorin_id"], "damage", 8, None, "Ghoul claws Thorin"
    )
    assert event.confirmed is False
    assert event.to_wire()["playerId"] == seeded["thorin_id"]

    updated = await repo.resolve_health_event(session_id, event.id, True, modified_value=12)

    assert updated.player_id == seeded["thorin_id"]
    assert updated.current_hp == 18
    async with session_factory() as db:
        stored = await db.get(HealthEvent, event.id)
        assert stored.value == 12
        assert stored.confirmed is True

    with pytest.raises(SessionOperationError):
        await repo.resolve_health_event(session_id, event.id, True)


@pytest.mark.asyncio
async def test_rejection_leaves_hp_untouched(session_factory, seeded):
    repo = SessionRepository(session_factory)
    session_id = seeded["session_id"]
    event = await repo.create_health_event(session_id, seeded["thorin_id"], "damage", 12, None, "")

    assert await repo.resolve_health_event(session_id, event.id, False) is None

    async with session_factory() as db:
        assert (await db.get(Player, seeded["thorin_id"])).current_hp == 30
        stored = await db.get(HealthEvent, event.id)
        assert stored.confirmed is False
        assert stored.resolved is True


@pytest.mark.asyncio
async def test_resolve_rejects_event_from_another_session(session_factory, seeded):
    repo = SessionRepository(session_factory)
    event = await repo.create_health_event(seeded["session_id"], seeded["elara_id"], "status", None, "poisoned", "")

    with pytest.raises(NotFoundError):
        await repo.resolve_health_event("other-session", event.id, True)
    with pytest.raises(NotFoundError):
        await repo.resolve_health_event(seeded["session_id"], "missing", True)

    # Confirmed status effects carry no value and leave HP alone
    assert await repo.resolve_health_event(seeded["session_id"], event.id, True) is None
