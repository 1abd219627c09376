"""
Health extraction and scene detection tests
"""

import pytest

from companion.live.health import HealthEventExtractor, apply_health_delta, mentions_health
from companion.live.scene import FALLBACK_SCENE, SceneDetector
from tests.fakes import FakeLLM


def test_keyword_gate():
    assert mentions_health("The goblin hits Thorin")
    assert mentions_health("Elara regains 8")
    assert mentions_health("you are poisoned")
    assert not mentions_health("We enter the tavern and order ale")


def test_health_delta_is_clamped():
    assert apply_health_delta("damage", 12, 30, 45) == 18
    assert apply_health_delta("damage", 50, 30, 45) == 0
    assert apply_health_delta("healing", 20, 30, 45) == 45
    assert apply_health_delta("status", None, 30, 45) == 30
    assert apply_health_delta("damage", None, 30, 45) == 30


@pytest.mark.asyncio
async def test_no_model_call_without_health_keywords(campaign):
    llm = FakeLLM()
    assert await HealthEventExtractor(campaign, llm).extract("We order ale") == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_events_for_known_characters_only(campaign):
    llm = FakeLLM(
        replies=[
            {
                "events": [
                    {"characterName": "thorin", "type": "damage", "value": 12, "description": "axe"},
                    {"characterName": "Gandalf", "type": "healing", "value": 5},
                    {"characterName": "Elara", "type": "status", "statusEffect": "poisoned"},
                    {"characterName": "Elara", "type": "explode"},
                ]
            }
        ]
    )

    events = await HealthEventExtractor(campaign, llm).extract("Thorin takes 12 damage, Elara is poisoned")

    assert [(player.id, event.type) for player, event in events] == [
        ("player-thorin", "damage"),
        ("player-elara", "status"),
    ]
    assert events[0][1].value == 12
    assert events[1][1].status_effect == "poisoned"


@pytest.mark.asyncio
async def test_bare_list_reply_is_accepted(campaign):
    llm = FakeLLM(replies=[[{"characterName": "Elara", "type": "healing", "value": 8}]])
    events = await HealthEventExtractor(campaign, llm).extract("Elara heals 8 hp")
    assert events[0][1].value == 8


@pytest.mark.asyncio
async def test_extractor_failure_yields_nothing(campaign):
    llm = FakeLLM(replies=["{broken"])
    assert await HealthEventExtractor(campaign, llm).extract("Thorin takes 5 damage") == []


@pytest.mark.asyncio
async def test_scene_detection():
    detector = SceneDetector(FakeLLM(replies=[{"scene": "combat", "confidence": 0.85}]))
    reply = await detector.detect("Roll initiative! The ghouls attack.")
    assert reply.scene == "combat"
    assert reply.confidence == 0.85


@pytest.mark.asyncio
async def test_scene_detection_falls_back_to_ambient():
    detector = SceneDetector(FakeLLM(replies=[{"scene": "spaceship", "confidence": 2}]))
    assert await detector.detect("...") == FALLBACK_SCENE
    assert FALLBACK_SCENE.scene == "ambient"
    assert FALLBACK_SCENE.confidence == 0.5
