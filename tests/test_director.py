"""
Auto-audio director tests
"""

import random

import httpx
import pytest

from companion.schemas.audio import AutoAudioSettingsUpdate
from companion.services.audio.analyzer import AudioAnalyzer, detect_quick_effect
from companion.services.audio.catalogs.freesound import FreesoundClient
from companion.services.audio.catalogs.jamendo import JamendoClient
from companion.services.audio.catalogs.tabletop import TabletopCatalog
from companion.services.audio.director import AutoAudioDirector
from companion.services.llm_clients.openai_client import OpenAIClient
from tests.fakes import FakeLLM


def _freesound_handler(request: httpx.Request) -> httpx.Response:
    query = request.url.params["query"]
    if "ambient loop" in query:
        results = [
            {
                "id": 7,
                "name": "Battle ambience",
                "duration": 120.0,
                "username": "foley",
                "license": "CC0",
                "previews": {"preview-hq-mp3": "https://cdn.test/7.mp3"},
            }
        ]
    else:
        results = [
            {
                "id": 101,
                "name": "Fireball whoosh",
                "duration": 3.0,
                "username": "mage",
                "license": "CC-BY",
                "previews": {"preview-lq-mp3": "https://cdn.test/101.mp3"},
            }
        ]
    return httpx.Response(200, json={"results": results})


def _director(clock, events, jamendo_handler=None, tabletop_handler=None, llm=None, rng=None):
    async def sink(event):
        events.append(event)

    freesound = FreesoundClient(
        api_key="fs-key",
        base_url="https://freesound.test/apiv2",
        transport=httpx.MockTransport(_freesound_handler),
    )
    jamendo = JamendoClient(
        client_id="jam-id" if jamendo_handler else "",
        base_url="https://jamendo.test/v3.0",
        transport=httpx.MockTransport(jamendo_handler) if jamendo_handler else None,
    )
    tabletop = TabletopCatalog(
        url="https://tabletop.test/tta_data",
        transport=httpx.MockTransport(tabletop_handler) if tabletop_handler else None,
        clock=clock,
    )
    analyzer = AudioAnalyzer(llm or OpenAIClient(api_key=""), clock=clock, rng=random.Random(1))
    director = AutoAudioDirector(
        sink, analyzer, tabletop, jamendo, freesound, clock=clock, rng=rng or random.Random(1)
    )
    director.update_settings(AutoAudioSettingsUpdate(effect_frequency=100))
    return director


def test_quick_effect_patterns():
    fireball = detect_quick_effect("I cast fireball at the goblins")
    assert fireball.type == "fireball"
    assert fireball.search_query == "fireball explosion fire burst magic flame blast"

    assert detect_quick_effect("Everyone roll initiative!").type == "revelation"
    assert detect_quick_effect("That's a nat 20").type == "critical_hit"
    assert detect_quick_effect("I cast bless on the party").type == "spell_cast"
    assert detect_quick_effect("We walk along the road") is None


@pytest.mark.asyncio
async def test_fireball_plays_effect(clock):
    events = []
    director = _director(clock, events)

    await director.process_segment("I cast fireball at the goblins")

    assert len(events) == 1
    event = events[0]
    assert event.action == "play"
    assert event.track.type == "effect"
    assert event.track.id == "freesound-101"
    assert event.track.src == "https://cdn.test/101.mp3"
    assert event.track.volume == 0.7
    assert event.track.loop is False


@pytest.mark.asyncio
async def test_same_effect_waits_out_cooldown(clock):
    events = []
    director = _director(clock, events)

    await director.process_segment("I cast fireball")
    clock.advance(10)
    await director.process_segment("I cast fireball again")
    assert len(events) == 1

    clock.advance(21)
    await director.process_segment("I cast fireball one more time")
    assert len(events) == 2


@pytest.mark.asyncio
async def test_disabled_director_ignores_segments(clock):
    events = []
    director = _director(clock, events)
    director.update_settings(AutoAudioSettingsUpdate(enabled=False))

    await director.process_segment("I cast fireball")

    assert events == []
    assert director.settings.effect_frequency == 100


@pytest.mark.asyncio
async def test_music_falls_back_to_freesound_when_jamendo_fails(clock):
    events = []

    def jamendo_down(request):
        return httpx.Response(500)

    director = _director(clock, events, jamendo_handler=jamendo_down)

    await director.handle_scene_change("combat", 0.8)

    assert len(events) == 1
    event = events[0]
    assert event.action == "crossfade"
    assert event.track.id == "freesound-7"
    assert event.track.type == "music"
    assert event.track.loop is True
    assert director.current_scene == "combat"
    assert director.current_track_id == "freesound-7"


@pytest.mark.asyncio
async def test_low_confidence_or_same_scene_is_ignored(clock):
    events = []
    director = _director(clock, events)

    await director.handle_scene_change("combat", 0.5)
    await director.handle_scene_change("ambient", 0.9)

    assert events == []
    assert director.current_scene == "ambient"


@pytest.mark.asyncio
async def test_jamendo_preferred_over_freesound(clock):
    events = []

    def jamendo(request):
        assert request.url.params["vocalinstrumental"] == "instrumental"
        return httpx.Response(
            200,
            json={
                "headers": {"status": "success"},
                "results": [
                    {"id": 55, "name": "War Drums", "artist_name": "Bard", "audio": "https://j.test/55.mp3"}
                ],
            },
        )

    director = _director(clock, events, jamendo_handler=jamendo)

    await director.handle_scene_change("combat", 0.9)

    assert events[0].track.id == "jamendo-55"
    assert events[0].track.attribution == '"War Drums" by Bard - Jamendo'


@pytest.mark.asyncio
async def test_tabletop_track_validated_then_blacklisted(clock):
    events = []

    def tabletop(request):
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(
            200,
            json={
                "tracks": [
                    {
                        "key": 1,
                        "track_title": "Siege of Kell",
                        "track_genre": ["combat"],
                        "tags": ["battle", "siege"],
                        "link": "https://tta.test/1.mp3",
                    }
                ]
            },
        )

    director = _director(clock, events, tabletop_handler=tabletop)
    await director.tabletop.load()

    await director.handle_scene_change("combat", 0.9)
    assert events[-1].track.id == "tta-1"
    assert events[-1].track.source == "tabletop"

    director.mark_unplayable("tta-1")
    assert director.current_track_id is None

    await director.manual_scene_music("combat")
    assert events[-1].track.id == "freesound-7"


@pytest.mark.asyncio
async def test_reset_clears_session_state(clock):
    events = []
    director = _director(clock, events)

    await director.process_segment("I cast fireball")
    await director.handle_scene_change("combat", 0.9)
    director.mark_unplayable("freesound-7")
    director.reset()

    assert director.current_scene == "ambient"
    assert director.current_track_id is None

    await director.process_segment("I cast fireball")
    assert len(events) == 3


QUIET_TABLE = ["The road bends east", "Mist drifts over the fields", "A shape moves ahead"]


class FixedRoll(random.Random):
    """Every roll lands on the same value"""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def _suggesting(scene_change=None, sound_effect=None) -> FakeLLM:
    return FakeLLM(
        responder=lambda messages, json_mode: {"sceneChange": scene_change, "soundEffect": sound_effect}
    )


@pytest.mark.asyncio
async def test_suggestions_are_rate_limited(clock):
    llm = _suggesting(
        scene_change={"newScene": "combat", "intensity": 0.9, "reason": "steel drawn"},
        sound_effect={"type": "growl", "urgency": 0.5},
    )
    analyzer = AudioAnalyzer(llm, clock=clock, rng=random.Random(1))

    first = await analyzer.suggest("Wolves circle the camp", "", "ambient", 0.5)
    assert first.scene_change.scene == "combat"
    assert first.sound_effect.type == "growl"

    clock.advance(4)
    assert await analyzer.suggest("They snap at us", "", "ambient", 0.5) is None

    clock.advance(2)
    second = await analyzer.suggest("One lunges", "", "ambient", 0.5)
    assert second.scene_change is None
    assert second.sound_effect.type == "growl"

    clock.advance(25)
    third = await analyzer.suggest("The pack charges", "", "ambient", 0.5)
    assert third.scene_change.scene == "combat"

    clock.advance(1)
    assert await analyzer.suggest("Still charging", "", "ambient", 0.5) is None


@pytest.mark.asyncio
async def test_slow_path_runs_every_third_segment(clock):
    events = []
    llm = _suggesting()
    director = _director(clock, events, llm=llm)

    for count, text in enumerate(QUIET_TABLE * 2, start=1):
        await director.process_segment(text)
        assert len(llm.calls) == count // 3

    assert events == []


@pytest.mark.asyncio
@pytest.mark.parametrize("urgency, played", [(0.0, False), (0.4, True)])
async def test_suggested_effect_chance_scales_with_urgency(clock, urgency, played):
    events = []
    llm = _suggesting(sound_effect={"type": "growl", "urgency": urgency, "reason": "wolves"})
    # frequency 100: urgency 0 gives a 50% chance, urgency 0.4 gives 70%
    director = _director(clock, events, llm=llm, rng=FixedRoll(0.6))

    for text in QUIET_TABLE:
        await director.process_segment(text)

    assert [e.track.id for e in events] == (["freesound-101"] if played else [])


@pytest.mark.asyncio
async def test_music_searches_are_cached_for_a_minute(clock):
    events = []
    requests = []

    def jamendo(request):
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "headers": {"status": "success"},
                "results": [
                    {"id": 55, "name": "War Drums", "artist_name": "Bard", "audio": "https://j.test/55.mp3"},
                    {"id": 56, "name": "Iron Tide", "artist_name": "Bard", "audio": "https://j.test/56.mp3"},
                ],
            },
        )

    director = _director(clock, events, jamendo_handler=jamendo)

    await director.handle_scene_change("combat", 0.9)
    first = director.current_track_id

    clock.advance(30)
    await director.manual_scene_music("combat")
    assert len(requests) == 1
    assert events[-1].track.id != first
    assert events[-1].track.source == "jamendo"

    clock.advance(61)
    await director.manual_scene_music("combat")
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_current_track_does_not_use_a_validation_slot(clock):
    events = []
    heads = []
    state = {"reachable": True}

    def tabletop(request):
        if request.method == "HEAD":
            heads.append(str(request.url))
            return httpx.Response(200 if state["reachable"] else 404)
        return httpx.Response(
            200,
            json={
                "tracks": [
                    {
                        "key": key,
                        "track_title": f"Siege {key}",
                        "track_genre": ["combat"],
                        "tags": ["battle", "siege"],
                        "link": f"https://tta.test/{key}.mp3",
                    }
                    for key in range(1, 7)
                ]
            },
        )

    director = _director(clock, events, tabletop_handler=tabletop)
    await director.tabletop.load()
    await director.handle_scene_change("combat", 0.9)
    assert director.current_track_id.startswith("tta-")

    state["reachable"] = False
    heads.clear()
    await director.manual_scene_music("combat")

    # the five other tracks are all tried before falling back
    assert len(heads) == 5
    assert events[-1].track.id == "freesound-7"
