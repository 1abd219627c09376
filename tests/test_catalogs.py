"""
Audio catalog client tests
"""

import httpx
import pytest

from companion.services.audio.catalogs import CatalogError
from companion.services.audio.catalogs.freesound import FreesoundClient
from companion.services.audio.catalogs.jamendo import JamendoClient
from companion.services.audio.catalogs.tabletop import TabletopCatalog, map_to_category

TTA_DATA = {
    "tracks": [
        {
            "key": 12,
            "track_title": "Ghost Ship",
            "track_genre": ["horror"],
            "tags": ["ship", "ghost", "ocean"],
            "link": "https://tta.test/12.mp3",
            "new": "true",
        },
        {
            "key": 13,
            "track_title": "Goblin Caves",
            "track_genre": ["fantasy"],
            "tags": ["goblins"],
            "link": "https://tta.test/13.mp3",
        },
        {
            "key": 14,
            "track_title": "Drunken Dragon Inn",
            "track_genre": ["fantasy"],
            "tags": ["tavern", "crowd"],
            "link": "https://tta.test/14.mp3",
        },
    ]
}


def test_category_mapping_prefers_specific_buckets():
    assert map_to_category([], ["goblins"], "Goblin Caves") == "dungeon"
    assert map_to_category(["horror"], ["ship", "ghost"]) == "water"
    assert map_to_category(["horror"], ["haunted"]) == "tense"
    assert map_to_category(["music"], []) == "music"
    assert map_to_category([], []) == "ambient"


@pytest.mark.asyncio
async def test_tabletop_load_search_and_scene(clock):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(200, json=TTA_DATA)

    catalog = TabletopCatalog(url="https://tta.test/data", transport=httpx.MockTransport(handler), clock=clock)
    assert not catalog.is_ready

    await catalog.load()

    assert catalog.is_ready
    tracks = {t.id: t for t in catalog.tracks}
    assert tracks["tta-12"].is_new is True
    assert tracks["tta-13"].category == "dungeon"
    assert [t.id for t in await catalog.search_by_tag("CAVE")] == ["tta-13"]
    assert [t.id for t in await catalog.scene_tracks("tavern")] == ["tta-14"]
    assert calls == ["GET"]

    clock.advance(3601)
    await catalog.search_by_tag("inn")
    assert calls == ["GET", "GET"]


@pytest.mark.asyncio
async def test_tabletop_failed_refresh_keeps_tracks(clock):
    responses = [httpx.Response(200, json=TTA_DATA), httpx.Response(503)]

    catalog = TabletopCatalog(
        url="https://tta.test/data",
        transport=httpx.MockTransport(lambda request: responses.pop(0)),
        clock=clock,
    )
    await catalog.load()
    await catalog.load()

    assert len(catalog.tracks) == 3


@pytest.mark.asyncio
async def test_tabletop_validation(clock):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("12.mp3"):
            return httpx.Response(404)
        if request.url.path.endswith("13.mp3"):
            raise httpx.ConnectTimeout("slow", request=request)
        return httpx.Response(200, json=TTA_DATA)

    catalog = TabletopCatalog(url="https://tta.test/data", transport=httpx.MockTransport(handler), clock=clock)
    await catalog.load()
    tracks = {t.id: t for t in catalog.tracks}

    assert await catalog.validate_url(tracks["tta-12"]) is False
    assert await catalog.validate_url(tracks["tta-13"]) is False
    assert await catalog.validate_url(tracks["tta-14"]) is True


@pytest.mark.asyncio
async def test_freesound_search_sends_token_and_filters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json={"results": [{"id": 3, "name": "Door creak", "username": "foley", "license": "CC0"}]},
        )

    client = FreesoundClient(
        api_key="fs-key", base_url="https://fs.test/apiv2/", transport=httpx.MockTransport(handler)
    )
    results = await client.search("door creak", filter="duration:[0.5 TO 15]", sort="rating_desc", page_size=10)

    assert [r.id for r in results] == [3]
    assert seen["token"] == "fs-key"
    assert seen["filter"] == "duration:[0.5 TO 15]"
    assert seen["page_size"] == "10"
    assert FreesoundClient.build_attribution(results[0]) == '"Door creak" by foley on Freesound.org (CC0)'


@pytest.mark.asyncio
async def test_unconfigured_catalogs_return_nothing():
    assert await FreesoundClient(api_key="").search("anything") == []
    assert await JamendoClient(client_id="").search(query="anything") == []


@pytest.mark.asyncio
async def test_jamendo_error_header_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"headers": {"status": "error", "error_message": "bad client id"}, "results": []}
        )

    client = JamendoClient(client_id="x", base_url="https://j.test/v3.0", transport=httpx.MockTransport(handler))

    with pytest.raises(CatalogError, match="bad client id"):
        await client.search(query="battle")


@pytest.mark.asyncio
async def test_jamendo_http_error_propagates():
    client = JamendoClient(
        client_id="x",
        base_url="https://j.test/v3.0",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    with pytest.raises(httpx.HTTPStatusError):
        await client.search(query="battle")
