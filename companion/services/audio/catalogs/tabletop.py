"""
Tabletop Audio catalog

Curated ten-minute TTRPG soundscapes from tabletopaudio.com. The whole catalog
is one JSON document; it is cached in memory and refreshed hourly.
"""

import asyncio
import time
from typing import Callable, Optional

import httpx
from pydantic import BaseModel

from companion.core.config import settings
from companion.core.logging import get_logger

logger = get_logger(__name__)

REFRESH_INTERVAL_S = 60 * 60
DEFAULT_DURATION_S = 600

DUNGEON_TERMS = (
    "dungeon", "cave", "underground", "catacomb", "crypt", "tomb",
    "cavern", "mine", "sewer", "barrow", "lair", "depths", "grotto",
)
SEA_TERMS = ("ship", "ocean", "sea", "boat")


class SceneQuery(BaseModel):
    categories: list[str]
    tags: list[str]
    exclude_tags: list[str] = []


SCENE_QUERIES: dict[str, SceneQuery] = {
    "combat": SceneQuery(categories=["combat"], tags=["battle", "fight", "war", "action", "siege"]),
    "exploration": SceneQuery(
        categories=["ambient", "forest"],
        tags=["adventure", "journey", "travel", "road"],
        exclude_tags=["combat", "battle"],
    ),
    "social": SceneQuery(
        categories=["tavern", "town"],
        tags=["social", "crowd", "market", "festival"],
        exclude_tags=["combat"],
    ),
    "tense": SceneQuery(
        categories=["tense"],
        tags=["suspense", "creepy", "haunted", "dark"],
        exclude_tags=["ship", "ocean", "sea"],
    ),
    "dramatic": SceneQuery(categories=["music"], tags=["epic", "dramatic", "cinematic", "orchestral"]),
    "tavern": SceneQuery(categories=["tavern"], tags=["inn", "pub", "feast", "drinking"]),
    "forest": SceneQuery(
        categories=["forest"],
        tags=["woods", "nature", "wilderness", "swamp", "jungle"],
        exclude_tags=["town", "city"],
    ),
    "dungeon": SceneQuery(
        categories=["dungeon"],
        tags=["cave", "underground", "crypt", "tomb", "catacomb", "mine", "sewer", "barrow", "lair", "cavern"],
        exclude_tags=["ship", "ocean", "sea", "tavern", "town", "forest"],
    ),
    "ambient": SceneQuery(
        categories=["ambient"],
        tags=["calm", "peaceful", "background"],
        exclude_tags=["combat", "battle"],
    ),
}


class TabletopTrack(BaseModel):
    id: str
    name: str
    description: str = ""
    category: str = "ambient"
    genres: list[str] = []
    tags: list[str] = []
    duration: float = DEFAULT_DURATION_S
    audio_url: str
    image_url: str = ""
    is_new: bool = False


def map_to_category(genres: list[str], tags: list[str], title: str = "") -> str:
    """
    Bucket a track into a scene-ish category.

    Checked most specific first; sea terms are checked before horror so ghost
    ships do not land in ``tense``.
    """
    terms = {t.lower() for t in [*genres, *tags]}
    title = title.lower()

    if terms & set(DUNGEON_TERMS) or any(t in title for t in DUNGEON_TERMS):
        return "dungeon"
    if terms & {"combat", "battle", "fight", "war", "siege", "arena"}:
        return "combat"
    if terms & {"tavern", "inn", "pub", "bar", "feast", "party"}:
        return "tavern"
    if terms & {"forest", "woods", "jungle", "nature", "birds", "trees", "swamp"}:
        return "forest"
    if terms & {"town", "city", "market", "village", "street", "urban"}:
        return "town"
    if terms & {"ocean", "sea", "water", "ship", "boat", "river", "rain", "nautical"}:
        return "water"
    if terms & {"horror", "scary", "creepy", "haunted", "ghost", "dark", "evil"} and not terms & set(SEA_TERMS):
        return "tense"
    if terms & {"scifi", "sci-fi", "space", "spaceship", "laboratory"}:
        return "scifi"
    if "music" in genres:
        return "music"
    return "ambient"


def _parse_track(raw: dict) -> TabletopTrack:
    genres = list(raw.get("track_genre") or [])
    tags = list(raw.get("tags") or [])
    title = raw.get("track_title", "")
    return TabletopTrack(
        id=f"tta-{raw['key']}",
        name=title,
        description=raw.get("flavor_text") or "",
        category=map_to_category(genres, tags, title),
        genres=genres,
        tags=tags,
        audio_url=raw.get("link", ""),
        image_url=raw.get("large_image") or raw.get("small_image") or "",
        is_new=raw.get("new") == "true",
    )


class TabletopCatalog:
    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        validation_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url or settings.tabletop_audio_url
        self.timeout = timeout or settings.catalog_timeout_s
        self.validation_timeout = validation_timeout or settings.track_validation_timeout_s
        self.transport = transport
        self._clock = clock
        self._tracks: list[TabletopTrack] = []
        self._last_fetch: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return bool(self._tracks)

    @property
    def tracks(self) -> list[TabletopTrack]:
        return list(self._tracks)

    async def load(self) -> None:
        """Fetch the catalog; keeps the previous tracks if the fetch fails"""
        async with self._lock:
            try:
                async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                    response = await client.get(self.url)
                    response.raise_for_status()
                    data = response.json()
                tracks = [_parse_track(raw) for raw in data.get("tracks", [])]
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning(f"Failed to fetch Tabletop Audio catalog: {e}")
                return

            self._tracks = tracks
            self._last_fetch = self._clock()
            logger.info(f"Loaded {len(tracks)} Tabletop Audio tracks")

    async def ensure_loaded(self) -> None:
        stale = self._last_fetch is None or self._clock() - self._last_fetch > REFRESH_INTERVAL_S
        if not self._tracks or stale:
            await self.load()

    async def search_by_tag(self, tag: str) -> list[TabletopTrack]:
        """Partial, case-insensitive match on tags, genres, category or title"""
        await self.ensure_loaded()
        tag = tag.lower()
        return [
            track
            for track in self._tracks
            if any(tag in t.lower() for t in track.tags)
            or any(tag in g.lower() for g in track.genres)
            or tag in track.category
            or tag in track.name.lower()
        ]

    async def scene_tracks(self, scene: str) -> list[TabletopTrack]:
        await self.ensure_loaded()
        query = SCENE_QUERIES.get(scene) or SceneQuery(categories=["ambient"], tags=[scene])
        return [track for track in self._tracks if _matches_scene(track, query)]

    async def validate_url(self, track: TabletopTrack) -> bool:
        """HEAD the stream URL; any error or non-2xx answer means unplayable"""
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.validation_timeout
            ) as client:
                response = await client.head(track.audio_url, headers={"Accept": "audio/*"})
        except httpx.HTTPError as e:
            logger.warning(f'Validation failed for track "{track.name}": {e}')
            return False

        if response.is_success:
            return True
        logger.warning(f'Tabletop Audio track "{track.name}" returned {response.status_code}')
        return False

    @staticmethod
    def build_attribution(track: TabletopTrack) -> str:
        return f'"{track.name}" from Tabletop Audio (tabletopaudio.com)'


def _matches_scene(track: TabletopTrack, query: SceneQuery) -> bool:
    tags = [t.lower() for t in track.tags]
    name = track.name.lower()

    matches = (
        track.category in query.categories
        or any(wanted in tag for tag in tags for wanted in query.tags)
        or any(wanted in name for wanted in query.tags)
    )
    if not matches:
        return False

    if query.exclude_tags:
        if any(excluded in tag for tag in tags for excluded in query.exclude_tags):
            return False
        if any(word in query.exclude_tags for word in name.split(" ")):
            return False
    return True
