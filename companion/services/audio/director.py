"""
Auto-audio director

Decides when scene music or a sound effect should change and resolves that
intent into a concrete track from the external catalogs. One director per
live session; ``reset`` clears every piece of per-session state.
"""

import random
import time
from typing import Awaitable, Callable, Optional

import httpx

from companion.core.logging import emit_log, get_event_logger
from companion.schemas.audio import (
    AutoAudioEvent,
    AutoAudioSettings,
    AutoAudioSettingsUpdate,
    AutoAudioTrack,
)
from companion.services.audio.analyzer import AudioAnalyzer, AudioSuggestion, detect_quick_effect
from companion.services.audio.catalogs import CatalogError
from companion.services.audio.catalogs.freesound import FreesoundClient, FreesoundTrack
from companion.services.audio.catalogs.jamendo import JamendoClient, JamendoTrack
from companion.services.audio.catalogs.tabletop import TabletopCatalog, TabletopTrack

AUDIO_LOGGER = get_event_logger("companion.audio")

RECENT_WINDOW = 10
ANALYSIS_EVERY = 3
ANALYSIS_CONTEXT = 5
SEARCH_CACHE_TTL_S = 60.0
EFFECT_COOLDOWN_S = 30.0
MAX_VALIDATION_CANDIDATES = 5
SCENE_CONFIDENCE_THRESHOLD = 0.6

CATALOG_ERRORS = (httpx.HTTPError, CatalogError, ValueError)

AudioEventSink = Callable[[AutoAudioEvent], Awaitable[None]]


def _log(level: str, *, event: str, summary: str, **kv) -> None:
    emit_log(AUDIO_LOGGER, level=level, domain="audio", event=event, summary=summary, kv=kv)


class AutoAudioDirector:
    def __init__(
        self,
        on_event: AudioEventSink,
        analyzer: AudioAnalyzer,
        tabletop: TabletopCatalog,
        jamendo: JamendoClient,
        freesound: FreesoundClient,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self._on_event = on_event
        self.analyzer = analyzer
        self.tabletop = tabletop
        self.jamendo = jamendo
        self.freesound = freesound
        self._clock = clock
        self._rng = rng or random.Random()

        self._settings = AutoAudioSettings()
        self.reset()

    # -- settings / diagnostics -------------------------------------------

    @property
    def settings(self) -> AutoAudioSettings:
        return self._settings.model_copy()

    def update_settings(self, update: AutoAudioSettingsUpdate) -> AutoAudioSettings:
        changes = update.model_dump(exclude_none=True)
        self._settings = self._settings.model_copy(update=changes)
        _log("INFO", event="auto_audio.settings", summary="Settings updated", **changes)
        return self.settings

    def diagnostics(self) -> dict[str, bool]:
        return {
            "freesound": self.freesound.is_configured,
            "jamendo": self.jamendo.is_configured,
            "tabletop": self.tabletop.is_ready,
        }

    @property
    def any_source_available(self) -> bool:
        return any(self.diagnostics().values())

    @property
    def current_scene(self) -> str:
        return self._scene

    @property
    def current_track_id(self) -> Optional[str]:
        return self._current_music_id

    def reset(self) -> None:
        self._scene = "ambient"
        self._intensity = 0.5
        self._recent: list[str] = []
        self._segment_count = 0
        self._current_music_id: Optional[str] = None
        self._effect_played_at: dict[str, float] = {}
        self._search_cache: dict[str, tuple[float, list[AutoAudioTrack]]] = {}
        self._unplayable: set[str] = set()
        self._validated: set[str] = set()
        self.analyzer.reset()

    def mark_unplayable(self, track_id: str) -> None:
        """Playback failed client-side; never offer this track again this session"""
        self._unplayable.add(track_id)
        self._validated.discard(track_id)
        if self._current_music_id == track_id:
            self._current_music_id = None
        _log("WARN", event="auto_audio.unplayable", summary="Track blacklisted", track_id=track_id)

    # -- entry points -----------------------------------------------------

    async def process_segment(self, text: str) -> None:
        if not self._settings.enabled or not self.any_source_available:
            return

        self._recent.append(text)
        if len(self._recent) > RECENT_WINDOW:
            self._recent.pop(0)
        self._segment_count += 1

        if self._settings.effects_enabled:
            quick = detect_quick_effect(text)
            if quick and self._roll(self._settings.effect_frequency):
                await self._search_and_play_effect(quick.search_query, quick.reason)
                return

        if self._segment_count % ANALYSIS_EVERY == 0:
            suggestion = await self.analyzer.suggest(
                text,
                " ".join(self._recent[-ANALYSIS_CONTEXT:]),
                self._scene,
                self._intensity,
            )
            if suggestion:
                await self._handle_suggestion(suggestion)

    async def handle_scene_change(self, scene: str, confidence: float) -> None:
        if not self._settings.enabled or not self._settings.music_enabled:
            return
        if not self.any_source_available:
            return
        if confidence < SCENE_CONFIDENCE_THRESHOLD or scene == self._scene:
            return

        _log("INFO", event="auto_audio.scene", summary="Scene changed", old=self._scene, new=scene)
        self._scene = scene
        self._intensity = confidence
        await self._search_and_play_music(scene, f"Scene changed to {scene}")

    async def manual_scene_music(self, scene: str) -> None:
        await self._search_and_play_music(scene, "Manual scene selection")

    # -- internals --------------------------------------------------------

    def _roll(self, chance: float) -> bool:
        return self._rng.random() * 100 < chance

    async def _handle_suggestion(self, suggestion: AudioSuggestion) -> None:
        change = suggestion.scene_change
        if change and self._settings.music_enabled and change.scene != self._scene:
            self._scene = change.scene
            self._intensity = change.intensity
            await self._search_and_play_music(change.scene, change.reason)

        effect = suggestion.sound_effect
        if effect and self._settings.effects_enabled:
            chance = self._settings.effect_frequency * (0.5 + effect.urgency * 0.5)
            if self._roll(chance):
                await self._search_and_play_effect(effect.search_query, effect.reason)

    async def _search_and_play_music(self, scene: str, reason: str) -> None:
        queries = await self.analyzer.music_queries(
            scene,
            recent_dialogue=" ".join(self._recent[-3:]),
            intensity=self._intensity,
        )

        track: Optional[AutoAudioTrack] = None
        if self.tabletop.is_ready:
            track = await self._search_tabletop(scene, queries.tabletop_tags)
        if track is None and self.jamendo.is_configured:
            track = await self._search_jamendo(queries.jamendo_query)
        if track is None and self.freesound.is_configured:
            track = await self._search_freesound_ambient(queries.freesound_query)

        if track is None:
            _log("WARN", event="auto_audio.music.none", summary="No music found", scene=scene)
            return
        if track.id == self._current_music_id:
            return

        self._current_music_id = track.id
        _log(
            "INFO",
            event="auto_audio.music",
            summary="Music selected",
            track_id=track.id,
            source=track.source,
            scene=scene,
        )
        await self._on_event(AutoAudioEvent(track=track, action="crossfade", reason=reason))

    async def _search_and_play_effect(self, query: str, reason: str) -> None:
        if not self.freesound.is_configured:
            return
        track = await self._search_freesound_effect(query)
        if track is None:
            _log("WARN", event="auto_audio.effect.none", summary="No effect found", query=query)
            return

        now = self._clock()
        played_at = self._effect_played_at.get(track.id)
        if played_at is not None and now - played_at < EFFECT_COOLDOWN_S:
            _log("DEBUG", event="auto_audio.effect.cooldown", summary="Effect cooling down", track_id=track.id)
            return

        self._effect_played_at[track.id] = now
        _log("INFO", event="auto_audio.effect", summary="Effect selected", track_id=track.id, query=query)
        await self._on_event(AutoAudioEvent(track=track, action="play", reason=reason))

    # -- catalog resolution -------------------------------------------------

    def _cached(self, key: str) -> Optional[list[AutoAudioTrack]]:
        entry = self._search_cache.get(key)
        if entry is None:
            return None
        stored_at, tracks = entry
        if self._clock() - stored_at >= SEARCH_CACHE_TTL_S or not tracks:
            return None
        return tracks

    def _remember(self, key: str, tracks: list[AutoAudioTrack]) -> None:
        self._search_cache[key] = (self._clock(), tracks)

    def _choose(self, tracks: list[AutoAudioTrack], exclude_current: bool) -> Optional[AutoAudioTrack]:
        available = [t for t in tracks if t.id not in self._unplayable]
        if exclude_current:
            available = [t for t in available if t.id != self._current_music_id]
        if not available:
            return None
        return self._rng.choice(available)

    async def _search_tabletop(self, scene: str, tags: list[str]) -> Optional[AutoAudioTrack]:
        candidates: list[TabletopTrack] = []
        seen: set[str] = set()
        for tag in tags:
            for track in await self.tabletop.search_by_tag(tag):
                if track.id not in seen:
                    seen.add(track.id)
                    candidates.append(track)

        picked = await self._validate_candidates(candidates)
        if picked is None:
            picked = await self._validate_candidates(await self.tabletop.scene_tracks(scene))
        return picked

    async def _validate_candidates(self, candidates: list[TabletopTrack]) -> Optional[AutoAudioTrack]:
        playable = [
            t for t in candidates if t.id not in self._unplayable and t.id != self._current_music_id
        ]
        self._rng.shuffle(playable)

        for candidate in playable[:MAX_VALIDATION_CANDIDATES]:
            if candidate.id in self._validated:
                return self._tabletop_track(candidate)
            if await self.tabletop.validate_url(candidate):
                self._validated.add(candidate.id)
                return self._tabletop_track(candidate)
            self._unplayable.add(candidate.id)
        return None

    async def _search_jamendo(self, query: str) -> Optional[AutoAudioTrack]:
        key = f"jamendo:{query}"
        cached = self._cached(key)
        if cached:
            chosen = self._choose(cached, exclude_current=True)
            if chosen:
                return chosen

        try:
            results = await self.jamendo.search(
                query=query, vocalinstrumental="instrumental", order="relevance", limit=15
            )
        except CATALOG_ERRORS as e:
            _log("WARN", event="auto_audio.jamendo.error", summary="Jamendo search failed", error=str(e))
            return None

        tracks = [self._jamendo_track(t) for t in results]
        if not tracks:
            return None
        self._remember(key, tracks)
        return self._choose(tracks, exclude_current=True)

    async def _search_freesound_ambient(self, query: str) -> Optional[AutoAudioTrack]:
        key = f"freesound-ambient:{query}"
        cached = self._cached(key)
        if cached:
            chosen = self._choose(cached, exclude_current=True)
            if chosen:
                return chosen

        try:
            results = await self.freesound.search(
                f"{query} ambient loop",
                filter="duration:[30 TO *]",
                sort="rating_desc",
                page_size=15,
            )
        except CATALOG_ERRORS as e:
            _log("WARN", event="auto_audio.freesound.error", summary="Ambient search failed", error=str(e))
            return None

        tracks = [self._freesound_track(t, is_music=True) for t in results]
        if not tracks:
            return None
        self._remember(key, tracks)
        return self._choose(tracks, exclude_current=True)

    async def _search_freesound_effect(self, query: str) -> Optional[AutoAudioTrack]:
        key = f"freesound-effect:{query}"
        cached = self._cached(key)
        if cached:
            chosen = self._choose(cached, exclude_current=False)
            if chosen:
                return chosen

        try:
            results = await self.freesound.search(
                query, filter="duration:[0.5 TO 15]", sort="rating_desc", page_size=10
            )
            if not results:
                results = await self.freesound.search(query, sort="rating_desc", page_size=10)
        except CATALOG_ERRORS as e:
            _log("WARN", event="auto_audio.freesound.error", summary="Effect search failed", error=str(e))
            return None

        tracks = [self._freesound_track(t, is_music=False) for t in results]
        if not tracks:
            return None
        self._remember(key, tracks)
        return self._choose(tracks, exclude_current=False)

    # -- track conversion ---------------------------------------------------

    def _tabletop_track(self, track: TabletopTrack) -> AutoAudioTrack:
        return AutoAudioTrack(
            id=track.id,
            name=track.name,
            src=track.audio_url,
            type="music",
            source="tabletop",
            duration=track.duration,
            attribution=self.tabletop.build_attribution(track),
            loop=True,
            volume=0.5,
        )

    def _jamendo_track(self, track: JamendoTrack) -> AutoAudioTrack:
        return AutoAudioTrack(
            id=f"jamendo-{track.id}",
            name=track.name,
            src=track.audio,
            type="music",
            source="jamendo",
            duration=track.duration,
            attribution=self.jamendo.build_attribution(track),
            loop=True,
            volume=0.4,
        )

    def _freesound_track(self, track: FreesoundTrack, is_music: bool) -> AutoAudioTrack:
        return AutoAudioTrack(
            id=f"freesound-{track.id}",
            name=track.name,
            src=self.freesound.preview_url(track),
            type="music" if is_music else "effect",
            source="freesound",
            duration=track.duration,
            attribution=self.freesound.build_attribution(track),
            loop=is_music,
            volume=0.4 if is_music else 0.7,
        )
