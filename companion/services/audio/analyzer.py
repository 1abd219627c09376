"""
Audio analyzer

Turns transcript text into audio intents: a zero-cost pattern matcher for
common table moments, a rate-limited suggestion model for everything else, and
catalog query generation for scene music.
"""

import random
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from companion.core.logging import get_logger
from companion.schemas.audio import SCENES
from companion.schemas.replies import AudioSuggestionReply, MusicQueriesReply
from companion.services.llm_clients.openai_client import OpenAIClient

logger = get_logger(__name__)

MIN_SCENE_CHANGE_INTERVAL_S = 30.0
MIN_EFFECT_INTERVAL_S = 5.0

EFFECT_QUERIES: dict[str, list[str]] = {
    # Combat
    "sword_clash": ["sword clash metal", "sword fight", "blade impact"],
    "shield_block": ["shield block impact", "metal shield hit"],
    "arrow_shoot": ["arrow whoosh", "bow shoot", "arrow release"],
    "arrow_hit": ["arrow impact", "arrow thud"],
    "hit_impact": ["punch impact", "hit body", "combat impact"],
    "critical_hit": ["powerful hit impact", "heavy blow", "critical strike"],
    "death_blow": ["death blow", "fatal strike", "final hit"],
    # Magic
    "spell_cast": ["magic spell cast", "arcane energy", "spell release"],
    "fireball": ["fireball explosion", "fire burst magic", "flame blast"],
    "lightning": ["lightning bolt", "electric shock magic", "thunder spell"],
    "healing": ["healing magic", "restoration spell", "divine heal"],
    "teleport": ["teleport whoosh", "magical teleport", "blink spell"],
    "summoning": ["summoning magic", "conjure creature", "portal open"],
    # Environment
    "door_open": ["wooden door open creak", "door creak", "heavy door"],
    "door_close": ["door close slam", "door shut"],
    "footsteps": ["footsteps stone", "walking footsteps"],
    "running": ["running footsteps", "fast footsteps"],
    "chains": ["chains rattle", "metal chains"],
    "wind": ["wind howling", "wind gust"],
    "rain": ["rain falling", "rain storm"],
    "thunder": ["thunder crack", "thunderclap", "storm thunder"],
    "fire_crackling": ["fire crackling", "campfire", "torch fire"],
    "water_splash": ["water splash", "water drop"],
    "cave_drip": ["cave dripping water", "underground drip"],
    # Creatures
    "growl": ["monster growl", "creature growl", "beast growl"],
    "roar": ["dragon roar", "monster roar", "beast roar"],
    "hiss": ["snake hiss", "creature hiss"],
    "wings": ["wings flapping", "large wings", "dragon wings"],
    # Social
    "crowd_murmur": ["crowd murmur tavern", "people talking background"],
    "laughter": ["laughter crowd", "people laughing"],
    "coins": ["coins jingling", "gold coins", "money coins"],
    "drink_pour": ["pouring drink", "mug pour"],
    "glass_clink": ["glass clink toast", "mugs clinking"],
    "horse_neigh": ["horse neigh", "horse whinny"],
    "horse_gallop": ["horse galloping", "horses running"],
    # Dramatic
    "revelation": ["dramatic reveal", "revelation sting", "dramatic moment"],
    "suspense": ["suspense tension", "ominous tone"],
    "victory": ["victory fanfare", "triumph", "heroic victory"],
    "defeat": ["defeat somber", "sad defeat"],
    "death": ["death knell", "character death", "tragic death"],
}


@dataclass(frozen=True)
class MusicQueries:
    jamendo_query: str
    freesound_query: str
    tabletop_tags: list[str]


DEFAULT_MUSIC_QUERIES: dict[str, MusicQueries] = {
    "combat": MusicQueries(
        "epic orchestral battle cinematic intense",
        "battle ambient war atmosphere tension",
        ["combat", "battle", "siege"],
    ),
    "exploration": MusicQueries(
        "adventure orchestral journey discovery inspiring",
        "exploration ambient outdoor atmosphere mysterious",
        ["wilderness", "road", "journey"],
    ),
    "social": MusicQueries(
        "medieval folk acoustic tavern happy",
        "tavern crowd ambient medieval inn",
        ["tavern", "town", "market"],
    ),
    "tense": MusicQueries(
        "dark suspense atmospheric horror ominous",
        "suspense horror ambient dark creepy",
        ["haunted", "suspense", "dark"],
    ),
    "dramatic": MusicQueries(
        "epic cinematic emotional orchestral powerful",
        "dramatic cinematic atmosphere epic",
        ["epic", "temple", "throne"],
    ),
    "tavern": MusicQueries(
        "celtic folk acoustic medieval drinking songs",
        "tavern inn medieval crowd fireplace ambient",
        ["tavern", "inn", "pub"],
    ),
    "forest": MusicQueries(
        "nature peaceful ambient forest calm",
        "forest birds nature ambient outdoor loop",
        ["forest", "wilderness", "swamp"],
    ),
    "dungeon": MusicQueries(
        "dark ambient underground mysterious eerie cave",
        "dungeon cave dripping underground atmosphere",
        ["dungeon", "cave", "crypt", "underground", "catacomb"],
    ),
    "ambient": MusicQueries(
        "ambient peaceful calm background instrumental",
        "ambient calm peaceful background loop",
        ["town", "village", "peaceful"],
    ),
}


@dataclass(frozen=True)
class EffectIntent:
    type: str
    search_query: str
    urgency: float = 1.0
    reason: str = ""


@dataclass(frozen=True)
class SceneIntent:
    scene: str
    intensity: float
    reason: str = ""


@dataclass(frozen=True)
class AudioSuggestion:
    scene_change: Optional[SceneIntent] = None
    sound_effect: Optional[EffectIntent] = None


def _library_query(effect_type: str) -> str:
    return " ".join(EFFECT_QUERIES[effect_type])


_I = re.IGNORECASE

# Checked in order; the first rule that matches wins.
_QUICK_RULES: list[tuple[str, Callable[[str], bool], str]] = [
    (
        "revelation",
        lambda t: bool(re.search(r"\b(roll(s|ed)?|rolls?\s+for)\s+initiative\b", t, _I)),
        "combat start dramatic",
    ),
    (
        "critical_hit",
        lambda t: bool(re.search(r"\b(critical|nat(ural)?\s*(20|twenty))\b", t, _I)),
        "critical hit powerful impact",
    ),
    (
        "defeat",
        lambda t: bool(re.search(r"\bnat(ural)?\s*(1|one)\b", t, _I)),
        "fail sound comedic",
    ),
    (
        "sword_clash",
        lambda t: bool(re.search(r"\b(attack(s|ed)?|strike(s|d)?|hit(s)?|slash(es|ed)?)\b", t, _I))
        and bool(re.search(r"\b(sword|blade|axe|weapon)\b", t, _I)),
        _library_query("sword_clash"),
    ),
    (
        "fireball",
        lambda t: bool(re.search(r"\bcast(s|ed)?\s+(fireball|fire\s*ball)\b", t, _I)),
        _library_query("fireball"),
    ),
    (
        "lightning",
        lambda t: bool(re.search(r"\bcast(s|ed)?\s+(lightning|thunder)\b", t, _I)),
        _library_query("lightning"),
    ),
    (
        "healing",
        lambda t: bool(re.search(r"\b(heal(s|ed)?|healing|cure(s|d)?)\b", t, _I))
        and bool(re.search(r"\b(spell|magic|points?)\b", t, _I)),
        _library_query("healing"),
    ),
    (
        "spell_cast",
        lambda t: bool(re.search(r"\bcast(s|ed)?\b", t, _I))
        and not re.search(r"(fireball|lightning|thunder|heal)", t, _I),
        _library_query("spell_cast"),
    ),
    (
        "door_open",
        lambda t: bool(re.search(r"\b(open(s|ed)?|push(es|ed)?)\s+(the\s+)?(door|gate)\b", t, _I)),
        _library_query("door_open"),
    ),
    (
        "thunder",
        lambda t: bool(re.search(r"\bthunder\b", t, _I)) and not re.search(r"lightning", t, _I),
        _library_query("thunder"),
    ),
    (
        "death",
        lambda t: bool(re.search(r"\b(falls?\s+unconscious|death\s+saving?\s+throw|dying)\b", t, _I)),
        _library_query("death"),
    ),
    (
        "roar",
        lambda t: bool(re.search(r"\b(dragon|drake)\b", t, _I))
        and bool(re.search(r"\b(roar(s|ed)?|scream(s|ed)?)\b", t, _I)),
        _library_query("roar"),
    ),
    (
        "growl",
        lambda t: bool(re.search(r"\b(growl(s|ed)?|snarl(s|ed)?)\b", t, _I)),
        _library_query("growl"),
    ),
]


def detect_quick_effect(text: str) -> Optional[EffectIntent]:
    """Pattern-match common table moments without calling a model"""
    for effect_type, matches, query in _QUICK_RULES:
        if matches(text):
            return EffectIntent(type=effect_type, search_query=query, reason=f"Pattern match: {effect_type}")
    return None


SUGGESTION_SYSTEM_PROMPT = (
    "You are an expert audio director for immersive TTRPG sessions. You know when "
    "audio enhances vs distracts from gameplay. Be conservative with suggestions."
)

MUSIC_QUERY_SYSTEM_PROMPT = (
    "You are an expert at finding background music for immersive TTRPG sessions. "
    "Generate specific, evocative search queries."
)


class AudioAnalyzer:
    def __init__(
        self,
        llm: OpenAIClient,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.llm = llm
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_scene_change: Optional[float] = None
        self._last_effect: Optional[float] = None

    def reset(self) -> None:
        self._last_scene_change = None
        self._last_effect = None

    def effect_query(self, effect_type: str) -> Optional[str]:
        queries = EFFECT_QUERIES.get(effect_type)
        if not queries:
            return None
        return self._rng.choice(queries)

    def _elapsed(self, since: Optional[float], interval: float) -> bool:
        return since is None or self._clock() - since > interval

    async def suggest(
        self,
        segment_text: str,
        recent_text: str,
        current_scene: str,
        current_intensity: float,
    ) -> Optional[AudioSuggestion]:
        """
        Ask the suggestion model for a scene change and/or a sound effect.

        Scene changes are accepted at most every 30 s and effects at most every
        5 s; unknown effect types and unchanged scenes are dropped.
        """
        prompt = (
            "You are an audio director for a D&D tabletop session. Analyze this dialogue "
            "and suggest appropriate audio.\n\n"
            f"CURRENT STATE:\n- Scene: {current_scene}\n"
            f"- Intensity: {round(current_intensity * 100)}%\n"
            f'- Recent dialogue: "{recent_text}"\n\n'
            f'NEW DIALOGUE:\n"{segment_text}"\n\n'
            f"AVAILABLE SOUND EFFECT TYPES:\n{', '.join(EFFECT_QUERIES)}\n\n"
            f"SCENE TYPES (for music/ambiance):\n{', '.join(SCENES)}\n\n"
            "Only suggest a music change for a significant mood shift. Sound effects must "
            "match an explicit action. Silence is fine.\n\n"
            'Respond with JSON: {"sceneChange": {"newScene": "...", "intensity": 0.0-1.0, '
            '"reason": "..."} or null, "soundEffect": {"type": "...", "urgency": 0.0-1.0, '
            '"reason": "..."} or null}'
        )
        reply = await self.llm.complete_json(
            [
                {"role": "system", "content": SUGGESTION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            AudioSuggestionReply,
            temperature=0.3,
            max_tokens=200,
        )
        if reply is None:
            return None

        now = self._clock()
        scene_change = None
        sound_effect = None

        change = reply.scene_change
        if (
            change
            and change.new_scene
            and change.new_scene != current_scene
            and self._elapsed(self._last_scene_change, MIN_SCENE_CHANGE_INTERVAL_S)
        ):
            scene_change = SceneIntent(change.new_scene, change.intensity, change.reason)
            self._last_scene_change = now

        effect = reply.sound_effect
        if (
            effect
            and effect.type in EFFECT_QUERIES
            and self._elapsed(self._last_effect, MIN_EFFECT_INTERVAL_S)
        ):
            sound_effect = EffectIntent(
                type=effect.type,
                search_query=self.effect_query(effect.type),
                urgency=effect.urgency,
                reason=effect.reason,
            )
            self._last_effect = now

        if scene_change is None and sound_effect is None:
            return None
        return AudioSuggestion(scene_change=scene_change, sound_effect=sound_effect)

    async def music_queries(
        self,
        scene: str,
        recent_dialogue: str = "",
        intensity: Optional[float] = None,
    ) -> MusicQueries:
        defaults = DEFAULT_MUSIC_QUERIES.get(scene, DEFAULT_MUSIC_QUERIES["ambient"])
        if not self.llm.is_configured:
            return defaults

        if intensity is None:
            energy = "moderate energy"
        elif intensity > 0.7:
            energy = "intense/high energy"
        elif intensity > 0.4:
            energy = "moderate energy"
        else:
            energy = "calm/low energy"

        prompt = (
            "Generate optimized music search queries for a D&D tabletop session.\n\n"
            f"SCENE TYPE: {scene}\nINTENSITY: {energy}\n"
            + (f'RECENT CONTEXT: "{recent_dialogue[:200]}"\n' if recent_dialogue else "")
            + "\n1. JAMENDO: music genre/mood terms (instrumental, cinematic, orchestral, folk).\n"
            "2. FREESOUND: descriptive soundscape terms (ambient, loop, atmosphere).\n"
            "3. TABLETOP AUDIO TAGS: 2-4 specific setting keywords (cave, crypt, tavern, "
            "battle, forest...). Avoid generic tags like 'horror' or 'dark' alone.\n\n"
            'Respond with JSON: {"jamendoQuery": "...", "freesoundQuery": "...", '
            '"tabletopTags": ["..."], "reasoning": "..."}'
        )
        reply = await self.llm.complete_json(
            [
                {"role": "system", "content": MUSIC_QUERY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            MusicQueriesReply,
            temperature=0.7,
            max_tokens=200,
        )
        if reply is None:
            return defaults

        return MusicQueries(
            jamendo_query=reply.jamendo_query or defaults.jamendo_query,
            freesound_query=reply.freesound_query or defaults.freesound_query,
            tabletop_tags=reply.tabletop_tags or defaults.tabletop_tags,
        )
