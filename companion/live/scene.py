"""
Scene detection
"""

from companion.schemas.audio import SCENES
from companion.schemas.replies import SceneReply
from companion.services.llm_clients.openai_client import OpenAIClient

FALLBACK_SCENE = SceneReply(scene="ambient", confidence=0.5)

SCENE_DESCRIPTIONS = {
    "combat": "Battle, fighting, initiative rolls",
    "exploration": "Investigating, traveling, discovering",
    "social": "Conversation, negotiation, roleplay",
    "tense": "Suspenseful moments, danger nearby",
    "dramatic": "Important story moments, revelations",
    "tavern": "Casual social setting, rest",
    "forest": "Outdoor wilderness",
    "dungeon": "Underground, dark places",
    "ambient": "General background, transitions",
}


class SceneDetector:
    def __init__(self, llm: OpenAIClient):
        self.llm = llm

    async def detect(self, recent_text: str) -> SceneReply:
        scenes = "\n".join(f"- {scene}: {SCENE_DESCRIPTIONS[scene]}" for scene in SCENES)
        prompt = (
            "Analyze this D&D session dialogue and determine the current scene type.\n\n"
            f"Dialogue:\n{recent_text}\n\n"
            f"Scene types:\n{scenes}\n\n"
            'Respond with JSON: {"scene": "type", "confidence": 0.0-1.0}'
        )
        reply = await self.llm.complete_json(
            [{"role": "user", "content": prompt}],
            SceneReply,
            temperature=0.3,
        )
        return reply or FALLBACK_SCENE
