"""
Transcript correction

Two tiers: ``apply_instant`` replaces previously learned misheard names in
the hot path; ``correct`` asks a model to fix names and table terms in the
background and teaches the instant tier from the diff.
"""

import re
from typing import Optional

from companion.core.logging import get_logger
from companion.schemas.campaign import CampaignContext
from companion.services.llm_clients.openai_client import OpenAIClient

logger = get_logger(__name__)

_PUNCTUATION = re.compile(r"[.,!?;:]")
_SURROUNDING_QUOTES = re.compile(r"^[\"']+|[\"']+$")

SYSTEM_PROMPT = (
    "You are a transcript editor. Output ONLY the corrected text, no quotes, no "
    "explanation. Keep corrections minimal - only fix clear errors."
)


def max_correction_length(original: str) -> int:
    return max(len(original) * 3, len(original) + 50)


def is_plausible_correction(original: str, corrected: str) -> bool:
    return len(corrected) <= max_correction_length(original)


class TranscriptCorrector:
    def __init__(self, campaign: CampaignContext, llm: OpenAIClient):
        self.campaign = campaign
        self.llm = llm
        self.known_names = campaign.known_names()
        self._known_lower = {name.lower() for name in self.known_names}
        self.learned: dict[str, str] = {}
        self._patterns: dict[str, re.Pattern] = {}

    def apply_instant(self, text: str) -> str:
        for wrong, right in self.learned.items():
            text = self._patterns[wrong].sub(lambda _match, name=right: name, text)
        return text

    def learn(self, original: str, corrected: str) -> None:
        """Record wrong->right pairs where a word was swapped for a known name"""
        original_words = original.split()
        corrected_words = corrected.split()
        if len(original_words) != len(corrected_words):
            return

        for before, after in zip(original_words, corrected_words):
            before = _PUNCTUATION.sub("", before)
            after = _PUNCTUATION.sub("", after)
            if not before or before.lower() == after.lower() or len(after) <= 2:
                continue
            if after.lower() not in self._known_lower:
                continue
            key = before.lower()
            self.learned[key] = after
            self._patterns[key] = re.compile(rf"\b{re.escape(key)}\b", re.IGNORECASE)
            logger.info(f'Learned correction "{before}" -> "{after}"')

    def _prompt(self, text: str, recent_context: str) -> str:
        campaign = self.campaign
        players = ", ".join(f"{p.character_name} (played by {p.player_name})" for p in campaign.players)
        npcs = ", ".join(n.name for n in campaign.npcs)
        context_block = (
            f"RECENT CONTEXT (for reference only, DO NOT include this in output):\n{recent_context}\n\n"
            if recent_context
            else ""
        )
        return (
            "You are a transcript editor for a D&D session. Fix this audio transcription.\n\n"
            "KNOWN NAMES IN THIS CAMPAIGN (use ONLY these, never invent names):\n"
            f"- Player Characters: {players}\n"
            f"- NPCs: {npcs}\n"
            f"- Campaign: {campaign.name}\n"
            f"- Locations/Terms from world context: {campaign.world_context or 'None specified'}\n\n"
            "RULES:\n"
            "1. Fix misheard character, NPC and location names to match the KNOWN NAMES\n"
            "2. NEVER invent new names\n"
            "3. Fix obvious speech-to-text and D&D terminology errors\n"
            "4. Keep meaning and tone identical\n"
            "5. Output ONLY the corrected TRANSCRIPTION TO FIX, never the context\n"
            "6. Keep the output length close to the input length\n\n"
            f"{context_block}"
            f"TRANSCRIPTION TO FIX:\n{text}"
        )

    async def correct(self, text: str, recent_context: str = "") -> str:
        """
        Model correction of ``text``; returns ``text`` unchanged on failure or
        when the reply is implausibly long.
        """
        if not text.strip():
            return text

        reply: Optional[str] = await self.llm.complete_text(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self._prompt(text, recent_context)},
            ],
            temperature=0.1,
            max_tokens=200,
        )
        if not reply:
            return text

        corrected = _SURROUNDING_QUOTES.sub("", reply).strip()
        if not corrected or corrected == text:
            return text

        if not is_plausible_correction(text, corrected):
            logger.info(
                f"Correction rejected as too long: {len(text)} -> {len(corrected)} chars"
            )
            return text

        self.learn(text, corrected)
        return corrected
