"""
Speaker attribution

Re-evaluates a trailing window of segments with a model and proposes speaker
names. Proposals are keyed by segment id captured before the call, so a slow
reply still lands on the right segments after newer ones were appended.
"""

from companion.core.logging import get_logger
from companion.schemas.campaign import CampaignContext
from companion.schemas.replies import AttributionReply
from companion.schemas.transcript import TranscriptSegment
from companion.services.llm_clients.openai_client import OpenAIClient

logger = get_logger(__name__)


class SpeakerAttributor:
    def __init__(self, campaign: CampaignContext, llm: OpenAIClient):
        self.campaign = campaign
        self.llm = llm

    def _system_prompt(self) -> str:
        speakers = ", ".join(["DM", *(p.player_name for p in self.campaign.players)])
        return (
            "You are an expert D&D transcript analyzer. Identify who is speaking each line.\n"
            "- DM: describes scenes, narrates events, voices NPCs, asks 'what do you do?', calls for rolls\n"
            "- Players: speak in FIRST PERSON about their character's actions ('I cast...', 'I attack...')\n"
            f"The available speakers are: {speakers}\n"
            "ALWAYS attribute every line. When uncertain, narrative text is the DM and "
            "first-person action is a player."
        )

    def _prompt(self, window: list[TranscriptSegment]) -> str:
        lines = "\n".join(
            f'[{index}] {segment.effective_speaker}: "{segment.text}"'
            for index, segment in enumerate(window)
        )
        return (
            "You are RETROACTIVELY reviewing speaker attributions for a D&D session transcript.\n\n"
            f"{self.campaign.prompt_context()}\n\n"
            "RULES:\n"
            "1. The DM speaks in third person ('You see a dark cave', 'The goblin attacks').\n"
            "2. Addressing 'you' (plural) means the DM is addressing the party.\n"
            "3. First person singular ('I cast fireball') is a player.\n"
            "4. When the DM voices an NPC directly, use 'DM (as NPCName)'.\n"
            "5. Keep established speaker patterns consistent.\n\n"
            f"CURRENT TRANSCRIPT (some attributions may be wrong):\n{lines}\n\n"
            'Respond with JSON: {"speakers": [{"index": 0, "speaker": "DM", "reasoning": "..."}]}'
        )

    async def attribute(self, window: list[TranscriptSegment]) -> dict[str, str]:
        """
        Proposed speaker per segment id, only where it differs from the
        segment's current effective speaker. Empty on any model failure.
        """
        if not window:
            return {}

        reply = await self.llm.complete_json(
            [
                {"role": "system", "content": self._system_prompt()},
                {"role": "user", "content": self._prompt(window)},
            ],
            AttributionReply,
            temperature=0.1,
        )
        if reply is None:
            return {}

        changes: dict[str, str] = {}
        for assignment in reply.speakers:
            if not assignment.speaker or not 0 <= assignment.index < len(window):
                continue
            segment = window[assignment.index]
            if assignment.speaker != segment.effective_speaker:
                changes[segment.id] = assignment.speaker
        logger.info(f"Attribution proposed {len(changes)} changes over {len(window)} segments")
        return changes
