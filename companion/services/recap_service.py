"""
Recap Service

"Previously on..." narrative for a finished session.
"""

from typing import Optional

from companion.core.logging import get_logger
from companion.schemas.campaign import CampaignContext
from companion.schemas.transcript import TranscriptSegment
from companion.services.llm_clients.openai_client import OpenAIClient
from companion.services.session_repository import SessionRepository

logger = get_logger(__name__)

FALLBACK_RECAP = "Unable to generate recap."

SYSTEM_PROMPT = "You are a skilled narrator who creates engaging recaps of D&D sessions."


def build_recap_prompt(campaign: CampaignContext, transcript: list[TranscriptSegment]) -> str:
    transcript_text = "\n".join(f"{s.effective_speaker}: {s.text}" for s in transcript)
    return (
        'Generate a narrative recap of this D&D session for the "Previously on..." segment.\n\n'
        f"Campaign: {campaign.name}\n"
        f"{campaign.description or ''}\n\n"
        f"Session Transcript:\n{transcript_text}\n\n"
        "Write a compelling 2-3 paragraph recap that:\n"
        "1. Summarizes key events and decisions\n"
        "2. Highlights memorable moments and character interactions\n"
        "3. Ends with a hook about what's next or what was left unresolved\n"
        "4. Uses dramatic, narrative language suitable for reading aloud\n\n"
        "Keep it under 300 words."
    )


class RecapService:
    def __init__(self, repository: SessionRepository, llm: OpenAIClient):
        self.repository = repository
        self.llm = llm

    async def generate(self, campaign: CampaignContext, transcript: list[TranscriptSegment]) -> str:
        reply: Optional[str] = await self.llm.complete_text(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_recap_prompt(campaign, transcript)},
            ],
            temperature=0.7,
            max_tokens=500,
        )
        return reply or FALLBACK_RECAP

    async def generate_for_session(self, session_id: str) -> Optional[str]:
        """Reload the persisted transcript, write the recap back and return it"""
        campaign = await self.repository.load_session_with_campaign(session_id)
        if campaign is None:
            logger.warning(f"Recap skipped, session {session_id} not found")
            return None

        transcript = await self.repository.load_transcript(session_id)
        recap = await self.generate(campaign, transcript)
        await self.repository.save_recap(session_id, recap)
        logger.info(f"Recap generated for session {session_id}")
        return recap
