"""
Recap service tests
"""

import pytest

from companion.schemas.transcript import TranscriptSegment
from companion.services.recap_service import FALLBACK_RECAP, RecapService, build_recap_prompt
from companion.services.session_repository import SessionRepository
from tests.fakes import FakeLLM


def test_prompt_uses_effective_speakers(campaign):
    transcript = [
        TranscriptSegment(speaker_label="Speaker A", speaker_name="DM", text="The mists part."),
        TranscriptSegment(speaker_label="Speaker B", text="I step forward."),
    ]

    prompt = build_recap_prompt(campaign, transcript)

    assert "Campaign: Curse of Strahd" in prompt
    assert "DM: The mists part.\nSpeaker B: I step forward." in prompt


@pytest.mark.asyncio
async def test_generate_for_session_saves_recap(session_factory, seeded):
    repo = SessionRepository(session_factory)
    segment = TranscriptSegment(speaker_label="Speaker A", text="We reach Vallaki.")
    await repo.save_transcript(seeded["session_id"], [segment.to_wire()])
    llm = FakeLLM(replies=["  Previously, the party reached Vallaki.  "])

    recap = await RecapService(repo, llm).generate_for_session(seeded["session_id"])

    assert recap == "Previously, the party reached Vallaki."
    assert llm.calls[0]["temperature"] == 0.7
    assert "We reach Vallaki." in llm.calls[0]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_model_failure_falls_back(campaign):
    service = RecapService(repository=None, llm=FakeLLM(replies=[ValueError("down")]))
    assert await service.generate(campaign, []) == FALLBACK_RECAP


@pytest.mark.asyncio
async def test_missing_session_is_skipped(session_factory):
    llm = FakeLLM()
    service = RecapService(SessionRepository(session_factory), llm)
    assert await service.generate_for_session("missing") is None
    assert llm.calls == []
