"""
Live session orchestrator

``SessionOrchestrator`` owns the table of live connections. Each connection
gets a ``LiveSession`` that drives at most one game session at a time through
idle -> active <-> paused -> ended.

Everything that reaches a LiveSession (client commands, audio chunks and
finalized transcript segments from the provider) goes through one ordered
queue, so the transcript buffer is only ever mutated by the queue worker or by
background tasks that resolve segments by id. Model and catalog calls run as
background tasks and never hold up the queue; a task that finishes after its
session ended finds a stale state and drops its result.
"""

import asyncio
import base64
import binascii
import json
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Coroutine, Optional, Union

from pydantic import BaseModel, ValidationError

from companion.core.config import settings
from companion.core.errors import AppError, SessionOperationError
from companion.core.logging import emit_log, get_event_logger
from companion.live.attribution import SpeakerAttributor
from companion.live.correction import TranscriptCorrector
from companion.live.events import InboundEvent, ServerEvent, server_message
from companion.live.health import HealthEventExtractor, mentions_health
from companion.live.merge import merge_settled_segments
from companion.live.scene import SceneDetector
from companion.live.transcript import TranscriptBuffer
from companion.live.transcription import DeepgramTranscriber, SegmentSink
from companion.live.triggers import AudioTriggerEngine
from companion.live.ws.publisher import SessionEventPublisher
from companion.schemas.audio import (
    SCENES,
    AudioTriggerEvent,
    AutoAudioEvent,
    AutoAudioSettings,
    AutoAudioSettingsUpdate,
    SceneDetected,
)
from companion.schemas.campaign import CampaignContext
from companion.schemas.health import HealthConfirm
from companion.schemas.transcript import (
    SegmentCorrected,
    SegmentMerged,
    SpeakerUpdated,
    TranscriptSegment,
)
from companion.services.audio.analyzer import AudioAnalyzer
from companion.services.audio.catalogs.freesound import FreesoundClient
from companion.services.audio.catalogs.jamendo import JamendoClient
from companion.services.audio.catalogs.tabletop import TabletopCatalog
from companion.services.audio.director import AutoAudioDirector
from companion.services.llm_clients.openai_client import OpenAIClient
from companion.services.recap_service import RecapService
from companion.services.session_repository import SessionRepository

SESSION_LOGGER = get_event_logger("companion.session")

SCENE_CONTEXT_SEGMENTS = 5

Sender = Callable[[dict[str, Any]], Awaitable[Any]]
TranscriberFactory = Callable[[SegmentSink, int], Optional[DeepgramTranscriber]]


def _session_log(
    level: str,
    *,
    event: str,
    summary: str,
    payload: Optional[str] = None,
    **kv,
) -> None:
    emit_log(
        SESSION_LOGGER,
        level=level,
        domain="session",
        event=event,
        summary=summary,
        kv=kv,
        payload=payload,
    )


def spawn(coro: Coroutine[Any, Any, Any], tasks: set[asyncio.Task], *, name: str) -> asyncio.Task:
    """
    Start a background task, keep a reference until it finishes and log any
    exception it ends with.
    """
    task = asyncio.create_task(coro, name=name)
    tasks.add(task)
    task.add_done_callback(partial(_task_done, tasks))
    return task


def _task_done(tasks: set[asyncio.Task], task: asyncio.Task) -> None:
    tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _session_log(
            "ERROR",
            event="task.failed",
            summary="Background task failed",
            task=task.get_name(),
            err=repr(exc),
        )


def default_transcriber_factory(on_segment: SegmentSink, offset_ms: int) -> Optional[DeepgramTranscriber]:
    if not settings.transcription_enabled:
        return None
    return DeepgramTranscriber(on_segment, offset_ms=offset_ms)


class PipelineEvent(str, Enum):
    SEGMENT_FINALIZED = "stt:segment"


QueuedEvent = Union[InboundEvent, PipelineEvent]


class SessionPhase(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


@dataclass
class SessionState:
    session_id: str
    campaign: CampaignContext
    owner_id: str
    start_time: int  # epoch ms
    buffer: TranscriptBuffer
    corrector: TranscriptCorrector
    attributor: SpeakerAttributor
    scene_detector: SceneDetector
    health_extractor: HealthEventExtractor
    trigger_engine: AudioTriggerEngine
    director: AutoAudioDirector
    transcriber: Optional[DeepgramTranscriber] = None
    phase: SessionPhase = SessionPhase.IDLE
    merged_keys: set[str] = field(default_factory=set)
    manual_speaker_ids: set[str] = field(default_factory=set)
    segments_received: int = 0
    last_scene_detection_index: int = 0
    last_attribution_index: int = 0
    save_task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.phase is SessionPhase.ACTIVE


def _parse(model: type[BaseModel], data: dict[str, Any], message: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SessionOperationError(message) from e


class LiveSession:
    """One connection's view of the live pipeline"""

    def __init__(self, orchestrator: "SessionOrchestrator", connection_id: str, user_id: str, send: Sender):
        self.orchestrator = orchestrator
        self.connection_id = connection_id
        self.user_id = user_id
        self._send = send
        self.state: Optional[SessionState] = None
        self._queue: asyncio.Queue[tuple[QueuedEvent, dict[str, Any]]] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

        self._handlers: dict[QueuedEvent, Callable[[dict[str, Any]], Awaitable[None]]] = {
            InboundEvent.SESSION_START: self._start,
            InboundEvent.SESSION_PAUSE: self._pause,
            InboundEvent.SESSION_RESUME: self._resume,
            InboundEvent.SESSION_END: self._end,
            InboundEvent.AUDIO_CHUNK: self._audio_chunk,
            InboundEvent.SPEAKER_ATTRIBUTE: self._speaker_attribute,
            InboundEvent.AUDIO_MANUAL_TRIGGER: self._manual_trigger,
            InboundEvent.AUDIO_STOP: self._stop_audio,
            InboundEvent.AUTO_AUDIO_SETTINGS: self._auto_audio_settings,
            InboundEvent.AUTO_AUDIO_GET_SETTINGS: self._auto_audio_get_settings,
            InboundEvent.AUTO_AUDIO_SET_SCENE: self._auto_audio_set_scene,
            InboundEvent.AUTO_AUDIO_PLAYBACK_FAILED: self._auto_audio_playback_failed,
            InboundEvent.HEALTH_CONFIRM: self._health_confirm,
            PipelineEvent.SEGMENT_FINALIZED: self._segment_finalized,
        }

    # -- queue ------------------------------------------------------------

    def start_worker(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name=f"live-session-{self.connection_id}")

    async def submit(self, event: QueuedEvent, data: Optional[dict[str, Any]] = None) -> None:
        if self._closed:
            return
        await self._queue.put((event, data or {}))

    async def submit_audio(self, chunk: bytes) -> None:
        await self.submit(InboundEvent.AUDIO_CHUNK, {"chunk": chunk})

    async def submit_message(self, raw: str) -> None:
        """Parse one client text frame and queue it; bad frames get one error event"""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await self._emit_error("Invalid JSON")
            return
        if not isinstance(message, dict):
            await self._emit_error("Invalid message")
            return

        try:
            event = InboundEvent(message.get("event"))
        except ValueError:
            await self._emit_error(f"Unknown event: {message.get('event')}")
            return

        data = message.get("data")
        await self.submit(event, data if isinstance(data, dict) else {})

    async def wait_idle(self) -> None:
        """Block until the queue is drained and background work has settled"""
        while True:
            await self._queue.join()
            pending = [task for task in self.orchestrator.tasks if not task.done()]
            if not pending and self._queue.empty():
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            event, data = await self._queue.get()
            try:
                await self.handle(event, data)
            except AppError as e:
                await self._emit_error(e.message)
            except Exception as e:
                _session_log(
                    "ERROR",
                    event="session.handler.error",
                    summary="Unhandled error in live handler",
                    live_event=event.value,
                    err=repr(e),
                )
                await self._emit_error("Internal error")
            finally:
                self._queue.task_done()

    async def handle(self, event: QueuedEvent, data: dict[str, Any]) -> None:
        await self._handlers[event](data)

    # -- outbound ---------------------------------------------------------

    async def emit(self, event: ServerEvent, data: dict[str, Any]) -> None:
        message = server_message(event, data)
        await self._send(message)
        state = self.state
        if state is not None:
            await self.orchestrator.publisher.publish(state.session_id, message)

    async def _emit_error(self, message: str) -> None:
        _session_log("WARN", event="session.error", summary=message, connection_id=self.connection_id)
        await self._send(server_message(ServerEvent.ERROR, {"message": message}))

    def _is_current(self, state: SessionState) -> bool:
        return self.state is state and state.phase is not SessionPhase.ENDED

    def _require_session(self) -> SessionState:
        if self.state is None:
            raise SessionOperationError("No active session")
        return self.state

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        return spawn(coro, self.orchestrator.tasks, name=name)

    # -- lifecycle --------------------------------------------------------

    async def _start(self, data: dict[str, Any]) -> None:
        if self.state is not None:
            raise SessionOperationError("A session is already running on this connection")

        session_id = data.get("sessionId")
        if not session_id:
            raise SessionOperationError("No session ID provided")
        if self.orchestrator.is_session_live(session_id):
            raise SessionOperationError("Session is already live on another connection")

        repository = self.orchestrator.repository
        if not await repository.owns_session(session_id, self.user_id):
            raise SessionOperationError("Session not found")
        campaign = await repository.load_session_with_campaign(session_id)
        if campaign is None:
            raise SessionOperationError("Session not found")

        await repository.mark_session_status(session_id, "in_progress")
        existing = await repository.load_transcript(session_id)

        state = self.orchestrator.build_state(campaign, self._on_auto_audio)
        for segment in existing:
            state.buffer.append(segment)
        self.state = state

        offset_ms = existing[-1].timestamp + 1 if existing else 0
        state.transcriber = self.orchestrator.transcriber_factory(self._on_provider_segment, offset_ms)
        if state.transcriber is None:
            _session_log("WARN", event="stt.disabled", summary="No Deepgram key; transcription disabled")
        else:
            await state.transcriber.start()

        state.phase = SessionPhase.ACTIVE
        state.save_task = asyncio.create_task(self._autosave_loop(state), name=f"autosave-{session_id}")

        await self.emit(
            ServerEvent.SESSION_STARTED,
            {"sessionId": session_id, "startTime": state.start_time},
        )
        _session_log(
            "INFO",
            event="session.start",
            summary="Session started",
            session_id=session_id,
            restored=len(existing),
            transcription=state.transcriber is not None,
        )

    async def _pause(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        state.phase = SessionPhase.PAUSED
        await self.emit(ServerEvent.SESSION_PAUSED, {"sessionId": state.session_id})
        _session_log("INFO", event="session.pause", summary="Session paused", session_id=state.session_id)

    async def _resume(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        state.phase = SessionPhase.ACTIVE
        await self.emit(ServerEvent.SESSION_RESUMED, {"sessionId": state.session_id})
        _session_log("INFO", event="session.resume", summary="Session resumed", session_id=state.session_id)

    async def _end(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        await self._teardown(state)

        repository = self.orchestrator.repository
        await repository.mark_session_status(state.session_id, "completed")
        self._spawn(
            self.orchestrator.recap_service.generate_for_session(state.session_id),
            name=f"recap-{state.session_id}",
        )

        await self.emit(ServerEvent.SESSION_ENDED, {"sessionId": state.session_id})
        self.state = None
        _session_log(
            "INFO",
            event="session.end",
            summary="Session ended",
            session_id=state.session_id,
            segments=len(state.buffer),
        )

    async def _teardown(self, state: SessionState) -> None:
        """Stop the timer and the provider stream, then flush once"""
        state.phase = SessionPhase.ENDED
        if state.save_task is not None:
            state.save_task.cancel()
            state.save_task = None
        if state.transcriber is not None:
            await state.transcriber.close()
        await self._save(state)

    async def disconnect(self) -> None:
        """
        Connection lost: flush what exists and release resources. The session
        stays in progress so it can be resumed later.
        """
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None

        state, self.state = self.state, None
        if state is None:
            return
        await self._teardown(state)
        _session_log(
            "INFO",
            event="session.disconnect",
            summary="Connection lost; transcript flushed",
            session_id=state.session_id,
            segments=len(state.buffer),
        )

    async def _autosave_loop(self, state: SessionState) -> None:
        interval = self.orchestrator.save_interval_s
        while True:
            await asyncio.sleep(interval)
            if not self._is_current(state):
                return
            if len(state.buffer):
                await self._save(state)

    async def _save(self, state: SessionState) -> bool:
        if not len(state.buffer):
            return True
        ok = await self.orchestrator.repository.save_transcript(state.session_id, state.buffer.to_wire())
        _session_log(
            "INFO" if ok else "WARN",
            event="session.save" if ok else "session.save.failed",
            summary="Transcript saved" if ok else "Transcript save failed; retrying next tick",
            session_id=state.session_id,
            segments=len(state.buffer),
        )
        return ok

    # -- audio in / segments out ------------------------------------------

    async def _audio_chunk(self, data: dict[str, Any]) -> None:
        state = self.state
        if state is None or not state.is_active or state.transcriber is None:
            return

        chunk = data.get("chunk")
        if chunk is None and isinstance(data.get("audio"), str):
            try:
                chunk = base64.b64decode(data["audio"], validate=True)
            except binascii.Error as e:
                raise SessionOperationError("Invalid audio chunk") from e
        if not chunk:
            return
        await state.transcriber.process_audio_chunk(chunk)

    async def _on_provider_segment(self, segment: TranscriptSegment) -> None:
        await self.submit(PipelineEvent.SEGMENT_FINALIZED, {"segment": segment})

    async def _segment_finalized(self, data: dict[str, Any]) -> None:
        state = self.state
        segment: TranscriptSegment = data["segment"]
        if state is None or not self._is_current(state):
            return

        segment.text = state.corrector.apply_instant(segment.text)
        state.buffer.append(segment)
        state.segments_received += 1
        await self.emit(ServerEvent.TRANSCRIPT_SEGMENT, segment.to_wire())

        context = " ".join(
            s.text
            for s in state.buffer.recent(self.orchestrator.correction_context_segments, before=segment.id)
        )
        self._spawn(self._correct(state, segment.id, segment.text, context), name=f"correct-{segment.id}")

        trigger = state.trigger_engine.check_keyword_triggers(segment.text)
        if trigger is not None:
            await self._emit_trigger(trigger)

        self._spawn(state.director.process_segment(segment.text), name=f"auto-audio-{segment.id}")

        count = state.segments_received
        if count >= state.last_scene_detection_index + self.orchestrator.scene_detection_interval:
            state.last_scene_detection_index = count
            recent_text = " ".join(s.text for s in state.buffer.recent(SCENE_CONTEXT_SEGMENTS))
            self._spawn(self._detect_scene(state, recent_text), name=f"scene-{state.session_id}")

        if count >= state.last_attribution_index + self.orchestrator.attribution_batch_size:
            state.last_attribution_index = count
            window = state.buffer.recent(self.orchestrator.attribution_window)
            self._spawn(self._attribute(state, window), name=f"attribution-{state.session_id}")

        if mentions_health(segment.text):
            self._spawn(self._extract_health(state, segment.text), name=f"health-{segment.id}")

    # -- background pipelines ---------------------------------------------

    async def _correct(self, state: SessionState, segment_id: str, original: str, context: str) -> None:
        corrected = await state.corrector.correct(original, context)
        if corrected == original or not self._is_current(state):
            return

        segment = state.buffer.get(segment_id)
        # Merged away or rewritten meanwhile
        if segment is None or segment.text != original:
            return

        segment.text = corrected
        await self.emit(
            ServerEvent.TRANSCRIPT_CORRECTED,
            SegmentCorrected(segment_id=segment_id, text=corrected).to_wire(),
        )
        _session_log("DEBUG", event="correction.applied", summary="Segment corrected", segment_id=segment_id)

    async def _attribute(self, state: SessionState, window: list[TranscriptSegment]) -> None:
        changes = await state.attributor.attribute(window)
        if not self._is_current(state):
            return

        applied = 0
        for segment_id, speaker in changes.items():
            segment = state.buffer.get(segment_id)
            if segment is None or segment_id in state.manual_speaker_ids:
                continue
            if segment.effective_speaker == speaker:
                continue
            segment.speaker_name = speaker
            segment.is_edited = True
            applied += 1
            await self.emit(
                ServerEvent.SPEAKER_UPDATED,
                SpeakerUpdated(segment_id=segment_id, speaker_name=speaker).to_wire(),
            )

        merges = merge_settled_segments(
            state.buffer,
            state.buffer.settled_end(self.orchestrator.unsettled_segments),
            state.merged_keys,
        )
        for merge in merges:
            await self.emit(
                ServerEvent.TRANSCRIPT_MERGED,
                SegmentMerged(
                    target_id=merge.target_id,
                    merged_id=merge.merged_id,
                    new_text=merge.new_text,
                ).to_wire(),
            )
        if applied or merges:
            _session_log(
                "INFO",
                event="attribution.applied",
                summary="Speakers revised",
                session_id=state.session_id,
                updated=applied,
                merged=len(merges),
            )

    async def _detect_scene(self, state: SessionState, recent_text: str) -> None:
        result = await state.scene_detector.detect(recent_text)
        if not self._is_current(state):
            return

        await self.emit(
            ServerEvent.SCENE_DETECTED,
            SceneDetected(scene=result.scene, confidence=result.confidence).to_wire(),
        )
        trigger = state.trigger_engine.handle_scene_change(result.scene, result.confidence)
        if trigger is not None:
            await self._emit_trigger(trigger)
        await state.director.handle_scene_change(result.scene, result.confidence)

    async def _extract_health(self, state: SessionState, text: str) -> None:
        events = await state.health_extractor.extract(text)
        for player, extracted in events:
            if not self._is_current(state):
                return
            record = await self.orchestrator.repository.create_health_event(
                session_id=state.session_id,
                player_id=player.id,
                event_type=extracted.type,
                value=extracted.value,
                status_effect=extracted.status_effect,
                description=extracted.description,
            )
            await self.emit(ServerEvent.HEALTH_EVENT, record.to_wire())
            _session_log(
                "INFO",
                event="health.pending",
                summary="Health event awaiting confirmation",
                player=player.character_name,
                type=extracted.type,
                value=extracted.value,
            )

    async def _on_auto_audio(self, event: AutoAudioEvent) -> None:
        state = self.state
        if state is None or not self._is_current(state):
            return
        await self.emit(ServerEvent.AUTO_AUDIO_PLAY, event.to_wire())

    async def _emit_trigger(self, trigger: AudioTriggerEvent) -> None:
        await self.emit(ServerEvent.AUDIO_TRIGGER, trigger.to_wire())

    # -- manual controls --------------------------------------------------

    async def _speaker_attribute(self, data: dict[str, Any]) -> None:
        state = self.state
        if state is None or not state.is_active:
            raise SessionOperationError("No active session")

        segment_id = data.get("segmentId")
        speaker_name = (data.get("speakerName") or "").strip()
        if not segment_id or not speaker_name:
            raise SessionOperationError("segmentId and speakerName are required")

        segment = state.buffer.get(segment_id)
        if segment is None:
            raise SessionOperationError("Segment not found")

        segment.speaker_name = speaker_name
        segment.is_edited = True
        state.manual_speaker_ids.add(segment_id)
        await self._save(state)
        await self.emit(
            ServerEvent.SPEAKER_UPDATED,
            SpeakerUpdated(segment_id=segment_id, speaker_name=speaker_name).to_wire(),
        )

    async def _manual_trigger(self, data: dict[str, Any]) -> None:
        mapping_id = data.get("mappingId")
        if not mapping_id:
            raise SessionOperationError("mappingId is required")

        state = self.state
        if state is None:
            # No live session: echo so sounds can be tested from the setup screen
            await self._emit_trigger(AudioTriggerEvent(mapping_id=mapping_id, action="play", manual=True))
            return

        trigger = state.trigger_engine.manual_trigger(mapping_id)
        if trigger is None:
            raise SessionOperationError("Sound mapping not found")
        await self._emit_trigger(trigger.model_copy(update={"manual": True}))

    async def _stop_audio(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        trigger = state.trigger_engine.stop_audio()
        if trigger is not None:
            await self._emit_trigger(trigger)

    async def _auto_audio_settings(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        update = _parse(AutoAudioSettingsUpdate, data, "Invalid auto-audio settings")
        updated = state.director.update_settings(update)
        await self.emit(ServerEvent.AUTO_AUDIO_SETTINGS_UPDATED, updated.to_wire())

    async def _auto_audio_get_settings(self, data: dict[str, Any]) -> None:
        state = self.state
        if state is None:
            payload = AutoAudioSettings().to_wire()
            payload["apiStatus"] = {"freesound": False, "jamendo": False, "tabletop": False}
        else:
            payload = state.director.settings.to_wire()
            payload["apiStatus"] = state.director.diagnostics()
        await self.emit(ServerEvent.AUTO_AUDIO_SETTINGS_UPDATED, payload)

    async def _auto_audio_set_scene(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        scene = data.get("scene")
        if scene not in SCENES:
            raise SessionOperationError(f"Invalid scene: {scene}")
        self._spawn(state.director.manual_scene_music(scene), name=f"scene-music-{state.session_id}")

    async def _auto_audio_playback_failed(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        track_id = data.get("trackId")
        if not track_id:
            raise SessionOperationError("trackId is required")
        state.director.mark_unplayable(track_id)
        _session_log(
            "WARN",
            event="auto_audio.playback_failed",
            summary="Client could not play track",
            track_id=track_id,
            source=data.get("source"),
            err=data.get("error"),
        )

    async def _health_confirm(self, data: dict[str, Any]) -> None:
        state = self._require_session()
        confirm: HealthConfirm = _parse(HealthConfirm, data, "Invalid health confirmation")
        updated = await self.orchestrator.repository.resolve_health_event(
            state.session_id,
            confirm.event_id,
            confirm.confirmed,
            confirm.modified_value,
        )
        if updated is None:
            return

        player = next((p for p in state.campaign.players if p.id == updated.player_id), None)
        if player is not None:
            player.current_hp = updated.current_hp
        await self.emit(ServerEvent.PLAYER_UPDATED, updated.to_wire())


class SessionOrchestrator:
    """Table of live connections plus the collaborators they share"""

    def __init__(
        self,
        repository: Optional[SessionRepository] = None,
        llm: Optional[OpenAIClient] = None,
        tabletop: Optional[TabletopCatalog] = None,
        jamendo: Optional[JamendoClient] = None,
        freesound: Optional[FreesoundClient] = None,
        publisher: Optional[SessionEventPublisher] = None,
        recap_service: Optional[RecapService] = None,
        transcriber_factory: TranscriberFactory = default_transcriber_factory,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.repository = repository or SessionRepository()
        self.llm = llm or OpenAIClient()
        self.tabletop = tabletop or TabletopCatalog()
        self.jamendo = jamendo or JamendoClient()
        self.freesound = freesound or FreesoundClient()
        self.publisher = publisher or SessionEventPublisher()
        self.recap_service = recap_service or RecapService(self.repository, self.llm)
        self.transcriber_factory = transcriber_factory
        self._clock = clock
        self._rng = rng or random.Random()

        self.save_interval_s = settings.transcript_save_interval_s
        self.attribution_batch_size = settings.attribution_batch_size
        self.attribution_window = settings.attribution_window
        self.unsettled_segments = settings.unsettled_segments
        self.scene_detection_interval = settings.scene_detection_interval
        self.correction_context_segments = settings.correction_context_segments

        # connection id -> LiveSession
        self.connections: dict[str, LiveSession] = {}
        self.tasks: set[asyncio.Task] = set()

    def open(self, connection_id: str, user_id: str, send: Sender) -> LiveSession:
        if connection_id in self.connections:
            raise SessionOperationError("Connection already registered")
        live = LiveSession(self, connection_id, user_id, send)
        self.connections[connection_id] = live
        live.start_worker()
        return live

    def get(self, connection_id: str) -> Optional[LiveSession]:
        return self.connections.get(connection_id)

    async def close(self, connection_id: str) -> None:
        live = self.connections.pop(connection_id, None)
        if live is not None:
            await live.disconnect()

    def is_session_live(self, session_id: str) -> bool:
        return any(
            live.state is not None and live.state.session_id == session_id
            for live in self.connections.values()
        )

    def live_session_ids(self) -> list[str]:
        return [live.state.session_id for live in self.connections.values() if live.state is not None]

    def build_state(
        self,
        campaign: CampaignContext,
        on_auto_audio: Callable[[AutoAudioEvent], Awaitable[None]],
    ) -> SessionState:
        director = AutoAudioDirector(
            on_auto_audio,
            AudioAnalyzer(self.llm, clock=self._clock, rng=self._rng),
            self.tabletop,
            self.jamendo,
            self.freesound,
            clock=self._clock,
            rng=self._rng,
        )
        director.reset()
        return SessionState(
            session_id=campaign.session_id,
            campaign=campaign,
            owner_id=campaign.owner_id,
            start_time=int(time.time() * 1000),
            buffer=TranscriptBuffer(),
            corrector=TranscriptCorrector(campaign, self.llm),
            attributor=SpeakerAttributor(campaign, self.llm),
            scene_detector=SceneDetector(self.llm),
            health_extractor=HealthEventExtractor(campaign, self.llm),
            trigger_engine=AudioTriggerEngine(campaign.sound_mappings),
            director=director,
        )

    def diagnostics(self) -> dict[str, bool]:
        return {
            "deepgram": settings.transcription_enabled,
            "openai": self.llm.is_configured,
            "freesound": self.freesound.is_configured,
            "jamendo": self.jamendo.is_configured,
            "tabletop": self.tabletop.is_ready,
        }

    async def shutdown(self) -> None:
        """Flush every open session as if its connection dropped"""
        for connection_id in list(self.connections):
            await self.close(connection_id)
        pending = [task for task in self.tasks if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.publisher.close()
