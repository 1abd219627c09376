"""
Deepgram live transcription adapter

One streaming websocket per live session. Raw 16 kHz mono linear16 audio goes
out as binary frames; finalized, diarized results come back as JSON and are
turned into TranscriptSegments, split at speaker boundaries.
"""

import asyncio
import json
import time
from collections import deque
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from companion.core.config import settings
from companion.core.logging import emit_log, get_event_logger
from companion.schemas.transcript import TranscriptSegment, speaker_label_for

STT_LOGGER = get_event_logger("companion.stt")

SegmentSink = Callable[[TranscriptSegment], Awaitable[None]]


def _stt_log(
    level: str,
    *,
    event: str,
    summary: str,
    payload: Optional[str] = None,
    **kv,
) -> None:
    emit_log(
        STT_LOGGER,
        level=level,
        domain="stt",
        event=event,
        summary=summary,
        kv=kv,
        payload=payload,
    )


def listen_params(model: str) -> dict[str, str]:
    """Live query parameters tuned for speaker separation"""
    return {
        "model": model,
        "language": "en-US",
        "smart_format": "true",
        "punctuate": "true",
        "diarize": "true",
        "utterances": "true",
        "utt_split": "0.8",
        "interim_results": "false",
        "endpointing": "500",
        "encoding": "linear16",
        "sample_rate": "16000",
        "channels": "1",
        "vad_events": "true",
    }


def split_by_speaker(words: list[dict[str, Any]]) -> list[tuple[int, str]]:
    """
    Group a word list into contiguous (speaker index, text) runs, in order.

    Words without a speaker index count as speaker 0.
    """
    runs: list[tuple[int, list[str]]] = []
    for word in words:
        speaker = word.get("speaker")
        speaker = 0 if speaker is None else int(speaker)
        text = word.get("punctuated_word") or word.get("word") or ""
        if not text:
            continue
        if runs and runs[-1][0] == speaker:
            runs[-1][1].append(text)
        else:
            runs.append((speaker, [text]))
    return [(speaker, " ".join(parts)) for speaker, parts in runs]


class DeepgramTranscriber:
    def __init__(
        self,
        on_segment: SegmentSink,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        keepalive_s: Optional[float] = None,
        connect_timeout_s: Optional[float] = None,
        reconnect_backoff_s: Optional[float] = None,
        pending_chunks: Optional[int] = None,
        connect: Callable[..., Any] = websockets.connect,
        clock: Callable[[], float] = time.monotonic,
        offset_ms: int = 0,
    ):
        self._on_segment = on_segment
        self.api_key = api_key if api_key is not None else settings.deepgram_api_key
        self.url = url or settings.deepgram_url
        self.model = model or settings.deepgram_model
        self.keepalive_s = keepalive_s or settings.deepgram_keepalive_s
        self.connect_timeout_s = connect_timeout_s or settings.deepgram_connect_timeout_s
        self.reconnect_backoff_s = (
            reconnect_backoff_s if reconnect_backoff_s is not None else settings.deepgram_reconnect_backoff_s
        )
        self._connect = connect
        self._clock = clock
        self._started_at = clock()
        self._offset_ms = offset_ms

        self._ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._last_attempt: Optional[float] = None
        # Audio held while a reconnect is in flight; oldest chunks fall off
        self._pending: deque[bytes] = deque(maxlen=pending_chunks or settings.deepgram_pending_chunks)
        self._connected = False
        self._connecting = False
        self._closed = False
        self._send_lock = asyncio.Lock()
        self._chunks = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _elapsed_ms(self) -> int:
        return self._offset_ms + int((self._clock() - self._started_at) * 1000)

    async def start(self) -> bool:
        """Open the stream; False when it could not connect in time"""
        if self._closed or self._connected or self._connecting:
            return self._connected

        self._connecting = True
        self._last_attempt = self._clock()
        target = f"{self.url}?{urlencode(listen_params(self.model))}"
        try:
            # Tasks and socket of a stream the provider already dropped
            self._cancel_stream_tasks()
            await self._close_socket()
            self._ws = await asyncio.wait_for(
                self._connect(target, additional_headers={"Authorization": f"Token {self.api_key}"}),
                timeout=self.connect_timeout_s,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            _stt_log("ERROR", event="stt.connect.error", summary="Deepgram connect failed", err=repr(exc))
            return False
        finally:
            self._connecting = False

        if self._closed:
            # close() ran while we were connecting
            await self._close_socket()
            return False

        self._connected = True
        ws = self._ws
        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        self._keepalive_task = asyncio.create_task(self._keepalive_loop(ws))
        _stt_log("INFO", event="stt.connect", summary="Deepgram stream open", model=self.model)
        await self._flush_pending()
        return True

    async def process_audio_chunk(self, chunk: bytes) -> None:
        """
        Forward one PCM chunk. While disconnected the chunk is buffered and a
        reconnect is started in the background, at most once per backoff
        interval, so the caller never waits on the provider handshake.
        """
        if self._closed or not chunk:
            return
        self._chunks += 1

        if not self._connected or self._ws is None:
            self._pending.append(chunk)
            self._schedule_reconnect()
            return
        if self._pending:
            # still flushing the backlog; keep order
            self._pending.append(chunk)
            return

        await self._send(chunk)

    def _schedule_reconnect(self) -> None:
        if self._connecting or (self._reconnect_task is not None and not self._reconnect_task.done()):
            return
        if self._last_attempt is not None and self._clock() - self._last_attempt < self.reconnect_backoff_s:
            if self._chunks % 50 == 1:
                _stt_log("WARN", event="stt.audio.buffered", summary="Not connected; waiting to retry")
            return
        _stt_log("INFO", event="stt.reconnect", summary="Reconnecting to Deepgram", pending=len(self._pending))
        self._reconnect_task = asyncio.create_task(self.start())

    async def _flush_pending(self) -> None:
        while self._pending and self._connected:
            await self._send(self._pending.popleft())

    async def _send(self, chunk: bytes) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async with self._send_lock:
                await ws.send(chunk)
        except ConnectionClosed as exc:
            self._connected = False
            _stt_log("WARN", event="stt.send.closed", summary="Stream closed while sending", code=exc.code)

    async def handle_message(self, data: dict[str, Any]) -> None:
        for segment in self.segments_from_message(data):
            if self._closed:
                return
            await self._on_segment(segment)

    def segments_from_message(self, data: dict[str, Any]) -> list[TranscriptSegment]:
        if data.get("type", "Results") != "Results" or data.get("is_final") is False:
            return []

        alternatives = (data.get("channel") or {}).get("alternatives") or []
        if not alternatives:
            return []
        alternative = alternatives[0]
        transcript = (alternative.get("transcript") or "").strip()
        if not transcript:
            return []

        confidence = float(alternative.get("confidence") or 0.0)
        timestamp = self._elapsed_ms()
        words = alternative.get("words") or []
        runs = split_by_speaker(words)

        if len(runs) <= 1:
            speaker = runs[0][0] if runs else 0
            return [
                TranscriptSegment(
                    timestamp=timestamp,
                    speaker_label=speaker_label_for(speaker),
                    text=transcript,
                    confidence=confidence,
                )
            ]

        _stt_log("DEBUG", event="stt.split", summary="Utterance split by speaker", runs=len(runs))
        return [
            TranscriptSegment(
                timestamp=timestamp,
                speaker_label=speaker_label_for(speaker),
                text=text,
                confidence=confidence,
            )
            for speaker, text in runs
        ]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._connected = False

        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        self._cancel_stream_tasks()
        self._pending.clear()

        await self._close_socket()
        _stt_log("INFO", event="stt.close", summary="Deepgram stream closed", chunks=self._chunks)

    def _cancel_stream_tasks(self) -> None:
        for task in (self._keepalive_task, self._recv_task):
            if task and not task.done():
                task.cancel()
        self._keepalive_task = None
        self._recv_task = None

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.send(json.dumps({"type": "CloseStream"}))
            await ws.close()
        except (ConnectionClosed, OSError):
            pass

    async def _keepalive_loop(self, ws) -> None:
        """Ping the stream it was started for; ends once that stream is gone"""
        while True:
            await asyncio.sleep(self.keepalive_s)
            if self._ws is not ws or not self._connected:
                return
            try:
                async with self._send_lock:
                    await ws.send(json.dumps({"type": "KeepAlive"}))
            except ConnectionClosed:
                self._connected = False
                return

    async def _recv_loop(self, ws) -> None:
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    continue
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    _stt_log("WARN", event="stt.recv.invalid_json", summary="Ignored frame", payload=message)
                    continue
                await self.handle_message(data)
        except ConnectionClosed as exc:
            _stt_log("WARN", event="stt.recv.closed", summary="Deepgram closed the stream", code=exc.code)
        finally:
            if self._ws is ws:
                self._connected = False
