"""
WebSocketManager: one WebSocket = one diarization session.

Client sends:
- binary frames: PCM 16-bit LE mono at SAMPLE_RATE (audio-chunk);
- text frames: {"type": "start-recording" | "stop-recording" | "run-diarization" | "reset"}.

Server sends JSON events:
- {"type": "session", "session_id": ...}
- {"type": "status", "data": "loading" | "ready" | "processing" | "not-available" | "error"}
- {"type": "diarization-result", "data": {segments, speaker_count, finalized, ...}}
- {"type": "error", "data": message}  (non-fatal; the session continues)

Audio ingestion never waits on the engine: frames go to DiarizationWorker's queue and
stop/run are handled as background tasks so reset stays responsive while a chunk runs.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket
from pydantic import ValidationError

from diarizer.audio import AudioReceiver
from diarizer.diarization.models import Segment
from diarizer.diarization.session import SessionState
from diarizer.diarization.worker import DiarizationWorker, WorkerStatus
from diarizer.engine.base import DiarizationEngine
from diarizer.schemas.diarization import ControlMessage, DiarizationResultOut
from diarizer.session_store import generate_session_id, save_error, save_result

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Bridges WebSocket frames to a DiarizationWorker and worker callbacks back to JSON events."""

    def __init__(
        self,
        websocket: WebSocket,
        engine: DiarizationEngine | None,
        engine_status: WorkerStatus | None = None,
    ) -> None:
        self._ws = websocket
        self._receiver = AudioReceiver()
        self._session_id = generate_session_id()
        self._outbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._sender_task: asyncio.Task[Any] | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._closed = False
        self._worker = DiarizationWorker(
            engine,
            on_result=self._on_result,
            on_error=self._on_error,
            on_status=self._on_status,
            status=engine_status,
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    # --- worker callbacks (event loop thread) ---

    def _on_result(self, segments: list[Segment]) -> None:
        finalized = self._worker.session.state is SessionState.FINALIZED
        save_result(self._session_id, segments, finalized=finalized)
        payload = DiarizationResultOut.build(segments, session_id=self._session_id, finalized=finalized)
        self._emit({"type": "diarization-result", "data": payload.model_dump()})

    def _on_error(self, message: str) -> None:
        save_error(self._session_id, message)
        self._emit({"type": "error", "data": message})

    def _on_status(self, status: WorkerStatus) -> None:
        self._emit({"type": "status", "data": status.value})

    def _emit(self, payload: dict[str, Any]) -> None:
        if not self._closed:
            self._outbox.put_nowait(payload)

    async def _sender(self) -> None:
        """Drain outbox to the socket. None = stop. A failed send closes the session."""
        while True:
            payload = await self._outbox.get()
            if payload is None:
                break
            if self._closed:
                continue
            try:
                await self._ws.send_text(json.dumps(payload))
            except Exception:
                self._closed = True

    # --- inbound ---

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _feed_audio(self, data: bytes) -> None:
        self._receiver.feed(data)
        samples = self._receiver.drain_samples()
        if samples is not None:
            self._worker.append_audio(samples)

    def _flush_audio(self) -> None:
        samples = self._receiver.drain_remainder()
        if samples is not None:
            self._worker.append_audio(samples)

    def _handle_control(self, text: str) -> None:
        try:
            msg = ControlMessage.model_validate_json(text)
        except ValidationError as e:
            logger.warning("Invalid control message: %s", e.errors()[:1])
            self._emit({"type": "error", "data": "invalid control message"})
            return
        if msg.type == "start-recording":
            self._worker.start_recording()
        elif msg.type == "stop-recording":
            self._flush_audio()
            self._spawn(self._worker.stop_recording())
        elif msg.type == "run-diarization":
            self._flush_audio()
            self._spawn(self._worker.force_finalize())
        elif msg.type == "reset":
            self._worker.reset()

    async def run(self) -> None:
        """Main loop: receive frames until disconnect; finalize an unfinished recording."""
        await self._worker.start()
        self._sender_task = asyncio.create_task(self._sender())
        self._emit({"type": "session", "session_id": self._session_id})
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except Exception:
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                if msg.get("bytes") is not None:
                    self._feed_audio(msg["bytes"])
                elif msg.get("text") is not None:
                    self._handle_control(msg["text"])
        finally:
            self._closed = True
            # Results of an unfinished recording still land in the session store;
            # stop is a no-op when idle or already finalized.
            self._flush_audio()
            self._spawn(self._worker.stop_recording())
            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)
            await self._worker.shutdown()
            self._outbox.put_nowait(None)
            if self._sender_task:
                await self._sender_task
