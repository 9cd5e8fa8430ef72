"""
DiarizationWorker: asyncio actor that hosts one DiarizationSession.

- Commands (start, audio, stop, run) go through one queue and are handled in order by a
  single consumer task, so only one chunk is ever processed at a time.
- The engine call runs in the default executor; the event loop (audio ingestion from the
  WebSocket) is never blocked by a chunk.
- append_audio() is non-blocking. When too much audio is queued behind a slow chunk,
  new audio is dropped with a warning.
- reset() is immediate: it bumps the session generation and drains the queue. A chunk
  still in the executor is discarded when it comes back with a stale generation.
- stop_recording() resolves after the final chunk completes. No timeout here; callers
  may wrap it in asyncio.wait_for.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np

from diarizer.config import get_settings
from diarizer.diarization.chunk_processor import ChunkProcessingError
from diarizer.diarization.models import ChunkResult, Segment
from diarizer.diarization.session import (
    ChunkInput,
    DiarizationSession,
    ErrorCallback,
    ResultCallback,
    SessionState,
)
from diarizer.engine.base import DiarizationEngine

logger = logging.getLogger(__name__)

StatusCallback = Callable[["WorkerStatus"], None]


class WorkerStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    PROCESSING = "processing"
    NOT_AVAILABLE = "not-available"
    ERROR = "error"


class CommandType(str, Enum):
    START = "start-recording"
    AUDIO = "audio-chunk"
    STOP = "stop-recording"
    RUN = "run-diarization"


@dataclass
class Command:
    type: CommandType
    generation: int
    samples: Optional[np.ndarray] = None
    future: Optional["asyncio.Future[list[Segment]]"] = None


class DiarizationWorker:
    """
    One worker = one recording at a time. engine=None (models missing) runs in no-op
    mode: recording commands are accepted and stop resolves to an empty result.
    """

    def __init__(
        self,
        engine: DiarizationEngine | None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_status: Optional[StatusCallback] = None,
        status: WorkerStatus | None = None,
        max_queued_audio: int | None = None,
        session: DiarizationSession | None = None,
    ) -> None:
        settings = get_settings()
        self._session = session or DiarizationSession(engine)
        if on_result is not None:
            self._session.on_result = on_result
        if on_error is not None:
            self._session.on_error = on_error
        self._on_status = on_status
        self._status = status or (WorkerStatus.READY if self._session.enabled else WorkerStatus.NOT_AVAILABLE)
        self._max_queued_audio = max_queued_audio or settings.WORKER_QUEUE_MAX_ITEMS

        self._queue: asyncio.Queue[Command | None] = asyncio.Queue()
        self._task: asyncio.Task[Any] | None = None
        self._generation = 0
        self._queued_audio = 0
        self._dropped_audio = 0

    @property
    def session(self) -> DiarizationSession:
        return self._session

    @property
    def status(self) -> WorkerStatus:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def dropped_audio(self) -> int:
        """Audio blocks dropped because the queue was full."""
        return self._dropped_audio

    # --- lifecycle ---

    async def start(self) -> None:
        """Start the consumer task. Call once before sending commands."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._consumer())
        self._set_status(self._status)

    async def shutdown(self) -> None:
        """Discard the session and stop the consumer. Safe to call from finally."""
        self.reset()
        if self._task is None:
            return
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    # --- inbound ---

    def start_recording(self) -> None:
        self._queue.put_nowait(Command(CommandType.START, self._generation))

    def append_audio(self, samples: np.ndarray) -> bool:
        """Queue int16 samples. Non-blocking; returns False if dropped for backpressure."""
        if self._queued_audio >= self._max_queued_audio:
            self._dropped_audio += 1
            if self._dropped_audio == 1 or self._dropped_audio % 100 == 0:
                logger.warning("Diarization queue full, dropped %d audio blocks", self._dropped_audio)
            return False
        self._queued_audio += 1
        self._queue.put_nowait(Command(CommandType.AUDIO, self._generation, samples=samples))
        return True

    async def stop_recording(self) -> list[Segment]:
        """Finalize the session: process the remaining buffer, return sorted segments."""
        return await self._request(CommandType.STOP)

    async def force_finalize(self) -> list[Segment]:
        """Diarize now without ending the session."""
        return await self._request(CommandType.RUN)

    def reset(self) -> None:
        """Discard everything, including a chunk in flight. Any state -> idle."""
        self._generation += 1
        while True:
            try:
                cmd = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if cmd is None:
                # keep a pending shutdown sentinel
                self._queue.put_nowait(None)
                break
            self._resolve(cmd, [])
        self._queued_audio = 0
        self._session.reset()
        logger.info("Diarization session reset (generation %d)", self._generation)

    # --- consumer ---

    async def _request(self, kind: CommandType) -> list[Segment]:
        future: asyncio.Future[list[Segment]] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(Command(kind, self._generation, future=future))
        return await future

    async def _consumer(self) -> None:
        """Drain commands in order. None = shut down. Log errors, never crash."""
        while True:
            cmd = await self._queue.get()
            if cmd is None:
                break
            if cmd.type is CommandType.AUDIO:
                self._queued_audio = max(0, self._queued_audio - 1)
            if cmd.generation != self._generation:
                self._resolve(cmd, [])
                continue
            try:
                await self._handle(cmd)
            except Exception as err:
                logger.exception("Diarization command %s failed", cmd.type.value)
                self._session.report_error(err)
                self._resolve(cmd, [])
                if self._status is WorkerStatus.PROCESSING:
                    self._set_status(WorkerStatus.READY)

    async def _handle(self, cmd: Command) -> None:
        session = self._session
        if cmd.type is CommandType.START:
            session.start()
        elif cmd.type is CommandType.AUDIO:
            if session.state is not SessionState.RECORDING or not session.enabled or cmd.samples is None:
                return
            if session.accumulator.append(cmd.samples):
                await self._process_chunk(cmd.generation)
        elif cmd.type is CommandType.STOP:
            self._resolve(cmd, await self._stop(cmd.generation))
        elif cmd.type is CommandType.RUN:
            self._resolve(cmd, await self._run(cmd.generation))

    async def _process_chunk(self, generation: int) -> None:
        result = await self._run_engine(self._session.next_chunk_input(), generation)
        if result is None or generation != self._generation:
            return
        self._session.commit_chunk(result)

    async def _stop(self, generation: int) -> list[Segment]:
        session = self._session
        if session.state is SessionState.FINALIZED:
            return session.assembler.results()
        if session.state is not SessionState.RECORDING:
            return []
        session.begin_drain()
        result = await self._run_engine(session.next_chunk_input(), generation)
        if generation != self._generation:
            return []
        return session.finalize_with(result)

    async def _run(self, generation: int) -> list[Segment]:
        session = self._session
        if session.state is SessionState.FINALIZED:
            return session.assembler.results()
        if session.state is SessionState.IDLE:
            return []
        result = await self._run_engine(session.next_chunk_input(), generation)
        if generation != self._generation:
            return []
        return session.preview_with(result)

    async def _run_engine(self, chunk: ChunkInput | None, generation: int) -> ChunkResult | None:
        """Engine call in the executor. Failures drop the chunk (buffer kept) and report once."""
        if chunk is None:
            return None
        self._set_status(WorkerStatus.PROCESSING)
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, self._session.run_engine, chunk)
        except ChunkProcessingError as err:
            if generation == self._generation:
                self._session.chunk_failed(err)
            return None
        finally:
            self._set_status(WorkerStatus.READY)
        if result is not None and generation != self._generation:
            logger.info("Discarding chunk %d result: session was reset", chunk[2])
            return None
        return result

    # --- outbound ---

    def _resolve(self, cmd: Command, segments: list[Segment]) -> None:
        if cmd.future is not None and not cmd.future.done():
            cmd.future.set_result(segments)

    def _set_status(self, status: WorkerStatus) -> None:
        if self._status in (WorkerStatus.NOT_AVAILABLE, WorkerStatus.ERROR):
            status = self._status
        self._status = status
        if self._on_status is None:
            return
        try:
            self._on_status(status)
        except Exception:
            logger.exception("on_status callback failed")
