"""
DiarizationSession: per-recording state for incremental long-session diarization.

Optimized for long sessions (1-4 hours):
- Audio is processed in chunks (default 180s) with a retained overlap (default 30s).
- The overlap is re-processed as the head of the next chunk and used to match speaker ids.
- Processed audio is dropped after every chunk; memory stays bounded.
- Results accumulate across chunks and are returned sorted when the session stops.

State machine: idle -> recording -> draining -> finalized -> idle (reset).

The synchronous methods (append/stop/force_finalize) run the engine inline. The split
methods (next_chunk_input/run_engine/commit_chunk/finalize_with/preview_with) let
DiarizationWorker run the engine in an executor and commit on the event loop.
"""
from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Callable, Optional

import numpy as np

from diarizer.audio.accumulator import AudioAccumulator, PcmInput
from diarizer.config import get_settings
from diarizer.diarization.assembler import ResultAssembler
from diarizer.diarization.chunk_processor import ChunkProcessingError, ChunkProcessor
from diarizer.diarization.models import ChunkResult, Segment
from diarizer.diarization.reconciler import SpeakerReconciler
from diarizer.engine.base import DiarizationEngine

logger = logging.getLogger(__name__)

ResultCallback = Callable[[list[Segment]], None]
ErrorCallback = Callable[[str], None]

# (buffer, total_processed_ms, chunk_index)
ChunkInput = tuple[np.ndarray, int, int]


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    DRAINING = "draining"
    FINALIZED = "finalized"


class DiarizationSession:
    """
    One recording = one session. Owns the audio buffer, speaker reconciler and result list.
    engine=None runs the session in no-op mode: audio is ignored, results are empty.
    """

    def __init__(
        self,
        engine: DiarizationEngine | None,
        sample_rate: int | None = None,
        chunk_duration_sec: int | None = None,
        overlap_duration_sec: int | None = None,
        min_match_overlap_ms: int | None = None,
        finalize_tolerance_ms: int | None = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        settings = get_settings()
        self._engine = engine
        self._sample_rate = sample_rate or (engine.sample_rate if engine else settings.SAMPLE_RATE)
        overlap_sec = overlap_duration_sec if overlap_duration_sec is not None else settings.DIARIZATION_OVERLAP_SECONDS

        self.accumulator = AudioAccumulator(
            sample_rate=self._sample_rate,
            chunk_duration_sec=chunk_duration_sec,
            overlap_duration_sec=overlap_sec,
        )
        self.processor = ChunkProcessor(engine, sample_rate=self._sample_rate) if engine else None
        self.reconciler = SpeakerReconciler(
            min_match_overlap_ms=min_match_overlap_ms,
            overlap_duration_ms=overlap_sec * 1000,
        )
        self.assembler = ResultAssembler(
            overlap_duration_ms=overlap_sec * 1000,
            finalize_tolerance_ms=finalize_tolerance_ms,
        )
        self.on_result = on_result
        self.on_error = on_error

        self.state = SessionState.IDLE
        self.chunk_index = 0
        # Integer sample counter; milliseconds derived from it to avoid drift over hours
        self._processed_samples = 0

    # --- state (read-only views) ---

    @property
    def enabled(self) -> bool:
        return self._engine is not None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def audio_buffer(self) -> np.ndarray:
        return self.accumulator.snapshot()

    @property
    def total_processed_ms(self) -> int:
        """Audio permanently committed; excludes the overlap still in the buffer."""
        return self._processed_samples * 1000 // self._sample_rate

    @property
    def accumulated_results(self) -> list[Segment]:
        return self.assembler.accumulated

    @property
    def previous_overlap_segments(self) -> list[Segment]:
        return self.assembler.previous_overlap_segments

    @property
    def next_global_speaker_id(self) -> int:
        return self.reconciler.next_global_speaker_id

    @property
    def last_committed_end_ms(self) -> int:
        return self.assembler.last_committed_end_ms

    # --- lifecycle ---

    def reset(self) -> None:
        """Discard everything and go idle."""
        self.accumulator.clear()
        self.reconciler.reset()
        self.assembler.reset()
        self.chunk_index = 0
        self._processed_samples = 0
        self.state = SessionState.IDLE

    def start(self) -> None:
        self.reset()
        self.state = SessionState.RECORDING
        logger.info("Recording started, state reset")

    def append(self, samples: PcmInput) -> bool:
        """
        Buffer int16 PCM. Ignored unless recording. When a full chunk is buffered it is
        processed inline; returns True if a chunk was committed.
        """
        if self.state is not SessionState.RECORDING or not self.enabled:
            return False
        if not self.accumulator.append(samples):
            return False
        return self.process_pending_chunk()

    def process_pending_chunk(self) -> bool:
        result = self._run_safely(self.next_chunk_input())
        if result is None:
            return False
        self.commit_chunk(result)
        return True

    def stop(self) -> list[Segment]:
        """Flush the remaining buffer as the last chunk and return sorted results."""
        if self.state is SessionState.FINALIZED:
            return self.assembler.results()
        if self.state is not SessionState.RECORDING:
            return []
        self.begin_drain()
        return self.finalize_with(self._run_safely(self.next_chunk_input()))

    def force_finalize(self) -> list[Segment]:
        """Diarize on demand without ending the session; state is left untouched."""
        if self.state is SessionState.FINALIZED:
            return self.assembler.results()
        if self.state is SessionState.IDLE:
            return []
        return self.preview_with(self._run_safely(self.next_chunk_input()))

    # --- split pipeline (used by DiarizationWorker) ---

    def begin_drain(self) -> None:
        self.state = SessionState.DRAINING
        logger.info("Recording stopped, finalizing...")

    def next_chunk_input(self) -> ChunkInput | None:
        """Engine input for the current buffer, or None if there is nothing worth processing."""
        if not self.enabled or not self.accumulator.has_min_audio:
            return None
        return self.accumulator.snapshot(), self.total_processed_ms, self.chunk_index

    def run_engine(self, chunk: ChunkInput) -> ChunkResult | None:
        """Engine call only; no session state is touched. Raises ChunkProcessingError."""
        buffer, offset_ms, chunk_index = chunk
        return self.processor.process(buffer, offset_ms, chunk_index)

    def commit_chunk(self, result: ChunkResult) -> None:
        """Reconcile, commit up to the overlap midpoint, advance, trim buffer to the overlap."""
        mapped = self.reconciler.reconcile(
            result.segments,
            result.chunk_index,
            self.assembler.previous_overlap_segments,
            zone_start_ms=result.offset_ms,
        )
        self.assembler.commit_chunk(mapped, result.offset_ms, result.duration_ms)
        self._processed_samples += result.sample_count - self.accumulator.overlap_samples
        self.accumulator.trim_to_overlap(result.sample_count)
        self.chunk_index += 1
        logger.info(
            "Buffer trimmed to %d samples (%dms overlap), accumulated %d segments",
            self.accumulator.sample_count,
            self.accumulator.overlap_ms,
            len(self.assembler.accumulated),
        )

    def finalize_with(self, result: ChunkResult | None) -> list[Segment]:
        """Commit the last chunk (if any), drop the buffer, sort, report."""
        if result is not None:
            mapped = self.reconciler.reconcile(
                result.segments,
                result.chunk_index,
                self.assembler.previous_overlap_segments,
                zone_start_ms=result.offset_ms,
            )
            self.assembler.commit_final(mapped, first_chunk=result.chunk_index == 0)
        self.accumulator.clear()
        self.state = SessionState.FINALIZED
        segments = self.assembler.results()
        logger.info(
            "Diarization complete: %d segments, %d speakers",
            len(segments),
            self.reconciler.next_global_speaker_id,
        )
        self._notify_result(segments)
        return segments

    def preview_with(self, result: ChunkResult | None) -> list[Segment]:
        """Sorted results including the reconciled buffer tail, without committing it."""
        tail: list[Segment] = []
        if result is not None:
            reconciler = copy.copy(self.reconciler)
            tail = reconciler.reconcile(
                result.segments,
                result.chunk_index,
                self.assembler.previous_overlap_segments,
                zone_start_ms=result.offset_ms,
            )
        segments = self.assembler.preview(tail, first_chunk=self.chunk_index == 0)
        self._notify_result(segments)
        return segments

    def chunk_failed(self, err: BaseException) -> None:
        """Drop the chunk, keep the buffer for a larger retry, report once."""
        self.accumulator.defer()
        self.report_error(err)

    def report_error(self, err: BaseException) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(str(err))
        except Exception:
            logger.exception("on_error callback failed")

    # --- internals ---

    def _run_safely(self, chunk: ChunkInput | None) -> ChunkResult | None:
        """Engine failure drops the chunk; buffer is kept so the next threshold retries larger."""
        if chunk is None:
            return None
        try:
            return self.run_engine(chunk)
        except ChunkProcessingError as err:
            self.chunk_failed(err)
            return None

    def _notify_result(self, segments: list[Segment]) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(list(segments))
        except Exception:
            logger.exception("on_result callback failed")
