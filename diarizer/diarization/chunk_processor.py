"""
ChunkProcessor: runs the engine on one buffered chunk and stamps session-absolute times.

Engine timestamps are relative to the start of the buffer; the buffer starts at
total_processed_ms in session time (the retained overlap from the previous chunk
sits at its head).
"""
from __future__ import annotations

import logging
import time

import numpy as np

from diarizer.config import get_settings
from diarizer.diarization.models import ChunkResult, LocalSegment
from diarizer.engine.base import DiarizationEngine

logger = logging.getLogger(__name__)


class ChunkProcessingError(RuntimeError):
    """Engine failed on a chunk. The chunk is dropped; the buffer is kept for a larger retry."""

    def __init__(self, chunk_index: int, cause: BaseException) -> None:
        super().__init__(f"Chunk {chunk_index} processing failed: {cause}")
        self.chunk_index = chunk_index
        self.cause = cause


class ChunkProcessor:
    """Stateless wrapper around DiarizationEngine.process(); safe to call from an executor thread."""

    def __init__(
        self,
        engine: DiarizationEngine,
        sample_rate: int | None = None,
        min_chunk_sec: float | None = None,
    ) -> None:
        settings = get_settings()
        self._engine = engine
        self._sample_rate = sample_rate or settings.SAMPLE_RATE
        self._min_chunk_sec = min_chunk_sec if min_chunk_sec is not None else settings.DIARIZATION_MIN_CHUNK_SECONDS
        self._min_samples = max(1, int(self._min_chunk_sec * self._sample_rate))

    def process(self, buffer: np.ndarray, total_processed_ms: int, chunk_index: int) -> ChunkResult | None:
        """
        Diarize buffer. Returns None when there is less than the minimum audio.
        Raises ChunkProcessingError if the engine fails.
        """
        if buffer.size < self._min_samples:
            return None

        duration_ms = buffer.size * 1000 // self._sample_rate
        logger.info(
            "Processing chunk %d (%ds, total: %ds)",
            chunk_index,
            round(duration_ms / 1000),
            round(total_processed_ms / 1000),
        )
        started = time.monotonic()
        try:
            turns = self._engine.process(buffer)
        except Exception as err:
            logger.warning("Chunk %d processing error: %s", chunk_index, err)
            raise ChunkProcessingError(chunk_index, err) from err
        elapsed_ms = int((time.monotonic() - started) * 1000)

        segments: list[LocalSegment] = []
        for start_sec, end_sec, speaker in turns:
            start_ms = total_processed_ms + int(round(start_sec * 1000))
            end_ms = total_processed_ms + int(round(end_sec * 1000))
            if end_ms <= start_ms:
                continue
            segments.append(LocalSegment(start_ms=start_ms, end_ms=end_ms, local_speaker=int(speaker)))

        logger.info("Chunk %d done in %dms, found %d segments", chunk_index, elapsed_ms, len(segments))
        return ChunkResult(
            chunk_index=chunk_index,
            offset_ms=total_processed_ms,
            duration_ms=duration_ms,
            sample_count=int(buffer.size),
            segments=segments,
            elapsed_ms=elapsed_ms,
        )
