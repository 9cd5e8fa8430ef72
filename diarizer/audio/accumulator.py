"""
AudioAccumulator: bounded sample buffer for long-session diarization.

Holds at most one chunk (e.g. 180s) plus nothing else between chunk runs:
- append() converts int16 PCM to float32 [-1, 1] and reports when a chunk is ready.
- After a chunk is processed the buffer is trimmed to the trailing overlap (e.g. 30s),
  which becomes the head of the next chunk.

Memory stays flat regardless of session length (~11.5MB float32 at 16kHz / 180s).
Blocks are kept as a list and joined only when the engine needs the whole buffer.
"""
from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from diarizer.config import get_settings

PcmInput = Union[bytes, bytearray, np.ndarray, Sequence[int]]


def pcm_to_float32(samples: PcmInput) -> np.ndarray:
    """Convert 16-bit PCM (LE bytes, int16 array, or list of ints) to float32 [-1.0, 1.0]."""
    if isinstance(samples, (bytes, bytearray)):
        pcm = np.frombuffer(samples, dtype="<i2")
    else:
        pcm = np.asarray(samples, dtype=np.int16)
    return pcm.astype(np.float32) / 32768.0


class AudioAccumulator:
    """Rolling buffer of float32 samples; chunk-ready once CHUNK seconds are buffered."""

    def __init__(
        self,
        sample_rate: int | None = None,
        chunk_duration_sec: int | None = None,
        overlap_duration_sec: int | None = None,
        min_chunk_sec: float | None = None,
    ) -> None:
        settings = get_settings()
        self._sample_rate = sample_rate or settings.SAMPLE_RATE
        self._chunk_sec = chunk_duration_sec or settings.DIARIZATION_CHUNK_SECONDS
        self._overlap_sec = overlap_duration_sec if overlap_duration_sec is not None else settings.DIARIZATION_OVERLAP_SECONDS
        self._min_chunk_sec = min_chunk_sec if min_chunk_sec is not None else settings.DIARIZATION_MIN_CHUNK_SECONDS

        self._chunk_samples = int(self._chunk_sec * self._sample_rate)
        self._overlap_samples = int(np.floor(self._overlap_sec * self._sample_rate))
        self._min_samples = max(1, int(self._min_chunk_sec * self._sample_rate))

        self._blocks: list[np.ndarray] = []
        self._count = 0
        self._ready_at = self._chunk_samples

    def append(self, samples: PcmInput) -> bool:
        """Append PCM samples. Returns True when buffered audio reaches the chunk duration."""
        block = pcm_to_float32(samples)
        if block.size:
            self._blocks.append(block)
            self._count += block.size
        return self.chunk_ready

    def snapshot(self) -> np.ndarray:
        """Whole buffer as one contiguous float32 array (joined lazily)."""
        if not self._blocks:
            return np.zeros(0, dtype=np.float32)
        if len(self._blocks) > 1:
            self._blocks = [np.concatenate(self._blocks)]
        return self._blocks[0]

    def trim_to_overlap(self, chunk_samples: int | None = None) -> None:
        """
        Keep only the overlap window that trailed the processed chunk; it is re-processed
        as the next chunk's head. chunk_samples: size of the chunk that was processed
        (default: whole buffer); anything appended after it is kept too.
        """
        buffer = self.snapshot()
        processed = buffer.size if chunk_samples is None else min(chunk_samples, buffer.size)
        head = max(0, processed - self._overlap_samples)
        keep = buffer[head:].copy()
        self._blocks = [keep] if keep.size else []
        self._count = int(keep.size)
        self._ready_at = self._chunk_samples

    def defer(self) -> None:
        """After a failed chunk: keep everything, next attempt one chunk duration later."""
        self._ready_at = self._count + self._chunk_samples

    def clear(self) -> None:
        self._blocks = []
        self._count = 0
        self._ready_at = self._chunk_samples

    @property
    def chunk_ready(self) -> bool:
        return self._count >= self._ready_at

    @property
    def has_min_audio(self) -> bool:
        """At least the minimum engine input (1s by default)."""
        return self._count >= self._min_samples

    @property
    def sample_count(self) -> int:
        return self._count

    @property
    def duration_ms(self) -> int:
        return self._count * 1000 // self._sample_rate

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def overlap_samples(self) -> int:
        return self._overlap_samples

    @property
    def overlap_ms(self) -> int:
        return int(self._overlap_sec * 1000)

    @property
    def chunk_duration_sec(self) -> int:
        return self._chunk_sec
