"""
ResultAssembler: owns the permanent, session-long segment list.

Chunk boundaries:
- A chunk of D ms starting at T covers [T, T + D); its trailing overlap [T + D - O, T + D)
  is re-processed as the head of the next chunk.
- Commit horizon (cutoff) = midpoint of that overlap. Segments ending after the cutoff
  wait for the next chunk, which sees them with full context.
- Every chunk commits segments ending at or before its own cutoff. A segment the next
  chunk re-detects identically in the shared overlap is appended once.
- Finalize: chunk 0 commits everything; later chunks commit segments starting at or
  after (last cutoff - tolerance).

results() is sorted by start_ms (stable): overlap reconciliation can commit a segment
slightly out of order relative to the next chunk's early commits.
"""
from __future__ import annotations

import logging
from typing import Sequence

from diarizer.config import get_settings
from diarizer.diarization.models import Segment

logger = logging.getLogger(__name__)


class ResultAssembler:
    """Append-only segment store with chunk-boundary deduplication."""

    def __init__(self, overlap_duration_ms: int | None = None, finalize_tolerance_ms: int | None = None) -> None:
        settings = get_settings()
        self._overlap_ms = (
            overlap_duration_ms if overlap_duration_ms is not None else settings.DIARIZATION_OVERLAP_SECONDS * 1000
        )
        self._tolerance_ms = (
            finalize_tolerance_ms if finalize_tolerance_ms is not None else settings.DIARIZATION_FINALIZE_TOLERANCE_MS
        )
        self.accumulated: list[Segment] = []
        self.previous_overlap_segments: list[Segment] = []
        self.last_committed_end_ms = 0
        self._seen: set[Segment] = set()

    def reset(self) -> None:
        self.accumulated = []
        self.previous_overlap_segments = []
        self.last_committed_end_ms = 0
        self._seen = set()

    def _append(self, segments: Sequence[Segment]) -> int:
        added = 0
        for seg in segments:
            if seg in self._seen:
                continue
            self._seen.add(seg)
            self.accumulated.append(seg)
            added += 1
        return added

    def commit_chunk(self, segments: Sequence[Segment], total_processed_ms: int, chunk_duration_ms: int) -> int:
        """
        Commit one reconciled chunk and keep its trailing overlap for the next reconciliation.
        Returns number of segments added.
        """
        overlap_start_ms = total_processed_ms + chunk_duration_ms - self._overlap_ms
        cutoff_ms = overlap_start_ms + self._overlap_ms // 2

        added = self._append([s for s in segments if s.end_ms <= cutoff_ms])

        # Not exclusive with the commit: a segment in the overlap can be in both.
        self.previous_overlap_segments = [s for s in segments if s.start_ms >= overlap_start_ms]
        self.last_committed_end_ms = cutoff_ms

        logger.debug(
            "Committed %d segments up to %dms, %d kept for overlap matching",
            added,
            cutoff_ms,
            len(self.previous_overlap_segments),
        )
        return added

    def final_segments(self, segments: Sequence[Segment], first_chunk: bool) -> list[Segment]:
        """Segments of the last chunk that are not already covered by earlier commits."""
        if first_chunk:
            return list(segments)
        threshold = self.last_committed_end_ms - self._tolerance_ms
        return [s for s in segments if s.start_ms >= threshold]

    def commit_final(self, segments: Sequence[Segment], first_chunk: bool) -> int:
        """Commit the remainder chunk on session stop. Returns number of segments added."""
        return self._append(self.final_segments(segments, first_chunk))

    def results(self) -> list[Segment]:
        """Committed segments sorted by start_ms."""
        return sorted(self.accumulated, key=lambda s: s.start_ms)

    def preview(self, tail: Sequence[Segment], first_chunk: bool) -> list[Segment]:
        """Sorted results as if tail were the final chunk, without committing anything."""
        merged = list(self.accumulated)
        seen = set(self._seen)
        for seg in self.final_segments(tail, first_chunk):
            if seg not in seen:
                seen.add(seg)
                merged.append(seg)
        return sorted(merged, key=lambda s: s.start_ms)
