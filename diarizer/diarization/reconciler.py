"""
Speaker identity reconciliation across chunks.

Each chunk is clustered independently, so local speaker ids are not comparable between
chunks. The chunk's leading overlap zone covers the same audio as the previous chunk's
trailing overlap; a local speaker is mapped to the global speaker it overlaps most in
time there.

Greedy single pass: one global id per local id per chunk, chosen by maximum temporal
overlap with a single previous segment. Overlap zones are short and rarely hold more
than a few speakers.

Limitations:
- Two local ids that both best-match the same global id are merged into it. Noisy
  local segmentation can therefore merge speakers; a split is never undone.
- A speaker silent during the overlap zone gets a new global id in the next chunk.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from diarizer.config import get_settings
from diarizer.diarization.models import LocalSegment, Segment

logger = logging.getLogger(__name__)


def overlap_ms(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    """Duration of the intersection of two ranges, 0 when disjoint."""
    return max(0, min(a_end, b_end) - max(a_start, b_start))


class SpeakerReconciler:
    """
    Maps each chunk's local speaker ids to session-global ids.
    Owns next_global_speaker_id; reset() starts a new session at 0.
    """

    def __init__(self, min_match_overlap_ms: int | None = None, overlap_duration_ms: int | None = None) -> None:
        settings = get_settings()
        self._min_match_ms = (
            min_match_overlap_ms if min_match_overlap_ms is not None else settings.DIARIZATION_MIN_MATCH_OVERLAP_MS
        )
        self._overlap_ms = (
            overlap_duration_ms if overlap_duration_ms is not None else settings.DIARIZATION_OVERLAP_SECONDS * 1000
        )
        self.next_global_speaker_id = 0

    def reset(self) -> None:
        self.next_global_speaker_id = 0

    def _new_global_id(self) -> int:
        gid = self.next_global_speaker_id
        self.next_global_speaker_id += 1
        return gid

    def best_match(self, seg: LocalSegment, previous: Iterable[Segment]) -> tuple[int | None, int]:
        """(global speaker with the largest overlap, overlap ms). Ties keep the first found."""
        best_speaker: int | None = None
        best_overlap = 0
        for prev in previous:
            ov = overlap_ms(seg.start_ms, seg.end_ms, prev.start_ms, prev.end_ms)
            if ov > best_overlap:
                best_overlap = ov
                best_speaker = prev.speaker
        return best_speaker, best_overlap

    def reconcile(
        self,
        segments: Sequence[LocalSegment],
        chunk_index: int,
        previous_overlap: Sequence[Segment] = (),
        zone_start_ms: int = 0,
    ) -> list[Segment]:
        """
        Relabel one chunk's segments with global ids.

        chunk_index 0: fresh ids in order of first appearance.
        Later chunks: segments intersecting [zone_start_ms, zone_start_ms + overlap) are
        matched against previous_overlap; anything unmatched gets a new id on first appearance.
        """
        local_to_global: dict[int, int] = {}

        if chunk_index > 0:
            zone_end_ms = zone_start_ms + self._overlap_ms
            in_zone = [s for s in segments if s.start_ms < zone_end_ms and s.end_ms > zone_start_ms]
            for seg in in_zone:
                if seg.local_speaker in local_to_global:
                    continue
                speaker, ov = self.best_match(seg, previous_overlap)
                if speaker is not None and ov > self._min_match_ms:
                    local_to_global[seg.local_speaker] = speaker
                    logger.debug("Matched speaker %d -> global %d (%dms overlap)", seg.local_speaker, speaker, ov)

        out: list[Segment] = []
        for seg in segments:
            if seg.local_speaker not in local_to_global:
                local_to_global[seg.local_speaker] = self._new_global_id()
                logger.debug("New speaker %d -> global %d", seg.local_speaker, local_to_global[seg.local_speaker])
            out.append(Segment(start_ms=seg.start_ms, end_ms=seg.end_ms, speaker=local_to_global[seg.local_speaker]))
        return out
