"""
Segment structures for the long-session diarization pipeline.

All times are integer milliseconds, session-absolute (0 = start of recording).

- LocalSegment: one engine turn inside a chunk; speaker label valid only in that chunk.
- Segment: reconciled turn; speaker is a session-global id, stable for the session.

Limitations:
- Speakers are anonymous integer ids; no identity inference, no enrollment.
- Overlapping speech is reported only as far as the engine reports it.
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LocalSegment:
    """Engine output for one chunk, converted to session-absolute milliseconds."""

    start_ms: int
    end_ms: int
    local_speaker: int


@dataclass(frozen=True)
class Segment:
    """
    One speaker turn in the session result.

    start_ms, end_ms: session-absolute, start_ms < end_ms.
    speaker: global id (0, 1, 2, ...) assigned in order of first appearance.
    """

    start_ms: int
    end_ms: int
    speaker: int


@dataclass
class ChunkResult:
    """Result of one engine call: where the chunk sits in the session and what it found."""

    chunk_index: int
    offset_ms: int  # session time of the first buffered sample
    duration_ms: int
    sample_count: int
    segments: list[LocalSegment] = field(default_factory=list)
    elapsed_ms: int = 0

