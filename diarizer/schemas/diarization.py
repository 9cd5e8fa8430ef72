"""
Schemas for the diarization API (HTTP responses and WebSocket events).

Segments are session-absolute milliseconds with anonymous integer speaker ids,
sorted by start_ms.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from diarizer.diarization.models import Segment


class SegmentOut(BaseModel):
    """One speaker turn."""

    start_ms: int = Field(..., ge=0, description="Start, ms since recording start")
    end_ms: int = Field(..., ge=0, description="End, ms since recording start")
    speaker: int = Field(..., ge=0, description="Session-global speaker id (0, 1, ...)")

    @classmethod
    def from_segment(cls, seg: Segment) -> "SegmentOut":
        return cls(start_ms=seg.start_ms, end_ms=seg.end_ms, speaker=seg.speaker)


class DiarizationResultOut(BaseModel):
    """Response body for GET /api/sessions/{session_id}/diarization and the WS result event."""

    session_id: str | None = None
    segments: list[SegmentOut] = Field(default_factory=list)
    speaker_count: int = 0
    finalized: bool = True
    error: str | None = Field(None, description="Last chunk error, if any; results may be partial")

    @classmethod
    def build(
        cls,
        segments: list[Segment],
        session_id: str | None = None,
        finalized: bool = True,
        error: str | None = None,
    ) -> "DiarizationResultOut":
        return cls(
            session_id=session_id,
            segments=[SegmentOut.from_segment(s) for s in segments],
            speaker_count=len({s.speaker for s in segments}),
            finalized=finalized,
            error=error,
        )


class EngineStatusOut(BaseModel):
    """Response body for GET /api/diarization/status."""

    status: Literal["loading", "ready", "processing", "not-available", "error"]
    detail: str | None = None
    sample_rate: int
    chunk_seconds: int
    overlap_seconds: int


class ControlMessage(BaseModel):
    """Text frame on /ws/diarize: session control."""

    type: Literal["start-recording", "stop-recording", "run-diarization", "reset"]
