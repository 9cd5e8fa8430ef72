"""Pydantic schemas for API request/response."""
from diarizer.schemas.diarization import (
    ControlMessage,
    DiarizationResultOut,
    EngineStatusOut,
    SegmentOut,
)

__all__ = [
    "ControlMessage",
    "DiarizationResultOut",
    "EngineStatusOut",
    "SegmentOut",
]
