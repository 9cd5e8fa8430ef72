"""
Incremental long-session speaker diarization.

- Audio is diarized in overlapping chunks; memory is bounded by one chunk.
- Speaker ids are reconciled across chunks by temporal overlap in the shared region.
- Results accumulate and are returned sorted when the session stops.

Limitations (see reconciler.py and models.py):
- Speakers are anonymous integer ids; no cross-session re-identification.
- A speaker split by the engine inside one chunk may be merged into one global id.
"""
from __future__ import annotations

from diarizer.diarization.assembler import ResultAssembler
from diarizer.diarization.chunk_processor import ChunkProcessingError, ChunkProcessor
from diarizer.diarization.models import ChunkResult, LocalSegment, Segment
from diarizer.diarization.reconciler import SpeakerReconciler
from diarizer.diarization.session import DiarizationSession, SessionState
from diarizer.diarization.worker import DiarizationWorker, WorkerStatus

__all__ = [
    "ChunkProcessingError",
    "ChunkProcessor",
    "ChunkResult",
    "DiarizationSession",
    "DiarizationWorker",
    "LocalSegment",
    "ResultAssembler",
    "Segment",
    "SessionState",
    "SpeakerReconciler",
    "WorkerStatus",
]
