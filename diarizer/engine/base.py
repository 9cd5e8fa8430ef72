"""
DiarizationEngine: abstract interface for an offline speaker-diarization model.

Implementations: SherpaOnnxEngine (pyannote segmentation + speaker embeddings + clustering).
process() is synchronous and may take tens of seconds per chunk; callers that must stay
responsive run it in an executor.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    import numpy as np

# (start_sec, end_sec, local_speaker_id), relative to the start of the audio passed in
SpeakerTurn = tuple[float, float, int]


class EngineUnavailableError(RuntimeError):
    """Engine could not be loaded (missing package, missing model files, load failure)."""


class DiarizationEngine(ABC):
    """
    Abstract diarization engine. Accepts float32 mono audio (normalized [-1, 1]).
    Local speaker ids are only meaningful within a single process() call.
    """

    @abstractmethod
    def process(self, audio: "np.ndarray") -> Sequence[SpeakerTurn]:
        """Diarize one chunk of audio. Blocking."""
        ...

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Expected sample rate (e.g. 16000)."""
        ...
