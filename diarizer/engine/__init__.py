"""Diarization engines: swappable offline speaker-diarization backends."""
from .base import DiarizationEngine, EngineUnavailableError, SpeakerTurn
from .sherpa import SherpaOnnxEngine, find_model, load_sherpa_engine

__all__ = [
    "DiarizationEngine",
    "EngineUnavailableError",
    "SpeakerTurn",
    "SherpaOnnxEngine",
    "find_model",
    "load_sherpa_engine",
]
