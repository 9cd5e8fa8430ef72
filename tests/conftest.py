"""Shared fixtures: fake diarization engines and synthetic speaker audio."""

import threading
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from diarizer.engine.base import DiarizationEngine

Turn = Tuple[float, float, int]


class ToneEngine(DiarizationEngine):
    """
    Stand-in for the acoustic model: each synthetic speaker is a pure tone.

    Audio is scanned in 1s windows; the dominant frequency picks the speaker and
    local labels are assigned in order of first appearance within each call, like an
    engine that clusters every chunk independently.
    """

    def __init__(self, sample_rate: int = 16000, window_sec: float = 1.0):
        self._sr = sample_rate
        self._window = int(sample_rate * window_sec)
        self.calls: List[int] = []

    @property
    def sample_rate(self) -> int:
        return self._sr

    def process(self, audio: np.ndarray) -> Sequence[Turn]:
        self.calls.append(int(audio.size))
        labels = {}
        turns: List[Turn] = []
        n = self._window
        for i in range(0, audio.size - n + 1, n):
            window = audio[i:i + n]
            if np.sqrt(np.mean(window ** 2)) < 0.01:
                continue
            spectrum = np.abs(np.fft.rfft(window))
            freq = int(round(np.argmax(spectrum) * self._sr / n / 50.0)) * 50
            label = labels.setdefault(freq, len(labels))
            start, end = i / self._sr, (i + n) / self._sr
            if turns and turns[-1][2] == label and turns[-1][1] == start:
                turns[-1] = (turns[-1][0], end, label)
            else:
                turns.append((start, end, label))
        return turns


class ScriptedEngine(DiarizationEngine):
    """Returns pre-baked turns per call; an Exception entry is raised instead."""

    def __init__(self, script: Sequence, sample_rate: int = 1000):
        self._script = list(script)
        self._sr = sample_rate
        self.calls: List[int] = []

    @property
    def sample_rate(self) -> int:
        return self._sr

    def process(self, audio: np.ndarray) -> Sequence[Turn]:
        self.calls.append(int(audio.size))
        step = self._script.pop(0) if self._script else []
        if isinstance(step, Exception):
            raise step
        return step


class BlockingEngine(DiarizationEngine):
    """Blocks inside process() until released; lets tests act while a chunk is in flight. Raises error if set."""

    def __init__(self, turns: Sequence[Turn] = ((0.0, 1.0, 0),), sample_rate: int = 1000):
        self.entered = threading.Event()
        self.release = threading.Event()
        self._turns = list(turns)
        self._sr = sample_rate
        self.error: Optional[Exception] = None

    @property
    def sample_rate(self) -> int:
        return self._sr

    def process(self, audio: np.ndarray) -> Sequence[Turn]:
        self.entered.set()
        self.release.wait(5.0)
        if self.error is not None:
            raise self.error
        return self._turns


def make_tone(freq: float, seconds: float, sample_rate: int = 16000) -> np.ndarray:
    """int16 sine at freq Hz."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return (np.sin(2 * np.pi * freq * t) * 8000).astype(np.int16)


@pytest.fixture
def tone_engine():
    return ToneEngine()


@pytest.fixture
def scripted_engine() -> Callable[..., ScriptedEngine]:
    return ScriptedEngine


@pytest.fixture
def blocking_engine():
    engine = BlockingEngine()
    yield engine
    engine.release.set()


@pytest.fixture
def tone() -> Callable[..., np.ndarray]:
    return make_tone


@pytest.fixture
def silence() -> Callable[[float, int], np.ndarray]:
    def _silence(seconds: float, sample_rate: int = 1000) -> np.ndarray:
        return np.zeros(int(seconds * sample_rate), dtype=np.int16)

    return _silence
