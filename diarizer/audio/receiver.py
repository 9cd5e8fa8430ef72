"""
AudioReceiver: accepts raw PCM audio from WebSocket and yields int16 sample blocks.

- Expects PCM 16-bit little-endian mono at SAMPLE_RATE.
- WebSocket messages can split a sample across two frames; an odd trailing byte is
  kept for the next message.
"""
from __future__ import annotations

import numpy as np

from diarizer.config import get_settings


class AudioReceiver:
    """
    Byte buffer in front of the worker. drain_samples() hands out every whole frame as
    one int16 block; drain_remainder() flushes the tail when recording stops.
    """

    def __init__(self, frame_bytes: int | None = None) -> None:
        settings = get_settings()
        self._frame_bytes = frame_bytes or settings.FRAME_BYTES
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        """Buffer one binary WebSocket message; a sample may be split across messages."""
        self._buffer.extend(data)

    def drain_samples(self) -> np.ndarray | None:
        """
        Drain all complete frames as one int16 array. Remainder (partial frame)
        stays in buffer. Returns None when no full frame is available.
        """
        usable = len(self._buffer) - (len(self._buffer) % self._frame_bytes)
        if usable == 0:
            return None
        samples = np.frombuffer(bytes(self._buffer[:usable]), dtype="<i2").copy()
        del self._buffer[:usable]
        return samples

    def drain_remainder(self) -> np.ndarray | None:
        """On stop: drain whatever whole samples are left, dropping an odd byte."""
        usable = len(self._buffer) - (len(self._buffer) % 2)
        if usable == 0:
            self._buffer.clear()
            return None
        samples = np.frombuffer(bytes(self._buffer[:usable]), dtype="<i2").copy()
        self._buffer.clear()
        return samples

    def remaining_bytes(self) -> int:
        """Bytes held back until the next whole frame."""
        return len(self._buffer)
