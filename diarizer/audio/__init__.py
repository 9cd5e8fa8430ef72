"""Audio pipeline: receive PCM from the socket, accumulate chunks for diarization."""
from .receiver import AudioReceiver
from .accumulator import AudioAccumulator, pcm_to_float32

__all__ = [
    "AudioReceiver",
    "AudioAccumulator",
    "pcm_to_float32",
]
