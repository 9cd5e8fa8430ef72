"""
SherpaOnnxEngine: offline speaker diarization with sherpa-onnx.

- pyannote-segmentation-3.0 for speaker segmentation.
- 3D-Speaker ERes2Net for speaker embeddings.
- Fast clustering (threshold-based unless a cluster count is configured).
- Model loaded ONCE at startup and shared; sample rate comes from the model.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Sequence

import numpy as np

from diarizer.config import Settings, get_settings
from diarizer.engine.base import DiarizationEngine, EngineUnavailableError, SpeakerTurn

logger = logging.getLogger(__name__)


def find_model(relative_path: str, settings: Settings | None = None) -> str | None:
    """Search MODELS_DIR, then ./models, for a model file. Returns full path or None."""
    settings = settings or get_settings()
    dirs = [settings.MODELS_DIR, os.path.join(os.getcwd(), "models")]
    for d in dirs:
        if not d:
            continue
        full = os.path.join(d, relative_path)
        if os.path.exists(full):
            return full
    return None


class SherpaOnnxEngine(DiarizationEngine):
    """Wraps sherpa_onnx.OfflineSpeakerDiarization. Construct via load_sherpa_engine()."""

    def __init__(self, diarizer: Any) -> None:
        self._sd = diarizer

    def process(self, audio: np.ndarray) -> Sequence[SpeakerTurn]:
        samples = np.ascontiguousarray(audio, dtype=np.float32)
        result = self._sd.process(samples).sort_by_start_time()
        return [(float(r.start), float(r.end), int(r.speaker)) for r in result]

    @property
    def sample_rate(self) -> int:
        return int(self._sd.sample_rate)


def load_sherpa_engine(settings: Settings | None = None) -> SherpaOnnxEngine:
    """
    Load segmentation + embedding models. Raises EngineUnavailableError when the
    package or model files are missing, or the model fails to load.
    """
    settings = settings or get_settings()
    try:
        import sherpa_onnx
    except ImportError as err:
        raise EngineUnavailableError(
            "sherpa-onnx is required for diarization. Install with: pip install sherpa-onnx"
        ) from err

    segmentation = find_model(settings.DIARIZATION_SEGMENTATION_MODEL, settings)
    if not segmentation:
        raise EngineUnavailableError("Segmentation model not found")
    logger.info("Segmentation model: %s", segmentation)

    embedding = find_model(settings.DIARIZATION_EMBEDDING_MODEL, settings)
    if not embedding:
        raise EngineUnavailableError("Embedding model not found")
    logger.info("Embedding model: %s", embedding)

    config = sherpa_onnx.OfflineSpeakerDiarizationConfig(
        segmentation=sherpa_onnx.OfflineSpeakerSegmentationModelConfig(
            pyannote=sherpa_onnx.OfflineSpeakerSegmentationPyannoteModelConfig(model=segmentation),
            num_threads=settings.DIARIZATION_NUM_THREADS,
        ),
        embedding=sherpa_onnx.SpeakerEmbeddingExtractorConfig(
            model=embedding,
            num_threads=settings.DIARIZATION_NUM_THREADS,
        ),
        clustering=sherpa_onnx.FastClusteringConfig(
            num_clusters=settings.DIARIZATION_NUM_CLUSTERS,
            threshold=settings.DIARIZATION_CLUSTER_THRESHOLD,
        ),
        min_duration_on=settings.DIARIZATION_MIN_DURATION_ON,
        min_duration_off=settings.DIARIZATION_MIN_DURATION_OFF,
    )
    if not config.validate():
        raise EngineUnavailableError("Invalid sherpa-onnx diarization config")

    try:
        sd = sherpa_onnx.OfflineSpeakerDiarization(config)
    except Exception as err:
        raise EngineUnavailableError(f"Failed to load diarization models: {err}") from err

    engine = SherpaOnnxEngine(sd)
    if engine.sample_rate != settings.SAMPLE_RATE:
        logger.warning(
            "Engine sample rate %d differs from SAMPLE_RATE %d; audio must be resampled upstream",
            engine.sample_rate,
            settings.SAMPLE_RATE,
        )
    logger.info("Diarization engine ready, sample_rate=%d", engine.sample_rate)
    return engine
