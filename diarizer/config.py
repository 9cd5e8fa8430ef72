"""Application configuration. Loads from env vars."""
from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, fixed rate declared once at engine init
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1

    # WebSocket framing: 20ms @ 16kHz = 320 samples = 640 bytes
    FRAME_MS: int = 20
    FRAME_BYTES: int = 640

    # Long-session chunking. Overlap / chunk bounds reprocessing to ~17% at defaults.
    DIARIZATION_ENABLED: bool = True
    DIARIZATION_CHUNK_SECONDS: int = 180
    DIARIZATION_OVERLAP_SECONDS: int = 30
    DIARIZATION_MIN_CHUNK_SECONDS: float = 1.0  # never run the engine on less than this
    # Cross-chunk speaker matching: reject sub-frame overlaps
    DIARIZATION_MIN_MATCH_OVERLAP_MS: int = 100
    # Finalize: tolerance around the last commit boundary
    DIARIZATION_FINALIZE_TOLERANCE_MS: int = 500

    # sherpa-onnx models, looked up under MODELS_DIR (then ./models)
    MODELS_DIR: str = ""
    DIARIZATION_SEGMENTATION_MODEL: str = "diarization/sherpa-onnx-pyannote-segmentation-3-0/model.onnx"
    DIARIZATION_EMBEDDING_MODEL: str = "diarization/3dspeaker_speech_eres2net_base_sv_zh-cn_3dspeaker_16k.onnx"
    DIARIZATION_NUM_CLUSTERS: int = -1  # -1 = let the threshold decide
    DIARIZATION_CLUSTER_THRESHOLD: float = 0.5
    DIARIZATION_MIN_DURATION_ON: float = 0.3
    DIARIZATION_MIN_DURATION_OFF: float = 0.5
    DIARIZATION_NUM_THREADS: int = 1

    # Worker: max queued commands before incoming audio is dropped
    WORKER_QUEUE_MAX_ITEMS: int = 2000

    # Server (diarizer.main:run)
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.DIARIZATION_OVERLAP_SECONDS >= self.DIARIZATION_CHUNK_SECONDS:
            raise ValueError("DIARIZATION_OVERLAP_SECONDS must be shorter than DIARIZATION_CHUNK_SECONDS")
        if self.SAMPLE_RATE <= 0:
            raise ValueError("SAMPLE_RATE must be positive")
        return self


def get_settings() -> Settings:
    return Settings()
