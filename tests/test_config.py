"""Tests for Settings defaults, env overrides and chunking validation."""

import pytest
from pydantic import ValidationError

from diarizer.config import get_settings


def test_defaults():
    settings = get_settings()
    assert settings.SAMPLE_RATE == 16000
    assert settings.DIARIZATION_CHUNK_SECONDS == 180
    assert settings.DIARIZATION_OVERLAP_SECONDS == 30
    assert settings.DIARIZATION_MIN_MATCH_OVERLAP_MS == 100
    assert settings.DIARIZATION_FINALIZE_TOLERANCE_MS == 500
    assert settings.DIARIZATION_CLUSTER_THRESHOLD == 0.5


def test_env_override(monkeypatch):
    monkeypatch.setenv("DIARIZATION_CHUNK_SECONDS", "60")
    monkeypatch.setenv("DIARIZATION_OVERLAP_SECONDS", "10")
    monkeypatch.setenv("MODELS_DIR", "/opt/models")
    settings = get_settings()
    assert settings.DIARIZATION_CHUNK_SECONDS == 60
    assert settings.DIARIZATION_OVERLAP_SECONDS == 10
    assert settings.MODELS_DIR == "/opt/models"


def test_overlap_must_be_shorter_than_chunk(monkeypatch):
    monkeypatch.setenv("DIARIZATION_OVERLAP_SECONDS", "180")
    with pytest.raises(ValidationError):
        get_settings()
