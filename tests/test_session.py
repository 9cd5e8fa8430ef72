"""
End-to-end tests for DiarizationSession with synthetic speakers.

ToneEngine turns each pure tone into one speaker, so a session of alternating tones
exercises chunking, overlap reconciliation and boundary dedup without real models.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from diarizer.diarization.models import Segment
from diarizer.diarization.session import DiarizationSession, SessionState

SPEAKER_A_HZ = 440
SPEAKER_B_HZ = 880


def feed(session, audio, block_samples):
    for i in range(0, audio.size, block_samples):
        session.append(audio[i:i + block_samples])


@pytest.fixture
def small_session(scripted_engine):
    """1kHz, 10s chunks, 2s overlap: cheap to fill."""

    def _make(script, **kwargs):
        engine = scripted_engine(script)
        session = DiarizationSession(
            engine,
            sample_rate=1000,
            chunk_duration_sec=10,
            overlap_duration_sec=2,
            **kwargs,
        )
        return session, engine

    return _make


class TestStateMachine:
    def test_starts_idle_and_ignores_audio(self, small_session, silence):
        session, engine = small_session([])
        assert session.state is SessionState.IDLE
        assert session.append(silence(20)) is False
        assert session.accumulator.sample_count == 0
        assert engine.calls == []

    def test_start_stop_finalized(self, small_session, silence):
        session, _ = small_session([[(0.0, 2.0, 0)]])
        session.start()
        assert session.state is SessionState.RECORDING
        session.append(silence(3))
        assert session.stop() == [Segment(0, 2_000, 0)]
        assert session.state is SessionState.FINALIZED
        assert session.accumulator.sample_count == 0

    def test_stop_twice_returns_same_results(self, small_session, silence):
        session, engine = small_session([[(0.0, 2.0, 0)]])
        session.start()
        session.append(silence(3))
        first = session.stop()
        assert session.stop() == first
        assert len(engine.calls) == 1

    def test_stop_while_idle_is_empty(self, small_session):
        session, _ = small_session([])
        on_result = MagicMock()
        session.on_result = on_result
        assert session.stop() == []
        on_result.assert_not_called()

    def test_audio_after_stop_is_ignored(self, small_session, silence):
        session, _ = small_session([])
        session.start()
        session.stop()
        session.append(silence(20))
        assert session.accumulator.sample_count == 0

    def test_reset_discards_everything(self, small_session, silence):
        session, _ = small_session([[(0.0, 10.0, 0)]])
        session.start()
        session.append(silence(10))
        session.append(silence(3))
        assert session.chunk_index == 1
        session.reset()
        assert session.state is SessionState.IDLE
        assert session.audio_buffer.size == 0
        assert session.accumulated_results == []
        assert session.previous_overlap_segments == []
        assert session.total_processed_ms == 0
        assert session.next_global_speaker_id == 0
        assert session.last_committed_end_ms == 0
        assert session.chunk_index == 0

    def test_start_resets_previous_session(self, small_session, silence):
        session, _ = small_session([[(0.0, 5.0, 0)], [(0.0, 1.0, 3)]])
        session.start()
        session.append(silence(5))
        session.stop()
        session.start()
        session.append(silence(2))
        # ids restart at 0 for the new recording
        assert session.stop() == [Segment(0, 1_000, 0)]


class TestShortSession:
    def test_single_pass_without_reconciliation(self, tone_engine, tone):
        on_result = MagicMock()
        session = DiarizationSession(tone_engine, on_result=on_result)
        audio = np.concatenate([tone(SPEAKER_A_HZ, 45), tone(SPEAKER_B_HZ, 45)])

        session.start()
        with patch.object(session.reconciler, "best_match", wraps=session.reconciler.best_match) as spy:
            feed(session, audio, 16_000)
            segments = session.stop()
            spy.assert_not_called()

        assert session.chunk_index == 0
        assert segments == [Segment(0, 45_000, 0), Segment(45_000, 90_000, 1)]
        on_result.assert_called_once_with(segments)

    def test_less_than_one_second_gives_empty_result(self, tone_engine, tone):
        session = DiarizationSession(tone_engine)
        session.start()
        session.append(tone(SPEAKER_A_HZ, 0.5))
        assert session.stop() == []
        assert tone_engine.calls == []


class TestLongSession:
    @pytest.fixture
    def alternating_audio(self, tone):
        # 210s: speaker A on even 15s blocks, B on odd ones; a turn change lands on the 165s cutoff
        blocks = [tone(SPEAKER_A_HZ if k % 2 == 0 else SPEAKER_B_HZ, 15) for k in range(14)]
        return np.concatenate(blocks)

    def test_first_chunk_commits_up_to_midpoint(self, tone_engine, alternating_audio):
        session = DiarizationSession(tone_engine)
        session.start()
        feed(session, alternating_audio[:180 * 16_000], 16_000)

        assert session.chunk_index == 1
        assert session.total_processed_ms == 150_000
        assert session.audio_buffer.size == 30 * 16_000
        assert len(session.accumulated_results) == 11
        assert session.last_committed_end_ms == 165_000
        assert [s.start_ms for s in session.previous_overlap_segments] == [150_000, 165_000]

    def test_speakers_stable_across_chunks(self, tone_engine, alternating_audio):
        session = DiarizationSession(tone_engine)
        session.start()
        feed(session, alternating_audio, 16_000)
        segments = session.stop()

        assert len(tone_engine.calls) == 2
        assert tone_engine.calls[1] == 60 * 16_000
        assert len(segments) == 14
        for k, seg in enumerate(segments):
            assert (seg.start_ms, seg.end_ms) == (k * 15_000, (k + 1) * 15_000)
            assert seg.speaker == k % 2
        assert session.next_global_speaker_id == 2

    def test_no_duplicates_and_sorted(self, tone_engine, alternating_audio):
        session = DiarizationSession(tone_engine)
        session.start()
        feed(session, alternating_audio, 16_000)
        segments = session.stop()

        triples = [(s.start_ms, s.end_ms, s.speaker) for s in segments]
        assert len(triples) == len(set(triples))
        assert [s.start_ms for s in segments] == sorted(s.start_ms for s in segments)
        assert all(a.end_ms <= b.start_ms for a, b in zip(segments, segments[1:]))

    def test_total_processed_advances_per_chunk(self, scripted_engine, silence):
        session = DiarizationSession(scripted_engine([]), sample_rate=1000)
        session.start()
        peak = 0
        for _ in range(400):
            session.append(silence(1))
            peak = max(peak, session.accumulator.sample_count)

        assert session.chunk_index == 2
        assert session.total_processed_ms == 300_000
        assert session.audio_buffer.size == 100 * 1000
        assert peak <= 180 * 1000


class TestChunkBoundaries:
    def test_turn_resegmented_by_next_chunk_is_kept(self, small_session, silence):
        # chunk 0 cutoff is 9s: [8s, 9.5s) waits for chunk 1, which splits it at 8.8s
        session, _ = small_session([[(0.0, 8.0, 0), (8.0, 9.5, 1)], [(0.0, 0.8, 0), (0.8, 10.0, 1)]])
        session.start()
        for _ in range(18):
            session.append(silence(1))

        assert session.chunk_index == 2
        assert session.accumulated_results == [Segment(0, 8_000, 0), Segment(8_000, 8_800, 1)]
        assert session.stop() == [Segment(0, 8_000, 0), Segment(8_000, 8_800, 1)]

    def test_final_chunk_never_covers_committed_time_twice(self, small_session, silence):
        # final chunk starts at 8s; its turn begins before the 8.5s tolerance edge
        session, _ = small_session([[(0.0, 8.5, 0)], [(0.0, 2.0, 0)]])
        session.start()
        for _ in range(12):
            session.append(silence(1))

        assert session.stop() == [Segment(0, 8_500, 0)]


class TestChunkFailure:
    def test_failed_chunk_keeps_buffer_and_reports(self, small_session, silence):
        on_error = MagicMock()
        session, engine = small_session([RuntimeError("boom")], on_error=on_error)
        session.start()

        assert session.append(silence(10)) is False
        on_error.assert_called_once()
        assert "boom" in on_error.call_args[0][0]
        assert session.state is SessionState.RECORDING
        assert session.chunk_index == 0
        assert session.accumulator.sample_count == 10_000

    def test_retry_waits_for_another_chunk_of_audio(self, small_session, silence):
        session, engine = small_session([RuntimeError("boom")])
        session.start()
        session.append(silence(10))
        session.append(silence(9))
        assert len(engine.calls) == 1

        assert session.append(silence(1)) is True
        assert engine.calls == [10_000, 20_000]
        assert session.chunk_index == 1
        assert session.total_processed_ms == 18_000

    def test_error_callback_failure_is_contained(self, small_session, silence):
        session, _ = small_session([RuntimeError("boom")], on_error=MagicMock(side_effect=ValueError("ui gone")))
        session.start()
        session.append(silence(10))
        assert session.state is SessionState.RECORDING

    def test_failed_final_chunk_still_finalizes(self, small_session, silence):
        on_result = MagicMock()
        session, _ = small_session([RuntimeError("boom")], on_result=on_result)
        session.start()
        session.append(silence(3))
        assert session.stop() == []
        assert session.state is SessionState.FINALIZED
        on_result.assert_called_once_with([])


class TestForceFinalize:
    def test_preview_leaves_session_recording(self, small_session, silence):
        turns = [(0.0, 2.0, 0), (2.0, 5.0, 1)]
        on_result = MagicMock()
        session, _ = small_session([turns, turns, turns], on_result=on_result)
        session.start()
        session.append(silence(5))

        first = session.force_finalize()
        second = session.force_finalize()

        assert first == second == [Segment(0, 2_000, 0), Segment(2_000, 5_000, 1)]
        assert session.state is SessionState.RECORDING
        assert session.accumulated_results == []
        assert session.next_global_speaker_id == 0
        assert session.accumulator.sample_count == 5_000
        assert on_result.call_count == 2
        assert session.stop() == first

    def test_idle_force_finalize_is_empty(self, small_session):
        session, engine = small_session([])
        assert session.force_finalize() == []
        assert engine.calls == []


class TestNoEngine:
    def test_noop_mode(self, silence):
        on_result = MagicMock()
        session = DiarizationSession(None, on_result=on_result)
        assert not session.enabled
        session.start()
        assert session.append(silence(200, 16_000)) is False
        assert session.accumulator.sample_count == 0
        assert session.stop() == []
        assert session.state is SessionState.FINALIZED
        on_result.assert_called_once_with([])
