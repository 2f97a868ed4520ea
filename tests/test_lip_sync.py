import numpy as np
import pytest

from fakes import FakePlayer, MouthRecorder, noise, pcm_bytes
from virtual_date.voice.lip_sync import (
    AmplitudeAnalyzer, LipSyncDriver, PlaybackState, decode_audio, envelope,
)
from virtual_date.voice.playback import AudioPlayback


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_silent_buffer_keeps_mouth_closed():
    values = envelope(np.zeros(16000, dtype=np.float32), 16000, fps=60)
    assert len(values) == 60
    assert max(values) == pytest.approx(0.0)


def test_full_scale_buffer_opens_mouth_fully():
    values = envelope(noise(seconds=1.0), 16000, fps=60)
    assert min(values) >= 0.99
    assert max(values) <= 1.0


def test_analyzer_bins_and_bounds():
    analyzer = AmplitudeAnalyzer(fft_size=256)
    data = analyzer.byte_frequency_data(noise(seconds=0.1))
    assert analyzer.bin_count == 128
    assert data.shape == (128,)
    assert data.dtype == np.uint8


def test_analyzer_pads_short_windows():
    analyzer = AmplitudeAnalyzer(fft_size=256)
    assert analyzer.mouth_openness(np.zeros(10)) == 0.0


def test_analyzer_rejects_bad_fft_size():
    with pytest.raises(ValueError):
        AmplitudeAnalyzer(fft_size=300)


def test_decode_pcm():
    samples, rate = decode_audio(pcm_bytes(np.array([0.0, 0.5, -0.5])), "pcm_16000")
    assert rate == 16000
    assert samples == pytest.approx([0.0, 0.5, -0.5], abs=1e-3)


def test_decode_empty_payload():
    with pytest.raises(ValueError):
        decode_audio(b"", "pcm_16000")


def test_driver_idle_playing_idle():
    target = MouthRecorder()
    driver = LipSyncDriver(target)

    assert driver.tick(0.1) == 0.0
    assert target.values == []

    driver.start(noise(seconds=0.5), 16000)
    assert driver.state is PlaybackState.PLAYING
    assert driver.tick(0.1) > 0.9
    assert target.values[-1] > 0.9

    driver.stop()
    assert driver.state is PlaybackState.IDLE
    assert target.values[-1] == 0.0
    assert driver.tick(0.2) == 0.0


def test_driver_stops_at_end_of_buffer():
    target = MouthRecorder()
    driver = LipSyncDriver(target)
    driver.start(noise(seconds=0.5), 16000)

    assert driver.tick(0.6) == 0.0
    assert driver.state is PlaybackState.IDLE
    assert target.values[-1] == 0.0


def test_driver_pause_closes_mouth():
    target = MouthRecorder()
    driver = LipSyncDriver(target)
    driver.start(noise(), 16000)
    driver.tick(0.1)
    driver.pause()
    assert not driver.playing
    assert target.values[-1] == 0.0


def test_driver_restart_discards_in_flight_playback():
    target = MouthRecorder()
    driver = LipSyncDriver(target)
    driver.start(noise(seconds=2.0), 16000)
    driver.tick(0.5)

    driver.start(np.zeros(8000, dtype=np.float32), 16000)

    assert driver.duration == pytest.approx(0.5)
    assert 0.0 in target.values
    assert driver.tick(0.1) == 0.0


def test_driver_uses_clock_when_no_position():
    clock = FakeClock()
    driver = LipSyncDriver(MouthRecorder(), clock=clock)
    driver.start(noise(seconds=0.5), 16000)
    clock.now = 0.25
    assert driver.tick() > 0.9
    clock.now = 0.75
    assert driver.tick() == 0.0
    assert not driver.playing


def test_playback_plays_one_voice_at_a_time():
    player = FakePlayer()
    target = MouthRecorder()
    playback = AudioPlayback(LipSyncDriver(target), player=player, audio_format="pcm_16000")

    assert playback.play(pcm_bytes(noise(seconds=1.0)))
    assert playback.playing
    first_stops = player.stops

    assert playback.play(pcm_bytes(noise(seconds=0.5, seed=3)))
    assert player.stops == first_stops + 1
    assert len(player.played) == 2
    assert target.values[-1] == 0.0


def test_playback_tick_ends_when_player_goes_quiet():
    clock = FakeClock()
    player = FakePlayer()
    target = MouthRecorder()
    playback = AudioPlayback(LipSyncDriver(target, clock=clock), player=player, audio_format="pcm_16000")
    playback.play(pcm_bytes(noise(seconds=1.0)))

    clock.now = 0.2
    assert playback.tick() > 0.9

    player.busy = False
    assert playback.tick() == 0.0
    assert not playback.playing
    assert target.values[-1] == 0.0


def test_playback_rejects_undecodable_audio():
    player = FakePlayer()
    playback = AudioPlayback(LipSyncDriver(), player=player, audio_format="pcm_16000")
    assert playback.play(b"") is False
    assert player.played == []


def test_playback_halts_draining_channel_before_next_voice():
    clock = FakeClock()
    player = FakePlayer()
    playback = AudioPlayback(LipSyncDriver(clock=clock), player=player, audio_format="pcm_16000")
    playback.play(pcm_bytes(noise(seconds=0.5)))

    # driver clock has run past the buffer but the mixer is still draining
    clock.now = 0.6
    playback.driver.tick()
    assert not playback.playing
    assert player.busy

    stops_before = player.stops
    playback.play(pcm_bytes(noise(seconds=0.5, seed=3)))
    assert player.stops == stops_before + 1
    assert playback.playing


def test_driver_samples_window_ending_at_position():
    driver = LipSyncDriver()
    driver.start(np.concatenate([noise(seconds=1.0), np.zeros(16000, dtype=np.float32)]), 16000)
    assert driver.tick(position=1.5) == 0.0
    assert driver.playing


def test_envelope_handles_long_buffers():
    values = envelope(np.zeros(16000 * 30, dtype=np.float32), 16000, fps=60)
    assert len(values) == 1800
    assert max(values) == 0.0
