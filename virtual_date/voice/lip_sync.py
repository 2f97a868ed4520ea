"""
Lip-sync driver - turns playing audio into a mouth-openness weight.

AmplitudeAnalyzer follows the Web Audio AnalyserNode byte-frequency pipeline
(Blackman window, FFT, smoothing, dB to byte mapping) so the browser front end
and this driver open the mouth by the same amount for the same audio.
"""

import io
import logging
import math
import time
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

import numpy as np
import pygame

logger = logging.getLogger(__name__)

class MouthTarget(Protocol):
    def set_mouth_openness(self, value: float) -> None: ...

class AmplitudeAnalyzer:
    """Short-time spectrum analyser producing 0-255 bin magnitudes."""

    def __init__(self, fft_size: int = 256, smoothing: float = 0.8,
                 min_db: float = -100.0, max_db: float = -30.0):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db

        self.window = np.blackman(fft_size)
        self._window_sum = float(self.window.sum())
        self._smoothed = np.zeros(fft_size // 2)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self):
        self._smoothed = np.zeros(self.bin_count)

    def byte_frequency_data(self, frame: np.ndarray) -> np.ndarray:
        """Byte magnitudes for the fft_size samples ending at frame's end."""
        frame = np.asarray(frame, dtype=np.float64)
        if len(frame) >= self.fft_size:
            frame = frame[-self.fft_size:]
        else:
            frame = np.concatenate([np.zeros(self.fft_size - len(frame)), frame])

        spectrum = np.fft.rfft(frame * self.window)[:self.bin_count]
        magnitude = np.abs(spectrum) / self._window_sum

        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        scaled = (decibels - self.min_db) * (255.0 / (self.max_db - self.min_db))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def mouth_openness(self, frame: np.ndarray) -> float:
        """Average bin magnitude mapped onto [0, 1]."""
        data = self.byte_frequency_data(frame)
        average = float(data.mean()) if len(data) else 0.0
        return min(average / 128.0, 1.0)

def decode_audio(data: bytes, audio_format: str = "mp3_44100_128") -> Tuple[np.ndarray, int]:
    """Decode an audio payload into mono float32 samples in [-1, 1].

    ``pcm_<rate>`` payloads are raw little-endian int16; anything else is
    decoded through the pygame mixer.
    """
    if not data:
        raise ValueError("Empty audio payload")

    if audio_format.startswith("pcm_"):
        sample_rate = int(audio_format.split("_")[1])
        usable = len(data) - len(data) % 2
        samples = np.frombuffer(data[:usable], dtype="<i2").astype(np.float32) / 32768.0
        return samples, sample_rate

    try:
        if not pygame.mixer.get_init():
            pygame.mixer.init()
        sound = pygame.mixer.Sound(file=io.BytesIO(data))
        array = pygame.sndarray.array(sound)
        sample_rate = pygame.mixer.get_init()[0]
    except pygame.error as e:
        raise ValueError(f"Could not decode {audio_format} audio: {e}") from e

    if array.ndim == 2:
        array = array.mean(axis=1)
    if np.issubdtype(array.dtype, np.integer):
        samples = array.astype(np.float32) / float(np.iinfo(array.dtype).max + 1)
    else:
        samples = array.astype(np.float32)
    return samples, sample_rate

def envelope(samples: np.ndarray, sample_rate: int, fps: int = 60,
             fft_size: int = 256, smoothing: float = 0.8) -> List[float]:
    """Per-frame mouth openness for a whole buffer, one value per display tick."""
    analyzer = AmplitudeAnalyzer(fft_size=fft_size, smoothing=smoothing)
    samples = np.asarray(samples, dtype=np.float32)
    duration = len(samples) / float(sample_rate)
    frames = max(1, math.ceil(duration * fps))

    values = []
    for index in range(frames):
        end = min(len(samples), int((index + 1) * sample_rate / fps))
        values.append(analyzer.mouth_openness(samples[max(0, end - fft_size):end]))
    return values

class PlaybackState(Enum):
    IDLE = "idle"
    PLAYING = "playing"

class LipSyncDriver:
    """Idle -> Playing -> Idle state machine that samples amplitude each tick.

    Sampling only happens while PLAYING; every transition out of PLAYING
    forces the mouth closed.
    """

    def __init__(self, target: Optional[MouthTarget] = None, fft_size: int = 256,
                 smoothing: float = 0.8, clock: Callable[[], float] = time.monotonic):
        self.target = target
        self.analyzer = AmplitudeAnalyzer(fft_size=fft_size, smoothing=smoothing)
        self.clock = clock

        self.state = PlaybackState.IDLE
        self.openness = 0.0
        self._samples: Optional[np.ndarray] = None
        self._sample_rate = 0
        self._started_at = 0.0

    @property
    def playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def duration(self) -> float:
        if self._samples is None or not self._sample_rate:
            return 0.0
        return len(self._samples) / float(self._sample_rate)

    def start(self, samples: np.ndarray, sample_rate: int):
        """Begin sampling a new buffer, discarding any in-flight one."""
        if self.playing:
            logger.debug("Halting in-flight playback before starting new audio")
            self.stop()

        self._samples = np.asarray(samples, dtype=np.float32)
        self._sample_rate = sample_rate
        self._started_at = self.clock()
        self.analyzer.reset()
        self.state = PlaybackState.PLAYING

    def tick(self, position: Optional[float] = None) -> float:
        """Sample the window ending at position (seconds) and drive the mouth."""
        if not self.playing:
            return 0.0

        if position is None:
            position = self.clock() - self._started_at

        if position >= self.duration:
            self.stop()
            return 0.0

        end = max(1, int(position * self._sample_rate))
        start = max(0, end - self.analyzer.fft_size)
        self.openness = self.analyzer.mouth_openness(self._samples[start:end])
        self._forward(self.openness)
        return self.openness

    def pause(self):
        self.stop()

    def stop(self):
        """Leave PLAYING: stop sampling and close the mouth."""
        self.state = PlaybackState.IDLE
        self._samples = None
        self.openness = 0.0
        self._forward(0.0)

    def _forward(self, value: float):
        if self.target is not None:
            self.target.set_mouth_openness(value)
