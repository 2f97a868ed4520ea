"""
Audio playback for synthesized speech.
Plays one voice at a time through the pygame mixer and keeps the lip-sync
driver in step with it.
"""

import io
import logging
from typing import Optional, Protocol

import pygame

from .lip_sync import LipSyncDriver, decode_audio

logger = logging.getLogger(__name__)

class Player(Protocol):
    def play(self, data: bytes, audio_format: str) -> None: ...
    def stop(self) -> None: ...
    def is_busy(self) -> bool: ...

class PygamePlayer:
    """pygame mixer channel player."""

    def __init__(self):
        self.channel: Optional[pygame.mixer.Channel] = None
        self.sound: Optional[pygame.mixer.Sound] = None

    def play(self, data: bytes, audio_format: str):
        if audio_format.startswith("pcm_"):
            rate = int(audio_format.split("_")[1])
            if pygame.mixer.get_init() != (rate, -16, 1):
                pygame.mixer.quit()
                pygame.mixer.init(frequency=rate, size=-16, channels=1)
            self.sound = pygame.mixer.Sound(buffer=data)
        else:
            if not pygame.mixer.get_init():
                pygame.mixer.init()
            self.sound = pygame.mixer.Sound(file=io.BytesIO(data))

        self.channel = self.sound.play()

    def stop(self):
        if self.channel is not None:
            self.channel.stop()
        self.channel = None
        self.sound = None

    def is_busy(self) -> bool:
        return self.channel is not None and self.channel.get_busy()

class AudioPlayback:
    """Owns the single current voice and the lip-sync driver that follows it."""

    def __init__(self, driver: LipSyncDriver, player: Optional[Player] = None,
                 audio_format: str = "mp3_44100_128"):
        self.driver = driver
        self.player = player or PygamePlayer()
        self.audio_format = audio_format

    @property
    def playing(self) -> bool:
        return self.driver.playing

    def play(self, audio: bytes) -> bool:
        """Decode and play audio, halting whatever is currently playing."""
        try:
            samples, sample_rate = decode_audio(audio, self.audio_format)
        except ValueError as e:
            logger.error(f"Audio playback error: {e}")
            return False

        self.stop()

        try:
            self.player.play(audio, self.audio_format)
        except pygame.error as e:
            logger.error(f"Audio playback error: {e}")
            return False

        self.driver.start(samples, sample_rate)
        logger.debug(f"Playing {self.driver.duration:.2f}s of speech")
        return True

    def tick(self) -> float:
        """Per-frame update; ends playback once the player goes quiet."""
        if not self.driver.playing:
            return 0.0
        if not self.player.is_busy():
            self.driver.stop()
            return 0.0
        return self.driver.tick()

    def pause(self):
        self.player.stop()
        self.driver.pause()

    def stop(self):
        self.player.stop()
        if self.driver.playing:
            self.driver.stop()

    async def shutdown(self):
        self.stop()
