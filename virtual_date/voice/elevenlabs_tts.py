"""
ElevenLabs text-to-speech client for Virtual Date.
Speech is optional: every failure degrades to None (text-only) and is logged.
"""

import asyncio
from typing import Optional

import requests

from ..core.config import VoiceConfig
from ..utils.logger import get_logger

logger = get_logger(__name__)

class ElevenLabsSpeechClient:
    """Streams synthesized speech from ElevenLabs into one audio buffer."""

    def __init__(self, config: VoiceConfig, http: Optional[requests.Session] = None):
        self.config = config
        self.http = http or requests.Session()
        self.enabled = config.enabled

        if not config.elevenlabs_api_key:
            logger.warning("ElevenLabs API key not provided - voice disabled")

    @property
    def available(self) -> bool:
        return self.enabled and bool(self.config.elevenlabs_api_key)

    @property
    def default_voice_id(self) -> str:
        return self.config.default_voice_id

    @property
    def audio_format(self) -> str:
        return self.config.output_format

    def toggle(self) -> bool:
        """Flip the voice on/off switch."""
        self.enabled = not self.enabled
        logger.info(f"Voice {'enabled' if self.enabled else 'disabled'}")
        return self.enabled

    def _request(self, text: str, voice_id: str) -> bytes:
        url = f"{self.config.elevenlabs_api_url.rstrip('/')}/{voice_id}/stream"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.config.elevenlabs_api_key,
        }
        payload = {
            "text": text,
            "model_id": self.config.model_id,
            "voice_settings": {
                "stability": self.config.stability,
                "similarity_boost": self.config.similarity_boost,
            },
        }

        with self.http.post(url, json=payload, headers=headers,
                            params={"output_format": self.config.output_format},
                            stream=True, timeout=self.config.timeout) as response:
            response.raise_for_status()
            # Drain the whole stream; a partial buffer is never handed on
            chunks = [chunk for chunk in response.iter_content(chunk_size=self.config.chunk_size) if chunk]

        return b"".join(chunks)

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> Optional[bytes]:
        """Synthesize text to audio bytes, or None when speech is unavailable."""
        voice_id = voice_id or self.config.default_voice_id

        if not self.enabled:
            return None
        if not self.config.elevenlabs_api_key:
            logger.debug("Skipping speech synthesis: no ElevenLabs API key")
            return None
        if not voice_id:
            logger.warning("Skipping speech synthesis: no voice id configured")
            return None
        if not text or not text.strip():
            return None

        try:
            audio = await asyncio.to_thread(self._request, text, voice_id)
        except requests.RequestException as e:
            logger.error(f"ElevenLabs request failed: {e}")
            return None

        if not audio:
            logger.warning("ElevenLabs returned an empty audio stream")
            return None

        logger.info(f"Synthesized {len(audio)} bytes of speech")
        return audio

    async def shutdown(self):
        self.http.close()
