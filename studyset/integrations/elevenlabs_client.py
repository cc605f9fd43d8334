"""
ElevenLabs API client for premium speech synthesis.

Fetches MP3 bytes for a text/voice pair. Any transport error or
non-success status is reported as SynthesisFailed so the caller can fall
back to offline speech; the request is never retried here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from studyset.errors import SynthesisFailed

DEFAULT_API_URL = "https://api.elevenlabs.io"
DEFAULT_MODEL_ID = "eleven_turbo_v2_5"
DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
MIN_API_KEY_LENGTH = 11


@dataclass
class VoiceSettings:
    """Voice tuning sent with each request."""

    stability: float = 0.5
    similarity_boost: float = 0.75

    def to_dict(self) -> dict[str, float]:
        return {"stability": self.stability, "similarity_boost": self.similarity_boost}


@dataclass
class SynthesisRequest:
    """Request payload for a text-to-speech stream."""

    text: str
    model_id: str = DEFAULT_MODEL_ID
    voice_settings: VoiceSettings = field(default_factory=VoiceSettings)

    def to_dict(self) -> dict[str, Any]:
        """Convert request to API payload format."""
        return {
            "text": self.text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings.to_dict(),
        }


def is_api_key_configured(api_key: str | None) -> bool:
    """Keys shorter than a real ElevenLabs key are treated as unset."""
    return bool(api_key) and len(api_key) >= MIN_API_KEY_LENGTH


class ElevenLabsClient:
    """HTTP client for ElevenLabs text-to-speech."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        model_id: str = DEFAULT_MODEL_ID,
        timeout_ms: int = 15000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize ElevenLabs client.

        Args:
            api_key: ElevenLabs API key (sent as xi-api-key)
            api_url: Base URL for the API
            model_id: Synthesis model
            timeout_ms: Request timeout in milliseconds
            transport: Optional httpx transport (tests)
        """
        self.api_url = api_url.rstrip("/")
        self.model_id = model_id
        self.timeout_seconds = timeout_ms / 1000.0
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
            headers={"xi-api-key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> ElevenLabsClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """
        Synthesize speech for text.

        Args:
            text: Text to speak
            voice_id: ElevenLabs voice ID

        Returns:
            Audio bytes (MP3)

        Raises:
            SynthesisFailed: On transport error, non-2xx status or empty body
        """
        payload = SynthesisRequest(text=text, model_id=self.model_id).to_dict()

        try:
            response = await self.client.post(
                f"{self.api_url}/v1/text-to-speech/{voice_id}/stream",
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"ElevenLabs API error: {e.response.status_code}")
            raise SynthesisFailed(f"ElevenLabs API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning(f"ElevenLabs request failed: {e}")
            raise SynthesisFailed(f"ElevenLabs request failed: {e}") from e

        audio = response.content
        if not audio:
            raise SynthesisFailed("ElevenLabs returned an empty audio body")

        logger.debug(f"Synthesized {len(audio)} bytes for voice {voice_id}")
        return audio
