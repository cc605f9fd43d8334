"""External service clients."""

from .elevenlabs_client import ElevenLabsClient, SynthesisRequest, VoiceSettings, is_api_key_configured

__all__ = [
    "ElevenLabsClient",
    "SynthesisRequest",
    "VoiceSettings",
    "is_api_key_configured",
]
