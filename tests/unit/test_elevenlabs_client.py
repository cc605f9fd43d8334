"""
Unit tests for the ElevenLabs TTS client.
"""

import json

import httpx
import pytest
import pytest_asyncio
from httpx import Request, Response

from studyset.integrations.elevenlabs_client import (
    DEFAULT_VOICE_ID,
    ElevenLabsClient,
    SynthesisRequest,
    is_api_key_configured,
)
from studyset.errors import SynthesisFailed

API_KEY = "sk_test_0123456789abcdef"


@pytest_asyncio.fixture
async def client():
    """ElevenLabs client instance."""
    client = ElevenLabsClient(api_key=API_KEY, api_url="http://tts.local/", timeout_ms=5000)
    yield client
    await client.close()


class TestSynthesisRequest:
    def test_to_dict(self):
        data = SynthesisRequest(text="hola").to_dict()

        assert data == {
            "text": "hola",
            "model_id": "eleven_turbo_v2_5",
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }


class TestApiKeyCheck:
    @pytest.mark.parametrize(
        "key,expected",
        [(None, False), ("", False), ("short", False), ("0123456789", False), ("01234567890", True)],
    )
    def test_is_api_key_configured(self, key, expected):
        assert is_api_key_configured(key) is expected


class TestElevenLabsClient:
    """Tests for ElevenLabsClient.synthesize."""

    @pytest.mark.asyncio
    async def test_synthesize_success(self, client, monkeypatch):
        captured = {}

        async def mock_post(url, **kwargs):
            captured["url"] = url
            captured["json"] = kwargs["json"]
            return Response(200, content=b"ID3-mp3", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        audio = await client.synthesize("hola", DEFAULT_VOICE_ID)

        assert audio == b"ID3-mp3"
        assert captured["url"] == f"http://tts.local/v1/text-to-speech/{DEFAULT_VOICE_ID}/stream"
        assert captured["json"]["text"] == "hola"

    @pytest.mark.asyncio
    async def test_error_status_raises(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(401, json={"detail": "bad key"}, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(SynthesisFailed, match="401"):
            await client.synthesize("hola", "v")

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self, client, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            raise httpx.TimeoutException("Timeout")

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(SynthesisFailed):
            await client.synthesize("hola", "v")
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_empty_body_raises(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(200, content=b"", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(SynthesisFailed):
            await client.synthesize("hola", "v")

    @pytest.mark.asyncio
    async def test_sends_api_key_header_over_transport(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("xi-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"audio")

        async with ElevenLabsClient(API_KEY, transport=httpx.MockTransport(handler)) as client:
            assert await client.synthesize("hola", "v") == b"audio"

        assert seen["key"] == API_KEY
        assert seen["body"]["model_id"] == "eleven_turbo_v2_5"
