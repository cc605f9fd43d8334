"""
Speech service: cached premium voices with an offline fallback.

`speak` stops any current playback first. With premium synthesis
configured it looks the clip up in the audio cache, synthesizes and caches
it on a miss, and plays it; if synthesis fails it falls back to offline
speech once without retrying the premium path.
"""

from __future__ import annotations

import asyncio
import threading

from loguru import logger

from studyset.errors import SynthesisFailed

from .audio_cache import DEFAULT_CACHE_MB, AudioCache, get_cache_key
from .playback import AudioPlayer, OfflineSpeaker, PlaybackHandle
from .precache import Synthesizer


class SpeechService:
    """Plays card text aloud."""

    def __init__(
        self,
        cache: AudioCache,
        player: AudioPlayer,
        offline: OfflineSpeaker,
        synthesizer: Synthesizer | None = None,
        voice_id: str = "",
        use_premium: bool = False,
        max_size_mb: float = DEFAULT_CACHE_MB,
    ):
        self.cache = cache
        self.player = player
        self.offline = offline
        self.synthesizer = synthesizer
        self.voice_id = voice_id
        self.use_premium = use_premium and synthesizer is not None
        self.max_size_mb = max_size_mb

        self._current: PlaybackHandle | None = None
        self._lock = threading.Lock()
        self.last_source: str | None = None  # "cache", "premium", "offline" or None

    @property
    def is_speaking(self) -> bool:
        handle = self._current
        return handle is not None and handle.is_playing

    async def speak(self, text: str) -> PlaybackHandle | None:
        """
        Speak text, returning the playback handle (None if nothing plays).

        Premium errors never propagate; when the offline fallback also
        fails playback simply does not start.
        """
        if not text:
            return None

        self.stop()
        self.last_source = None

        handle: PlaybackHandle | None = None
        if self.use_premium:
            handle = await self._speak_premium(text)

        if handle is None:
            handle = self.offline.speak(text)
            self.last_source = "offline" if handle else None

        with self._lock:
            self._current = handle
        return handle

    async def _speak_premium(self, text: str) -> PlaybackHandle | None:
        key = get_cache_key(text, self.voice_id)

        audio = await asyncio.to_thread(self.cache.get, key)
        if audio is not None:
            self.last_source = "cache"
            return self.player.play(audio)

        logger.debug("TTS cache miss, fetching...")
        try:
            audio = await self.synthesizer.synthesize(text, self.voice_id)
        except SynthesisFailed as e:
            logger.warning(f"Premium TTS failed, falling back to offline speech: {e}")
            return None
        except Exception as e:
            logger.warning(f"Premium TTS error, falling back to offline speech: {type(e).__name__}: {e}")
            return None

        await asyncio.to_thread(self.cache.put, key, audio, self.max_size_mb)
        self.last_source = "premium"
        return self.player.play(audio)

    def stop(self) -> None:
        """Stop current playback immediately. Safe to call when idle."""
        with self._lock:
            handle, self._current = self._current, None
        if handle is not None:
            handle.stop()
