"""
Idle pre-caching of card audio.

Warms the audio cache for starred and upcoming cards so playback is a
cache hit. Candidates are drained one at a time by a single background
task that yields between candidates; re-enqueueing while a drain is
running appends to the pending queue instead of starting a second drain.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from typing import Protocol

from loguru import logger

from studyset.delivery.cards import Card
from studyset.errors import SynthesisFailed

from .audio_cache import DEFAULT_CACHE_MB, AudioCache, get_cache_key

PRECACHE_WINDOW = 5


class Synthesizer(Protocol):
    """Fetches synthesized speech bytes for text and voice."""

    async def synthesize(self, text: str, voice_id: str) -> bytes: ...


def select_precache_candidates(cards: Iterable[Card], window: int = PRECACHE_WINDOW) -> list[Card]:
    """All starred cards followed by the first `window` cards, without duplicates."""
    cards = list(cards)
    starred = [card for card in cards if card.starred]
    seen: set[str] = set()
    result: list[Card] = []
    for card in starred + cards[:window]:
        if card.id not in seen:
            seen.add(card.id)
            result.append(card)
    return result


class PreCacheCoordinator:
    """
    Background cache warmer.

    Only active when premium synthesis is configured. Failures are logged
    and skipped; a key is attempted at most once per drain.
    """

    def __init__(
        self,
        cache: AudioCache,
        synthesizer: Synthesizer | None,
        voice_id: str,
        enabled: bool = True,
        delay_seconds: float = 1.0,
        max_size_mb: float = DEFAULT_CACHE_MB,
    ):
        self.cache = cache
        self.synthesizer = synthesizer
        self.voice_id = voice_id
        self.enabled = enabled and synthesizer is not None
        self.delay_seconds = delay_seconds
        self.max_size_mb = max_size_mb

        self._pending: deque[Card] = deque()
        self._attempted: set[str] = set()
        self._task: asyncio.Task | None = None
        self.cached_count = 0
        self.failed_count = 0

    @property
    def is_draining(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def enqueue(self, cards: Iterable[Card]) -> asyncio.Task | None:
        """
        Queue cards for warming and start a drain if none is running.

        Must be called from a running event loop.

        Returns:
            The drain task, or None when pre-caching is disabled
        """
        if not self.enabled:
            return None

        added = [card for card in cards if card is not None and card.term]
        self._pending.extend(added)
        logger.debug(f"Pre-cache queued {len(added)} cards ({len(self._pending)} pending)")

        if not self.is_draining:
            self._attempted.clear()
            self._task = asyncio.get_running_loop().create_task(self._drain())
        return self._task

    async def join(self) -> None:
        """Wait for the current drain to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def cancel(self) -> None:
        """Stop draining and drop pending candidates."""
        self._pending.clear()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _drain(self) -> None:
        while self._pending:
            card = self._pending.popleft()
            await self._warm(card)
            # Suspension point between candidates so playback is never starved
            await asyncio.sleep(self.delay_seconds if self._pending else 0)

    async def _warm(self, card: Card) -> None:
        key = get_cache_key(card.term, self.voice_id)
        if key in self._attempted:
            return
        self._attempted.add(key)

        if await asyncio.to_thread(self.cache.get, key) is not None:
            return

        try:
            audio = await self.synthesizer.synthesize(card.term, self.voice_id)
        except SynthesisFailed:
            self.failed_count += 1
            logger.warning(f"Pre-cache failed for: {card.term[:40]!r}")
            return
        except Exception as e:
            self.failed_count += 1
            logger.warning(f"Pre-cache error for {card.term[:40]!r}: {type(e).__name__}: {e}")
            return

        if await asyncio.to_thread(self.cache.put, key, audio, self.max_size_mb):
            self.cached_count += 1
            logger.debug(f"Pre-cached: {card.term[:40]!r}")
