"""
Speech audio: cache, pre-caching and playback.

Components:
- AudioCache: byte-budgeted LRU cache of synthesized clips
- SqlAudioStore: SQLAlchemy byte store under the cache
- PreCacheCoordinator: background warming of upcoming card audio
- SpeechService: cached premium speech with offline fallback
"""

from .audio_cache import AudioCache, AudioStore, CacheStats, SqlAudioStore, get_cache_key
from .playback import PlaybackHandle, SubprocessAudioPlayer, SystemSpeaker
from .precache import PreCacheCoordinator, select_precache_candidates
from .speech import SpeechService

__all__ = [
    # Cache
    "AudioCache",
    "AudioStore",
    "CacheStats",
    "SqlAudioStore",
    "get_cache_key",
    # Pre-caching
    "PreCacheCoordinator",
    "select_precache_candidates",
    # Playback
    "PlaybackHandle",
    "SubprocessAudioPlayer",
    "SystemSpeaker",
    "SpeechService",
]
