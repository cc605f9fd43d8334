# SQLAlchemy models
from .audio import AudioCacheRow
from .base import Base

__all__ = [
    "Base",
    "AudioCacheRow",
]
