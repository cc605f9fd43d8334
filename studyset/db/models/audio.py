"""
Audio cache table.

One row per cached speech clip. `accessed_at` is refreshed on every
read and write and drives least-recently-used eviction, so it is indexed.
"""
from __future__ import annotations

from sqlalchemy import Float, Index, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AudioCacheRow(Base):
    """Cached synthesized speech keyed by text prefix and voice."""

    __tablename__ = "audio_cache"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    blob: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accessed_at: Mapped[float] = mapped_column(Float, nullable=False)  # epoch seconds

    __table_args__ = (Index("idx_audio_cache_accessed_at", "accessed_at"),)

    def __repr__(self) -> str:
        return f"<AudioCacheRow key={self.key[:24]!r} size={self.size}>"
