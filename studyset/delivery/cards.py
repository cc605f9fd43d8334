"""
Card and Study Set data classes.

Cards carry their SM-2 review state. Updates go through explicit
`with_*` functions that return a new validated card rather than
merging partial dictionaries.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime

# =============================================================================
# Constants
# =============================================================================

MIN_EASE = 1.3
INITIAL_EASE = 2.5
MAX_CARDS_PER_SET = 500


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Opaque identifier for sets and cards."""
    return str(uuid.uuid4())


def parse_utc(value: str | datetime) -> datetime:
    """Parse an ISO timestamp; naive values are taken to be UTC."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_dt(value: str | datetime | None) -> datetime | None:
    return parse_utc(value) if value is not None else None


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# =============================================================================
# Review Stats
# =============================================================================


@dataclass(frozen=True)
class ReviewStats:
    """SM-2 review state for a single card."""

    ease: float = INITIAL_EASE
    interval_days: int = 1
    due_at: datetime | None = None
    repetitions: int = 0
    last_reviewed_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.ease < MIN_EASE:
            raise ValueError(f"ease must be >= {MIN_EASE}, got {self.ease}")
        if self.interval_days < 1:
            raise ValueError(f"interval_days must be >= 1, got {self.interval_days}")
        if self.repetitions < 0:
            raise ValueError(f"repetitions must be >= 0, got {self.repetitions}")

    @classmethod
    def new(cls, now: datetime | None = None) -> ReviewStats:
        """Stats for a freshly created card: due immediately."""
        return cls(due_at=now or utc_now())

    def to_dict(self) -> dict:
        return {
            "ease": self.ease,
            "interval_days": self.interval_days,
            "due_at": _format_dt(self.due_at),
            "repetitions": self.repetitions,
            "last_reviewed_at": _format_dt(self.last_reviewed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ReviewStats:
        return cls(
            ease=float(data.get("ease", INITIAL_EASE)),
            interval_days=int(data.get("interval_days", 1)),
            due_at=_parse_dt(data.get("due_at")),
            repetitions=int(data.get("repetitions", 0)),
            last_reviewed_at=_parse_dt(data.get("last_reviewed_at")),
        )


# =============================================================================
# Card
# =============================================================================


@dataclass(frozen=True)
class Card:
    """
    A term/definition pair with scheduling state.

    `mastery_level` is the simple counter used by multiple-choice grading;
    the SM-2 derived level lives in `scheduler.mastery_level`.
    """

    id: str
    set_id: str
    term: str
    definition: str
    starred: bool = False
    mastery_level: int = 0
    stats: ReviewStats | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def create(
        cls,
        set_id: str,
        term: str,
        definition: str,
        now: datetime | None = None,
    ) -> Card:
        """Create a new card with SM-2 defaults."""
        now = now or utc_now()
        return cls(
            id=new_id(),
            set_id=set_id,
            term=term.strip(),
            definition=definition.strip(),
            stats=ReviewStats.new(now),
            created_at=now,
            updated_at=now,
        )

    def with_stats(self, stats: ReviewStats, now: datetime | None = None) -> Card:
        return replace(self, stats=stats, updated_at=now or utc_now())

    def with_mastery_level(self, level: int, now: datetime | None = None) -> Card:
        if level < 0:
            raise ValueError(f"mastery_level must be >= 0, got {level}")
        return replace(self, mastery_level=level, updated_at=now or utc_now())

    def with_starred(self, starred: bool, now: datetime | None = None) -> Card:
        return replace(self, starred=starred, updated_at=now or utc_now())


# =============================================================================
# Study Set
# =============================================================================


@dataclass(frozen=True)
class StudySet:
    """A named, ordered collection of cards."""

    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    card_count: int = 0

    @classmethod
    def create(cls, name: str, now: datetime | None = None) -> StudySet:
        now = now or utc_now()
        return cls(id=new_id(), name=name.strip(), created_at=now, updated_at=now)
