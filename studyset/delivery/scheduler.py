"""
SM-2 Spaced Repetition Scheduler.

Implements:
- SM-2 algorithm for review intervals on a four-button grade scale
- Due-date queries over card collections
- Derived (non-authoritative) mastery classification

Grade Scale:
1 - Again: complete blackout, wrong answer
2 - Hard: correct but with difficulty
3 - Good: correct with some hesitation
4 - Easy: perfect recall, effortless
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum

from loguru import logger

from studyset.errors import InvalidGrade

from .cards import INITIAL_EASE, MIN_EASE, Card, ReviewStats, utc_now

# =============================================================================
# Grades
# =============================================================================


class Grade(IntEnum):
    """Recall-quality grade."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: int | Grade) -> Grade:
        """
        Validate a raw grade.

        Raises:
            InvalidGrade: for anything outside 1-4 (never clamps)
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidGrade(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidGrade(value) from None

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_passing(self) -> bool:
        return self >= Grade.GOOD


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = INITIAL_EASE
    minimum_easiness: float = MIN_EASE
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    again_ease_penalty: float = 0.2
    hard_ease_penalty: float = 0.15
    hard_interval_factor: float = 0.8
    easy_ease_bonus: float = 0.15
    easy_interval_factor: float = 1.3


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each card has:
    - Ease: how quickly intervals grow (2.5 default, min 1.3)
    - Interval: days until next review
    - Repetitions: consecutive successful recalls
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def calculate_next_review(
        self,
        stats: ReviewStats | None,
        grade: int | Grade,
        now: datetime | None = None,
    ) -> ReviewStats:
        """
        Calculate next review stats based on grade.

        Args:
            stats: Current review stats (None is treated as a new card)
            grade: Grade 1-4
            now: Review time (defaults to current UTC time)

        Returns:
            New ReviewStats with updated ease, interval and due date

        Raises:
            InvalidGrade: if grade is not 1-4
        """
        grade = Grade.parse(grade)
        now = now or utc_now()
        stats = stats or ReviewStats.new(now)
        cfg = self.config

        ease = stats.ease

        if grade == Grade.AGAIN:
            # Failed - reset to beginning
            repetitions = 0
            interval = cfg.first_interval
            new_ease = max(cfg.minimum_easiness, ease - cfg.again_ease_penalty)
        else:
            repetitions = stats.repetitions + 1

            if repetitions == 1:
                interval = cfg.first_interval
            elif repetitions == 2:
                interval = cfg.second_interval
            else:
                interval = round_half_up(stats.interval_days * ease)

            if grade == Grade.HARD:
                interval = max(1, round_half_up(interval * cfg.hard_interval_factor))
                new_ease = max(cfg.minimum_easiness, ease - cfg.hard_ease_penalty)
            elif grade == Grade.EASY:
                interval = round_half_up(interval * cfg.easy_interval_factor)
                new_ease = ease + cfg.easy_ease_bonus
            else:
                new_ease = ease

        interval = max(1, interval)

        return ReviewStats(
            ease=new_ease,
            interval_days=interval,
            due_at=now + timedelta(days=interval),
            repetitions=repetitions,
            last_reviewed_at=now,
        )


_default_scheduler = SM2Scheduler()


def compute_next_review(
    stats: ReviewStats | None,
    grade: int | Grade,
    now: datetime | None = None,
) -> ReviewStats:
    """Module-level shortcut using the default SM-2 configuration."""
    return _default_scheduler.calculate_next_review(stats, grade, now)


# =============================================================================
# Due Queries
# =============================================================================


def is_due(card: Card, now: datetime | None = None) -> bool:
    """A card is due if it has no stats, no due date, or due_at <= now."""
    if card.stats is None or card.stats.due_at is None:
        return True
    return card.stats.due_at <= (now or utc_now())


def get_due_cards(cards: Iterable[Card], now: datetime | None = None) -> list[Card]:
    now = now or utc_now()
    return [card for card in cards if is_due(card, now)]


def sort_by_due_date(cards: Iterable[Card]) -> list[Card]:
    """Most urgent first; cards without a due date sort to the front."""

    def _key(card: Card) -> float:
        if card.stats is None or card.stats.due_at is None:
            return float("-inf")
        return card.stats.due_at.timestamp()

    return sorted(cards, key=_key)


def next_review_text(due_at: datetime | None, now: datetime | None = None) -> str:
    """Human-readable time until the next review ('Now', '12m', '3h', '6d')."""
    if due_at is None:
        return "Now"

    diff = (due_at - (now or utc_now())).total_seconds()
    if diff <= 0:
        return "Now"

    days = int(diff // 86400)
    hours = int(diff // 3600)
    minutes = int(diff // 60)

    if days > 0:
        return f"{days}d"
    if hours > 0:
        return f"{hours}h"
    if minutes > 0:
        return f"{minutes}m"
    return "Now"


def estimate_study_time(card_count: int, seconds_per_card: int = 10) -> int:
    """Estimated study time in whole minutes (rounded up)."""
    return math.ceil(card_count * seconds_per_card / 60)


# =============================================================================
# Mastery
# =============================================================================

MASTERY_LABELS = {
    0: "New",
    1: "Learning",
    2: "Learning",
    3: "Familiar",
    4: "Known",
    5: "Mastered",
}


def mastery_level(stats: ReviewStats | None) -> int:
    """
    Derive a 0-5 mastery level from review stats.

    Conditions are checked in a fixed order and the first match wins, so a
    card with a long interval but only three repetitions lands on level 3
    before the higher thresholds are considered.
    """
    if stats is None:
        return 0

    reps = stats.repetitions
    if reps == 0:
        return 0
    if reps == 1:
        return 1
    if reps == 2:
        return 2
    if stats.interval_days >= 7 and stats.ease >= 2.0:
        return 3
    if stats.interval_days >= 21 and stats.ease >= 2.3:
        return 4
    if stats.interval_days >= 60 and stats.ease >= 2.5:
        return 5
    return min(reps, 3)


def mastery_label(level: int) -> str:
    return MASTERY_LABELS.get(level, "New")


def log_review(card: Card, grade: Grade, new_stats: ReviewStats) -> None:
    logger.debug(
        f"Recorded review for {card.id}: grade={grade.label}, "
        f"due_at={new_stats.due_at}, interval={new_stats.interval_days}d, "
        f"ease={new_stats.ease:.2f}"
    )
