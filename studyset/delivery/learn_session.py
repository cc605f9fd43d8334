"""
Learning Session state machine.

Drives one study pass over a subset of a set's cards:

    ACTIVE --(every 10th answer, cards remain)--> BATCH_SUMMARY --continue--> ACTIVE
    ACTIVE --(queue empty)--> COMPLETE

Missed cards are re-inserted a few slots back so they come around again
in the same pass instead of immediately. The full snapshot is persisted
after every answer, so a crash loses at most the unanswered question.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from loguru import logger

from studyset.errors import InsufficientCards, SessionExpired, SessionStateError

from .cards import utc_now
from .scheduler import Grade
from .session_store import GradingPolicy, SessionSnapshot, SessionStore, StudyMode

BATCH_SIZE = 10
MIN_SESSION_CARDS = 2

# remaining queue length -> insert index
ReinsertPolicy = Callable[[int], int]


def random_reinsert_policy(rng: random.Random | None = None) -> ReinsertPolicy:
    """Re-insert 2-4 slots ahead, or at the end of a shorter queue."""
    rng = rng or random.Random()

    def _policy(remaining: int) -> int:
        return min(remaining, rng.randint(2, 4))

    return _policy


class SessionPhase(Enum):
    """Where the session is in its pass."""

    ACTIVE = "active"
    BATCH_SUMMARY = "batch_summary"
    COMPLETE = "complete"


@dataclass
class BatchEntry:
    """One answered question, kept for the batch summary."""

    card_id: str
    correct: bool
    grade: Grade | None = None


@dataclass
class SessionDelta:
    """Outcome of a single answer."""

    card_id: str
    correct: bool
    phase: SessionPhase
    questions_answered: int
    correct_count: int
    remaining: int
    requeued_at: int | None = None
    grade: Grade | None = None
    persisted: bool = True
    batch: list[BatchEntry] = field(default_factory=list)


class LearnSession:
    """
    One study pass over a card subset.

    The session only orders questions and tracks counters. Card state
    (SM-2 stats or the multiple-choice counter) is updated by the caller.
    """

    def __init__(
        self,
        snapshot: SessionSnapshot,
        store: SessionStore | None = None,
        reinsert_policy: ReinsertPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._snapshot = snapshot
        self.store = store
        self.reinsert_policy = reinsert_policy or random_reinsert_policy()
        self.clock = clock or utc_now
        self._lock = threading.Lock()
        self._batch: list[BatchEntry] = []
        self._phase = SessionPhase.COMPLETE if snapshot.is_complete else SessionPhase.ACTIVE
        self._sync_current()

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def create(
        cls,
        set_id: str,
        card_ids: Sequence[str],
        mode: StudyMode = StudyMode.ALL,
        policy: GradingPolicy = GradingPolicy.SM2,
        store: SessionStore | None = None,
        rng: random.Random | None = None,
        reinsert_policy: ReinsertPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> LearnSession:
        """
        Start a fresh session over the given cards in shuffled order.

        Raises:
            InsufficientCards: if fewer than two cards are given
        """
        queue = list(dict.fromkeys(card_ids))
        if len(queue) < MIN_SESSION_CARDS:
            raise InsufficientCards(len(queue), MIN_SESSION_CARDS)

        rng = rng or random.Random()
        clock = clock or utc_now
        rng.shuffle(queue)

        now = clock()
        snapshot = SessionSnapshot(
            set_id=set_id,
            queue=queue,
            mastered_ids=[],
            mode=StudyMode(mode),
            policy=GradingPolicy(policy),
            started_at=now,
            saved_at=now,
        )
        session = cls(
            snapshot,
            store=store,
            reinsert_policy=reinsert_policy or random_reinsert_policy(rng),
            clock=clock,
        )
        session._persist()

        logger.info(f"Learn session started: set={set_id} mode={snapshot.mode.value} cards={len(queue)}")
        return session

    @classmethod
    def resume(
        cls,
        snapshot: SessionSnapshot,
        store: SessionStore | None = None,
        reinsert_policy: ReinsertPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> LearnSession:
        """
        Continue a persisted session.

        Raises:
            SessionExpired: if the snapshot was saved more than 7 days ago
        """
        clock = clock or utc_now
        if snapshot.is_expired(clock()):
            raise SessionExpired(
                f"Learn session for set {snapshot.set_id} saved at "
                f"{snapshot.saved_at.isoformat()} has expired"
            )

        logger.info(
            f"Learn session resumed: set={snapshot.set_id} "
            f"remaining={len(snapshot.queue)} answered={snapshot.questions_answered}"
        )
        return cls(replace(snapshot), store=store, reinsert_policy=reinsert_policy, clock=clock)

    # =========================================================================
    # Read Access
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def set_id(self) -> str:
        return self._snapshot.set_id

    @property
    def mode(self) -> StudyMode:
        return self._snapshot.mode

    @property
    def policy(self) -> GradingPolicy:
        return self._snapshot.policy

    @property
    def questions_answered(self) -> int:
        return self._snapshot.questions_answered

    @property
    def correct_count(self) -> int:
        return self._snapshot.correct_count

    @property
    def remaining(self) -> int:
        return len(self._snapshot.queue)

    @property
    def is_complete(self) -> bool:
        return self._phase == SessionPhase.COMPLETE

    @property
    def batch_history(self) -> list[BatchEntry]:
        return list(self._batch)

    def current_question(self) -> str | None:
        """ID of the card awaiting an answer, or None when the queue is empty."""
        queue = self._snapshot.queue
        return queue[0] if queue else None

    def snapshot(self) -> SessionSnapshot:
        """Copy of the current state."""
        with self._lock:
            return self._copy()

    # =========================================================================
    # Transitions
    # =========================================================================

    def answer_grade(self, grade: int | Grade) -> SessionDelta:
        """Answer the current question with an SM-2 grade (Good or Easy count as correct)."""
        grade = Grade.parse(grade)
        return self.answer(grade.is_passing, grade=grade)

    def answer(self, correct: bool, grade: Grade | None = None) -> SessionDelta:
        """
        Answer the current question.

        Correct answers retire the card for this pass; missed cards are
        re-inserted a few slots ahead. The snapshot is persisted before
        the lock is released.

        Raises:
            SessionStateError: if the session is not ACTIVE
        """
        with self._lock:
            if self._phase != SessionPhase.ACTIVE:
                raise SessionStateError(f"Cannot answer while session is {self._phase.value}")

            state = self._snapshot
            card_id = state.queue.pop(0)
            requeued_at = None

            if correct:
                state.mastered_ids.append(card_id)
                state.correct_count += 1
            else:
                requeued_at = self.reinsert_policy(len(state.queue))
                requeued_at = max(0, min(requeued_at, len(state.queue)))
                state.queue.insert(requeued_at, card_id)

            state.questions_answered += 1
            self._batch.append(BatchEntry(card_id=card_id, correct=correct, grade=grade))

            if not state.queue:
                self._phase = SessionPhase.COMPLETE
            elif state.questions_answered % BATCH_SIZE == 0:
                self._phase = SessionPhase.BATCH_SUMMARY

            self._sync_current()
            persisted = self._persist()

            delta = SessionDelta(
                card_id=card_id,
                correct=correct,
                phase=self._phase,
                questions_answered=state.questions_answered,
                correct_count=state.correct_count,
                remaining=len(state.queue),
                requeued_at=requeued_at,
                grade=grade,
                persisted=persisted,
                batch=list(self._batch) if self._phase != SessionPhase.ACTIVE else [],
            )

        if delta.phase == SessionPhase.COMPLETE:
            logger.info(
                f"Learn session complete: set={state.set_id} "
                f"answered={state.questions_answered} correct={state.correct_count}"
            )
        return delta

    def continue_session(self) -> None:
        """Leave the batch summary checkpoint; queue and mastered set are untouched."""
        with self._lock:
            if self._phase == SessionPhase.BATCH_SUMMARY:
                self._phase = SessionPhase.ACTIVE
                self._batch.clear()

    def prune(self, valid_ids: Iterable[str]) -> list[str]:
        """
        Drop card IDs that no longer exist in the set.

        Returns:
            The removed IDs
        """
        valid = set(valid_ids)
        with self._lock:
            state = self._snapshot
            removed = [cid for cid in state.queue if cid not in valid]
            removed += [cid for cid in state.mastered_ids if cid not in valid]
            if not removed:
                return []

            state.queue = [cid for cid in state.queue if cid in valid]
            state.mastered_ids = [cid for cid in state.mastered_ids if cid in valid]
            if not state.queue:
                self._phase = SessionPhase.COMPLETE
            self._sync_current()
            self._persist()

        logger.warning(f"Skipped {len(removed)} deleted cards in set {self.set_id}")
        return removed

    def exit(self) -> bool:
        """
        Abandon the session.

        Returns:
            True if the session was saved for later, False if it was complete
        """
        with self._lock:
            if self._snapshot.queue:
                self._persist()
                return True
            self._phase = SessionPhase.COMPLETE
            self._clear_persisted()
            return False

    def discard(self) -> None:
        """Drop the persisted session without completing it."""
        with self._lock:
            self._clear_persisted()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _copy(self) -> SessionSnapshot:
        state = self._snapshot
        return replace(state, queue=list(state.queue), mastered_ids=list(state.mastered_ids))

    def _sync_current(self) -> None:
        self._snapshot.current_card_id = self.current_question()

    def _persist(self) -> bool:
        """Write the snapshot (or clear it once complete). Caller holds the lock."""
        if self._phase == SessionPhase.COMPLETE:
            self._clear_persisted()
            return True

        self._snapshot.saved_at = self.clock()
        if self.store is None:
            return True
        return self.store.save(self._copy())

    def _clear_persisted(self) -> None:
        if self.store is not None:
            self.store.clear()
