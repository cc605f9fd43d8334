"""
Study Service: the orchestrator for learning sessions.

Owns the explicit study context (active set, active session, grading
policy) and wires the pieces together:
- card selection per study mode
- session create/resume with lazy expiry
- SM-2 grading through the scheduler, or the multiple-choice counter
- pre-cache candidate selection for the active set
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from studyset.audio.precache import PRECACHE_WINDOW, select_precache_candidates
from studyset.delivery.cards import Card, utc_now
from studyset.delivery.learn_session import LearnSession, ReinsertPolicy, SessionDelta, SessionPhase
from studyset.delivery.scheduler import Grade, SM2Scheduler, get_due_cards, log_review
from studyset.delivery.session_store import GradingPolicy, SessionSnapshot, SessionStore, StudyMode
from studyset.delivery.state_store import StateStore
from studyset.errors import InsufficientCards, SessionExpired, SessionStateError


@dataclass
class StudyContext:
    """Mutable state owned by the orchestrator."""

    active_set_id: str | None = None
    session: LearnSession | None = None


class StudyService:
    """
    High-level service for study operations.

    All collaborators are passed in; nothing is read from ambient globals.
    """

    def __init__(
        self,
        state_store: StateStore,
        session_store: SessionStore,
        scheduler: SM2Scheduler | None = None,
        rng: random.Random | None = None,
        reinsert_policy: ReinsertPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.state_store = state_store
        self.session_store = session_store
        self.scheduler = scheduler or SM2Scheduler()
        self.rng = rng or random.Random()
        self.reinsert_policy = reinsert_policy
        self.clock = clock or utc_now
        self.context = StudyContext()

    # =========================================================================
    # Card Selection
    # =========================================================================

    def select_cards(self, set_id: str, mode: StudyMode | str = StudyMode.ALL) -> list[Card]:
        """Cards of a set that apply to a study mode, in set order."""
        mode = StudyMode(mode)
        cards = self.state_store.list_cards(set_id)
        if mode == StudyMode.STARRED:
            return [card for card in cards if card.starred]
        if mode == StudyMode.DUE:
            return get_due_cards(cards, self.clock())
        return cards

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    @property
    def session(self) -> LearnSession | None:
        return self.context.session

    def _require_session(self) -> LearnSession:
        if self.context.session is None:
            raise SessionStateError("No active learn session")
        return self.context.session

    def resumable_session(self) -> SessionSnapshot | None:
        """The persisted session if it is still resumable."""
        snapshot = self.session_store.load_active(self.clock())
        if snapshot is None or snapshot.is_complete:
            return None
        return snapshot

    def start(
        self,
        set_id: str,
        mode: StudyMode | str = StudyMode.ALL,
        policy: GradingPolicy | str = GradingPolicy.SM2,
        resume: bool = True,
    ) -> LearnSession:
        """
        Start studying a set.

        A persisted, unexpired session for the same set is resumed when
        `resume` is set; otherwise a fresh session replaces it.

        Raises:
            KeyError: if the set does not exist
            InsufficientCards: if fewer than two cards apply to the mode
        """
        if self.state_store.get_set(set_id) is None:
            raise KeyError(f"Study set not found: {set_id}")

        session = self._try_resume(set_id) if resume else None
        if session is None:
            cards = self.select_cards(set_id, mode)
            if len(cards) < 2:
                logger.info(f"Not enough cards for mode {StudyMode(mode).value} in set {set_id}: {len(cards)}")
                raise InsufficientCards(len(cards))
            session = LearnSession.create(
                set_id,
                [card.id for card in cards],
                mode=StudyMode(mode),
                policy=GradingPolicy(policy),
                store=self.session_store,
                rng=self.rng,
                reinsert_policy=self.reinsert_policy,
                clock=self.clock,
            )

        self.context.active_set_id = set_id
        self.context.session = session
        self.current_card()  # prunes cards deleted since the session was saved
        return session

    def _try_resume(self, set_id: str) -> LearnSession | None:
        snapshot = self.session_store.load()
        if snapshot is None or snapshot.set_id != set_id or snapshot.is_complete:
            return None
        try:
            return LearnSession.resume(
                snapshot,
                store=self.session_store,
                reinsert_policy=self.reinsert_policy,
                clock=self.clock,
            )
        except SessionExpired as e:
            logger.info(f"{e}; starting fresh")
            self.session_store.clear()
            return None

    def current_card(self) -> Card | None:
        """The card awaiting an answer; deleted cards are skipped."""
        session = self.context.session
        if session is None:
            return None

        card_id = session.current_question()
        if card_id is None:
            return None

        card = self.state_store.get_card(session.set_id, card_id)
        if card is not None:
            return card

        session.prune(card.id for card in self.state_store.list_cards(session.set_id))
        next_id = session.current_question()
        return self.state_store.get_card(session.set_id, next_id) if next_id else None

    # =========================================================================
    # Answering
    # =========================================================================

    def grade(self, grade: int | Grade) -> SessionDelta:
        """
        Grade the current card with SM-2 and advance the session.

        Raises:
            InvalidGrade: if grade is not 1-4
            SessionStateError: if there is no active SM-2 session or no current card
        """
        grade = Grade.parse(grade)
        session = self._require_session()
        if session.policy != GradingPolicy.SM2:
            raise SessionStateError("Session uses multiple-choice grading")

        self._require_active(session)
        card = self._require_current_card()
        now = self.clock()
        new_stats = self.scheduler.calculate_next_review(card.stats, grade, now)
        self.state_store.update_card_stats(card.set_id, card.id, new_stats, now)
        log_review(card, grade, new_stats)

        return self._finish(session.answer_grade(grade))

    def answer_choice(self, is_correct: bool) -> SessionDelta:
        """
        Record a multiple-choice answer.

        The card's mastery counter goes up on a correct answer and resets
        to zero on a miss; SM-2 stats are left untouched.
        """
        session = self._require_session()
        if session.policy != GradingPolicy.MULTIPLE_CHOICE:
            raise SessionStateError("Session uses SM-2 grading")

        self._require_active(session)
        card = self._require_current_card()
        level = card.mastery_level + 1 if is_correct else 0
        self.state_store.update_mastery_level(card.set_id, card.id, level, self.clock())

        return self._finish(session.answer(is_correct))

    @staticmethod
    def _require_active(session: LearnSession) -> None:
        # Card state must not change for an answer the session will reject
        if session.phase != SessionPhase.ACTIVE:
            raise SessionStateError(f"Cannot answer while session is {session.phase.value}")

    def _require_current_card(self) -> Card:
        card = self.current_card()
        if card is None:
            raise SessionStateError("No card awaiting an answer")
        return card

    def _finish(self, delta: SessionDelta) -> SessionDelta:
        if self.context.session is not None and self.context.session.is_complete:
            self.context.session = None
        return delta

    def continue_session(self) -> None:
        self._require_session().continue_session()

    def exit(self) -> bool:
        """
        Leave the current session.

        Returns:
            True if it was saved for later resumption
        """
        session = self.context.session
        if session is None:
            return False
        saved = session.exit()
        self.context.session = None
        return saved

    def discard(self) -> None:
        """Throw away the current (or persisted) session."""
        if self.context.session is not None:
            self.context.session.discard()
            self.context.session = None
        else:
            self.session_store.clear()

    # =========================================================================
    # Pre-caching
    # =========================================================================

    def precache_candidates(self, set_id: str | None = None, window: int = PRECACHE_WINDOW) -> list[Card]:
        """Starred cards plus the next few upcoming cards of a set."""
        set_id = set_id or self.context.active_set_id
        if set_id is None:
            return []

        cards = self.state_store.list_cards(set_id)
        session = self.context.session
        if session is not None and session.set_id == set_id:
            # Upcoming queue order first so the window covers the next questions
            by_id = {card.id: card for card in cards}
            upcoming = [by_id[cid] for cid in session.snapshot().queue if cid in by_id]
            queued = {card.id for card in upcoming}
            cards = upcoming + [card for card in cards if card.id not in queued]
        return select_precache_candidates(cards, window)
