"""
Unit tests for the learn session state machine.
"""

import random
from datetime import timedelta

import pytest

from studyset.delivery.learn_session import (
    BATCH_SIZE,
    LearnSession,
    SessionPhase,
    random_reinsert_policy,
)
from studyset.delivery.scheduler import Grade
from studyset.delivery.session_store import GradingPolicy, SessionSnapshot, StudyMode
from studyset.errors import InsufficientCards, InvalidGrade, SessionExpired, SessionStateError


def two_back(remaining: int) -> int:
    return min(remaining, 2)


@pytest.fixture
def make_session(session_store, clock):
    """Build a session over a known queue order."""

    def _make(queue, **kwargs):
        snapshot = SessionSnapshot(set_id="set-1", queue=list(queue), started_at=clock(), saved_at=clock())
        return LearnSession(snapshot, store=session_store, reinsert_policy=two_back, clock=clock, **kwargs)

    return _make


class TestCreate:
    """Tests for starting a session."""

    def test_requires_two_cards(self, session_store):
        with pytest.raises(InsufficientCards) as exc:
            LearnSession.create("set-1", ["a"], store=session_store)

        assert str(exc.value) == "Need at least 2 cards. Found 1."

    def test_duplicate_ids_count_once(self, session_store):
        with pytest.raises(InsufficientCards):
            LearnSession.create("set-1", ["a", "a"], store=session_store)

    def test_queue_is_a_permutation(self, session_store, rng, clock):
        ids = [f"card-{i}" for i in range(8)]
        session = LearnSession.create("set-1", ids, store=session_store, rng=rng, clock=clock)

        snapshot = session.snapshot()
        assert sorted(snapshot.queue) == sorted(ids)
        assert snapshot.mastered_ids == []
        assert snapshot.questions_answered == 0
        assert session.phase == SessionPhase.ACTIVE

    def test_shuffle_uses_injected_rng(self, session_store, clock):
        ids = [f"card-{i}" for i in range(8)]
        first = LearnSession.create("set-1", ids, store=session_store, rng=random.Random(7), clock=clock)
        second = LearnSession.create("set-1", ids, store=session_store, rng=random.Random(7), clock=clock)

        assert first.snapshot().queue == second.snapshot().queue

    def test_persisted_immediately(self, session_store, rng, clock):
        session = LearnSession.create(
            "set-1", ["a", "b", "c"], mode=StudyMode.STARRED, store=session_store, rng=rng, clock=clock
        )

        stored = session_store.load()
        assert stored is not None
        assert stored.queue == session.snapshot().queue
        assert stored.mode == StudyMode.STARRED
        assert stored.policy == GradingPolicy.SM2


class TestAnswer:
    """Tests for answering questions."""

    def test_correct_answer_retires_card(self, make_session):
        session = make_session(["a", "b", "c"])

        delta = session.answer(True)

        assert delta.card_id == "a"
        assert delta.correct is True
        assert delta.correct_count == 1
        assert delta.remaining == 2
        snapshot = session.snapshot()
        assert snapshot.queue == ["b", "c"]
        assert snapshot.mastered_ids == ["a"]
        assert snapshot.current_card_id == "b"

    def test_miss_requeues_a_few_slots_back(self, make_session):
        session = make_session(["a", "b", "c", "d"])

        delta = session.answer(False)

        assert delta.requeued_at == 2
        assert session.snapshot().queue == ["b", "c", "a", "d"]
        assert session.correct_count == 0
        assert session.questions_answered == 1

    def test_miss_on_last_card_keeps_it_in_queue(self, make_session):
        session = make_session(["a", "b"])
        session.answer(True)

        delta = session.answer(False)

        assert delta.requeued_at == 0
        assert session.current_question() == "b"
        assert session.phase == SessionPhase.ACTIVE

    def test_queue_and_mastered_stay_disjoint(self, make_session):
        session = make_session(["a", "b", "c", "d"])
        for correct in [False, True, False, True, True, True]:
            session.answer(correct)

        snapshot = session.snapshot()
        assert not set(snapshot.queue) & set(snapshot.mastered_ids)

    def test_all_correct_completes_and_clears_store(self, make_session, session_store):
        session = make_session(["a", "b"])
        session.answer(True)
        assert session_store.exists()

        delta = session.answer(True)

        assert delta.phase == SessionPhase.COMPLETE
        assert session.is_complete
        assert session.current_question() is None
        assert not session_store.exists()

    def test_answer_grade_maps_correctness(self, make_session):
        session = make_session(["a", "b", "c", "d"])

        assert session.answer_grade(Grade.GOOD).correct is True
        assert session.answer_grade(Grade.HARD).correct is False
        assert session.answer_grade(4).correct is True

    def test_invalid_grade_leaves_state_untouched(self, make_session):
        session = make_session(["a", "b"])

        with pytest.raises(InvalidGrade):
            session.answer_grade(0)

        assert session.questions_answered == 0
        assert session.current_question() == "a"

    def test_answer_after_complete_raises(self, make_session):
        session = make_session(["a", "b"])
        session.answer(True)
        session.answer(True)

        with pytest.raises(SessionStateError):
            session.answer(True)

    def test_snapshot_persisted_after_each_answer(self, make_session, session_store, clock):
        session = make_session(["a", "b", "c"])
        clock.advance(minutes=5)

        session.answer(False)

        stored = session_store.load()
        assert stored.questions_answered == 1
        assert stored.queue == session.snapshot().queue
        assert stored.saved_at == clock()


class TestBatchCheckpoint:
    """Tests for the batch summary boundary."""

    def test_tenth_answer_pauses(self, make_session):
        session = make_session([f"c{i}" for i in range(12)])
        for _ in range(BATCH_SIZE - 1):
            assert session.answer(True).phase == SessionPhase.ACTIVE

        delta = session.answer(True)

        assert delta.phase == SessionPhase.BATCH_SUMMARY
        assert len(delta.batch) == BATCH_SIZE
        with pytest.raises(SessionStateError):
            session.answer(True)

    def test_continue_resumes_without_touching_queue(self, make_session):
        session = make_session([f"c{i}" for i in range(12)])
        for _ in range(BATCH_SIZE):
            session.answer(True)
        before = session.snapshot()

        session.continue_session()

        after = session.snapshot()
        assert session.phase == SessionPhase.ACTIVE
        assert session.batch_history == []
        assert after.queue == before.queue
        assert after.mastered_ids == before.mastered_ids

    def test_emptying_queue_on_tenth_answer_completes(self, make_session):
        session = make_session([f"c{i}" for i in range(BATCH_SIZE)])
        for _ in range(BATCH_SIZE - 1):
            session.answer(True)

        assert session.answer(True).phase == SessionPhase.COMPLETE


class TestReinsertPolicy:
    def test_random_policy_bounds(self):
        policy = random_reinsert_policy(random.Random(3))
        positions = {policy(10) for _ in range(200)}

        assert positions <= {2, 3, 4}
        assert policy(1) == 1
        assert policy(0) == 0


class TestResumeAndExit:
    """Tests for save/resume and leaving a session."""

    def test_exit_with_cards_left_is_resumable(self, make_session, session_store, clock):
        session = make_session(["a", "b", "c"])
        session.answer(True)

        assert session.exit() is True

        resumed = LearnSession.resume(session_store.load(), store=session_store, clock=clock)
        assert resumed.snapshot().queue == ["b", "c"]
        assert resumed.questions_answered == 1
        assert resumed.correct_count == 1

    def test_exit_with_empty_queue_is_completion(self, session_store, clock):
        snapshot = SessionSnapshot(set_id="set-1", queue=[], started_at=clock(), saved_at=clock())
        session_store.save(snapshot)
        session = LearnSession(snapshot, store=session_store, clock=clock)

        assert session.exit() is False
        assert not session_store.exists()

    def test_resume_exactly_seven_days_later(self, make_session, session_store, clock):
        make_session(["a", "b"]).exit()
        clock.advance(days=7)

        resumed = LearnSession.resume(session_store.load(), store=session_store, clock=clock)
        assert resumed.current_question() == "a"

    def test_resume_after_expiry_raises(self, make_session, session_store, clock):
        make_session(["a", "b"]).exit()
        clock.advance(days=7, seconds=1)

        with pytest.raises(SessionExpired):
            LearnSession.resume(session_store.load(), store=session_store, clock=clock)

    def test_discard_clears_store(self, make_session, session_store):
        session = make_session(["a", "b"])
        session.exit()

        session.discard()

        assert not session_store.exists()

    def test_prune_drops_deleted_cards(self, make_session, session_store):
        session = make_session(["a", "b", "c"])
        session.answer(True)

        removed = session.prune(["b", "c"])

        assert removed == ["a"]
        snapshot = session.snapshot()
        assert snapshot.queue == ["b", "c"]
        assert snapshot.mastered_ids == []
        assert session_store.load().mastered_ids == []

    def test_prune_everything_completes(self, make_session):
        session = make_session(["a", "b"])

        session.prune([])

        assert session.is_complete
        assert session.current_question() is None


class TestWithoutStore:
    def test_session_runs_without_persistence(self, clock):
        snapshot = SessionSnapshot(set_id="set-1", queue=["a", "b"], saved_at=clock() - timedelta(days=1))
        session = LearnSession(snapshot, reinsert_policy=two_back, clock=clock)

        assert session.answer(True).persisted is True
        assert session.snapshot().saved_at == clock()
