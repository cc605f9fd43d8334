"""
Integration Tests for the Study Flow.

Exercises the full path over real local stores in tmp_path:
1. StateStore holds a set of cards
2. StudyService starts, grades and persists a learn session
3. SessionStore snapshots survive a restart and expire after 7 days
4. Pre-caching warms the audio cache that SpeechService then hits
"""

from unittest.mock import MagicMock

import pytest

from studyset.audio.audio_cache import get_cache_key
from studyset.audio.precache import PreCacheCoordinator
from studyset.audio.speech import SpeechService
from studyset.delivery.learn_session import SessionPhase
from studyset.delivery.scheduler import Grade, is_due
from studyset.delivery.session_store import SessionStore
from studyset.delivery.state_store import StateStore
from studyset.study.study_service import StudyService

pytestmark = pytest.mark.integration


def _service(tmp_path, clock, rng):
    return StudyService(
        StateStore(tmp_path / "state.db"),
        SessionStore(tmp_path / "learn_session.json"),
        rng=rng,
        clock=clock,
    )


class TestFullPass:
    """A five-card set answered Good throughout."""

    def test_all_good_completes_and_schedules_tomorrow(self, service_with_set, clock):
        service, set_id = service_with_set
        service.start(set_id)

        deltas = [service.grade(Grade.GOOD) for _ in range(5)]

        assert [d.phase for d in deltas[:-1]] == [SessionPhase.ACTIVE] * 4
        assert deltas[-1].phase == SessionPhase.COMPLETE
        assert deltas[-1].correct_count == 5
        assert not service.session_store.exists()

        for card in service.state_store.list_cards(set_id):
            assert card.stats.repetitions == 1
            assert card.stats.interval_days == 1
            assert not is_due(card, clock())

    def test_misses_come_back_in_same_pass(self, service_with_set):
        service, set_id = service_with_set
        service.start(set_id)
        missed = service.current_card().id

        service.grade(Grade.AGAIN)
        seen = []
        while service.session is not None:
            seen.append(service.current_card().id)
            service.grade(Grade.GOOD)

        assert missed in seen
        assert len(seen) == 5


class TestResumeAcrossRestart:
    """Session snapshots survive a new process but expire after a week."""

    def test_resume_within_six_days(self, tmp_path, clock, rng, service_with_set):
        service, set_id = service_with_set
        service.start(set_id)
        service.grade(Grade.GOOD)
        queue = service.session.snapshot().queue
        service.exit()

        clock.advance(days=6)
        restarted = _service(tmp_path, clock, rng)
        session = restarted.start(set_id)

        assert session.snapshot().queue == queue
        assert session.questions_answered == 1

    def test_expired_after_eight_days(self, tmp_path, clock, rng, service_with_set):
        service, set_id = service_with_set
        service.start(set_id)
        service.grade(Grade.GOOD)
        service.exit()

        clock.advance(days=8)
        restarted = _service(tmp_path, clock, rng)

        assert restarted.resumable_session() is None
        session = restarted.start(set_id)
        assert session.questions_answered == 0
        assert session.remaining == 5


class TestSpeechPipeline:
    @pytest.mark.asyncio
    async def test_precached_term_is_played_from_cache(self, service_with_set, audio_cache):
        service, set_id = service_with_set
        calls = []

        class Synth:
            async def synthesize(self, text, voice_id):
                calls.append(text)
                return f"audio:{text}".encode()

        candidates = service.precache_candidates(set_id)
        coordinator = PreCacheCoordinator(audio_cache, Synth(), "v", delay_seconds=0)
        coordinator.enqueue(candidates)
        await coordinator.join()

        player = MagicMock()
        speech = SpeechService(audio_cache, player, MagicMock(), Synth(), "v", use_premium=True)
        await speech.speak(candidates[0].term)

        assert speech.last_source == "cache"
        assert len(calls) == 5
        assert audio_cache.get(get_cache_key(candidates[0].term, "v")) is not None


@pytest.fixture
def service_with_set(tmp_path, clock, rng):
    service = _service(tmp_path, clock, rng)
    study_set = service.state_store.create_set("Greek letters", now=clock())
    for term in ["alpha", "beta", "gamma", "delta", "epsilon"]:
        service.state_store.add_card(study_set.id, term, f"the letter {term}", now=clock())
    yield service, study_set.id
    service.state_store.close()
